import os
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session, joinedload

from ..database import get_db
from ..auth import get_current_user
from ..rbac import principal_for, Role
from ..services import approvals
from .. import models, schemas, storage
from .admin_approvals import decision_response

router = APIRouter(prefix="/api/parks", tags=["parks"])

MAX_PHOTO_BYTES = int(os.getenv("MAX_PHOTO_BYTES", str(10 * 1024 * 1024)))


def _get_visible_park(db: Session, park_id: UUID, user: models.User) -> models.DogPark:
    park = (
        db.query(models.DogPark)
        .options(
            joinedload(models.DogPark.images),
            joinedload(models.DogPark.review_stage),
        )
        .filter(models.DogPark.id == park_id)
        .first()
    )
    if not park:
        raise HTTPException(status_code=404, detail="Dog park not found")
    if park.owner_id != user.id and not principal_for(user).has_role(Role.ADMIN):
        raise HTTPException(status_code=403, detail="Not authorized")
    return park


@router.post("", response_model=schemas.DogParkOut)
async def create_park(
    park: schemas.DogParkCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    data = park.model_dump()
    db_park = models.DogPark(**data, owner_id=user.id, status="pending")
    db.add(db_park)
    db.commit()
    db.refresh(db_park)
    return db_park


@router.get("", response_model=list[schemas.DogParkOut])
async def list_my_parks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return (
        db.query(models.DogPark)
        .filter(models.DogPark.owner_id == user.id)
        .order_by(models.DogPark.created_at.desc())
        .all()
    )


@router.get("/{park_id}", response_model=schemas.ParkDetailOut)
async def get_park(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _get_visible_park(db, park_id, user)


@router.post("/{park_id}/images", response_model=schemas.DecisionOut)
async def upload_park_image(
    park_id: UUID,
    image: schemas.FacilityImageCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = approvals.register_facility_image(
        db, principal_for(user), park_id, image.image_type, image.image_url
    )
    return decision_response(result)


@router.post("/{park_id}/images/upload", response_model=schemas.DecisionOut)
async def upload_park_photo(
    park_id: UUID,
    image_type: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _get_visible_park(db, park_id, user)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"{file.filename or 'file'} is empty")
    if len(data) > MAX_PHOTO_BYTES:
        raise HTTPException(status_code=400, detail=f"{file.filename} is too large")
    locator = storage.save_binary_payload(
        data,
        os.path.basename(file.filename or "photo"),
        bucket=storage.FACILITY_BUCKET,
        content_type=file.content_type or "application/octet-stream",
        namespace=storage.facility_namespace(park_id),
    )
    result = approvals.register_facility_image(db, principal_for(user), park_id, image_type, locator)
    if not result.success:
        storage.delete_locators([locator])
    return decision_response(result)


@router.post("/{park_id}/second-stage/request", response_model=schemas.DecisionOut)
async def request_second_stage(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return decision_response(approvals.request_second_stage(db, principal_for(user), park_id))


@router.post("/{park_id}/second-stage/submit", response_model=schemas.DecisionOut)
async def submit_second_stage(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return decision_response(approvals.submit_second_stage(db, principal_for(user), park_id))


@router.post("/{park_id}/resubmit", response_model=schemas.DecisionOut)
async def resubmit_park(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return decision_response(approvals.resubmit_facility(db, principal_for(user), park_id))
