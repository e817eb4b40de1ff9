import os
from uuid import UUID

from fastapi import APIRouter, Depends, UploadFile, File, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, storage

router = APIRouter(prefix="/api/dogs", tags=["dogs"])

MAX_CERTIFICATE_BYTES = int(os.getenv("MAX_CERTIFICATE_BYTES", str(10 * 1024 * 1024)))


def _get_own_dog(db: Session, dog_id: UUID, user: models.User) -> models.Dog:
    dog = db.get(models.Dog, dog_id)
    if not dog:
        raise HTTPException(status_code=404, detail="Dog not found")
    if dog.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    return dog


async def _store_certificate(dog: models.Dog, upload: UploadFile) -> str:
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"{upload.filename or 'file'} is empty")
    if len(data) > MAX_CERTIFICATE_BYTES:
        raise HTTPException(status_code=400, detail=f"{upload.filename} is too large")
    # decided documents are purged, so uploads always land under the temp prefix
    return storage.save_binary_payload(
        data,
        os.path.basename(upload.filename or "certificate"),
        bucket=storage.VACCINE_BUCKET,
        content_type=upload.content_type or "application/octet-stream",
        namespace=f"{storage.TEMP_PREFIX}{dog.id}",
    )


@router.post("", response_model=schemas.DogOut)
async def create_dog(
    dog: schemas.DogCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    db_dog = models.Dog(**dog.model_dump(), owner_id=user.id)
    db.add(db_dog)
    db.commit()
    db.refresh(db_dog)
    return db_dog


@router.get("", response_model=list[schemas.DogOut])
async def list_dogs(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return (
        db.query(models.Dog)
        .filter(models.Dog.owner_id == user.id)
        .order_by(models.Dog.created_at.asc())
        .all()
    )


@router.post("/{dog_id}/vaccines", response_model=schemas.VaccineCertificationOut)
async def upload_vaccine_certificate(
    dog_id: UUID,
    rabies_image: UploadFile = File(...),
    combo_image: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    dog = _get_own_dog(db, dog_id, user)
    rabies_locator = await _store_certificate(dog, rabies_image)
    combo_locator = await _store_certificate(dog, combo_image)
    cert = models.VaccineCertification(
        dog_id=dog.id,
        rabies_vaccine_image=rabies_locator,
        combo_vaccine_image=combo_locator,
        status="pending",
        temp_storage=True,
    )
    db.add(cert)
    db.commit()
    db.refresh(cert)
    return cert


@router.get("/{dog_id}/vaccines", response_model=list[schemas.VaccineCertificationOut])
async def list_vaccine_certificates(
    dog_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    dog = _get_own_dog(db, dog_id, user)
    return (
        db.query(models.VaccineCertification)
        .filter(models.VaccineCertification.dog_id == dog.id)
        .order_by(models.VaccineCertification.created_at.desc())
        .all()
    )
