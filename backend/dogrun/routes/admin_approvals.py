import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..rbac import ensure_admin_user
from ..services import approvals, image_review
from ..services.approvals import DecisionResult
from .. import models, schemas, pubsub

router = APIRouter(prefix="/api/admin", tags=["admin-approvals"])
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "validation": 400,
    "forbidden": 403,
    "not_found": 404,
    "infrastructure": 503,
}


async def _publish_notification_created(db: Session, result: DecisionResult) -> None:
    if not result.notification_id or not result.recipient_id:
        return
    try:
        notif = db.get(models.Notification, result.notification_id)
        if notif is None:
            return
        event = {
            "type": "notification_created",
            "data": jsonable_encoder(schemas.NotificationOut.model_validate(notif)),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await pubsub.publish_user_event(result.recipient_id, event)
    except Exception:
        # the decision is committed; realtime delivery is best effort
        logger.exception("Could not publish notification %s", result.notification_id)


def decision_response(result: DecisionResult) -> JSONResponse:
    body = schemas.DecisionOut(
        success=result.success,
        message=result.message,
        error=result.error,
        status=result.status,
    )
    status_code = 200 if result.success else ERROR_STATUS_CODES.get(result.error, 400)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.get("/parks/pending", response_model=list[schemas.PendingParkOut])
async def list_pending_parks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    ensure_admin_user(user)
    out = []
    for park in approvals.list_parks_for_review(db):
        summary = image_review.summarize_images(park.images)
        base = schemas.DogParkOut.model_validate(park).model_dump()
        out.append(
            schemas.PendingParkOut(
                **base,
                owner_name=park.owner.full_name if park.owner else None,
                owner_email=park.owner.email if park.owner else None,
                images=schemas.ImageReviewSummaryOut(
                    total=summary.total,
                    pending=summary.pending,
                    approved=summary.approved,
                    rejected=summary.rejected,
                    fully_approved=summary.fully_approved,
                ),
                review_stage=(
                    schemas.ReviewStageOut.model_validate(park.review_stage)
                    if park.review_stage
                    else None
                ),
            )
        )
    return out


@router.get("/parks/{park_id}/images", response_model=list[schemas.FacilityImageOut])
async def list_park_images(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    ensure_admin_user(user)
    return image_review.list_images(db, park_id)


@router.post("/parks/{park_id}/decision", response_model=schemas.DecisionOut)
async def decide_park(
    park_id: UUID,
    decision: schemas.DecisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    result = approvals.decide_facility(db, principal, park_id, decision.approve, decision.note)
    if result.success:
        await _publish_notification_created(db, result)
    return decision_response(result)


@router.delete("/parks/{park_id}", response_model=schemas.DecisionOut)
async def delete_park(
    park_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    return decision_response(approvals.delete_facility_cascade(db, principal, park_id))


@router.post("/images/{image_id}/decision", response_model=schemas.DecisionOut)
async def decide_image(
    image_id: UUID,
    decision: schemas.DecisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    return decision_response(
        approvals.decide_image(db, principal, image_id, decision.approve, decision.note)
    )


@router.get("/vaccines/pending", response_model=list[schemas.PendingVaccineOut])
async def list_pending_vaccines(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    ensure_admin_user(user)
    return approvals.list_pending_vaccines(db)


@router.post("/vaccines/{cert_id}/decision", response_model=schemas.DecisionOut)
async def decide_vaccine(
    cert_id: UUID,
    decision: schemas.DecisionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    result = approvals.decide_vaccine(db, principal, cert_id, decision.approve, decision.note)
    if result.success:
        await _publish_notification_created(db, result)
    return decision_response(result)


@router.patch("/vaccines/{cert_id}/expiry", response_model=schemas.DecisionOut)
async def update_vaccine_expiry(
    cert_id: UUID,
    payload: schemas.VaccineExpiryUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    # only fields present in the body are applied; an explicit null clears the date
    fields = payload.model_fields_set
    kwargs = {}
    if "rabies_expiry_date" in fields:
        kwargs["rabies_expiry"] = payload.rabies_expiry_date
    if "combo_expiry_date" in fields:
        kwargs["combo_expiry"] = payload.combo_expiry_date
    return decision_response(approvals.update_vaccine_expiry(db, principal, cert_id, **kwargs))
