"""Canonical review workflow for dog parks, facility photos and vaccine certificates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Sequence
from uuid import UUID

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .. import audit, models, storage, tasks
from ..errors import ApprovalError, InfrastructureError, NotFoundError, ValidationError
from ..eventlog import record_review_event
from ..rbac import Principal, require_admin, require_owner_or_admin
from . import image_review, notification_dispatch
from .facility_workflow import (
    REVIEWABLE_STATUSES,
    FacilityStatus,
    OwnerStep,
    is_first_stage_decision,
    next_status_for_decision,
    next_status_for_owner_step,
    parse_status,
)
from .notification_dispatch import DecisionType

# purpose: one approval engine shared by every admin surface; each call re-reads state and commits once
# depends_on: services.facility_workflow, services.image_review, services.notification_dispatch
# status: active

logger = logging.getLogger(__name__)

DECISION_COUNT = Counter(
    "review_decisions_total", "Review decisions by entity and outcome", ["entity", "outcome"]
)

GENERIC_FAILURE_MESSAGE = "Approval processing failed"
PENDING_IMAGES_MESSAGE = "pending images must be resolved"

_UNSET = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DecisionResult:
    """Outcome handed back to HTTP callers; failures never raise."""

    success: bool
    message: str
    error: str | None = None
    status: str | None = None
    notification_id: UUID | None = None
    recipient_id: UUID | None = None
    purge_locators: list[str] = field(default_factory=list)


def _run(db: Session, entity: str, operation: Callable[[], DecisionResult]) -> DecisionResult:
    try:
        result = operation()
        db.commit()
    except ApprovalError as exc:
        db.rollback()
        logger.info("%s decision refused: %s", entity, exc.message)
        DECISION_COUNT.labels(entity, exc.code).inc()
        return DecisionResult(success=False, message=exc.message, error=exc.code)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s decision failed against the record store", entity)
        DECISION_COUNT.labels(entity, InfrastructureError.code).inc()
        return DecisionResult(
            success=False,
            message=GENERIC_FAILURE_MESSAGE,
            error=InfrastructureError.code,
        )
    DECISION_COUNT.labels(entity, "success").inc()
    if result.purge_locators:
        tasks.enqueue_storage_purge(result.purge_locators)
    return result


def _clean_note(note: str | None) -> str | None:
    cleaned = (note or "").strip()
    return cleaned or None


def _load_park(db: Session, park_id: UUID) -> models.DogPark:
    park = db.get(models.DogPark, park_id)
    if park is None:
        raise NotFoundError("Dog park not found")
    return park


def _load_certification(db: Session, cert_id: UUID) -> models.VaccineCertification:
    cert = (
        db.query(models.VaccineCertification)
        .options(joinedload(models.VaccineCertification.dog))
        .filter(models.VaccineCertification.id == cert_id)
        .first()
    )
    if cert is None:
        raise NotFoundError("Vaccine certificate not found")
    return cert


def _upsert_review_stage(db: Session, park: models.DogPark) -> models.DogParkReviewStage:
    stage = (
        db.query(models.DogParkReviewStage)
        .filter(models.DogParkReviewStage.park_id == park.id)
        .one_or_none()
    )
    if stage is None:
        stage = models.DogParkReviewStage(park_id=park.id)
        db.add(stage)
    return stage


def _decision_type_for(status: FacilityStatus) -> DecisionType:
    if status is FacilityStatus.PENDING:
        return DecisionType.PARK_FIRST_STAGE
    if status is FacilityStatus.SMART_LOCK_TESTING:
        return DecisionType.PARK_FINAL
    return DecisionType.PARK_SECOND_STAGE


def decide_facility(
    db: Session,
    principal: Principal,
    park_id: UUID,
    approve: bool,
    note: str | None = None,
) -> DecisionResult:
    """Approve or reject a dog park at its current review stage."""

    def _apply() -> DecisionResult:
        require_admin(principal)
        park = _load_park(db, park_id)
        current = parse_status(park.status)
        target = next_status_for_decision(current, approve)
        if approve and not image_review.is_fully_approved(db, park.id):
            raise ValidationError(PENDING_IMAGES_MESSAGE)

        now = _utcnow()
        reason = None if approve else _clean_note(note)
        park.status = target.value
        if target is FacilityStatus.APPROVED:
            park.approved_at = now

        stage = _upsert_review_stage(db, park)
        if approve:
            if is_first_stage_decision(current):
                stage.first_stage_passed_at = now
        else:
            stage.rejected_at = now
            stage.rejection_reason = reason

        record_review_event(
            db,
            park,
            "approved" if approve else "rejected",
            from_status=current.value,
            to_status=target.value,
            actor_id=principal.user_id,
            note=reason,
        )
        notification = notification_dispatch.dispatch(
            db,
            recipient_id=park.owner_id,
            decision_type=_decision_type_for(current),
            approved=approve,
            entity_name=park.name,
            note=reason,
            data={"park_id": str(park.id)},
        )
        audit.log_action(
            db,
            principal.user_id,
            "approve_park" if approve else "reject_park",
            "dog_park",
            park.id,
            {"from_status": current.value, "to_status": target.value},
        )
        return DecisionResult(
            success=True,
            message=f"Facility {'approved' if approve else 'rejected'}",
            status=target.value,
            notification_id=notification.id,
            recipient_id=park.owner_id,
        )

    return _run(db, "facility", _apply)


def decide_image(
    db: Session,
    principal: Principal,
    image_id: UUID,
    approve: bool,
    note: str | None = None,
) -> DecisionResult:
    """Approve or reject a single facility photo; owners are not notified."""

    def _apply() -> DecisionResult:
        require_admin(principal)
        image = image_review.load_image(db, image_id)
        image_review.set_image_approval(db, image, approve, note)
        audit.log_action(
            db,
            principal.user_id,
            "approve_park_image" if approve else "reject_park_image",
            "dog_park_image",
            image.id,
            {"park_id": str(image.park_id)},
        )
        return DecisionResult(
            success=True,
            message=f"Image {'approved' if approve else 'rejected'}",
            status=image.approval,
        )

    return _run(db, "image", _apply)


def decide_vaccine(
    db: Session,
    principal: Principal,
    cert_id: UUID,
    approve: bool,
    note: str | None = None,
) -> DecisionResult:
    """Approve or reject a vaccine certificate and drop its documents either way."""

    def _apply() -> DecisionResult:
        require_admin(principal)
        cert = _load_certification(db, cert_id)
        if cert.status != "pending":
            raise ValidationError("Vaccine certificate has already been reviewed")
        dog = cert.dog
        reason = None if approve else _clean_note(note)

        cert.status = "approved" if approve else "rejected"
        if approve:
            cert.approved_at = _utcnow()
        # Documents are never retained after a decision, whatever the outcome.
        locators = [cert.rabies_vaccine_image, cert.combo_vaccine_image]
        cert.rabies_vaccine_image = None
        cert.combo_vaccine_image = None
        cert.temp_storage = False

        notification = notification_dispatch.dispatch(
            db,
            recipient_id=dog.owner_id,
            decision_type=DecisionType.VACCINE,
            approved=approve,
            entity_name=dog.name,
            note=reason,
            data={"dog_id": str(dog.id), "certification_id": str(cert.id)},
        )
        audit.log_action(
            db,
            principal.user_id,
            "approve_vaccine" if approve else "reject_vaccine",
            "vaccine_certification",
            cert.id,
            {"dog_id": str(dog.id), "reason": reason},
        )
        return DecisionResult(
            success=True,
            message=f"Vaccine certificate {'approved' if approve else 'rejected'}",
            status=cert.status,
            notification_id=notification.id,
            recipient_id=dog.owner_id,
            purge_locators=[
                locator
                for locator in locators
                if storage.is_managed_by(locator, storage.VACCINE_BUCKET, f"{storage.TEMP_PREFIX}{dog.id}")
            ],
        )

    return _run(db, "vaccine", _apply)


def update_vaccine_expiry(
    db: Session,
    principal: Principal,
    cert_id: UUID,
    *,
    rabies_expiry: date | None | object = _UNSET,
    combo_expiry: date | None | object = _UNSET,
) -> DecisionResult:
    """Set the expiry dates read off the certificate; omitted dates stay untouched."""

    def _apply() -> DecisionResult:
        require_admin(principal)
        cert = _load_certification(db, cert_id)
        changed: dict[str, str | None] = {}
        if rabies_expiry is not _UNSET:
            cert.rabies_expiry_date = rabies_expiry
            changed["rabies_expiry_date"] = rabies_expiry.isoformat() if rabies_expiry else None
        if combo_expiry is not _UNSET:
            cert.combo_expiry_date = combo_expiry
            changed["combo_expiry_date"] = combo_expiry.isoformat() if combo_expiry else None
        if not changed:
            raise ValidationError("No expiry dates supplied")
        audit.log_action(db, principal.user_id, "update_vaccine_expiry", "vaccine_certification", cert.id, changed)
        return DecisionResult(success=True, message="Expiry dates updated", status=cert.status)

    return _run(db, "vaccine_expiry", _apply)


def _apply_owner_step(
    db: Session,
    principal: Principal,
    park_id: UUID,
    step: OwnerStep,
) -> tuple[models.DogPark, FacilityStatus, FacilityStatus]:
    park = _load_park(db, park_id)
    require_owner_or_admin(principal, park.owner_id)
    current = parse_status(park.status)
    target = next_status_for_owner_step(current, step)
    park.status = target.value
    record_review_event(
        db,
        park,
        step.value,
        from_status=current.value,
        to_status=target.value,
        actor_id=principal.user_id,
    )
    return park, current, target


def request_second_stage(db: Session, principal: Principal, park_id: UUID) -> DecisionResult:
    def _apply() -> DecisionResult:
        _, _, target = _apply_owner_step(db, principal, park_id, OwnerStep.REQUEST_SECOND_STAGE)
        return DecisionResult(success=True, message="Second review requested", status=target.value)

    return _run(db, "facility_owner_step", _apply)


def submit_second_stage(db: Session, principal: Principal, park_id: UUID) -> DecisionResult:
    """Hand the uploaded facility photos over for the second review."""

    def _apply() -> DecisionResult:
        park = _load_park(db, park_id)
        require_owner_or_admin(principal, park.owner_id)
        missing = image_review.missing_image_types(park, image_review.list_images(db, park.id))
        if missing:
            raise ValidationError(f"Missing facility images: {', '.join(missing)}")
        park, _, target = _apply_owner_step(db, principal, park_id, OwnerStep.SUBMIT_SECOND_STAGE)
        stage = _upsert_review_stage(db, park)
        stage.second_stage_submitted_at = _utcnow()
        return DecisionResult(success=True, message="Second review submitted", status=target.value)

    return _run(db, "facility_owner_step", _apply)


def resubmit_facility(db: Session, principal: Principal, park_id: UUID) -> DecisionResult:
    """Send a rejected facility back to the first review queue."""

    def _apply() -> DecisionResult:
        _, _, target = _apply_owner_step(db, principal, park_id, OwnerStep.RESUBMIT)
        return DecisionResult(success=True, message="Facility resubmitted", status=target.value)

    return _run(db, "facility_owner_step", _apply)


def register_facility_image(
    db: Session,
    principal: Principal,
    park_id: UUID,
    image_type: str,
    image_url: str,
) -> DecisionResult:
    def _apply() -> DecisionResult:
        park = _load_park(db, park_id)
        require_owner_or_admin(principal, park.owner_id)
        image = image_review.register_image(db, park, image_type, image_url)
        return DecisionResult(success=True, message="Image uploaded", status=image.approval)

    return _run(db, "image_upload", _apply)


def delete_facility_cascade(db: Session, principal: Principal, park_id: UUID) -> DecisionResult:
    """Remove a park with every dependent record and its stored photos."""

    def _apply() -> DecisionResult:
        require_admin(principal)
        park = _load_park(db, park_id)
        namespace = storage.facility_namespace(park.id)
        # external URLs and foreign objects are never ours to delete
        locators = [
            image.image_url
            for image in park.images
            if storage.is_managed_by(image.image_url, storage.FACILITY_BUCKET, namespace)
        ]
        audit.log_action(
            db,
            principal.user_id,
            "delete_park",
            "dog_park",
            park.id,
            {"name": park.name, "status": park.status},
        )
        # images, review stage and review events go through ORM cascades
        db.delete(park)
        return DecisionResult(success=True, message="Facility deleted", purge_locators=locators)

    return _run(db, "facility_delete", _apply)


def list_parks_for_review(db: Session) -> Sequence[models.DogPark]:
    """Parks waiting on an admin, oldest submission first."""

    return (
        db.query(models.DogPark)
        .options(joinedload(models.DogPark.owner), joinedload(models.DogPark.review_stage))
        .filter(models.DogPark.status.in_([status.value for status in REVIEWABLE_STATUSES]))
        .order_by(models.DogPark.created_at.asc())
        .all()
    )


def list_pending_vaccines(db: Session) -> Sequence[models.VaccineCertification]:
    return (
        db.query(models.VaccineCertification)
        .options(joinedload(models.VaccineCertification.dog))
        .filter(models.VaccineCertification.status == "pending")
        .order_by(models.VaccineCertification.created_at.asc())
        .all()
    )
