"""Utilities for recording facility review history."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from . import models

# purpose: append review decisions so repeated review cycles keep every reason
# inputs: SQLAlchemy session, dog park, decision metadata
# outputs: DogParkReviewEvent rows ordered by creation time
# status: active


def record_review_event(
    db: Session,
    park: models.DogPark,
    decision: str,
    *,
    from_status: str,
    to_status: str,
    actor_id: UUID | None = None,
    note: str | None = None,
) -> models.DogParkReviewEvent:
    """Persist a review decision for the park's history."""

    event = models.DogParkReviewEvent(
        park_id=park.id,
        actor_id=actor_id,
        decision=decision,
        from_status=from_status,
        to_status=to_status,
        note=note,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    return event


def list_review_events(db: Session, park_id: UUID) -> list[models.DogParkReviewEvent]:
    return (
        db.query(models.DogParkReviewEvent)
        .filter(models.DogParkReviewEvent.park_id == park_id)
        .order_by(models.DogParkReviewEvent.created_at.asc())
        .all()
    )
