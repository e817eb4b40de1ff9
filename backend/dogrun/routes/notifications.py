from uuid import UUID
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session
from sqlalchemy import and_

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, pubsub


async def _publish_notification_event(
    user: models.User, event_type: str, payload: dict
) -> None:
    """Publish a notification lifecycle event on the user's channel."""
    event = {
        "type": event_type,
        "data": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    await pubsub.publish_user_event(user.id, event)


router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("/", response_model=list[schemas.NotificationOut])
async def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read status"),
    type: Optional[str] = Query(None, description="Filter by notification type"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Notification).filter(models.Notification.user_id == user.id)

    if is_read is not None:
        query = query.filter(models.Notification.is_read == is_read)

    if type:
        query = query.filter(models.Notification.type == type)

    return query.order_by(models.Notification.created_at.desc()).all()


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut)
async def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    notif = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user.id)
        .first()
    )
    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")
    notif.is_read = True
    db.commit()
    db.refresh(notif)
    payload = jsonable_encoder(
        schemas.NotificationOut.model_validate(notif)
    )
    await _publish_notification_event(user, "notification_read", payload)
    return notif


@router.post("/mark-all-read")
async def mark_all_read(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Mark all unread notifications as read"""
    updated = (
        db.query(models.Notification)
        .filter(
            and_(
                models.Notification.user_id == user.id,
                models.Notification.is_read.is_(False),
            )
        )
        .all()
    )
    for notif in updated:
        notif.is_read = True
    db.commit()
    for notif in updated:
        payload = jsonable_encoder(schemas.NotificationOut.model_validate(notif))
        await _publish_notification_event(user, "notification_read", payload)
    return {"message": "All notifications marked as read", "updated": len(updated)}


@router.get("/stats", response_model=schemas.NotificationStatsOut)
async def get_notification_stats(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Get notification statistics"""
    notifications = db.query(models.Notification).filter(
        models.Notification.user_id == user.id
    ).all()

    by_type: dict[str, int] = {}
    for notification in notifications:
        by_type[notification.type] = by_type.get(notification.type, 0) + 1

    return schemas.NotificationStatsOut(
        total=len(notifications),
        unread=len([n for n in notifications if not n.is_read]),
        by_type=by_type,
    )
