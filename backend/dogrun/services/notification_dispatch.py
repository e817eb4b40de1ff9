"""Compose and persist owner notifications for review decisions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models

# purpose: one template table for every approval/rejection message sent to owners
# status: active


class DecisionType(str, Enum):
    PARK_FIRST_STAGE = "park_first_stage"
    PARK_SECOND_STAGE = "park_second_stage"
    PARK_FINAL = "park_final"
    VACCINE = "vaccine"


@dataclass(frozen=True)
class NotificationTemplate:
    type_tag: str
    title: str
    message: str
    details_hint: str = ""


PARK_NOTIFICATION_TYPE = "park_approval_required"
VACCINE_NOTIFICATION_TYPE = "vaccine_approval_required"

_TEMPLATES: dict[tuple[DecisionType, bool], NotificationTemplate] = {
    (DecisionType.PARK_FIRST_STAGE, True): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "First review passed",
        "{name} passed the first review. You can now apply for the second review.",
    ),
    (DecisionType.PARK_FIRST_STAGE, False): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "Review result",
        "Here is the review result for {name}.",
        "See the owner dashboard for details.",
    ),
    (DecisionType.PARK_SECOND_STAGE, True): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "Second review passed",
        "{name} passed the second review. Smart lock testing will start shortly.",
    ),
    (DecisionType.PARK_SECOND_STAGE, False): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "Review result",
        "Here is the second review result for {name}.",
        "See the owner dashboard for details.",
    ),
    (DecisionType.PARK_FINAL, True): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "Facility approved",
        "The review of {name} is complete and it has been approved. Congratulations!",
    ),
    (DecisionType.PARK_FINAL, False): NotificationTemplate(
        PARK_NOTIFICATION_TYPE,
        "Review result",
        "Here is the final review result for {name}.",
        "See the owner dashboard for details.",
    ),
    (DecisionType.VACCINE, True): NotificationTemplate(
        VACCINE_NOTIFICATION_TYPE,
        "Vaccine certificate approved",
        "The vaccine certificate for {name} has been approved. {name} can now use dog parks.",
    ),
    (DecisionType.VACCINE, False): NotificationTemplate(
        VACCINE_NOTIFICATION_TYPE,
        "Vaccine certificate rejected",
        "The vaccine certificate for {name} has been rejected.",
        "See your dashboard for details.",
    ),
}


def template_for(decision_type: DecisionType, approved: bool) -> NotificationTemplate:
    return _TEMPLATES[(decision_type, approved)]


def render(
    decision_type: DecisionType,
    approved: bool,
    entity_name: str,
    note: str | None = None,
) -> tuple[str, str]:
    """Return the (title, message) pair for a decision."""

    template = template_for(decision_type, approved)
    message = template.message.format(name=entity_name)
    if not approved:
        reason = (note or "").strip()
        suffix = f"Reason: {reason}" if reason else template.details_hint
        if suffix:
            message = f"{message} {suffix}"
    return template.title, message


def dispatch(
    db: Session,
    *,
    recipient_id: UUID,
    decision_type: DecisionType,
    approved: bool,
    entity_name: str,
    note: str | None = None,
    data: dict[str, Any] | None = None,
) -> models.Notification:
    """Persist the decision notification; store errors propagate to the caller."""

    title, message = render(decision_type, approved, entity_name, note)
    notification = models.Notification(
        user_id=recipient_id,
        type=template_for(decision_type, approved).type_tag,
        title=title,
        message=message,
        meta=dict(data or {}),
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    db.flush()
    return notification
