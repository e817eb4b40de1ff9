"""Facility review status machine."""

from __future__ import annotations

from enum import Enum

from ..errors import ValidationError

# purpose: single source of truth for legal dog park status transitions
# inputs: current status plus an admin decision or owner step
# outputs: next status or ValidationError for illegal moves
# status: active


class FacilityStatus(str, Enum):
    PENDING = "pending"
    FIRST_STAGE_PASSED = "first_stage_passed"
    SECOND_STAGE_WAITING = "second_stage_waiting"
    SECOND_STAGE_REVIEW = "second_stage_review"
    SMART_LOCK_TESTING = "smart_lock_testing"
    APPROVED = "approved"
    REJECTED = "rejected"


class OwnerStep(str, Enum):
    REQUEST_SECOND_STAGE = "second_stage_requested"
    SUBMIT_SECOND_STAGE = "second_stage_submitted"
    RESUBMIT = "resubmitted"


# Terminal for admin decisions; a rejected owner may still resubmit.
TERMINAL_STATUSES = frozenset({FacilityStatus.APPROVED, FacilityStatus.REJECTED})

# Statuses awaiting an admin decision.
REVIEWABLE_STATUSES = frozenset(
    {
        FacilityStatus.PENDING,
        FacilityStatus.SECOND_STAGE_REVIEW,
        FacilityStatus.SMART_LOCK_TESTING,
    }
)

_ADMIN_APPROVE_EDGES: dict[FacilityStatus, FacilityStatus] = {
    FacilityStatus.PENDING: FacilityStatus.FIRST_STAGE_PASSED,
    FacilityStatus.SECOND_STAGE_REVIEW: FacilityStatus.SMART_LOCK_TESTING,
    FacilityStatus.SMART_LOCK_TESTING: FacilityStatus.APPROVED,
}

_OWNER_EDGES: dict[tuple[FacilityStatus, OwnerStep], FacilityStatus] = {
    (FacilityStatus.FIRST_STAGE_PASSED, OwnerStep.REQUEST_SECOND_STAGE): FacilityStatus.SECOND_STAGE_WAITING,
    (FacilityStatus.SECOND_STAGE_WAITING, OwnerStep.SUBMIT_SECOND_STAGE): FacilityStatus.SECOND_STAGE_REVIEW,
    (FacilityStatus.REJECTED, OwnerStep.RESUBMIT): FacilityStatus.PENDING,
}


def parse_status(value: str) -> FacilityStatus:
    try:
        return FacilityStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown facility status '{value}'") from exc


def is_terminal(status: FacilityStatus | str) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def next_status_for_decision(current: FacilityStatus | str, approve: bool) -> FacilityStatus:
    """Return the status an admin approve/reject moves the facility to."""

    status = parse_status(current)
    if status in TERMINAL_STATUSES:
        raise ValidationError(f"Facility review is already closed ({status.value})")
    if not approve:
        return FacilityStatus.REJECTED
    target = _ADMIN_APPROVE_EDGES.get(status)
    if target is None:
        raise ValidationError(f"Facility in status '{status.value}' is waiting on the owner")
    return target


def next_status_for_owner_step(current: FacilityStatus | str, step: OwnerStep) -> FacilityStatus:
    status = parse_status(current)
    target = _OWNER_EDGES.get((status, step))
    if target is None:
        raise ValidationError(f"Cannot apply '{step.value}' while facility is '{status.value}'")
    return target


def is_first_stage_decision(current: FacilityStatus | str) -> bool:
    return parse_status(current) == FacilityStatus.PENDING
