from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import ApprovalError
from ..rbac import ensure_admin_user
from ..services import maintenance
from .. import models, schemas
from .admin_approvals import ERROR_STATUS_CODES

router = APIRouter(tags=["maintenance"])


def client_ip(request: Request) -> str | None:
    peer = request.client.host if request.client else None
    return maintenance.client_ip_from_request(request.headers.get("x-forwarded-for"), peer)


def _http_error(exc: ApprovalError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS_CODES.get(exc.code, 400), detail=exc.message)


@router.get("/api/maintenance/status", response_model=schemas.MaintenanceStatusOut)
async def maintenance_status(request: Request, db: Session = Depends(get_db)):
    ip = client_ip(request)
    decision = maintenance.evaluate(db, ip)
    return schemas.MaintenanceStatusOut(
        blocked=decision.blocked,
        active=decision.active,
        whitelisted=decision.whitelisted,
        client_ip=ip,
        schedule=(
            schemas.MaintenanceScheduleOut.model_validate(decision.schedule)
            if decision.schedule
            else None
        ),
    )


@router.get("/api/admin/maintenance/schedules", response_model=list[schemas.MaintenanceScheduleOut])
async def list_schedules(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    ensure_admin_user(user)
    return maintenance.list_schedules(db)


@router.post("/api/admin/maintenance/schedules", response_model=schemas.MaintenanceScheduleOut)
async def create_schedule(
    payload: schemas.MaintenanceScheduleCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        return maintenance.create_schedule(
            db,
            principal,
            title=payload.title,
            message=payload.message,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_emergency=payload.is_emergency,
            tz_name=payload.timezone,
        )
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)


@router.post("/api/admin/maintenance/schedules/{schedule_id}/end", response_model=schemas.MaintenanceScheduleOut)
async def end_schedule(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        return maintenance.end_schedule(db, principal, schedule_id)
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)


@router.get("/api/admin/maintenance/whitelist", response_model=list[schemas.IPWhitelistOut])
async def list_whitelist(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    ensure_admin_user(user)
    return maintenance.list_whitelist(db)


@router.post("/api/admin/maintenance/whitelist", response_model=schemas.IPWhitelistOut)
async def add_whitelist_entry(
    payload: schemas.IPWhitelistCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        return maintenance.add_whitelist_entry(
            db,
            principal,
            ip_address=payload.ip_address,
            description=payload.description,
            is_active=payload.is_active,
        )
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)


@router.post("/api/admin/maintenance/whitelist/current-ip", response_model=schemas.IPWhitelistOut)
async def whitelist_current_ip(
    request: Request,
    payload: schemas.CurrentIPWhitelistCreate | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        return maintenance.whitelist_client_ip(
            db,
            principal,
            client_ip(request),
            payload.description if payload else None,
        )
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)


@router.post("/api/admin/maintenance/whitelist/{entry_id}/toggle", response_model=schemas.IPWhitelistOut)
async def toggle_whitelist_entry(
    entry_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        return maintenance.toggle_whitelist_entry(db, principal, entry_id)
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)


@router.delete("/api/admin/maintenance/whitelist/{entry_id}")
async def delete_whitelist_entry(
    entry_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    principal = ensure_admin_user(user)
    try:
        maintenance.delete_whitelist_entry(db, principal, entry_id)
    except ApprovalError as exc:
        db.rollback()
        raise _http_error(exc)
    return {"message": "Whitelist entry deleted"}
