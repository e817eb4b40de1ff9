"""Maintenance windows and the IP whitelist that bypasses them."""

from __future__ import annotations

import ipaddress
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from .. import audit, models
from ..errors import NotFoundError, ValidationError
from ..rbac import Principal, require_admin

# purpose: decide per request whether an active maintenance window blocks the caller
# inputs: client address, evaluation instant, schedules and whitelist rows
# outputs: MaintenanceDecision consumed by middleware and the status endpoint
# status: active

logger = logging.getLogger(__name__)

MAINTENANCE_TIMEZONE = os.getenv("MAINTENANCE_TIMEZONE", "Asia/Tokyo")

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(slots=True)
class MaintenanceDecision:
    blocked: bool
    active: bool = False
    whitelisted: bool = False
    schedule: models.MaintenanceSchedule | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise stored timestamps; naive values are already UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_to_utc(value: datetime | None, tz_name: str | None = None) -> datetime | None:
    """Convert an admin-entered wall-clock time to UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name or MAINTENANCE_TIMEZONE))
    return value.astimezone(timezone.utc)


def parse_cidr(value: str) -> IPNetwork:
    """Parse whitelist input; host bits may be set but a prefix is mandatory."""

    candidate = (value or "").strip()
    if "/" not in candidate:
        raise ValidationError("IP whitelist entries must use CIDR notation, e.g. 203.0.113.7/32")
    try:
        return ipaddress.ip_network(candidate, strict=False)
    except ValueError as exc:
        raise ValidationError(f"Invalid CIDR range '{candidate}'") from exc


def _usable_networks(entries: Iterable[models.IPWhitelistEntry]) -> list[IPNetwork]:
    networks: list[IPNetwork] = []
    for entry in entries:
        try:
            networks.append(parse_cidr(entry.ip_address))
        except ValidationError:
            logger.warning("Skipping malformed IP whitelist entry %s (%s)", entry.id, entry.ip_address)
    return networks


def ip_in_networks(client_ip: str | None, networks: Sequence[IPNetwork]) -> bool:
    if not client_ip:
        return False
    try:
        address = ipaddress.ip_address(client_ip.strip())
    except ValueError:
        logger.info("Client address %r is not an IP; treating as not whitelisted", client_ip)
        return False
    # membership is False across IPv4/IPv6 versions
    return any(address in network for network in networks)


def is_whitelisted(db: Session, client_ip: str | None) -> bool:
    return ip_in_networks(client_ip, _usable_networks(list_active_whitelist(db)))


def window_open(schedule: models.MaintenanceSchedule, now: datetime) -> bool:
    start = as_utc(schedule.start_time)
    end = as_utc(schedule.end_time)
    if start is not None and start > now:
        return False
    if end is not None and end < now:
        return False
    return True


def active_schedules(db: Session, now: datetime | None = None) -> list[models.MaintenanceSchedule]:
    """Active schedules whose window covers now, emergencies first."""

    moment = as_utc(now) or _utcnow()
    candidates = (
        db.query(models.MaintenanceSchedule)
        .filter(models.MaintenanceSchedule.is_active.is_(True))
        .all()
    )
    live = [schedule for schedule in candidates if window_open(schedule, moment)]
    live.sort(
        key=lambda schedule: (
            not schedule.is_emergency,
            -(as_utc(schedule.start_time) or as_utc(schedule.created_at) or moment).timestamp(),
        )
    )
    return live


def list_active_whitelist(db: Session) -> Sequence[models.IPWhitelistEntry]:
    return (
        db.query(models.IPWhitelistEntry)
        .filter(models.IPWhitelistEntry.is_active.is_(True))
        .all()
    )


def evaluate(db: Session, client_ip: str | None, now: datetime | None = None) -> MaintenanceDecision:
    """Blocked iff a window is active and the client is not whitelisted."""

    schedules = active_schedules(db, now)
    if not schedules:
        return MaintenanceDecision(blocked=False)
    whitelisted = is_whitelisted(db, client_ip)
    return MaintenanceDecision(
        blocked=not whitelisted,
        active=True,
        whitelisted=whitelisted,
        schedule=None if whitelisted else schedules[0],
    )


def client_ip_from_request(forwarded_for: str | None, peer: str | None) -> str | None:
    """First X-Forwarded-For hop when present, otherwise the socket peer."""

    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer


def list_schedules(db: Session) -> Sequence[models.MaintenanceSchedule]:
    return (
        db.query(models.MaintenanceSchedule)
        .order_by(models.MaintenanceSchedule.created_at.desc())
        .all()
    )


def create_schedule(
    db: Session,
    principal: Principal,
    *,
    title: str,
    message: str,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    is_emergency: bool = False,
    tz_name: str | None = None,
) -> models.MaintenanceSchedule:
    """Start a maintenance window; a missing start means immediately."""

    require_admin(principal)
    if not title.strip() or not message.strip():
        raise ValidationError("Title and message are required")
    start = local_to_utc(start_time, tz_name) or _utcnow()
    end = local_to_utc(end_time, tz_name)
    if end is not None and end <= start:
        raise ValidationError("End time must be after the start time")
    schedule = models.MaintenanceSchedule(
        title=title.strip(),
        message=message.strip(),
        start_time=start,
        end_time=end,
        is_active=True,
        is_emergency=is_emergency,
        created_by=principal.user_id,
    )
    db.add(schedule)
    db.flush()
    audit.log_action(
        db,
        principal.user_id,
        "start_maintenance",
        "maintenance_schedule",
        schedule.id,
        {"emergency": is_emergency},
    )
    db.commit()
    db.refresh(schedule)
    return schedule


def end_schedule(db: Session, principal: Principal, schedule_id: UUID) -> models.MaintenanceSchedule:
    require_admin(principal)
    schedule = db.get(models.MaintenanceSchedule, schedule_id)
    if schedule is None:
        raise NotFoundError("Maintenance schedule not found")
    schedule.is_active = False
    schedule.end_time = _utcnow()
    audit.log_action(db, principal.user_id, "end_maintenance", "maintenance_schedule", schedule.id)
    db.commit()
    db.refresh(schedule)
    return schedule


def list_whitelist(db: Session) -> Sequence[models.IPWhitelistEntry]:
    return (
        db.query(models.IPWhitelistEntry)
        .order_by(models.IPWhitelistEntry.created_at.desc())
        .all()
    )


def add_whitelist_entry(
    db: Session,
    principal: Principal,
    *,
    ip_address: str,
    description: str,
    is_active: bool = True,
) -> models.IPWhitelistEntry:
    require_admin(principal)
    parse_cidr(ip_address)
    if not description.strip():
        raise ValidationError("A description is required")
    entry = models.IPWhitelistEntry(
        ip_address=ip_address.strip(),
        description=description.strip(),
        is_active=is_active,
    )
    db.add(entry)
    db.flush()
    audit.log_action(
        db,
        principal.user_id,
        "add_ip_whitelist",
        "ip_whitelist",
        entry.id,
        {"ip_address": entry.ip_address},
    )
    db.commit()
    db.refresh(entry)
    return entry


def whitelist_client_ip(
    db: Session,
    principal: Principal,
    client_ip: str | None,
    description: str | None = None,
) -> models.IPWhitelistEntry:
    """Whitelist the caller's own address as a single-host range."""

    try:
        address = ipaddress.ip_address((client_ip or "").strip())
    except ValueError as exc:
        raise ValidationError("Could not determine your IP address") from exc
    prefix = 32 if address.version == 4 else 128
    return add_whitelist_entry(
        db,
        principal,
        ip_address=f"{address}/{prefix}",
        description=description or "Admin current IP",
    )


def toggle_whitelist_entry(db: Session, principal: Principal, entry_id: UUID) -> models.IPWhitelistEntry:
    require_admin(principal)
    entry = db.get(models.IPWhitelistEntry, entry_id)
    if entry is None:
        raise NotFoundError("Whitelist entry not found")
    entry.is_active = not entry.is_active
    audit.log_action(
        db,
        principal.user_id,
        "toggle_ip_whitelist",
        "ip_whitelist",
        entry.id,
        {"is_active": entry.is_active},
    )
    db.commit()
    db.refresh(entry)
    return entry


def delete_whitelist_entry(db: Session, principal: Principal, entry_id: UUID) -> None:
    require_admin(principal)
    entry = db.get(models.IPWhitelistEntry, entry_id)
    if entry is None:
        raise NotFoundError("Whitelist entry not found")
    audit.log_action(
        db,
        principal.user_id,
        "delete_ip_whitelist",
        "ip_whitelist",
        entry.id,
        {"ip_address": entry.ip_address},
    )
    db.delete(entry)
    db.commit()
