from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from fastapi import HTTPException

from . import models
from .errors import AuthorizationError

# purpose: carry an explicit authorization capability into every engine call
# status: active


class Role(str, Enum):
    ADMIN = "admin"
    OWNER = "owner"


@dataclass(frozen=True)
class Principal:
    """Authenticated actor plus the roles granted to it."""

    user_id: UUID
    email: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    def has_role(self, role: Role) -> bool:
        return role in self.roles


def principal_for(user: models.User) -> Principal:
    """Build a principal from a persisted user row."""

    roles = {Role.OWNER}
    if user.is_admin:
        roles.add(Role.ADMIN)
    return Principal(user_id=user.id, email=user.email, roles=frozenset(roles))


def require_admin(principal: Principal) -> None:
    if not principal.has_role(Role.ADMIN):
        raise AuthorizationError("Admin privileges required")


def require_owner_or_admin(principal: Principal, owner_id: UUID) -> None:
    if principal.has_role(Role.ADMIN):
        return
    if principal.user_id != owner_id:
        raise AuthorizationError("Not authorized")


def ensure_admin_user(user: models.User) -> Principal:
    """Return the principal for an admin user or raise 403."""

    principal = principal_for(user)
    if not principal.has_role(Role.ADMIN):
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return principal
