"""Error taxonomy shared by the approval engine and maintenance gate."""

from __future__ import annotations

# purpose: classify engine failures so the HTTP layer can map them without string matching
# status: active


class ApprovalError(Exception):
    """Base class for failures converted into decision results."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApprovalError):
    """Caller violated a precondition; recoverable by correcting input."""

    code = "validation"


class NotFoundError(ApprovalError):
    code = "not_found"


class AuthorizationError(ApprovalError):
    code = "forbidden"


class InfrastructureError(ApprovalError):
    """Store or storage call failed; details are logged, never surfaced."""

    code = "infrastructure"
