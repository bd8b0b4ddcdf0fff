"""
Error taxonomy for the authorization core.

These exceptions carry a human message, a machine-readable code and
optional details. They know nothing about HTTP; the route guard maps
them to status codes (see ``assetdesk.rbac.guard.rejection_for``).

Denial of access is NOT an error: the engine answers ``False`` and the
guard returns a rejection value. Only unexpected conditions and
malformed input raise.
"""

from typing import Any


class AssetDeskError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code}: {self.message}>"


class UnauthenticatedError(AssetDeskError):
    """No valid identity could be resolved for the caller."""

    code = "UNAUTHENTICATED"


class ForbiddenError(AssetDeskError):
    """Insufficient permission or a failed role hierarchy check."""

    code = "FORBIDDEN"


class NotFoundError(AssetDeskError):
    """A role, permission, assignment or override does not exist."""

    code = "NOT_FOUND"


class ConflictError(AssetDeskError):
    """Duplicate assignment, uniqueness violation or blocked deletion."""

    code = "CONFLICT"


class ValidationError(AssetDeskError):
    """Malformed input to a create or update operation."""

    code = "VALIDATION_ERROR"
