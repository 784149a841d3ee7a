"""Custom exception hierarchy for VAM."""

from __future__ import annotations

from enum import Enum
from typing import Any


class VAMBaseError(Exception):
    """Base exception for all VAM errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.context: dict[str, Any] = context or {}


# ── Request Context ──────────────────────────────────────────────

class UnauthenticatedError(VAMBaseError):
    """No valid principal session on the request."""

    def __init__(self, message: str = "unauthorized") -> None:
        super().__init__(message)


class TenantNotResolvedError(VAMBaseError):
    """Authenticated, but no organization could be resolved for the principal."""

    def __init__(self, user_id: str) -> None:
        super().__init__("org_not_set", {"user_id": user_id})
        self.user_id = user_id


class RateLimitedError(VAMBaseError):
    """Fixed-window throttle tripped for the request key."""

    def __init__(self, key: str, limit: int, retry_after: int) -> None:
        super().__init__(
            "Too many requests",
            {"key": key, "limit": limit, "retry_after": retry_after},
        )
        self.key = key
        self.limit = limit
        self.retry_after = retry_after


class ValidationFailedError(VAMBaseError):
    """Input rejected by a handler-level check (not a schema failure)."""

    def __init__(self, violations: list[dict[str, str]]) -> None:
        super().__init__("Validation failed", {"violations": violations})
        self.violations = violations


class ApiError(VAMBaseError):
    """Explicit HTTP failure raised by a route (e.g. 404 not found)."""

    def __init__(
        self,
        message: str,
        status: int = 500,
        code: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.hint = hint


# ── Storage Layer ────────────────────────────────────────────────

class StorageErrorKind(str, Enum):
    """Storage failures the API knows how to explain to a client."""

    PERMISSION_DENIED = "permission_denied"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    UNDEFINED_COLUMN = "undefined_column"
    OTHER = "other"


class StorageError(VAMBaseError):
    """A database call failed. ``kind`` is engine-agnostic, ``code`` is raw."""

    def __init__(
        self,
        kind: StorageErrorKind,
        message: str,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, {"kind": kind.value, "code": code})
        self.kind = kind
        self.code = code
        self.details = details
        self.hint = hint

    @property
    def is_constraint_violation(self) -> bool:
        return self.kind in (
            StorageErrorKind.UNIQUE_VIOLATION,
            StorageErrorKind.FOREIGN_KEY_VIOLATION,
        )
