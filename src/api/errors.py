"""Error translation: any raised failure to an HTTP status and JSON body.

``translate_error`` is pure and total: it never raises and never logs. The
FastAPI handlers registered by ``register_error_handlers`` do the logging and
attach ``Retry-After`` to throttled responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.core.exceptions import (
    ApiError,
    RateLimitedError,
    StorageError,
    StorageErrorKind,
    TenantNotResolvedError,
    UnauthenticatedError,
    ValidationFailedError,
    VAMBaseError,
)
from src.core.logging import get_logger

log = get_logger(__name__)

GENERIC_ERROR = "Unexpected error"

_STORAGE_RESPONSES: dict[StorageErrorKind, tuple[int, str, str]] = {
    StorageErrorKind.PERMISSION_DENIED: (
        403,
        "Blocked by Row Level Security",
        "Ensure the user has a membership/owner role for this organization "
        "and the record belongs to it.",
    ),
    StorageErrorKind.UNIQUE_VIOLATION: (
        409,
        "Already exists",
        "Check unique fields (e.g., email/title).",
    ),
    StorageErrorKind.FOREIGN_KEY_VIOLATION: (
        400,
        "Related record missing",
        "Check that related ids exist and belong to the same organization.",
    ),
    StorageErrorKind.UNDEFINED_COLUMN: (
        400,
        "Column not found",
        "Run the latest database migration.",
    ),
}


@dataclass(frozen=True)
class TranslatedError:
    status: int
    body: dict[str, Any]


def _body(
    error: str,
    code: str | None = None,
    details: Any = None,
    hint: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if code is not None:
        body["code"] = code
    if details is not None:
        body["details"] = details
    if hint is not None:
        body["hint"] = hint
    return body


def _safe_str(value: Any) -> str | None:
    """``str(value)``, or ``None`` when the object's ``__str__`` raises."""
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return None


def _field_path(loc: Any) -> str:
    parts = [str(p) for p in (loc or ()) if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def _validation_details(error: Any) -> list[dict[str, str]]:
    if isinstance(error, ValidationFailedError):
        return list(error.violations)
    return [
        {
            "field": _field_path(item.get("loc")),
            "message": _safe_str(item.get("msg", "invalid")) or "invalid",
        }
        for item in error.errors()
    ]


def _translate_storage(error: StorageError) -> TranslatedError:
    mapped = _STORAGE_RESPONSES.get(error.kind)
    if mapped is None:
        return TranslatedError(500, _body(error.message or "Database error", code=error.code))
    status, message, default_hint = mapped
    return TranslatedError(
        status,
        _body(message, code=error.code, details=error.details, hint=error.hint or default_hint),
    )


def translate_error(error: object) -> TranslatedError:
    """Map ``error`` to a status and a ``{error, code?, details?, hint?}`` body."""
    if isinstance(error, (RequestValidationError, ValidationError, ValidationFailedError)):
        return TranslatedError(400, _body("Validation failed", details=_validation_details(error)))

    if isinstance(error, UnauthenticatedError):
        return TranslatedError(401, _body("Unauthorized"))

    if isinstance(error, TenantNotResolvedError):
        return TranslatedError(
            400,
            _body(
                "Organization not set for user",
                hint="Re-authenticate or set a default organization.",
            ),
        )

    if isinstance(error, RateLimitedError):
        return TranslatedError(
            429,
            _body("Too many requests", hint=f"Retry after {error.retry_after} seconds."),
        )

    if isinstance(error, StorageError):
        return _translate_storage(error)

    if isinstance(error, ApiError):
        return TranslatedError(error.status, _body(error.message, code=error.code, hint=error.hint))

    if isinstance(error, StarletteHTTPException):
        return TranslatedError(error.status_code, _body(_safe_str(error.detail) or GENERIC_ERROR))

    if isinstance(error, BaseException):
        message = _safe_str(error)
        if message:
            return TranslatedError(500, _body(message))

    return TranslatedError(500, _body(GENERIC_ERROR))


def error_response(error: object) -> JSONResponse:
    """Build the JSON response for ``error``, including ``Retry-After`` on 429."""
    translated = translate_error(error)
    headers: dict[str, str] | None = None
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(error.retry_after)}
    elif isinstance(error, StarletteHTTPException) and error.headers:
        headers = dict(error.headers)
    return JSONResponse(translated.body, status_code=translated.status, headers=headers)


async def _handle(request: Request, exc: Exception) -> JSONResponse:
    response = error_response(exc)
    fields = {
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "error_type": type(exc).__name__,
    }
    if isinstance(exc, StorageError):
        fields["storage_kind"] = exc.kind.value
        fields["constraint_violation"] = exc.is_constraint_violation
    if response.status_code >= 500:
        log.error("request_failed", exc_info=exc, **fields)
    else:
        log.warning("request_rejected", **fields)
    return response


def register_error_handlers(app: FastAPI) -> None:
    """Route every failure through ``translate_error``."""
    app.add_exception_handler(VAMBaseError, _handle)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, _handle)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle)
