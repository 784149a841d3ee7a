"""Session and org-cache cookie handling for FastAPI."""

from __future__ import annotations

from typing import Any

from fastapi import Cookie, Request, Response

from config.settings import get_settings
from src.core.constants import ORG_COOKIE, ORG_NAME_COOKIE, SESSION_COOKIE
from src.core.logging import get_logger
from src.core.types import Principal
from src.saas.context import OrgCacheWrite
from src.saas.tenant import JWTManager, principal_from_claims

log = get_logger(__name__)

_jwt_manager: JWTManager | None = None


def _get_jwt() -> JWTManager:
    """Lazy-init singleton JWTManager."""
    global _jwt_manager  # noqa: PLW0603
    if _jwt_manager is None:
        settings = get_settings()
        _jwt_manager = JWTManager(
            secret=settings.vam_jwt_secret.get_secret_value(),
            expiry_hours=settings.vam_jwt_expiry_hours,
        )
    return _jwt_manager


def create_jwt(user_id: str, extra: dict[str, Any] | None = None) -> str:
    """Create a session token for the given user."""
    return _get_jwt().create_token(user_id, extra_claims=extra)


def verify_jwt(token: str) -> dict[str, Any] | None:
    """Verify a session token and return the payload."""
    return _get_jwt().verify_token(token)


async def get_principal(
    request: Request,
    vam_token: str | None = Cookie(default=None),
) -> Principal | None:
    """Extract the principal from the session cookie or Authorization header.

    Returns None when there is no valid session; callers decide whether that
    is an error.
    """
    token: str | None = vam_token

    # Fallback: check Authorization header (for API clients)
    if not token:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        return None

    payload = verify_jwt(token)
    if payload is None:
        return None

    return principal_from_claims(payload)


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def apply_org_cache(response: Response, cache: OrgCacheWrite) -> None:
    """Store the resolved organization in the client's cookie jar."""
    settings = get_settings()
    max_age = settings.vam_org_cookie_max_age_days * 24 * 3600
    for key, value in ((ORG_COOKIE, cache.org_id), (ORG_NAME_COOKIE, cache.org_name)):
        response.set_cookie(
            key=key,
            value=value,
            httponly=False,
            secure=settings.is_prod,
            samesite="lax",
            max_age=max_age,
            path="/",
        )
    log.debug("org_cache_written", org_id=cache.org_id)


def clear_org_cache(response: Response) -> None:
    """Drop the cached organization so it cannot outlive the session."""
    response.delete_cookie(key=ORG_COOKIE, path="/")
    response.delete_cookie(key=ORG_NAME_COOKIE, path="/")


def clear_session(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    clear_org_cache(response)
