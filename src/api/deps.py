"""FastAPI dependency injection: shared instances for routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Cookie, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import get_settings
from src.api.db.audit import AuditSink, DatabaseAuditSink
from src.api.db.organizations import OrganizationRepository
from src.api.middleware import apply_org_cache, client_ip, get_principal
from src.core.exceptions import RateLimitedError
from src.core.logging import bind_request_context, get_logger
from src.core.types import Principal
from src.data.db import get_engine
from src.saas.context import TenantContext, TenantContextResolver
from src.saas.rate_limit import RateLimiter, RateLimitResult, retry_after_seconds

log = get_logger(__name__)

# ── Database engine ───────────────────────────────────────────────


async def get_db_engine() -> AsyncEngine:
    """Provide the async database engine."""
    return await get_engine()


# ── Repositories ──────────────────────────────────────────────────


async def get_org_repo(
    engine: AsyncEngine = Depends(get_db_engine),
) -> OrganizationRepository:
    """Provide an OrganizationRepository instance."""
    return OrganizationRepository(engine)


async def get_audit_sink(
    engine: AsyncEngine = Depends(get_db_engine),
) -> AuditSink:
    return DatabaseAuditSink(engine)


# ── Tenant context ────────────────────────────────────────────────


async def require_context(
    response: Response,
    principal: Principal | None = Depends(get_principal),
    repo: OrganizationRepository = Depends(get_org_repo),
    vam_active_org: str | None = Cookie(default=None),
    vam_active_org_name: str | None = Cookie(default=None),
) -> TenantContext:
    """Resolve the acting principal and organization for this request.

    Writes the org cache cookies when the organization came from the store.
    """
    resolver = TenantContextResolver(repo)
    ctx = await resolver.resolve(
        principal,
        cached_org_id=vam_active_org,
        cached_org_name=vam_active_org_name,
    )
    if ctx.cache_write is not None:
        apply_org_cache(response, ctx.cache_write)

    bind_request_context(user_id=ctx.user_id, org_id=ctx.org_id)
    return ctx


# ── Rate limiting ─────────────────────────────────────────────────

_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter; every instance keeps its own counters."""
    global _rate_limiter  # noqa: PLW0603
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            window_ms=settings.vam_rate_limit_window_seconds * 1000,
            default_limit=settings.vam_rate_limit_default,
        )
    return _rate_limiter


def rate_limited(route: str, limit: int) -> Callable[..., Awaitable[RateLimitResult]]:
    """Dependency factory throttling ``route`` per client IP."""

    async def _consume(
        request: Request,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitResult:
        key = f"{route}:{client_ip(request)}"
        result = limiter.consume(key, limit)
        if not result.allowed:
            retry_after = retry_after_seconds(result, limiter.now_ms())
            log.info("rate_limited", key=key, limit=limit, retry_after=retry_after)
            raise RateLimitedError(key, limit, retry_after)
        return result

    return _consume
