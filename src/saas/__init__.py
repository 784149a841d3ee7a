"""SaaS multi-tenant layer: principal sessions, tenant resolution, and throttling."""

from src.saas.context import OrgCacheWrite, TenantContext, TenantContextResolver
from src.saas.rate_limit import RateLimiter, RateLimitResult, retry_after_seconds
from src.saas.tenant import JWTManager, principal_from_claims

__all__ = [
    "JWTManager",
    "OrgCacheWrite",
    "RateLimiter",
    "RateLimitResult",
    "TenantContext",
    "TenantContextResolver",
    "principal_from_claims",
    "retry_after_seconds",
]
