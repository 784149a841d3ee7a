"""Tenant context resolution: which organization a request acts on.

Resolution order, first hit wins:

1. identity-provider metadata (``app_metadata.org_id``, then
   ``user_metadata.default_org_id``)
2. the organization cached in the client's cookie by an earlier resolution,
   honoured only while the principal still owns it or is a member of it
3. an organization the principal owns, earliest created first
4. the principal's memberships, earliest created first

Tiers 3 and 4 are the only ones that ask the client to cache the result, so
a cookie left behind by another principal is overwritten on the same
response. Store errors from tiers 2 to 4 propagate untouched, so
"no organization" and "store unreachable" stay distinguishable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from src.core.constants import DEFAULT_ORG_NAME
from src.core.exceptions import TenantNotResolvedError, UnauthenticatedError
from src.core.logging import get_logger
from src.core.types import Membership, Organization, Principal, ResolutionSource

log = get_logger(__name__)


class OrganizationLookup(Protocol):
    async def find_for_user(self, org_id: str, user_id: str) -> Organization | None: ...

    async def find_owned_by(self, user_id: str) -> Organization | None: ...

    async def find_first_membership(self, user_id: str) -> Membership | None: ...


@dataclass(frozen=True)
class OrgCacheWrite:
    """Values the response should store in the client's org cache."""

    org_id: str
    org_name: str


@dataclass(frozen=True)
class TenantContext:
    """Request-scoped acting principal and organization.

    This is the only source of ``org_id`` for the lifetime of a request;
    tenant ids in bodies or query strings are never consulted.
    """

    principal: Principal
    org_id: str
    org_name: str
    source: ResolutionSource
    cache_write: OrgCacheWrite | None = None

    @property
    def user_id(self) -> str:
        return self.principal.user_id


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _metadata_org(principal: Principal) -> tuple[str, ResolutionSource] | None:
    app_org = _text(principal.app_metadata.get("org_id"))
    if app_org:
        return app_org, ResolutionSource.APP_METADATA
    user_org = _text(principal.user_metadata.get("default_org_id"))
    if user_org:
        return user_org, ResolutionSource.USER_METADATA
    return None


def _metadata_org_name(principal: Principal) -> str | None:
    return _text(principal.app_metadata.get("org_name")) or _text(
        principal.user_metadata.get("org_name")
    )


class TenantContextResolver:
    """Resolve ``(principal, org_id)`` through the layered fallback chain."""

    def __init__(self, store: OrganizationLookup) -> None:
        self._store = store

    async def resolve(
        self,
        principal: Principal | None,
        cached_org_id: str | None = None,
        cached_org_name: str | None = None,
    ) -> TenantContext:
        if principal is None:
            raise UnauthenticatedError

        meta_name = _metadata_org_name(principal)

        from_meta = _metadata_org(principal)
        if from_meta is not None:
            org_id, source = from_meta
            return self._resolved(principal, org_id, meta_name or _text(cached_org_name), source)

        cached = _text(cached_org_id)
        if cached:
            accessible = await self._store.find_for_user(cached, principal.user_id)
            if accessible is not None:
                return self._resolved(
                    principal,
                    accessible.org_id,
                    meta_name or _text(accessible.name) or _text(cached_org_name),
                    ResolutionSource.COOKIE,
                )
            log.warning("org_cache_rejected", user_id=principal.user_id, org_id=cached)

        owned = await self._store.find_owned_by(principal.user_id)
        if owned is not None:
            return self._resolved(
                principal,
                owned.org_id,
                meta_name or _text(owned.name),
                ResolutionSource.OWNER,
                cache=True,
            )

        membership = await self._store.find_first_membership(principal.user_id)
        if membership is not None:
            return self._resolved(
                principal,
                membership.org_id,
                meta_name or _text(membership.org_name),
                ResolutionSource.MEMBERSHIP,
                cache=True,
            )

        log.warning("tenant_not_resolved", user_id=principal.user_id)
        raise TenantNotResolvedError(principal.user_id)

    @staticmethod
    def _resolved(
        principal: Principal,
        org_id: str,
        org_name: str | None,
        source: ResolutionSource,
        cache: bool = False,
    ) -> TenantContext:
        name = org_name or DEFAULT_ORG_NAME
        log.debug("tenant_resolved", user_id=principal.user_id, org_id=org_id, source=source.value)
        return TenantContext(
            principal=principal,
            org_id=org_id,
            org_name=name,
            source=source,
            cache_write=OrgCacheWrite(org_id=org_id, org_name=name) if cache else None,
        )
