"""DB-backed organization & membership lookups for tenant resolution."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.core.logging import get_logger
from src.core.types import Membership, MembershipRole, Organization
from src.data.errors import storage_errors

log = get_logger(__name__)


class OrganizationRepository:
    """Async PostgreSQL-backed organization storage.

    Store failures surface as ``StorageError``; an empty result is ``None``.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def find_for_user(self, org_id: str, user_id: str) -> Organization | None:
        """The organization ``org_id``, if ``user_id`` owns it or is a member."""
        with storage_errors():
            async with self._engine.begin() as conn:
                row = await conn.execute(
                    text(
                        "SELECT o.* FROM organizations o "
                        "WHERE o.id = :oid AND (o.owner_id = :uid OR EXISTS ("
                        "SELECT 1 FROM memberships m "
                        "WHERE m.org_id = o.id AND m.user_id = :uid))"
                    ),
                    {"oid": org_id, "uid": user_id},
                )
                r = row.mappings().first()
        if r is None:
            return None
        return self._row_to_org(r)

    async def find_owned_by(self, user_id: str) -> Organization | None:
        """Earliest-created organization whose recorded owner is ``user_id``."""
        with storage_errors():
            async with self._engine.begin() as conn:
                row = await conn.execute(
                    text(
                        "SELECT * FROM organizations WHERE owner_id = :uid "
                        "ORDER BY created_at ASC LIMIT 1"
                    ),
                    {"uid": user_id},
                )
                r = row.mappings().first()
        if r is None:
            return None
        return self._row_to_org(r)

    async def find_first_membership(self, user_id: str) -> Membership | None:
        """Earliest-created membership of ``user_id``, with the org's name."""
        with storage_errors():
            async with self._engine.begin() as conn:
                row = await conn.execute(
                    text(
                        "SELECT m.org_id, m.user_id, m.role, m.created_at, "
                        "o.name AS org_name "
                        "FROM memberships m "
                        "LEFT JOIN organizations o ON o.id = m.org_id "
                        "WHERE m.user_id = :uid "
                        "ORDER BY m.created_at ASC LIMIT 1"
                    ),
                    {"uid": user_id},
                )
                r = row.mappings().first()
        if r is None:
            return None
        return self._row_to_membership(r)

    @staticmethod
    def _row_to_org(r: object) -> Organization:
        """Convert a DB row mapping to an Organization dataclass."""
        return Organization(
            org_id=str(r["id"]),  # type: ignore[index]
            name=r["name"],  # type: ignore[index]
            owner_id=r.get("owner_id"),  # type: ignore[union-attr]
            billing_customer_id=r.get("stripe_customer_id"),  # type: ignore[union-attr]
            created_at=r["created_at"],  # type: ignore[index]
        )

    @staticmethod
    def _row_to_membership(r: object) -> Membership:
        role_str: str = r["role"]  # type: ignore[index]
        try:
            role = MembershipRole(role_str)
        except ValueError:
            role = MembershipRole.MEMBER

        return Membership(
            org_id=str(r["org_id"]),  # type: ignore[index]
            user_id=str(r["user_id"]),  # type: ignore[index]
            role=role,
            org_name=r.get("org_name"),  # type: ignore[union-attr]
            created_at=r["created_at"],  # type: ignore[index]
        )
