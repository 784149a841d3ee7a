"""Tenant-scoped row access shared by the simple CRUD routes.

Every statement filters on ``org_id = :oid`` taken from the resolved tenant
context. Foreign ids in a write are checked against the same organization
inside the write's transaction, so a row can never point across tenants.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import status
from sqlalchemy import text
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from uuid_extensions import uuid7

from src.core.exceptions import ApiError, ValidationFailedError
from src.core.logging import get_logger
from src.data.errors import storage_errors

log = get_logger(__name__)

# field -> (table, label used in the violation message)
REFERENCES: dict[str, tuple[str, str]] = {
    "course_id": ("courses", "Course"),
    "session_id": ("sessions", "Session"),
    "student_id": ("students", "Student"),
    "teacher_id": ("teachers", "Teacher"),
}


def _param(value: Any) -> Any:
    return str(value) if isinstance(value, UUID) else value


class TenantTable:
    """One org-scoped table: list, fetch, insert, patch and delete by id."""

    def __init__(
        self,
        table: str,
        label: str,
        order_by: str,
        references: tuple[str, ...] = (),
    ) -> None:
        self.table = table
        self.label = label
        self.order_by = order_by
        self.references = references

    def not_found(self) -> ApiError:
        return ApiError(f"{self.label} not found", status=status.HTTP_404_NOT_FOUND)

    async def find_all(
        self,
        engine: AsyncEngine,
        org_id: str,
        filters: dict[str, Any] | None = None,
    ) -> list[RowMapping]:
        """Rows of ``org_id``; ``None`` filter values are skipped."""
        where = ["org_id = :oid"]
        params: dict[str, Any] = {"oid": org_id}
        for column, value in (filters or {}).items():
            if value is None:
                continue
            where.append(f"{column} = :{column}")
            params[column] = _param(value)

        with storage_errors():
            async with engine.begin() as conn:
                result = await conn.execute(
                    text(
                        f"SELECT * FROM {self.table} WHERE {' AND '.join(where)} "  # noqa: S608
                        f"ORDER BY {self.order_by}"
                    ),
                    params,
                )
                return list(result.mappings().all())

    async def get(self, engine: AsyncEngine, org_id: str, record_id: str) -> RowMapping:
        with storage_errors():
            async with engine.begin() as conn:
                result = await conn.execute(
                    text(f"SELECT * FROM {self.table} WHERE id = :rid AND org_id = :oid"),  # noqa: S608
                    {"rid": record_id, "oid": org_id},
                )
                row = result.mappings().first()

        if row is None:
            raise self.not_found()
        return row

    async def insert(self, engine: AsyncEngine, org_id: str, values: dict[str, Any]) -> RowMapping:
        """Insert a new row under a fresh id and return it."""
        params = {column: _param(value) for column, value in values.items()}
        params["id"] = str(uuid7())
        params["org_id"] = org_id
        columns = ", ".join(params)
        placeholders = ", ".join(f":{column}" for column in params)

        with storage_errors():
            async with engine.begin() as conn:
                await self._check_references(conn, org_id, params)
                result = await conn.execute(
                    text(
                        f"INSERT INTO {self.table} ({columns}) "  # noqa: S608
                        f"VALUES ({placeholders}) RETURNING *"
                    ),
                    params,
                )
                row = result.mappings().first()

        if row is None:
            raise ApiError(f"{self.label} was not created")
        log.debug("record_inserted", table=self.table, record_id=params["id"], org_id=org_id)
        return row

    async def update(
        self,
        engine: AsyncEngine,
        org_id: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> RowMapping:
        """Apply ``changes`` to one row; an empty change set just re-reads it."""
        if not changes:
            return await self.get(engine, org_id, record_id)

        updates = {column: _param(value) for column, value in changes.items()}
        set_clause = ", ".join(f"{column} = :{column}" for column in updates)

        with storage_errors():
            async with engine.begin() as conn:
                await self._check_references(conn, org_id, updates)
                result = await conn.execute(
                    text(
                        f"UPDATE {self.table} SET {set_clause} "  # noqa: S608
                        "WHERE id = :rid AND org_id = :oid RETURNING *"
                    ),
                    {**updates, "rid": record_id, "oid": org_id},
                )
                row = result.mappings().first()

        if row is None:
            raise self.not_found()
        return row

    async def delete(self, engine: AsyncEngine, org_id: str, record_id: str) -> None:
        with storage_errors():
            async with engine.begin() as conn:
                result = await conn.execute(
                    text(f"DELETE FROM {self.table} WHERE id = :rid AND org_id = :oid RETURNING id"),  # noqa: S608
                    {"rid": record_id, "oid": org_id},
                )
                deleted = result.first()

        if deleted is None:
            raise self.not_found()

    async def _check_references(
        self,
        conn: AsyncConnection,
        org_id: str,
        params: dict[str, Any],
    ) -> None:
        violations: list[dict[str, str]] = []
        for field in self.references:
            value = params.get(field)
            if value is None:
                continue
            table, label = REFERENCES[field]
            owned = await conn.execute(
                text(f"SELECT 1 FROM {table} WHERE id = :rid AND org_id = :oid"),  # noqa: S608
                {"rid": value, "oid": org_id},
            )
            if owned.first() is None:
                violations.append({"field": field, "message": f"{label} not found in this organization"})

        if violations:
            raise ValidationFailedError(violations)
