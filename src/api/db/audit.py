"""Audit trail sink: records who changed what inside an organization."""

from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from uuid_extensions import uuid7

from src.core.logging import get_logger

log = get_logger(__name__)


class AuditSink(Protocol):
    async def record(
        self,
        org_id: str,
        actor_id: str | None,
        action: str,
        entity: str,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class DatabaseAuditSink:
    """Writes to ``audit_logs``. Best-effort: a failed insert never fails the request."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def record(
        self,
        org_id: str,
        actor_id: str | None,
        action: str,
        entity: str,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    text(
                        """
                        INSERT INTO audit_logs
                            (id, org_id, actor_id, action, entity, entity_id, metadata)
                        VALUES
                            (:id, :oid, :actor, :action, :entity, :eid, :meta)
                        """
                    ),
                    {
                        "id": str(uuid7()),
                        "oid": org_id,
                        "actor": actor_id,
                        "action": action,
                        "entity": entity,
                        "eid": entity_id,
                        "meta": json.dumps(metadata, default=str) if metadata is not None else None,
                    },
                )
        except SQLAlchemyError as exc:
            log.error(
                "audit_insert_failed",
                org_id=org_id,
                action=action,
                entity=entity,
                entity_id=entity_id,
                error=str(exc),
            )
            return

        log.debug("audit_recorded", org_id=org_id, action=action, entity=entity, entity_id=entity_id)
