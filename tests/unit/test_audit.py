"""Tests for the database audit sink."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.api.db.audit import DatabaseAuditSink


def _mock_engine(mock_conn: AsyncMock) -> MagicMock:
    engine = MagicMock()

    @asynccontextmanager
    async def _begin() -> AsyncIterator[AsyncMock]:
        yield mock_conn

    engine.begin = _begin
    return engine


class TestDatabaseAuditSink:
    @pytest.mark.asyncio
    async def test_inserts_row(self) -> None:
        conn = AsyncMock()
        sink = DatabaseAuditSink(_mock_engine(conn))

        await sink.record("org-1", "user-1", "create", "course", "c-1", {"sessions": 6})

        params = conn.execute.call_args[0][1]
        assert params["oid"] == "org-1"
        assert params["actor"] == "user-1"
        assert params["action"] == "create"
        assert params["entity"] == "course"
        assert params["eid"] == "c-1"
        assert json.loads(params["meta"]) == {"sessions": 6}
        assert params["id"]

    @pytest.mark.asyncio
    async def test_no_metadata(self) -> None:
        conn = AsyncMock()
        await DatabaseAuditSink(_mock_engine(conn)).record("org-1", None, "delete", "course")
        params = conn.execute.call_args[0][1]
        assert params["meta"] is None
        assert params["eid"] is None

    @pytest.mark.asyncio
    async def test_failure_does_not_raise(self) -> None:
        conn = AsyncMock()
        conn.execute.side_effect = OperationalError("INSERT", {}, RuntimeError("db down"))
        sink = DatabaseAuditSink(_mock_engine(conn))

        await sink.record("org-1", "user-1", "create", "course", "c-1")

        conn.execute.assert_awaited_once()
