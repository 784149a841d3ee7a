"""Route tests: tenant context, throttling, course/session writes, error bodies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from src.api.deps import (
    get_audit_sink,
    get_db_engine,
    get_org_repo,
    get_rate_limiter,
    require_context,
)
from src.api.main import create_app
from src.api.middleware import get_principal
from src.core.types import Organization, Principal, ResolutionSource
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimiter

PRINCIPAL = Principal(user_id="user-1", email="teacher@example.com")
CTX = TenantContext(
    principal=PRINCIPAL,
    org_id="org-1",
    org_name="Acme Academy",
    source=ResolutionSource.OWNER,
)
NOW_MS = 1_700_000_000_000


class _FakeMapping(dict):  # type: ignore[type-arg]
    pass


class _UniqueViolation(Exception):
    sqlstate = "23505"
    detail = "Key (org_id, title)=(org-1, Algebra) already exists."


def _course_row(**kwargs: object) -> _FakeMapping:
    defaults = {
        "id": "course-1",
        "org_id": "org-1",
        "title": "Algebra",
        "description": None,
        "modality": "group",
        "lead_teacher_id": None,
        "course_type": None,
        "duration_weeks": 2,
        "sessions_per_week": None,
        "meeting_days": [1, 3, 5],
        "max_students": None,
        "starts_at": datetime(2024, 1, 3, tzinfo=timezone.utc),
        "ends_at": None,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return _FakeMapping(defaults)


def _session_row(**kwargs: object) -> _FakeMapping:
    defaults = {
        "id": "session-1",
        "org_id": "org-1",
        "course_id": None,
        "teacher_id": None,
        "title": "Office hours",
        "starts_at": datetime(2024, 1, 3, 15, tzinfo=timezone.utc),
        "ends_at": None,
        "class_name": None,
        "description": None,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return _FakeMapping(defaults)


def _mock_engine(mock_conn: AsyncMock) -> MagicMock:
    engine = MagicMock()

    @asynccontextmanager
    async def _begin() -> AsyncIterator[AsyncMock]:
        yield mock_conn

    engine.begin = _begin
    return engine


@pytest.fixture()
def conn() -> AsyncMock:
    result = MagicMock()
    result.mappings.return_value.first.return_value = _course_row()
    result.mappings.return_value.all.return_value = [_course_row()]
    result.first.return_value = ("course-1",)
    mock_conn = AsyncMock()
    mock_conn.execute.return_value = result
    return mock_conn


@pytest.fixture()
def audit() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def limiter() -> RateLimiter:
    return RateLimiter(window_ms=60_000, clock=lambda: NOW_MS)


@pytest.fixture()
def app(conn: AsyncMock, audit: AsyncMock, limiter: RateLimiter) -> FastAPI:
    application = create_app()

    async def _ctx() -> TenantContext:
        return CTX

    async def _engine() -> MagicMock:
        return _mock_engine(conn)

    async def _audit() -> AsyncMock:
        return audit

    application.dependency_overrides[require_context] = _ctx
    application.dependency_overrides[get_db_engine] = _engine
    application.dependency_overrides[get_audit_sink] = _audit
    application.dependency_overrides[get_rate_limiter] = lambda: limiter
    return application


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def _with_resolution(app: FastAPI, principal: Principal | None, store: AsyncMock) -> None:
    """Swap the fixed context for the real resolver backed by ``store``."""
    app.dependency_overrides.pop(require_context, None)

    async def _principal() -> Principal | None:
        return principal

    async def _repo() -> AsyncMock:
        return store

    app.dependency_overrides[get_principal] = _principal
    app.dependency_overrides[get_org_repo] = _repo


def _store(owned: Organization | None = None, accessible: Organization | None = None) -> AsyncMock:
    store = AsyncMock()
    store.find_for_user.return_value = accessible
    store.find_owned_by.return_value = owned
    store.find_first_membership.return_value = None
    return store


class TestAuthContext:
    def test_unauthenticated(self, app: FastAPI, client: TestClient) -> None:
        _with_resolution(app, None, _store())
        response = client.get("/api/auth/context")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_owner_resolution_sets_org_cookies(self, app: FastAPI, client: TestClient) -> None:
        _with_resolution(app, PRINCIPAL, _store(Organization(org_id="org-7", name="Owned School")))

        response = client.get("/api/auth/context")

        assert response.status_code == 200
        data = response.json()
        assert data["org_id"] == "org-7"
        assert data["org_name"] == "Owned School"
        assert data["source"] == "owner"
        assert response.cookies.get("vam_active_org") == "org-7"

    def test_verified_cookie_used(self, app: FastAPI, client: TestClient) -> None:
        store = _store(
            Organization(org_id="org-7", name="Owned School"),
            accessible=Organization(org_id="org-cached", name="Cached School"),
        )
        _with_resolution(app, PRINCIPAL, store)
        client.cookies.set("vam_active_org", "org-cached")

        response = client.get("/api/auth/context")

        assert response.json()["org_id"] == "org-cached"
        assert response.json()["source"] == "cookie"
        assert "set-cookie" not in response.headers
        store.find_owned_by.assert_not_called()

    def test_foreign_cookie_replaced(self, app: FastAPI, client: TestClient) -> None:
        store = _store(Organization(org_id="org-7", name="Owned School"))
        _with_resolution(app, PRINCIPAL, store)
        client.cookies.set("vam_active_org", "org-someone-else")

        response = client.get("/api/auth/context")

        assert response.json()["org_id"] == "org-7"
        assert response.json()["source"] == "owner"
        assert response.cookies.get("vam_active_org") == "org-7"

    def test_no_organization(self, app: FastAPI, client: TestClient) -> None:
        _with_resolution(app, PRINCIPAL, _store())
        response = client.get("/api/auth/context")
        assert response.status_code == 400
        assert response.json()["error"] == "Organization not set for user"
        assert "hint" in response.json()

    def test_logout_clears_session_and_org_cache(self, client: TestClient) -> None:
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        cleared = {c.split("=")[0] for c in response.headers.get_list("set-cookie")}
        assert cleared == {"vam_token", "vam_active_org", "vam_active_org_name"}


class TestCreateCourse:
    def test_generates_and_inserts_sessions(
        self, client: TestClient, conn: AsyncMock, audit: AsyncMock
    ) -> None:
        response = client.post(
            "/api/courses",
            json={
                "title": "Algebra",
                "modality": "group",
                "duration_weeks": 2,
                "meeting_days": [1, 3, 5],
                "starts_at": "2024-01-03T00:00:00Z",
            },
        )

        assert response.status_code == 201
        assert response.json()["sessions_generated"] == 6

        session_rows = conn.execute.call_args_list[1][0][1]
        assert len(session_rows) == 6
        assert {row["org_id"] for row in session_rows} == {"org-1"}
        assert session_rows[0]["title"] == "Algebra • Session 1"
        audit.record.assert_awaited_once()

    def test_body_org_id_ignored(self, client: TestClient, conn: AsyncMock) -> None:
        client.post("/api/courses", json={"title": "Algebra", "modality": "group", "org_id": "org-evil"})
        course_params = conn.execute.call_args_list[0][0][1]
        assert course_params["oid"] == "org-1"

    def test_validation_lists_all_fields(self, client: TestClient, conn: AsyncMock) -> None:
        response = client.post(
            "/api/courses",
            json={"title": "", "modality": "solo", "meeting_days": [8]},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert {d["field"] for d in body["details"]} == {"title", "modality", "meeting_days.0"}
        conn.execute.assert_not_called()

    def test_duplicate_title_is_409(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.side_effect = IntegrityError("INSERT", {}, _UniqueViolation("duplicate key"))

        response = client.post("/api/courses", json={"title": "Algebra", "modality": "group"})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "Already exists"
        assert body["code"] == "23505"
        assert body["hint"]

    def test_throttled_after_limit(self, client: TestClient) -> None:
        payload = {"title": "Algebra", "modality": "group"}
        statuses = [client.post("/api/courses", json=payload).status_code for _ in range(30)]
        assert statuses == [201] * 30

        response = client.post("/api/courses", json=payload)

        assert response.status_code == 429
        assert response.json()["error"] == "Too many requests"
        assert response.headers["retry-after"] == "60"

    def test_unexpected_failure_is_500(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.side_effect = RuntimeError("driver exploded")
        response = client.post("/api/courses", json={"title": "Algebra", "modality": "group"})
        assert response.status_code == 500
        assert response.json() == {"error": "driver exploded"}


class TestCourseReads:
    def test_list(self, client: TestClient, conn: AsyncMock) -> None:
        response = client.get("/api/courses")
        assert response.status_code == 200
        assert response.json()[0]["id"] == "course-1"
        assert conn.execute.call_args[0][1] == {"oid": "org-1"}

    def test_not_found(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = None
        response = client.get("/api/courses/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Course not found"}

    def test_delete(self, client: TestClient, audit: AsyncMock) -> None:
        response = client.delete("/api/courses/course-1")
        assert response.status_code == 200
        assert response.json() == {"success": True}
        audit.record.assert_awaited_once()


class TestCreateSession:
    def test_unknown_course_rejected(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.first.return_value = None

        response = client.post(
            "/api/sessions",
            json={"course_id": "course-other-org", "starts_at": "2024-01-03T15:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == [
            {"field": "course_id", "message": "Course not found in this organization"}
        ]

    def test_created(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = _session_row()

        response = client.post(
            "/api/sessions",
            json={"title": "Office hours", "starts_at": "2024-01-03T15:00:00Z"},
        )

        assert response.status_code == 201
        assert response.json()["title"] == "Office hours"
        params = conn.execute.call_args[0][1]
        assert params["oid"] == "org-1"

    def test_missing_start_is_validation_error(self, client: TestClient) -> None:
        response = client.post("/api/sessions", json={"title": "Office hours"})
        assert response.status_code == 400
        assert response.json()["details"] == [{"field": "starts_at", "message": "Field required"}]


class TestUpdateCourse:
    @pytest.mark.parametrize("field", ["title", "modality"])
    def test_null_required_column_is_400(
        self, client: TestClient, conn: AsyncMock, audit: AsyncMock, field: str
    ) -> None:
        response = client.patch("/api/courses/course-1", json={field: None})

        assert response.status_code == 400
        details = response.json()["details"]
        assert [d["field"] for d in details] == [field]
        assert "may not be null" in details[0]["message"]
        conn.execute.assert_not_called()
        audit.record.assert_not_called()

    def test_partial_update(self, client: TestClient, conn: AsyncMock, audit: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = _course_row(title="Geometry")

        response = client.patch(
            "/api/courses/course-1",
            json={"title": "Geometry", "description": None, "org_id": "org-evil"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Geometry"
        sql = str(conn.execute.call_args[0][0])
        assert "title = :title" in sql
        assert "description = :description" in sql
        assert "org_id = :oid" in sql
        params = conn.execute.call_args[0][1]
        assert params["oid"] == "org-1"
        assert params["description"] is None
        audit.record.assert_awaited_once()

    def test_missing_course_is_404(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = None
        response = client.patch("/api/courses/missing", json={"title": "Geometry"})
        assert response.status_code == 404


class TestSessionItem:
    def test_get(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = _session_row()

        response = client.get("/api/sessions/session-1")

        assert response.status_code == 200
        assert response.json()["id"] == "session-1"
        assert conn.execute.call_args[0][1] == {"rid": "session-1", "oid": "org-1"}

    def test_get_other_org_is_404(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = None
        response = client.get("/api/sessions/session-elsewhere")
        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    def test_patch(self, client: TestClient, conn: AsyncMock, audit: AsyncMock) -> None:
        conn.execute.return_value.mappings.return_value.first.return_value = _session_row(title="Moved")

        response = client.patch(
            "/api/sessions/session-1",
            json={"title": "Moved", "starts_at": "2024-01-04T15:00:00Z"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Moved"
        assert "UPDATE sessions SET" in str(conn.execute.call_args[0][0])
        audit.record.assert_awaited_once()
        assert audit.record.call_args[0][2:5] == ("update", "session", "session-1")

    def test_patch_null_start_is_400(self, client: TestClient, conn: AsyncMock) -> None:
        response = client.patch("/api/sessions/session-1", json={"starts_at": None})
        assert response.status_code == 400
        conn.execute.assert_not_called()

    def test_patch_foreign_teacher_rejected(self, client: TestClient, conn: AsyncMock) -> None:
        conn.execute.return_value.first.return_value = None

        response = client.patch(
            "/api/sessions/session-1",
            json={"teacher_id": "0190a4c2-7e4b-7c3d-8f00-000000000001"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == [
            {"field": "teacher_id", "message": "Teacher not found in this organization"}
        ]

    def test_delete(self, client: TestClient, audit: AsyncMock) -> None:
        response = client.delete("/api/sessions/session-1")
        assert response.status_code == 200
        assert response.json() == {"success": True}
        audit.record.assert_awaited_once()

    def test_delete_missing_is_404(self, client: TestClient, conn: AsyncMock, audit: AsyncMock) -> None:
        conn.execute.return_value.first.return_value = None
        response = client.delete("/api/sessions/missing")
        assert response.status_code == 404
        audit.record.assert_not_called()
