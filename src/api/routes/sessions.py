"""Session endpoints: tenant-scoped listing, one-off scheduling and edits."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from uuid_extensions import uuid7

from src.api.db.audit import AuditSink
from src.api.db.records import TenantTable
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import DeletedResponse, SessionCreate, SessionOut, SessionUpdate
from src.core.constants import SESSION_CREATE_LIMIT
from src.core.exceptions import ValidationFailedError
from src.core.logging import get_logger
from src.data.errors import storage_errors
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult

log = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

sessions = TenantTable("sessions", "Session", order_by="starts_at DESC", references=("teacher_id",))


@router.get("", response_model=list[SessionOut])
async def list_sessions(
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[SessionOut]:
    """List the active organization's sessions, latest start first."""
    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text("SELECT * FROM sessions WHERE org_id = :oid ORDER BY starts_at DESC"),
                {"oid": ctx.org_id},
            )
            rows = result.mappings().all()

    return [_row_to_session(row) for row in rows]


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("sessions:post", SESSION_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> SessionOut:
    """Schedule a single session outside any generated course plan."""
    session_id = str(uuid7())
    title = body.title or body.class_name or "Session"

    with storage_errors():
        async with engine.begin() as conn:
            if body.course_id is not None:
                owned = await conn.execute(
                    text("SELECT 1 FROM courses WHERE id = :cid AND org_id = :oid"),
                    {"cid": body.course_id, "oid": ctx.org_id},
                )
                if owned.first() is None:
                    raise ValidationFailedError(
                        [{"field": "course_id", "message": "Course not found in this organization"}]
                    )

            result = await conn.execute(
                text(
                    """
                    INSERT INTO sessions
                        (id, org_id, course_id, teacher_id, title, starts_at,
                         ends_at, class_name, description)
                    VALUES
                        (:id, :oid, :cid, :teacher, :title, :starts_at,
                         :ends_at, :class_name, :desc)
                    RETURNING *
                    """
                ),
                {
                    "id": session_id,
                    "oid": ctx.org_id,
                    "cid": body.course_id,
                    "teacher": str(body.teacher_id) if body.teacher_id else None,
                    "title": title,
                    "starts_at": body.starts_at,
                    "ends_at": body.ends_at,
                    "class_name": body.class_name,
                    "desc": body.description,
                },
            )
            row = result.mappings().first()

    log.info("session_created", session_id=session_id, org_id=ctx.org_id)
    await audit.record(ctx.org_id, ctx.user_id, "create", "session", session_id, {"title": title})

    if row is None:
        return SessionOut(
            id=session_id,
            org_id=ctx.org_id,
            course_id=body.course_id,
            teacher_id=str(body.teacher_id) if body.teacher_id else None,
            title=title,
            starts_at=body.starts_at,
            ends_at=body.ends_at,
            class_name=body.class_name,
            description=body.description,
        )
    return _row_to_session(row)


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(
    session_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> SessionOut:
    return _row_to_session(await sessions.get(engine, ctx.org_id, session_id))


@router.patch("/{session_id}", response_model=SessionOut)
async def update_session(
    session_id: str,
    body: SessionUpdate,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> SessionOut:
    """Move, retitle or reassign one session. The course link is fixed."""
    changes = body.model_dump(exclude_unset=True)
    row = await sessions.update(engine, ctx.org_id, session_id, changes)
    if changes:
        await audit.record(ctx.org_id, ctx.user_id, "update", "session", session_id, changes)
    return _row_to_session(row)


@router.delete("/{session_id}", response_model=DeletedResponse)
async def delete_session(
    session_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> DeletedResponse:
    """Delete one session; its attendance marks go with it."""
    await sessions.delete(engine, ctx.org_id, session_id)
    await audit.record(ctx.org_id, ctx.user_id, "delete", "session", session_id)
    return DeletedResponse()


def _row_to_session(row: object) -> SessionOut:
    """Convert DB row to SessionOut."""
    return SessionOut(
        id=str(row["id"]),  # type: ignore[index]
        org_id=str(row["org_id"]),  # type: ignore[index]
        course_id=row.get("course_id"),  # type: ignore[union-attr]
        teacher_id=row.get("teacher_id"),  # type: ignore[union-attr]
        title=row["title"],  # type: ignore[index]
        starts_at=row["starts_at"],  # type: ignore[index]
        ends_at=row.get("ends_at"),  # type: ignore[union-attr]
        class_name=row.get("class_name"),  # type: ignore[union-attr]
        description=row.get("description"),  # type: ignore[union-attr]
        created_at=row.get("created_at"),  # type: ignore[union-attr]
    )
