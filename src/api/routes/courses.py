"""Course CRUD endpoints: creation also lays out the course's sessions."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from uuid_extensions import uuid7

from src.api.db.audit import AuditSink
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import CourseCreate, CourseOut, CourseUpdate, DeletedResponse
from src.core.constants import COURSE_CREATE_LIMIT
from src.core.exceptions import ApiError
from src.core.logging import get_logger
from src.core.types import CourseDefinition
from src.data.errors import storage_errors
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult
from src.scheduling import generate_sessions

log = get_logger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])

_INSERT_SESSION = text(
    """
    INSERT INTO sessions
        (id, org_id, course_id, teacher_id, title, starts_at, class_name, description)
    VALUES
        (:id, :org_id, :course_id, :teacher_id, :title, :starts_at, :class_name, :description)
    """
)


@router.get("", response_model=list[CourseOut])
async def list_courses(
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[CourseOut]:
    """List all courses of the active organization, newest first."""
    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text("SELECT * FROM courses WHERE org_id = :oid ORDER BY created_at DESC"),
                {"oid": ctx.org_id},
            )
            rows = result.mappings().all()

    return [_row_to_course(row) for row in rows]


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("courses:post", COURSE_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> CourseOut:
    """Create a course and bulk-insert its generated sessions in one transaction."""
    course_id = str(uuid7())
    teacher_id = str(body.lead_teacher_id) if body.lead_teacher_id else None

    descriptors = generate_sessions(
        CourseDefinition(
            org_id=ctx.org_id,
            course_id=course_id,
            title=body.title,
            start_date=body.starts_at,
            duration_weeks=body.duration_weeks,
            meeting_days=body.meeting_days,
            sessions_per_week=body.sessions_per_week,
            course_type=body.course_type,
            teacher_id=teacher_id,
            description=body.description,
        )
    )

    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text(
                    """
                    INSERT INTO courses
                        (id, org_id, title, description, modality, lead_teacher_id,
                         course_type, duration_weeks, sessions_per_week, meeting_days,
                         max_students, starts_at, ends_at)
                    VALUES
                        (:id, :oid, :title, :desc, :modality, :teacher,
                         :ctype, :weeks, :per_week, :days,
                         :max_students, :starts_at, :ends_at)
                    RETURNING *
                    """
                ),
                {
                    "id": course_id,
                    "oid": ctx.org_id,
                    "title": body.title,
                    "desc": body.description,
                    "modality": body.modality,
                    "teacher": teacher_id,
                    "ctype": body.course_type,
                    "weeks": body.duration_weeks,
                    "per_week": body.sessions_per_week,
                    "days": json.dumps(body.meeting_days) if body.meeting_days is not None else None,
                    "max_students": body.max_students,
                    "starts_at": body.starts_at,
                    "ends_at": body.ends_at,
                },
            )
            row = result.mappings().first()

            await conn.execute(
                _INSERT_SESSION,
                [{"id": str(uuid7()), **d.to_row()} for d in descriptors],
            )

    log.info(
        "course_created",
        course_id=course_id,
        org_id=ctx.org_id,
        sessions=len(descriptors),
    )
    await audit.record(
        ctx.org_id,
        ctx.user_id,
        "create",
        "course",
        course_id,
        {"title": body.title, "sessions": len(descriptors)},
    )

    course = _row_to_course(row) if row is not None else _body_to_course(course_id, ctx.org_id, body)
    course.sessions_generated = len(descriptors)
    return course


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> CourseOut:
    """Get a single course (tenant-scoped)."""
    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text("SELECT * FROM courses WHERE id = :cid AND org_id = :oid"),
                {"cid": course_id, "oid": ctx.org_id},
            )
            row = result.mappings().first()

    if row is None:
        raise ApiError("Course not found", status=status.HTTP_404_NOT_FOUND)

    return _row_to_course(row)


@router.patch("/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: str,
    body: CourseUpdate,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> CourseOut:
    """Update a course (partial update). Existing sessions are left untouched."""
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return await get_course(course_id, ctx, engine)

    updates: dict[str, Any] = {}
    for column, value in changes.items():
        if column == "lead_teacher_id" and value is not None:
            value = str(value)
        elif column == "meeting_days" and value is not None:
            value = json.dumps(value)
        updates[column] = value

    set_clause = ", ".join(f"{k} = :{k}" for k in updates)
    params = {**updates, "cid": course_id, "oid": ctx.org_id}

    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text(
                    f"UPDATE courses SET {set_clause} "  # noqa: S608
                    "WHERE id = :cid AND org_id = :oid RETURNING *"
                ),
                params,
            )
            row = result.mappings().first()

    if row is None:
        raise ApiError("Course not found", status=status.HTTP_404_NOT_FOUND)

    await audit.record(ctx.org_id, ctx.user_id, "update", "course", course_id, changes)
    return _row_to_course(row)


@router.delete("/{course_id}", response_model=DeletedResponse)
async def delete_course(
    course_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> DeletedResponse:
    """Delete a course; its sessions go with it (ON DELETE CASCADE)."""
    with storage_errors():
        async with engine.begin() as conn:
            result = await conn.execute(
                text("DELETE FROM courses WHERE id = :cid AND org_id = :oid RETURNING id"),
                {"cid": course_id, "oid": ctx.org_id},
            )
            deleted = result.first()

    if deleted is None:
        raise ApiError("Course not found", status=status.HTTP_404_NOT_FOUND)

    await audit.record(ctx.org_id, ctx.user_id, "delete", "course", course_id)
    return DeletedResponse()


def _row_to_course(row: object) -> CourseOut:
    """Convert DB row to CourseOut."""
    days = row.get("meeting_days")  # type: ignore[union-attr]
    if isinstance(days, str):
        days = json.loads(days)

    return CourseOut(
        id=str(row["id"]),  # type: ignore[index]
        org_id=str(row["org_id"]),  # type: ignore[index]
        title=row["title"],  # type: ignore[index]
        description=row.get("description"),  # type: ignore[union-attr]
        modality=row["modality"],  # type: ignore[index]
        lead_teacher_id=row.get("lead_teacher_id"),  # type: ignore[union-attr]
        course_type=row.get("course_type"),  # type: ignore[union-attr]
        duration_weeks=row.get("duration_weeks"),  # type: ignore[union-attr]
        sessions_per_week=row.get("sessions_per_week"),  # type: ignore[union-attr]
        meeting_days=days,
        max_students=row.get("max_students"),  # type: ignore[union-attr]
        starts_at=row.get("starts_at"),  # type: ignore[union-attr]
        ends_at=row.get("ends_at"),  # type: ignore[union-attr]
        created_at=row.get("created_at"),  # type: ignore[union-attr]
    )


def _body_to_course(course_id: str, org_id: str, body: CourseCreate) -> CourseOut:
    return CourseOut(
        id=course_id,
        org_id=org_id,
        title=body.title,
        description=body.description,
        modality=body.modality,
        lead_teacher_id=str(body.lead_teacher_id) if body.lead_teacher_id else None,
        course_type=body.course_type,
        duration_weeks=body.duration_weeks,
        sessions_per_week=body.sessions_per_week,
        meeting_days=body.meeting_days,
        max_students=body.max_students,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
    )
