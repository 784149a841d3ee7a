"""Attendance endpoints: per-session marks for each student.

A student has at most one mark per session; marking twice is a 409.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.db.audit import AuditSink
from src.api.db.records import TenantTable
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import AttendanceCreate, AttendanceOut, AttendanceUpdate, DeletedResponse
from src.core.constants import ATTENDANCE_CREATE_LIMIT
from src.core.logging import get_logger
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult

log = get_logger(__name__)

router = APIRouter(prefix="/attendance", tags=["attendance"])

marks = TenantTable(
    "attendance",
    "Attendance record",
    order_by="noted_at DESC",
    references=("session_id", "student_id"),
)


@router.get("", response_model=list[AttendanceOut])
async def list_attendance(
    session_id: str | None = None,
    student_id: str | None = None,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[AttendanceOut]:
    """Most recent marks first, optionally narrowed to a session and/or student."""
    rows = await marks.find_all(
        engine,
        ctx.org_id,
        {"session_id": session_id, "student_id": student_id},
    )
    return [AttendanceOut.model_validate(dict(row)) for row in rows]


@router.post("", response_model=AttendanceOut, status_code=status.HTTP_201_CREATED)
async def record_attendance(
    body: AttendanceCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("attendance:post", ATTENDANCE_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> AttendanceOut:
    row = await marks.insert(engine, ctx.org_id, body.model_dump())
    mark = AttendanceOut.model_validate(dict(row))

    log.info("attendance_recorded", attendance_id=mark.id, session_id=mark.session_id, org_id=ctx.org_id)
    await audit.record(
        ctx.org_id,
        ctx.user_id,
        "create",
        "attendance",
        mark.id,
        {"session_id": mark.session_id, "student_id": mark.student_id, "status": mark.status},
    )
    return mark


@router.get("/{attendance_id}", response_model=AttendanceOut)
async def get_attendance(
    attendance_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> AttendanceOut:
    row = await marks.get(engine, ctx.org_id, attendance_id)
    return AttendanceOut.model_validate(dict(row))


@router.patch("/{attendance_id}", response_model=AttendanceOut)
async def update_attendance(
    attendance_id: str,
    body: AttendanceUpdate,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> AttendanceOut:
    """Correct a mark's status or notes."""
    changes = body.model_dump(exclude_unset=True)
    row = await marks.update(engine, ctx.org_id, attendance_id, changes)
    if changes:
        await audit.record(ctx.org_id, ctx.user_id, "update", "attendance", attendance_id, changes)
    return AttendanceOut.model_validate(dict(row))


@router.delete("/{attendance_id}", response_model=DeletedResponse)
async def delete_attendance(
    attendance_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> DeletedResponse:
    await marks.delete(engine, ctx.org_id, attendance_id)
    await audit.record(ctx.org_id, ctx.user_id, "delete", "attendance", attendance_id)
    return DeletedResponse()
