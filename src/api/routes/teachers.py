"""Teacher roster endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.db.audit import AuditSink
from src.api.db.records import TenantTable
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import TeacherCreate, TeacherOut
from src.core.constants import TEACHER_CREATE_LIMIT
from src.core.logging import get_logger
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult

log = get_logger(__name__)

router = APIRouter(prefix="/teachers", tags=["teachers"])

teachers = TenantTable("teachers", "Teacher", order_by="name ASC")


@router.get("", response_model=list[TeacherOut])
async def list_teachers(
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[TeacherOut]:
    rows = await teachers.find_all(engine, ctx.org_id)
    return [TeacherOut.model_validate(dict(row)) for row in rows]


@router.post("", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
async def create_teacher(
    body: TeacherCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("teachers:post", TEACHER_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> TeacherOut:
    """Add a teacher; emails are unique within an organization (409 otherwise)."""
    row = await teachers.insert(engine, ctx.org_id, body.model_dump())
    teacher = TeacherOut.model_validate(dict(row))

    log.info("teacher_created", teacher_id=teacher.id, org_id=ctx.org_id)
    await audit.record(ctx.org_id, ctx.user_id, "create", "teacher", teacher.id, {"email": teacher.email})
    return teacher
