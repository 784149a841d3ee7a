"""Student roster endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.db.audit import AuditSink
from src.api.db.records import TenantTable
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import StudentCreate, StudentOut
from src.core.constants import STUDENT_CREATE_LIMIT
from src.core.logging import get_logger
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult

log = get_logger(__name__)

router = APIRouter(prefix="/students", tags=["students"])

students = TenantTable("students", "Student", order_by="name ASC")


@router.get("", response_model=list[StudentOut])
async def list_students(
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[StudentOut]:
    rows = await students.find_all(engine, ctx.org_id)
    return [StudentOut.model_validate(dict(row)) for row in rows]


@router.post("", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
async def create_student(
    body: StudentCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("students:post", STUDENT_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> StudentOut:
    row = await students.insert(engine, ctx.org_id, body.model_dump())
    student = StudentOut.model_validate(dict(row))

    log.info("student_created", student_id=student.id, org_id=ctx.org_id)
    await audit.record(ctx.org_id, ctx.user_id, "create", "student", student.id, {"name": student.name})
    return student
