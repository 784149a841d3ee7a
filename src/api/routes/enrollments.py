"""Enrollment endpoints: which students take which course, with whom."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.db.audit import AuditSink
from src.api.db.records import TenantTable
from src.api.deps import get_audit_sink, get_db_engine, rate_limited, require_context
from src.api.models.schemas import DeletedResponse, EnrollmentCreate, EnrollmentOut, EnrollmentUpdate
from src.core.constants import ENROLLMENT_CREATE_LIMIT
from src.core.logging import get_logger
from src.saas.context import TenantContext
from src.saas.rate_limit import RateLimitResult

log = get_logger(__name__)

router = APIRouter(prefix="/enrollments", tags=["enrollments"])

enrollments = TenantTable(
    "enrollments",
    "Enrollment",
    order_by="enrolled_at DESC",
    references=("student_id", "course_id", "teacher_id"),
)


@router.get("", response_model=list[EnrollmentOut])
async def list_enrollments(
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> list[EnrollmentOut]:
    """List the organization's enrollments, newest first."""
    rows = await enrollments.find_all(engine, ctx.org_id)
    return [EnrollmentOut.model_validate(dict(row)) for row in rows]


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def create_enrollment(
    body: EnrollmentCreate,
    ctx: TenantContext = Depends(require_context),
    _rate: RateLimitResult = Depends(rate_limited("enrollments:post", ENROLLMENT_CREATE_LIMIT)),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> EnrollmentOut:
    """Enroll a student; student, course and teacher must all belong to the org."""
    row = await enrollments.insert(engine, ctx.org_id, body.model_dump())
    enrollment = EnrollmentOut.model_validate(dict(row))

    log.info("enrollment_created", enrollment_id=enrollment.id, org_id=ctx.org_id)
    await audit.record(
        ctx.org_id,
        ctx.user_id,
        "create",
        "enrollment",
        enrollment.id,
        {"student_id": enrollment.student_id, "course_id": enrollment.course_id},
    )
    return enrollment


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(
    enrollment_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
) -> EnrollmentOut:
    row = await enrollments.get(engine, ctx.org_id, enrollment_id)
    return EnrollmentOut.model_validate(dict(row))


@router.patch("/{enrollment_id}", response_model=EnrollmentOut)
async def update_enrollment(
    enrollment_id: str,
    body: EnrollmentUpdate,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> EnrollmentOut:
    """Reassign the teacher or move the enrollment to another status."""
    changes = body.model_dump(exclude_unset=True)
    row = await enrollments.update(engine, ctx.org_id, enrollment_id, changes)
    if changes:
        await audit.record(ctx.org_id, ctx.user_id, "update", "enrollment", enrollment_id, changes)
    return EnrollmentOut.model_validate(dict(row))


@router.delete("/{enrollment_id}", response_model=DeletedResponse)
async def delete_enrollment(
    enrollment_id: str,
    ctx: TenantContext = Depends(require_context),
    engine: AsyncEngine = Depends(get_db_engine),
    audit: AuditSink = Depends(get_audit_sink),
) -> DeletedResponse:
    await enrollments.delete(engine, ctx.org_id, enrollment_id)
    await audit.record(ctx.org_id, ctx.user_id, "delete", "enrollment", enrollment_id)
    return DeletedResponse()
