"""PostgreSQL connection and schema definitions."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import get_settings
from src.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

organizations = Table(
    "organizations",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("owner_id", String, nullable=True, index=True),
    Column("stripe_customer_id", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

memberships = Table(
    "memberships",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", String, nullable=False, index=True),
    Column("role", String, nullable=False, server_default="member"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("org_id", "user_id", name="uq_memberships_org_user"),
)

courses = Table(
    "courses",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("description", Text),
    Column("modality", String, nullable=False),
    Column("lead_teacher_id", String),
    Column("course_type", String),
    Column("duration_weeks", Integer),
    Column("sessions_per_week", Integer),
    Column("meeting_days", JSONB),
    Column("max_students", Integer),
    Column("starts_at", DateTime(timezone=True)),
    Column("ends_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("org_id", "title", name="uq_courses_org_title"),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("course_id", String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=True, index=True),
    Column("teacher_id", String),
    Column("title", String, nullable=False),
    Column("starts_at", DateTime(timezone=True), nullable=False, index=True),
    Column("ends_at", DateTime(timezone=True)),
    Column("class_name", String),
    Column("description", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

teachers = Table(
    "teachers",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", String),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False),
    Column("department", String),
    Column("phone", String),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("org_id", "email", name="uq_teachers_org_email"),
)

students = Table(
    "students",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("email", String),
    Column("program", String),
    Column("duration_weeks", Integer),
    Column("sessions_per_week", Integer),
    Column("class_name", String),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

enrollments = Table(
    "enrollments",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("student_id", String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
    Column("course_id", String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
    Column("teacher_id", String, ForeignKey("teachers.id", ondelete="SET NULL")),
    Column("status", String, nullable=False, server_default="active"),
    Column("enrolled_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
)

attendance = Table(
    "attendance",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("session_id", String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("student_id", String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("status", String, nullable=False),
    Column("notes", Text),
    Column("noted_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("session_id", "student_id", name="uq_attendance_session_student"),
)

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", String, primary_key=True),
    Column("org_id", String, nullable=False, index=True),
    Column("actor_id", String),
    Column("action", String, nullable=False),
    Column("entity", String, nullable=False),
    Column("entity_id", String),
    Column("metadata", JSONB),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


# ── Engine ───────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


async def get_engine() -> AsyncEngine:
    """Get or create the async database engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url.get_secret_value()
        _engine = create_async_engine(
            db_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
        )
        log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return _engine


async def init_schema() -> None:
    """Create all tables that do not exist yet."""
    engine = await get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    log.info("schema_initialized", tables=sorted(metadata.tables))


async def close_engine() -> None:
    """Dispose the database engine."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        log.info("database_engine_closed")
