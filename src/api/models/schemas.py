"""Pydantic V2 request/response schemas for the VAM API.

Request bodies never carry ``org_id``: unknown fields are ignored and the
organization always comes from the resolved tenant context.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

Weekday = Annotated[int, Field(ge=0, le=6)]
AttendanceStatus = Literal["present", "absent", "late"]
EnrollmentStatus = Literal["active", "paused", "completed", "dropped"]


def _reject_null(value: Any) -> Any:
    """Partial updates may omit a required column but never clear it."""
    if value is None:
        raise ValueError("may not be null")
    return value


# ── Auth / context ────────────────────────────────────────────────

class ContextResponse(BaseModel):
    """The acting principal and organization for this request."""

    user_id: str
    email: str = ""
    role: str | None = None
    org_id: str
    org_name: str
    source: str


# ── Courses ──────────────────────────────────────────────────────

class CourseCreate(BaseModel):
    """Request body for creating a course (and its generated sessions)."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    modality: Literal["group", "1on1"]
    lead_teacher_id: UUID | None = None
    course_type: str | None = None
    duration_weeks: int | None = Field(default=None, gt=0)
    sessions_per_week: int | None = Field(default=None, gt=0)
    meeting_days: list[Weekday] | None = None
    max_students: int | None = Field(default=None, gt=0)
    starts_at: datetime | None = None
    ends_at: datetime | None = None


class CourseUpdate(BaseModel):
    """Request body for a partial course update."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    modality: Literal["group", "1on1"] | None = None
    lead_teacher_id: UUID | None = None
    course_type: str | None = None
    duration_weeks: int | None = Field(default=None, gt=0)
    sessions_per_week: int | None = Field(default=None, gt=0)
    meeting_days: list[Weekday] | None = None
    max_students: int | None = Field(default=None, gt=0)
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @field_validator("title", "modality")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return _reject_null(v)


class CourseOut(BaseModel):
    id: str
    org_id: str
    title: str
    description: str | None = None
    modality: str
    lead_teacher_id: str | None = None
    course_type: str | None = None
    duration_weeks: int | None = None
    sessions_per_week: int | None = None
    meeting_days: list[int] | None = None
    max_students: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    created_at: datetime | None = None
    sessions_generated: int | None = None


# ── Sessions ─────────────────────────────────────────────────────

class SessionCreate(BaseModel):
    """Request body for scheduling a single session."""

    model_config = ConfigDict(extra="ignore")

    course_id: str | None = None
    teacher_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1)
    starts_at: datetime
    ends_at: datetime | None = None
    class_name: str | None = None
    description: str | None = None


class SessionUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teacher_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    class_name: str | None = None
    description: str | None = None

    @field_validator("title", "starts_at")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return _reject_null(v)


class SessionOut(BaseModel):
    id: str
    org_id: str
    course_id: str | None = None
    teacher_id: str | None = None
    title: str
    starts_at: datetime
    ends_at: datetime | None = None
    class_name: str | None = None
    description: str | None = None
    created_at: datetime | None = None


# ── Teachers & students ──────────────────────────────────────────

class TeacherCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    user_id: UUID | None = None
    department: str | None = None
    phone: str | None = None


class TeacherOut(BaseModel):
    id: str
    org_id: str
    user_id: str | None = None
    name: str
    email: str
    department: str | None = None
    phone: str | None = None
    created_at: datetime | None = None


class StudentCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr | None = None
    program: str | None = None
    duration_weeks: int | None = Field(default=None, gt=0)
    sessions_per_week: int | None = Field(default=None, gt=0)
    class_name: str | None = None


class StudentOut(BaseModel):
    id: str
    org_id: str
    name: str
    email: str | None = None
    program: str | None = None
    duration_weeks: int | None = None
    sessions_per_week: int | None = None
    class_name: str | None = None
    created_at: datetime | None = None


# ── Enrollments ──────────────────────────────────────────────────

class EnrollmentCreate(BaseModel):
    """A student joining a course, optionally with an assigned teacher."""

    model_config = ConfigDict(extra="ignore")

    student_id: UUID
    course_id: UUID
    teacher_id: UUID | None = None
    status: EnrollmentStatus = "active"


class EnrollmentUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teacher_id: UUID | None = None
    status: EnrollmentStatus | None = None

    @field_validator("status")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return _reject_null(v)


class EnrollmentOut(BaseModel):
    id: str
    org_id: str
    student_id: str
    course_id: str
    teacher_id: str | None = None
    status: str
    enrolled_at: datetime | None = None


# ── Attendance ───────────────────────────────────────────────────

class AttendanceCreate(BaseModel):
    """One student's mark for one session."""

    model_config = ConfigDict(extra="ignore")

    session_id: UUID
    student_id: UUID
    status: AttendanceStatus
    notes: str | None = None


class AttendanceUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: AttendanceStatus | None = None
    notes: str | None = None

    @field_validator("status")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return _reject_null(v)


class AttendanceOut(BaseModel):
    id: str
    org_id: str
    session_id: str
    student_id: str
    status: str
    notes: str | None = None
    noted_at: datetime | None = None


# ── Generic ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "dev"


class ErrorResponse(BaseModel):
    error: str
    code: str | None = None
    details: Any = None
    hint: str | None = None


class DeletedResponse(BaseModel):
    success: bool = True
