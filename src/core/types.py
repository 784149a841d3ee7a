"""System-wide shared types: the single source of truth for all data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ── Enums ────────────────────────────────────────────────────────

class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    TEACHER = "teacher"
    MEMBER = "member"


class CourseModality(str, Enum):
    GROUP = "group"
    ONE_ON_ONE = "1on1"


class ResolutionSource(str, Enum):
    """Which fallback tier produced the active organization."""

    APP_METADATA = "app_metadata"
    USER_METADATA = "user_metadata"
    COOKIE = "cookie"
    OWNER = "owner"
    MEMBERSHIP = "membership"


# ── Tenancy ──────────────────────────────────────────────────────

@dataclass
class Organization:
    """The unit of data isolation. Every domain row belongs to exactly one."""

    org_id: str
    name: str
    owner_id: str | None = None
    billing_customer_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Membership:
    org_id: str
    user_id: str
    role: MembershipRole = MembershipRole.MEMBER
    org_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Principal:
    """An authenticated actor, independent of any tenant."""

    user_id: str
    email: str = ""
    app_metadata: dict[str, Any] = field(default_factory=dict)
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str | None:
        role = self.app_metadata.get("role") or self.user_metadata.get("role")
        return str(role) if role else None


# ── Scheduling ───────────────────────────────────────────────────

@dataclass
class CourseDefinition:
    """Input to the session generator.

    ``start_date`` may be an ISO string, a datetime or missing; the generator
    normalises it. ``meeting_days`` uses 0 = Sunday … 6 = Saturday.
    """

    org_id: str
    course_id: str
    title: str | None = None
    start_date: str | datetime | None = None
    duration_weeks: int | None = None
    meeting_days: list[int] | None = None
    sessions_per_week: int | None = None
    course_type: str | None = None
    teacher_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class SessionDescriptor:
    """One generated meeting of a course, ready for bulk insertion."""

    org_id: str
    course_id: str
    teacher_id: str | None
    title: str
    starts_at: datetime
    class_name: str | None
    description: str | None

    def to_row(self) -> dict[str, Any]:
        return {
            "org_id": self.org_id,
            "course_id": self.course_id,
            "teacher_id": self.teacher_id,
            "title": self.title,
            "starts_at": self.starts_at,
            "class_name": self.class_name,
            "description": self.description,
        }
