"""Recurring-session generator: expands a course into concrete calendar sessions.

Two mutually exclusive modes:

- **Weekday mode** (``meeting_days`` given): for every week of the course and
  every meeting weekday, the session lands on the first occurrence of that
  weekday on or after the start date, shifted by whole weeks.
- **Interval mode** (no meeting days): ``sessions_per_week`` sessions spread
  evenly, ``7 / sessions_per_week`` days apart, starting at the start date.

Malformed input is normalised, never rejected: the function always returns
between 1 and ``MAX_GENERATED_SESSIONS`` sessions.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from src.core.constants import (
    DAYS_PER_WEEK,
    MAX_GENERATED_SESSIONS,
    SESSION_TITLE_SEPARATOR,
)
from src.core.types import CourseDefinition, SessionDescriptor


def parse_start(value: str | datetime | date | None, now: datetime | None = None) -> datetime:
    """Normalise a course start to an aware UTC datetime.

    Date-only values start at midnight UTC; naive datetimes are taken as UTC;
    anything unparsable falls back to ``now``.
    """
    fallback = now or datetime.now(timezone.utc)
    if fallback.tzinfo is None:
        fallback = fallback.replace(tzinfo=timezone.utc)

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return fallback
    else:
        return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def js_weekday(moment: datetime) -> int:
    """Weekday ordinal with 0 = Sunday … 6 = Saturday."""
    return moment.isoweekday() % DAYS_PER_WEEK


def _positive_or_one(value: int | None) -> int:
    if value is None:
        return 1
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 1
    return number if number > 0 else 1


def _meeting_days(days: list[int] | None) -> list[int]:
    if not days:
        return []
    valid: set[int] = set()
    for day in days:
        try:
            ordinal = int(day)
        except (TypeError, ValueError):
            continue
        if 0 <= ordinal < DAYS_PER_WEEK:
            valid.add(ordinal)
    return sorted(valid)


def _weekday_starts(start: datetime, weeks: int, days: list[int]) -> list[datetime]:
    start_day = js_weekday(start)
    starts: list[datetime] = []
    for week in range(weeks):
        for day in days:
            ahead = (day - start_day + DAYS_PER_WEEK) % DAYS_PER_WEEK
            starts.append(start + timedelta(days=ahead + week * DAYS_PER_WEEK))
            if len(starts) >= MAX_GENERATED_SESSIONS:
                return starts
    return starts


def _interval_starts(start: datetime, weeks: int, per_week: int) -> list[datetime]:
    interval = timedelta(days=DAYS_PER_WEEK / per_week)
    total = min(weeks * per_week, MAX_GENERATED_SESSIONS)
    return [start + interval * index for index in range(total)]


def session_title(base: str | None, number: int, total: int) -> str:
    if not base:
        return f"Session {number}"
    if total <= 1:
        return base
    return f"{base}{SESSION_TITLE_SEPARATOR}Session {number}"


def generate_sessions(
    definition: CourseDefinition,
    now: datetime | None = None,
) -> list[SessionDescriptor]:
    """Expand ``definition`` into ordered session descriptors.

    Numbering follows generation order: week by week, and within a week by
    ascending weekday ordinal.
    """
    start = parse_start(definition.start_date, now)
    weeks = _positive_or_one(definition.duration_weeks)
    days = _meeting_days(definition.meeting_days)

    if days:
        starts = _weekday_starts(start, weeks, days)
    else:
        starts = _interval_starts(start, weeks, _positive_or_one(definition.sessions_per_week))

    title = definition.title.strip() if definition.title else None
    class_name = definition.course_type or title
    total = len(starts)

    return [
        SessionDescriptor(
            org_id=definition.org_id,
            course_id=definition.course_id,
            teacher_id=definition.teacher_id,
            title=session_title(title, number, total),
            starts_at=starts_at,
            class_name=class_name,
            description=definition.description,
        )
        for number, starts_at in enumerate(starts, start=1)
    ]
