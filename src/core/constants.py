"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

# ── Cookies ──────────────────────────────────────────────────────
SESSION_COOKIE = "vam_token"
ORG_COOKIE = "vam_active_org"
ORG_NAME_COOKIE = "vam_active_org_name"
DEFAULT_ORG_NAME = "Primary Organization"

# ── Rate Limiting ────────────────────────────────────────────────
RATE_LIMIT_WINDOW_MS = 60 * 1000
RATE_LIMIT_DEFAULT = 60
RATE_LIMIT_SWEEP_EVERY = 1000       # consume() calls between expired-bucket sweeps
COURSE_CREATE_LIMIT = 30
SESSION_CREATE_LIMIT = 30
ATTENDANCE_CREATE_LIMIT = 60
ENROLLMENT_CREATE_LIMIT = 60
TEACHER_CREATE_LIMIT = 30
STUDENT_CREATE_LIMIT = 30

# ── Scheduling ───────────────────────────────────────────────────
MAX_GENERATED_SESSIONS = 200
DAYS_PER_WEEK = 7
SESSION_TITLE_SEPARATOR = " • "

# ── SQLSTATE codes (PostgreSQL) ──────────────────────────────────
PG_INSUFFICIENT_PRIVILEGE = "42501"
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_UNDEFINED_COLUMN = "42703"
