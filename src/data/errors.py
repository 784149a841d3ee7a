"""Storage adapter boundary: SQLAlchemy/driver errors to ``StorageError``.

Everything above the persistence layer sees only ``StorageErrorKind``, so the
HTTP error mapping stays independent of the database engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError

from src.core.constants import (
    PG_FOREIGN_KEY_VIOLATION,
    PG_INSUFFICIENT_PRIVILEGE,
    PG_UNDEFINED_COLUMN,
    PG_UNIQUE_VIOLATION,
)
from src.core.exceptions import StorageError, StorageErrorKind

_KIND_BY_SQLSTATE: dict[str, StorageErrorKind] = {
    PG_INSUFFICIENT_PRIVILEGE: StorageErrorKind.PERMISSION_DENIED,
    PG_UNIQUE_VIOLATION: StorageErrorKind.UNIQUE_VIOLATION,
    PG_FOREIGN_KEY_VIOLATION: StorageErrorKind.FOREIGN_KEY_VIOLATION,
    PG_UNDEFINED_COLUMN: StorageErrorKind.UNDEFINED_COLUMN,
}


def kind_for_sqlstate(code: str | None) -> StorageErrorKind:
    if code is None:
        return StorageErrorKind.OTHER
    return _KIND_BY_SQLSTATE.get(code, StorageErrorKind.OTHER)


def _sqlstate(exc: DBAPIError) -> str | None:
    """Dig the SQLSTATE out of whichever driver raised.

    asyncpg exposes ``sqlstate`` (also on the wrapped ``__cause__`` when going
    through SQLAlchemy's adapter); psycopg exposes ``pgcode``.
    """
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if candidate is None:
            continue
        for attr in ("sqlstate", "pgcode"):
            code = getattr(candidate, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def _driver_attr(exc: DBAPIError, attr: str) -> str | None:
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        value = getattr(candidate, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def to_storage_error(exc: DBAPIError) -> StorageError:
    code = _sqlstate(exc)
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return StorageError(
        kind_for_sqlstate(code),
        message.strip() or "Database error",
        code=code,
        details=_driver_attr(exc, "detail"),
        hint=_driver_attr(exc, "hint"),
    )


@contextmanager
def storage_errors() -> Iterator[None]:
    """Re-raise driver failures inside the block as ``StorageError``."""
    try:
        yield
    except DBAPIError as exc:
        raise to_storage_error(exc) from exc
