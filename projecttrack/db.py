"""
Postgres plumbing shared by the repositories and stores.

Intent:
    Resolve the DSN from the environment, open short-lived psycopg3
    connections, translate driver failures into typed errors and apply the
    bundled schema on startup when `AUTO_CREATE_SCHEMA=true`.

Error mapping:
    - Connection/operational failures -> `UpstreamUnavailable` (503)
    - Unique violations -> `Conflict` naming the duplicated field (409)
    - Foreign key violations -> `NotFound` for the missing parent (404)
"""
from __future__ import annotations

import logging
import os
import re
from contextlib import contextmanager
from importlib import resources
from typing import Dict, Iterator, Optional, Tuple

try:
    import psycopg
    from psycopg.errors import ForeignKeyViolation, UniqueViolation
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from projecttrack.tracking.errors import Conflict, NotFound, UpstreamUnavailable

_log = logging.getLogger("projecttrack.db")

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

# constraint name -> (code, message)
_UNIQUE_CONSTRAINTS: Dict[str, Tuple[str, str]] = {
    "accounts_email_key": ("duplicate_email", "An account with this email already exists"),
    "students_account_id_key": ("account_already_linked", "This account already has a student profile"),
    "students_enrollment_number_key": ("duplicate_enrollment_number", "Student with this enrollment number already exists"),
    "students_roll_number_key": ("duplicate_roll_number", "Student with this roll number already exists"),
}

_FOREIGN_KEYS: Dict[str, Tuple[str, str]] = {
    "projects_student_id_fkey": ("student_not_found", "Student not found"),
    "students_account_id_fkey": ("account_not_found", "Account not found"),
    "app_sessions_account_id_fkey": ("account_not_found", "Account not found"),
}


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def resolve_dsn() -> Optional[str]:
    """Return the configured DSN or None when the app should run in memory."""
    for key in ("PROJECTTRACK_DATABASE_URL", "DATABASE_URL"):
        value = (os.getenv(key) or "").strip()
        if value:
            return value
    return None


def is_uuid(value: object) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def _constraint_name(exc: Exception) -> str:
    diag = getattr(exc, "diag", None)
    return getattr(diag, "constraint_name", None) or ""


@contextmanager
def connect(dsn: str) -> Iterator["psycopg.Connection"]:
    """Open a connection whose block runs as one transaction.

    The transaction commits when the block exits normally and rolls back when
    it raises.
    """
    if not HAVE_PSYCOPG:
        raise RuntimeError("psycopg3 is required for the Postgres backend")
    try:
        with psycopg.connect(dsn) as conn:
            yield conn
    except UniqueViolation as exc:
        code, message = _UNIQUE_CONSTRAINTS.get(_constraint_name(exc), ("duplicate", "Record already exists"))
        raise Conflict(code, message) from exc
    except ForeignKeyViolation as exc:
        code, message = _FOREIGN_KEYS.get(_constraint_name(exc), ("reference_not_found", "Referenced record not found"))
        raise NotFound(code, message) from exc
    except psycopg.OperationalError as exc:
        _log.warning("Database unavailable: %s", exc.__class__.__name__)
        raise UpstreamUnavailable("database_unavailable", "Database is unavailable") from exc


def schema_sql() -> str:
    return resources.files("projecttrack").joinpath("schema.sql").read_text(encoding="utf-8")


def apply_schema(dsn: str) -> None:
    """Apply the idempotent bundled schema."""
    with connect(dsn) as conn:
        conn.execute(schema_sql())
    _log.info("Database schema applied")


def ensure_schema_from_env(dsn: Optional[str]) -> bool:
    """Apply the schema when `AUTO_CREATE_SCHEMA=true` and a DSN is set."""
    if not dsn or not _env_flag("AUTO_CREATE_SCHEMA"):
        return False
    apply_schema(dsn)
    return True


__all__ = ["HAVE_PSYCOPG", "apply_schema", "connect", "ensure_schema_from_env", "is_uuid", "resolve_dsn", "schema_sql"]
