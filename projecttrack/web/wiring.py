"""
Backend selection for the web adapter.

Behavior:
    - With a DSN (`PROJECTTRACK_DATABASE_URL` / `DATABASE_URL`) the Postgres
      repository, account store and session store are used; the bundled schema
      is applied first when `AUTO_CREATE_SCHEMA=true`.
    - Without a DSN everything runs in memory (dev/tests).
    - Instances are created lazily on first use. Tests swap them with the
      `set_*` functions for isolation.
"""
from __future__ import annotations

import logging

from projecttrack.db import ensure_schema_from_env, resolve_dsn
from projecttrack.identity_access.accounts import AccountStore
from projecttrack.identity_access.registration import RegistrationService
from projecttrack.identity_access.stores import SessionStore
from projecttrack.tracking.repo_memory import MemoryTrackingRepo
from projecttrack.tracking.services.projects import ProjectsService
from projecttrack.tracking.services.roster import RosterService

logger = logging.getLogger("projecttrack.web")

_REPO = None
_ACCOUNTS = None
_SESSIONS = None


def _apply_schema_if_requested(dsn: str) -> None:
    try:
        ensure_schema_from_env(dsn)
    except Exception as exc:
        logger.warning("Schema bootstrap failed: %s", exc.__class__.__name__)


def _build_default_repo():
    """Prefer the Postgres repository; fall back to memory when unavailable."""
    dsn = resolve_dsn()
    if not dsn:
        logger.info("No database configured; using in-memory tracking repository")
        return MemoryTrackingRepo()
    try:
        from projecttrack.tracking.repo_db import DBTrackingRepo
        _apply_schema_if_requested(dsn)
        return DBTrackingRepo(dsn)
    except Exception as exc:  # pragma: no cover - exercised when psycopg is missing
        logger.warning("Tracking repo unavailable (%s); using in-memory fallback", exc)
        return MemoryTrackingRepo()


def _build_default_accounts():
    dsn = resolve_dsn()
    if not dsn:
        return AccountStore()
    try:
        from projecttrack.identity_access.accounts_db import DBAccountStore
        return DBAccountStore(dsn)
    except Exception as exc:  # pragma: no cover
        logger.warning("Account store unavailable (%s); using in-memory fallback", exc)
        return AccountStore()


def _build_default_sessions():
    dsn = resolve_dsn()
    if not dsn:
        return SessionStore()
    try:
        from projecttrack.identity_access.stores_db import DBSessionStore
        return DBSessionStore(dsn)
    except Exception as exc:  # pragma: no cover
        logger.warning("Session store unavailable (%s); using in-memory fallback", exc)
        return SessionStore()


def get_repo():
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def get_accounts():
    global _ACCOUNTS
    if _ACCOUNTS is None:
        _ACCOUNTS = _build_default_accounts()
    return _ACCOUNTS


def get_sessions():
    global _SESSIONS
    if _SESSIONS is None:
        _SESSIONS = _build_default_sessions()
    return _SESSIONS


def set_repo(repo) -> None:
    """Allow tests to swap the tracking repository implementation."""
    global _REPO
    _REPO = repo


def set_accounts(store) -> None:
    global _ACCOUNTS
    _ACCOUNTS = store


def set_sessions(store) -> None:
    global _SESSIONS
    _SESSIONS = store


def backend_name() -> str:
    return "memory" if isinstance(get_repo(), MemoryTrackingRepo) else "postgres"


def projects_service() -> ProjectsService:
    return ProjectsService(get_repo())


def roster_service() -> RosterService:
    return RosterService(get_repo(), accounts=get_accounts())


def registration_service() -> RegistrationService:
    return RegistrationService(get_accounts(), roster_service())
