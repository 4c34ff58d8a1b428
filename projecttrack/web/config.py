"""
Configuration and startup security checks for ProjectTrack.

Why: Prevent accidental insecure deployments without burdening local
development. A single guard enforces minimal production safety constraints.

Permissions: The caller needs no special privileges. The functions read
environment variables; the guard raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from projecttrack.db import resolve_dsn
from projecttrack.identity_access.stores import DEFAULT_SESSION_TTL_SECONDS

MIN_SESSION_TTL_SECONDS = 60
MAX_SESSION_TTL_SECONDS = 30 * 24 * 3600


def environment() -> str:
    return (os.getenv("PROJECTTRACK_ENV", "dev") or "dev").strip().lower()


def _is_prod_like(env: str) -> bool:
    return (env or "").lower() in {"prod", "production", "stage", "staging"}


def session_ttl_seconds() -> int:
    """Return SESSION_TTL_SECONDS, falling back to the default when unset, invalid or out of range."""
    raw = (os.getenv("SESSION_TTL_SECONDS") or "").strip()
    if not raw:
        return DEFAULT_SESSION_TTL_SECONDS
    try:
        ttl = int(raw)
    except ValueError:
        return DEFAULT_SESSION_TTL_SECONDS
    if not MIN_SESSION_TTL_SECONDS <= ttl <= MAX_SESSION_TTL_SECONDS:
        return DEFAULT_SESSION_TTL_SECONDS
    return ttl


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/staging only):
    - A Postgres DSN must be configured; in-memory storage is for dev/tests.
    - The DSN must not explicitly disable TLS.
    - SESSION_TTL_SECONDS must be an integer within 60..2592000.
    """
    if not _is_prod_like(environment()):
        return  # dev/test remain permissive

    dsn = resolve_dsn()
    if not dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL is unset in production. In-memory storage is for development only."
        )
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    raw_ttl = (os.getenv("SESSION_TTL_SECONDS") or "").strip()
    if raw_ttl:
        try:
            ttl = int(raw_ttl)
        except ValueError:
            raise SystemExit("Refusing to start: SESSION_TTL_SECONDS must be an integer.")
        if not MIN_SESSION_TTL_SECONDS <= ttl <= MAX_SESSION_TTL_SECONDS:
            raise SystemExit(
                f"Refusing to start: SESSION_TTL_SECONDS must be between {MIN_SESSION_TTL_SECONDS} "
                f"and {MAX_SESSION_TTL_SECONDS} in production."
            )
