"""
Database-backed SessionStore for production use (Postgres).

Why: In-memory sessions are not durable and do not scale across instances. This
store persists sessions in `public.app_sessions` while keeping the cookie
opaque and PII-minimal (no email stored).

Note: Selected by the web app whenever a DSN is configured. Tests keep using
the in-memory store.
"""
from __future__ import annotations

import re
import secrets
import time
from typing import Optional

from psycopg import sql

from projecttrack.db import HAVE_PSYCOPG, connect

from .stores import DEFAULT_SESSION_TTL_SECONDS, SessionRecord

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def _now() -> int:
    return int(time.time())


class DBSessionStore:
    """Postgres-backed session store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string.
    table:
        Fully qualified table name. Defaults to `public.app_sessions`.
    """

    def __init__(self, dsn: str, table: str = "public.app_sessions") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBSessionStore")
        if not dsn:
            raise RuntimeError("No database DSN provided for DBSessionStore")
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._dsn = dsn
        self._table = table

    def _identifier(self) -> sql.Composable:
        if "." in self._table:
            schema, name = self._table.split(".", 1)
        else:
            schema, name = "public", self._table
        return sql.SQL("{}.{}").format(sql.Identifier(schema), sql.Identifier(name))

    def create(self, *, account_id: str, role: str, name: str, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        expires_at = _now() + ttl_seconds
        stmt = sql.SQL(
            "insert into {} (session_id, account_id, role, name, expires_at) values (%s, %s, %s, %s, to_timestamp(%s))"
        ).format(self._identifier())
        with connect(self._dsn) as conn:
            conn.execute(stmt, (sid, account_id, role, name, expires_at))
        return SessionRecord(
            session_id=sid, account_id=account_id, role=role, name=name, expires_at=expires_at, ttl_seconds=ttl_seconds
        )

    def get(self, session_id: str) -> Optional[SessionRecord]:
        stmt = sql.SQL(
            "select session_id, account_id::text, role, name, extract(epoch from expires_at)::bigint "
            "from {} where session_id = %s and expires_at > now()"
        ).format(self._identifier())
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (session_id,))
                row = cur.fetchone()
        if not row:
            return None
        return SessionRecord(
            session_id=row[0],
            account_id=row[1],
            role=row[2],
            name=row[3],
            expires_at=int(row[4]) if row[4] is not None else None,
        )

    def delete(self, session_id: str) -> None:
        stmt = sql.SQL("delete from {} where session_id = %s").format(self._identifier())
        with connect(self._dsn) as conn:
            conn.execute(stmt, (session_id,))

