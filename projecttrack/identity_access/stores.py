"""
In-memory session store for development and tests.

Why: Keep sessions opaque to the client. For production, use `DBSessionStore`
(`stores_db.py`) so sessions survive restarts and work across instances.

Security: Cookies and bearer tokens carry only an opaque session id. Session
data stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import secrets
import time

DEFAULT_SESSION_TTL_SECONDS = 86400


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    account_id: str
    role: str
    name: str
    expires_at: Optional[int] = None
    ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, account_id: str, role: str, name: str, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> SessionRecord:
        self.purge_expired()
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(
            session_id=sid,
            account_id=account_id,
            role=role,
            name=name,
            expires_at=_now() + ttl_seconds,
            ttl_seconds=ttl_seconds,
        )
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        now = _now()
        expired = [sid for sid, rec in self._data.items() if rec.expires_at and rec.expires_at < now]
        for sid in expired:
            self._data.pop(sid, None)
        return len(expired)
