"""
In-memory session store: expiry on read and sweeping of stale sessions.
"""
from __future__ import annotations

from projecttrack.identity_access.stores import SessionStore


def _create(store: SessionStore, n: int = 1):
    return store.create(account_id=f"acc-{n}", role="student", name=f"User {n}")


def test_expired_session_is_not_returned():
    store = SessionStore()
    rec = _create(store)
    rec.expires_at = 1
    assert store.get(rec.session_id) is None


def test_create_sweeps_expired_sessions():
    store = SessionStore()
    stale = _create(store, 1)
    live = _create(store, 2)
    stale.expires_at = 1

    fresh = _create(store, 3)

    assert stale.session_id not in store._data
    assert store.get(live.session_id) is live
    assert store.get(fresh.session_id) is fresh


def test_purge_expired_reports_removed_count():
    store = SessionStore()
    records = [_create(store, n) for n in range(3)]
    records[0].expires_at = 1
    records[1].expires_at = 1
    assert store.purge_expired() == 2
    assert store.purge_expired() == 0
    assert store.get(records[2].session_id) is records[2]
