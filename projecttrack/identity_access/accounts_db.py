"""
Postgres-backed account store.

Email uniqueness comes from the case-insensitive unique index
`accounts_email_key`; a violation surfaces as `Conflict("duplicate_email")`
through `projecttrack.db.connect`.
"""
from __future__ import annotations

from typing import Optional, Tuple

from projecttrack.db import HAVE_PSYCOPG, connect, is_uuid

from .accounts import Account

_COLUMNS = "id::text, name, email, password_hash, role, created_at"


def _row_to_account(row: Tuple) -> Account:
    return Account(id=row[0], name=row[1], email=row[2], password_hash=row[3], role=row[4], created_at=row[5])


class DBAccountStore:
    def __init__(self, dsn: str) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBAccountStore")
        if not dsn:
            raise RuntimeError("No database DSN provided for DBAccountStore")
        self._dsn = dsn

    def create(self, account: Account) -> Account:
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.accounts (id, name, email, password_hash, role)
                    values (%s, %s, %s, %s, %s)
                    returning {_COLUMNS}
                    """,
                    (account.id, account.name, account.email, account.password_hash, account.role),
                )
                return _row_to_account(cur.fetchone())

    def get(self, account_id: str) -> Optional[Account]:
        if not is_uuid(account_id):
            return None
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_COLUMNS} from public.accounts where id = %s", (account_id,))
                row = cur.fetchone()
        return _row_to_account(row) if row else None

    def get_by_email(self, email: str) -> Optional[Account]:
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_COLUMNS} from public.accounts where lower(email) = lower(%s)", (email,))
                row = cur.fetchone()
        return _row_to_account(row) if row else None

    def delete(self, account_id: str) -> bool:
        if not is_uuid(account_id):
            return False
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.accounts where id = %s", (account_id,))
                return cur.rowcount > 0


__all__ = ["DBAccountStore"]
