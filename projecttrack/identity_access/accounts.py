"""
Accounts (the identity store) and credential verification.

Why:
- Keep credentials server-side and opaque: only a salted PBKDF2 hash is stored
  and compared in constant time.
- Email uniqueness is enforced by the store itself (case-insensitive), inside
  its lock for the in-memory variant and by a unique index in Postgres
  (`DBAccountStore`).
"""
from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Protocol

from projecttrack.tracking.errors import Conflict, TrackingError, ValidationFailed
from projecttrack.tracking.models import utcnow

from .domain import ALLOWED_ROLES

PBKDF2_ITERATIONS = 240_000
MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 50

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


class AuthenticationFailed(TrackingError):
    kind = "unauthenticated"
    status_code = 401


@dataclass
class Account:
    id: str
    name: str
    email: str
    password_hash: str
    role: str
    created_at: datetime = field(default_factory=utcnow)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": self.created_at.isoformat(),
        }


class AccountStoreProtocol(Protocol):
    def create(self, account: Account) -> Account:
        ...

    def get(self, account_id: str) -> Optional[Account]:
        ...

    def get_by_email(self, email: str) -> Optional[Account]:
        ...

    def delete(self, account_id: str) -> bool:
        ...


def normalize_email(value: object) -> str:
    if not isinstance(value, str):
        raise ValidationFailed("invalid_email")
    email = value.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationFailed("invalid_email", "Please provide a valid email")
    return email


def normalize_name(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed("invalid_name")
    name = value.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationFailed("invalid_name", f"Name cannot be more than {MAX_NAME_LENGTH} characters")
    return name


def normalize_role(value: object) -> str:
    if not isinstance(value, str) or value.strip().lower() not in ALLOWED_ROLES:
        raise ValidationFailed("invalid_role", f"Role must be one of: {', '.join(sorted(ALLOWED_ROLES))}")
    return value.strip().lower()


def validate_password(value: object) -> str:
    if not isinstance(value, str) or len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("invalid_password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return value


def hash_password(password: str, *, salt: Optional[bytes] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Return `pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>`."""
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"pbkdf2_sha256${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt_hex, digest_hex = encoded.split("$")
    except (AttributeError, ValueError):
        return False
    if scheme != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations))
    return hmac.compare_digest(digest.hex(), digest_hex)


def new_account(*, name: object, email: object, password: object, role: object) -> Account:
    """Validate registration input and build an unsaved account."""
    return Account(
        id=str(uuid.uuid4()),
        name=normalize_name(name),
        email=normalize_email(email),
        password_hash=hash_password(validate_password(password)),
        role=normalize_role(role),
    )


def authenticate(store: AccountStoreProtocol, email: object, password: object) -> Account:
    """Return the account for valid credentials; raise `AuthenticationFailed` otherwise.

    Unknown email and wrong password fail identically.
    """
    if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
        raise ValidationFailed("missing_credentials", "Please provide an email and password")
    account = store.get_by_email(email.strip().lower())
    if account is None or not verify_password(password, account.password_hash):
        raise AuthenticationFailed("invalid_credentials", "Invalid credentials")
    return account


class AccountStore:
    """In-memory account store for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, Account] = {}
        self._by_email: Dict[str, str] = {}

    def create(self, account: Account) -> Account:
        key = account.email.lower()
        with self._lock:
            if key in self._by_email:
                raise Conflict("duplicate_email", "An account with this email already exists")
            self._data[account.id] = account
            self._by_email[key] = account.id
        return account

    def get(self, account_id: str) -> Optional[Account]:
        return self._data.get(account_id)

    def get_by_email(self, email: str) -> Optional[Account]:
        account_id = self._by_email.get(email.lower())
        return self._data.get(account_id) if account_id else None

    def delete(self, account_id: str) -> bool:
        with self._lock:
            account = self._data.pop(account_id, None)
            if account is None:
                return False
            self._by_email.pop(account.email.lower(), None)
            return True


__all__ = [
    "Account",
    "AccountStore",
    "AccountStoreProtocol",
    "AuthenticationFailed",
    "authenticate",
    "hash_password",
    "new_account",
    "normalize_email",
    "verify_password",
]
