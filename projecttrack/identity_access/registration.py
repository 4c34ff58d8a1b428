"""
Self-service registration of teacher and student accounts.

Behavior:
- Student registrations also create the roster profile (enrollment number,
  roll number, department and year are required).
- Profile fields are validated before the account is written. If the profile
  still cannot be stored (e.g. duplicate enrollment number), the account is
  deleted again and the original failure is re-raised. A failed compensation
  is logged and does not mask the original error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

from projecttrack.tracking.models import StudentProfile
from projecttrack.tracking.services.roster import build_profile

from .accounts import Account, AccountStoreProtocol, new_account
from .domain import ROLE_STUDENT

logger = logging.getLogger("projecttrack.identity_access.registration")


class ProfileEnrollmentProtocol(Protocol):
    def enroll_account(self, account_id: str, data: Dict[str, Any]) -> StudentProfile:
        ...


@dataclass
class RegistrationService:
    accounts: AccountStoreProtocol
    roster: ProfileEnrollmentProtocol

    def register(
        self,
        *,
        name: object,
        email: object,
        password: object,
        role: object,
        profile: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Account, Optional[StudentProfile]]:
        account = new_account(name=name, email=email, password=password, role=role)
        profile_data: Optional[Dict[str, Any]] = None
        if account.role == ROLE_STUDENT:
            profile_data = {**(profile or {}), "name": account.name, "email": account.email}
            build_profile(account.id, profile_data)

        created = self.accounts.create(account)
        if profile_data is None:
            return created, None
        try:
            student = self.roster.enroll_account(created.id, profile_data)
        except Exception:
            self._compensate(created.id)
            raise
        return created, student

    def _compensate(self, account_id: str) -> None:
        try:
            if not self.accounts.delete(account_id):
                logger.error("Registration compensation found no account to remove")
        except Exception as exc:
            logger.error("Registration compensation failed: %s", exc.__class__.__name__)


__all__ = ["RegistrationService"]
