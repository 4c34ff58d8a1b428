"""Roster use cases: student profiles, statistics and referential checks.

Why:
    Student profiles link an account to a roster entry (enrollment and roll
    numbers, department, year). Uniqueness of those keys is enforced by the
    repository; this layer validates input and consults the gate.

A profile's `projects` list is derived from project ownership by the
repository, so creating or deleting a project never writes to the roster.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from projecttrack.identity_access.accounts import normalize_email, normalize_name
from projecttrack.identity_access.domain import ROLE_STUDENT, Caller

from ..errors import NotFound, ValidationFailed
from ..models import STUDENT_STATUSES, STUDENT_YEARS, Project, StudentProfile
from ..policy import Action, require
from ..query import ListParams, Page

logger = logging.getLogger("projecttrack.tracking.roster")

MAX_KEY_LENGTH = 50
MAX_PHONE_LENGTH = 20

_EDITABLE_STUDENT_FIELDS = (
    "name",
    "email",
    "enrollment_number",
    "roll_number",
    "department",
    "year",
    "phone_number",
    "status",
)


class RosterRepoProtocol(Protocol):
    def create_student(self, profile: StudentProfile) -> StudentProfile:
        ...

    def get_student(self, student_id: str) -> Optional[StudentProfile]:
        ...

    def get_student_by_account(self, account_id: str) -> Optional[StudentProfile]:
        ...

    def list_students(self, params: ListParams) -> Page:
        ...

    def update_student(self, student_id: str, changes: Dict[str, object]) -> Optional[StudentProfile]:
        ...

    def delete_student(self, student_id: str) -> bool:
        ...

    def student_stats(self) -> Tuple[int, Dict[str, int]]:
        ...

    def list_projects_for_student(self, student_id: str) -> List[Project]:
        ...

    def dangling_project_refs(self) -> List[Tuple[str, str]]:
        ...


class AccountLookupProtocol(Protocol):
    def get(self, account_id: str) -> Any:
        ...


def _normalize_key(value: object, code: str) -> str:
    if value is None or isinstance(value, bool):
        raise ValidationFailed(code)
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(code)
    trimmed = value.strip()
    if len(trimmed) > MAX_KEY_LENGTH:
        raise ValidationFailed(code, f"must be at most {MAX_KEY_LENGTH} characters")
    return trimmed


def _normalize_year(value: object) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or value.strip() not in STUDENT_YEARS:
        raise ValidationFailed("invalid_year", f"Year must be one of: {', '.join(STUDENT_YEARS)}")
    return value.strip()


def _normalize_phone(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed("invalid_phone_number")
    trimmed = value.strip()
    if len(trimmed) > MAX_PHONE_LENGTH:
        raise ValidationFailed("invalid_phone_number")
    return trimmed or None


def _normalize_status(value: object) -> str:
    if not isinstance(value, str) or value not in STUDENT_STATUSES:
        raise ValidationFailed("invalid_status", f"Status must be one of: {', '.join(STUDENT_STATUSES)}")
    return value


_NORMALIZERS = {
    "name": normalize_name,
    "email": normalize_email,
    "enrollment_number": lambda v: _normalize_key(v, "invalid_enrollment_number"),
    "roll_number": lambda v: _normalize_key(v, "invalid_roll_number"),
    "department": lambda v: _normalize_key(v, "invalid_department"),
    "year": _normalize_year,
    "phone_number": _normalize_phone,
    "status": _normalize_status,
}


def build_profile(account_id: str, data: Dict[str, Any]) -> StudentProfile:
    """Validate profile fields and build an unsaved `StudentProfile`."""
    return StudentProfile(
        id=str(uuid.uuid4()),
        account_id=account_id,
        name=normalize_name(data.get("name")),
        email=normalize_email(data.get("email")),
        enrollment_number=_normalize_key(data.get("enrollment_number"), "invalid_enrollment_number"),
        roll_number=_normalize_key(data.get("roll_number"), "invalid_roll_number"),
        department=_normalize_key(data.get("department"), "invalid_department"),
        year=_normalize_year(data.get("year")),
        phone_number=_normalize_phone(data.get("phone_number")),
        status=_normalize_status(data.get("status") or "active"),
    )


@dataclass
class RosterService:
    """Use cases for the student roster (framework-independent)."""

    repo: RosterRepoProtocol
    accounts: Optional[AccountLookupProtocol] = None

    def list_students(self, caller: Caller, params: ListParams) -> Page:
        require(caller, Action.LIST_STUDENTS)
        return self.repo.list_students(params)

    def get_student(self, caller: Caller, student_id: str) -> Tuple[StudentProfile, List[Project]]:
        """Return the profile together with the projects it owns."""
        profile = self.repo.get_student(student_id)
        if profile is None:
            raise NotFound("student_not_found", "Student not found")
        require(caller, Action.VIEW_STUDENT, profile)
        return profile, self.repo.list_projects_for_student(profile.id)

    def create_student(self, caller: Caller, data: Dict[str, Any]) -> StudentProfile:
        require(caller, Action.CREATE_STUDENT)
        account_id = data.get("account_id")
        if not isinstance(account_id, str) or not account_id.strip():
            raise ValidationFailed("invalid_account_id")
        account_id = account_id.strip()
        if self.accounts is not None:
            account = self.accounts.get(account_id)
            if account is None:
                raise NotFound("account_not_found", "Account not found")
            if getattr(account, "role", None) != ROLE_STUDENT:
                raise ValidationFailed("account_not_student", "Only student accounts can have a roster profile")
        return self.repo.create_student(build_profile(account_id, data))

    def enroll_account(self, account_id: str, data: Dict[str, Any]) -> StudentProfile:
        """Create the profile for a freshly registered student account.

        Not gated: called by registration on behalf of the new account.
        """
        return self.repo.create_student(build_profile(account_id, data))

    def update_student(self, caller: Caller, student_id: str, changes: Dict[str, Any]) -> StudentProfile:
        require(caller, Action.EDIT_STUDENT)
        unknown = sorted(set(changes) - set(_EDITABLE_STUDENT_FIELDS))
        if unknown:
            raise ValidationFailed("unknown_field", f"cannot update: {', '.join(unknown)}")
        if not changes:
            raise ValidationFailed("empty_payload")
        normalized = {key: _NORMALIZERS[key](value) for key, value in changes.items()}
        updated = self.repo.update_student(student_id, normalized)
        if updated is None:
            raise NotFound("student_not_found", "Student not found")
        return updated

    def delete_student(self, caller: Caller, student_id: str) -> None:
        """Delete the profile; its projects keep existing without an owner."""
        require(caller, Action.DELETE_STUDENT)
        if not self.repo.delete_student(student_id):
            raise NotFound("student_not_found", "Student not found")
        logger.info("Deleted student profile %s", student_id)

    def get_student_stats(self, caller: Caller) -> Dict[str, Any]:
        require(caller, Action.VIEW_STUDENT_STATS)
        total, counts = self.repo.student_stats()
        return {"total": total, "status_stats": dict(counts)}

    def profile_for_account(self, account_id: str) -> Optional[StudentProfile]:
        return self.repo.get_student_by_account(account_id)

    def reconcile_roster(self) -> List[Tuple[str, str]]:
        """Report projects whose owner reference points at a missing profile."""
        dangling = self.repo.dangling_project_refs()
        for project_id, student_id in dangling:
            logger.warning("Project %s references missing student %s", project_id, student_id)
        return dangling


__all__ = ["RosterService", "RosterRepoProtocol", "build_profile"]
