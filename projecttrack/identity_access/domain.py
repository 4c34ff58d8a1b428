"""
Identity domain constants and the per-request caller record.

Why:
- Centralize allowed roles to avoid drift between services and web layer.
- Pass the caller explicitly into every core operation instead of keeping
  request identity in module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({ROLE_TEACHER, ROLE_STUDENT})


@dataclass(frozen=True)
class Caller:
    """Resolved identity of the current request.

    `student_id` is the linked roster profile for student accounts (None for
    teachers or students whose profile is missing).
    """

    account_id: str
    role: str
    name: str = ""
    student_id: Optional[str] = None

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == ROLE_STUDENT


__all__ = ["ALLOWED_ROLES", "ROLE_TEACHER", "ROLE_STUDENT", "Caller"]
