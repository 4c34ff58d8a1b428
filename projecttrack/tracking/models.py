"""
Entity model for projects, milestones, comments and student profiles.

Notes:
    - Milestones and comments have no identity outside their parent project;
      they are stored embedded and always travel with it.
    - `Project.progress` is derived (see `tracking.progress`) and must never be
      assigned from caller input.
    - `StudentProfile.projects` is a derived view filled by the repository from
      project ownership at read time.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

STATUS_NOT_STARTED = "Not Started"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"
STATUS_DELAYED = "Delayed"

PROJECT_STATUSES = (STATUS_NOT_STARTED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_DELAYED)

STUDENT_STATUSES = ("active", "inactive", "graduated")
STUDENT_YEARS = ("1", "2", "3", "4")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Milestone:
    id: str
    title: str
    description: str
    due_date: Optional[datetime] = None
    completed: bool = False
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "due_date": _iso(self.due_date),
            "completed": self.completed,
            "completed_at": _iso(self.completed_at),
        }


@dataclass
class Comment:
    id: str
    author_id: str
    author_name: str
    author_role: str
    text: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_role": self.author_role,
            "text": self.text,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Project:
    id: str
    title: str
    description: str
    student_id: Optional[str]
    deadline: datetime
    start_date: datetime
    status: str = STATUS_NOT_STARTED
    progress: int = 0
    tags: List[str] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # owner summary filled in by repositories on read; never persisted
    student: Optional[Dict[str, Any]] = None

    def find_milestone(self, milestone_id: str) -> Optional[Milestone]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def clone(self) -> "Project":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "student_id": self.student_id,
            "start_date": _iso(self.start_date),
            "deadline": _iso(self.deadline),
            "status": self.status,
            "progress": self.progress,
            "tags": list(self.tags),
            "milestones": [m.to_dict() for m in self.milestones],
            "comments": [c.to_dict() for c in self.comments],
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "student": dict(self.student) if self.student else None,
        }


@dataclass
class StudentProfile:
    id: str
    account_id: str
    name: str
    email: str
    enrollment_number: str
    roll_number: str
    department: str
    year: str
    phone_number: Optional[str] = None
    status: str = "active"
    projects: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def clone(self) -> "StudentProfile":
        return copy.deepcopy(self)

    def owner_summary(self) -> Dict[str, Any]:
        """Short owner view embedded in project payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "enrollment_number": self.enrollment_number,
            "roll_number": self.roll_number,
            "department": self.department,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "email": self.email,
            "enrollment_number": self.enrollment_number,
            "roll_number": self.roll_number,
            "department": self.department,
            "year": self.year,
            "phone_number": self.phone_number,
            "status": self.status,
            "projects": list(self.projects),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


__all__ = [
    "STATUS_NOT_STARTED",
    "STATUS_IN_PROGRESS",
    "STATUS_COMPLETED",
    "STATUS_DELAYED",
    "PROJECT_STATUSES",
    "STUDENT_STATUSES",
    "STUDENT_YEARS",
    "Milestone",
    "Comment",
    "Project",
    "StudentProfile",
    "utcnow",
]
