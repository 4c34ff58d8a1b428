"""
Progress engine: derived progress plus status/timestamp side effects.

Every code path that changes a project's milestone list must end with
`recompute_progress`. The functions mutate the given project in place and are
called by repositories inside their record-level atomic update, so the
computation always sees the milestone list as persisted at write time.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from .errors import ValidationFailed
from .models import PROJECT_STATUSES, STATUS_COMPLETED, Milestone, Project, utcnow


def percent_complete(completed: int, total: int) -> int:
    """Return round(100 * completed / total), rounding halves up.

    Integer arithmetic avoids float error and Python's banker's rounding:
    1 of 8 milestones yields 13, not 12.
    """
    if total <= 0:
        raise ValueError("total must be positive")
    return (200 * completed + total) // (2 * total)


def recompute_progress(project: Project) -> int:
    """Recompute `project.progress` from its milestones.

    With zero milestones the last persisted value is kept.
    """
    total = len(project.milestones)
    if total:
        done = sum(1 for m in project.milestones if m.completed)
        project.progress = percent_complete(done, total)
    return project.progress


def validate_status(status: object) -> str:
    if not isinstance(status, str) or status not in PROJECT_STATUSES:
        raise ValidationFailed("invalid_status", f"Status must be one of: {', '.join(PROJECT_STATUSES)}")
    return status


def apply_status(project: Project, status: str, *, now: Optional[datetime] = None) -> None:
    """Set the status and keep `completed_at` present iff status is Completed."""
    project.status = validate_status(status)
    if project.status == STATUS_COMPLETED:
        if project.completed_at is None:
            project.completed_at = now or utcnow()
    else:
        project.completed_at = None


def set_milestone_completed(milestone: Milestone, completed: bool, *, now: Optional[datetime] = None) -> None:
    if not isinstance(completed, bool):
        raise ValidationFailed("invalid_completed", "Milestone completed flag must be a boolean")
    if completed and not milestone.completed:
        milestone.completed_at = now or utcnow()
    elif not completed:
        milestone.completed_at = None
    milestone.completed = completed


def touch(project: Project, *, now: Optional[datetime] = None) -> None:
    project.updated_at = now or utcnow()


__all__ = [
    "percent_complete",
    "recompute_progress",
    "validate_status",
    "apply_status",
    "set_milestone_completed",
    "touch",
]
