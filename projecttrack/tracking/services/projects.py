"""Project use cases: projects, milestones, comments and statistics.

Why:
    Keep validation, authorization and the progress side effects in one
    framework-free layer so the web adapter only maps payloads and errors.

Every mutation follows the same order: validate input, consult the gate on the
current record, then run the change through `repo.update_project`, which
re-reads the record inside its atomic section. The gate runs again inside
that section against the locked record.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from projecttrack.identity_access.domain import Caller

from ..errors import NotFound, ValidationFailed
from ..models import STATUS_NOT_STARTED, Comment, Milestone, Project, utcnow
from ..policy import Action, require
from ..progress import apply_status, set_milestone_completed, validate_status
from ..query import ListParams, Page, parse_timestamp

MAX_TITLE_LENGTH = 100
MAX_TAGS = 20
MAX_TAG_LENGTH = 50
MAX_COMMENT_LENGTH = 2000


class ProjectsRepoProtocol(Protocol):
    def create_project(self, project: Project) -> Project:
        ...

    def get_project(self, project_id: str) -> Optional[Project]:
        ...

    def list_projects(self, params: ListParams) -> Page:
        ...

    def update_project(self, project_id: str, mutate: Callable[[Project], None]) -> Optional[Project]:
        ...

    def delete_project(self, project_id: str) -> bool:
        ...

    def project_stats(self) -> Tuple[int, Dict[str, int]]:
        ...


_UNSET = object()

_EDITABLE_PROJECT_FIELDS = ("title", "description", "student_id", "deadline", "start_date", "status", "tags")


def _new_id() -> str:
    return str(uuid.uuid4())


def _required_text(value: object, code: str, *, max_length: Optional[int] = None) -> str:
    if value is None or not isinstance(value, str):
        raise ValidationFailed(code)
    trimmed = value.strip()
    if not trimmed:
        raise ValidationFailed(code)
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationFailed(code, f"must be at most {max_length} characters")
    return trimmed


def _normalize_title(value: object) -> str:
    return _required_text(value, "invalid_title", max_length=MAX_TITLE_LENGTH)


def _normalize_description(value: object) -> str:
    return _required_text(value, "invalid_description")


def _normalize_tags(value: object) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise ValidationFailed("invalid_tags")
    tags: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationFailed("invalid_tags")
        trimmed = item.strip()
        if not trimmed or len(trimmed) > MAX_TAG_LENGTH:
            raise ValidationFailed("invalid_tags")
        if trimmed not in tags:
            tags.append(trimmed)
    if len(tags) > MAX_TAGS:
        raise ValidationFailed("invalid_tags", f"at most {MAX_TAGS} tags")
    return tags


def _required_date(value: object, code: str) -> datetime:
    parsed = parse_timestamp(value, code)
    if parsed is None:
        raise ValidationFailed(code)
    return parsed


def _normalize_student_id(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed("invalid_student_id")
    return value.strip()


def _build_milestone(data: object) -> Milestone:
    if not isinstance(data, dict):
        raise ValidationFailed("invalid_milestones")
    milestone = Milestone(
        id=_new_id(),
        title=_required_text(data.get("title"), "invalid_milestone_title", max_length=MAX_TITLE_LENGTH),
        description=_required_text(data.get("description"), "invalid_milestone_description"),
        due_date=parse_timestamp(data.get("due_date"), "invalid_due_date"),
    )
    if "completed" in data and data["completed"] is not None:
        set_milestone_completed(milestone, data["completed"])
    return milestone


def _stats(repo_stats: Tuple[int, Dict[str, int]]) -> Dict[str, Any]:
    total, counts = repo_stats
    return {"total": total, "status_stats": dict(counts)}


@dataclass
class ProjectsService:
    """Use cases for projects (framework-independent)."""

    repo: ProjectsRepoProtocol

    def _load(self, project_id: str) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFound("project_not_found", "Project not found")
        return project

    def _mutate(
        self,
        caller: Caller,
        action: str,
        project_id: str,
        change: Callable[[Project], None],
        *,
        fields: Iterable[str] = (),
    ) -> Project:
        fields = tuple(fields)
        require(caller, action, self._load(project_id), fields=fields)

        def guarded(project: Project) -> None:
            require(caller, action, project, fields=fields)
            change(project)

        result = self.repo.update_project(project_id, guarded)
        if result is None:
            raise NotFound("project_not_found", "Project not found")
        return result

    # --- Projects --------------------------------------------------------------

    def list_projects(self, caller: Caller, params: ListParams) -> Page:
        decision = require(caller, Action.LIST_PROJECTS)
        if decision.scope_student_id:
            params = params.narrowed_to_student(decision.scope_student_id)
        return self.repo.list_projects(params)

    def get_project(self, caller: Caller, project_id: str) -> Project:
        project = self._load(project_id)
        require(caller, Action.VIEW_PROJECT, project)
        return project

    def create_project(
        self,
        caller: Caller,
        *,
        title: object,
        description: object,
        student_id: object,
        deadline: object,
        start_date: object = None,
        status: object = None,
        tags: object = None,
        milestones: object = None,
    ) -> Project:
        require(caller, Action.CREATE_PROJECT)
        if milestones is not None and (isinstance(milestones, (str, dict)) or not isinstance(milestones, Sequence)):
            raise ValidationFailed("invalid_milestones")
        now = utcnow()
        project = Project(
            id=_new_id(),
            title=_normalize_title(title),
            description=_normalize_description(description),
            student_id=_normalize_student_id(student_id),
            deadline=_required_date(deadline, "invalid_deadline"),
            start_date=parse_timestamp(start_date, "invalid_start_date") or now,
            tags=_normalize_tags(tags),
            milestones=[_build_milestone(m) for m in (milestones or [])],
            created_at=now,
            updated_at=now,
        )
        apply_status(project, STATUS_NOT_STARTED if status is None else status, now=now)
        return self.repo.create_project(project)

    def update_project(self, caller: Caller, project_id: str, changes: Dict[str, Any]) -> Project:
        """Apply a teacher edit. `progress` is derived and cannot be set."""
        require(caller, Action.EDIT_PROJECT, self._load(project_id))
        if "progress" in changes:
            raise ValidationFailed("progress_is_derived", "progress is computed from milestones")
        unknown = sorted(set(changes) - set(_EDITABLE_PROJECT_FIELDS))
        if unknown:
            raise ValidationFailed("unknown_field", f"cannot update: {', '.join(unknown)}")
        if not changes:
            raise ValidationFailed("empty_payload")

        normalized: Dict[str, Any] = {}
        if "title" in changes:
            normalized["title"] = _normalize_title(changes["title"])
        if "description" in changes:
            normalized["description"] = _normalize_description(changes["description"])
        if "student_id" in changes:
            normalized["student_id"] = _normalize_student_id(changes["student_id"])
        if "deadline" in changes:
            normalized["deadline"] = _required_date(changes["deadline"], "invalid_deadline")
        if "start_date" in changes:
            normalized["start_date"] = _required_date(changes["start_date"], "invalid_start_date")
        if "tags" in changes:
            normalized["tags"] = _normalize_tags(changes["tags"])
        status = validate_status(changes["status"]) if "status" in changes else None

        def change(project: Project) -> None:
            for key, value in normalized.items():
                setattr(project, key, value)
            if status is not None:
                apply_status(project, status)

        return self._mutate(caller, Action.EDIT_PROJECT, project_id, change)

    def delete_project(self, caller: Caller, project_id: str) -> None:
        require(caller, Action.DELETE_PROJECT, self._load(project_id))
        if not self.repo.delete_project(project_id):
            raise NotFound("project_not_found", "Project not found")

    def set_project_status(self, caller: Caller, project_id: str, status: object) -> Project:
        new_status = validate_status(status)
        return self._mutate(
            caller, Action.SET_STATUS, project_id, lambda project: apply_status(project, new_status)
        )

    def get_project_stats(self, caller: Caller) -> Dict[str, Any]:
        require(caller, Action.VIEW_PROJECT_STATS)
        return _stats(self.repo.project_stats())

    # --- Milestones ------------------------------------------------------------

    def add_milestone(
        self,
        caller: Caller,
        project_id: str,
        *,
        title: object,
        description: object,
        due_date: object = None,
    ) -> Project:
        require(caller, Action.ADD_MILESTONE)
        milestone = _build_milestone({"title": title, "description": description, "due_date": due_date})
        return self._mutate(
            caller, Action.ADD_MILESTONE, project_id, lambda project: project.milestones.append(milestone)
        )

    def update_milestone(
        self,
        caller: Caller,
        project_id: str,
        milestone_id: str,
        *,
        title: object = _UNSET,
        description: object = _UNSET,
        due_date: object = _UNSET,
        completed: object = _UNSET,
    ) -> Project:
        requested = {
            "title": title,
            "description": description,
            "due_date": due_date,
            "completed": completed,
        }
        fields = [name for name, value in requested.items() if value is not _UNSET]
        if not fields:
            raise ValidationFailed("empty_payload")
        # field permissions before value checks
        require(caller, Action.UPDATE_MILESTONE, self._load(project_id), fields=fields)

        normalized: Dict[str, Any] = {}
        if title is not _UNSET:
            normalized["title"] = _required_text(title, "invalid_milestone_title", max_length=MAX_TITLE_LENGTH)
        if description is not _UNSET:
            normalized["description"] = _required_text(description, "invalid_milestone_description")
        if due_date is not _UNSET:
            normalized["due_date"] = parse_timestamp(due_date, "invalid_due_date")
        if completed is not _UNSET and not isinstance(completed, bool):
            raise ValidationFailed("invalid_completed", "Milestone completed flag must be a boolean")

        def change(project: Project) -> None:
            milestone = project.find_milestone(milestone_id)
            if milestone is None:
                raise NotFound("milestone_not_found", "Milestone not found")
            for key, value in normalized.items():
                setattr(milestone, key, value)
            if completed is not _UNSET:
                set_milestone_completed(milestone, completed)

        return self._mutate(caller, Action.UPDATE_MILESTONE, project_id, change, fields=fields)

    def delete_milestone(self, caller: Caller, project_id: str, milestone_id: str) -> Project:
        require(caller, Action.DELETE_MILESTONE)

        def change(project: Project) -> None:
            milestone = project.find_milestone(milestone_id)
            if milestone is None:
                raise NotFound("milestone_not_found", "Milestone not found")
            project.milestones.remove(milestone)

        return self._mutate(caller, Action.DELETE_MILESTONE, project_id, change)

    # --- Comments --------------------------------------------------------------

    def add_comment(self, caller: Caller, project_id: str, text: object) -> Project:
        body = _required_text(text, "invalid_comment", max_length=MAX_COMMENT_LENGTH)

        def change(project: Project) -> None:
            project.comments.append(
                Comment(
                    id=_new_id(),
                    author_id=caller.account_id,
                    author_name=caller.name,
                    author_role=caller.role,
                    text=body,
                    created_at=utcnow(),
                )
            )

        return self._mutate(caller, Action.ADD_COMMENT, project_id, change)


__all__ = ["ProjectsService", "ProjectsRepoProtocol"]
