"""
Authorization gate for projects, milestones, comments and rosters.

Why:
    Keep every access decision in one pure function so services consult it
    before touching the store and tests can exercise the full role matrix
    without a repository.

Rules:
    - Teachers: unrestricted read/write over projects, milestones, comments,
      rosters and statistics.
    - Students: only projects owned by their linked roster profile. Within an
      owned project they may post comments, set the project status and toggle
      milestone completion; nothing else.
    - Reads of foreign resources are denied as `not_found` so existence does
      not leak; denied mutations are `forbidden`. A student creating, editing
      or deleting a project they do not own is told "not authorized to access
      this project".

Pure: no I/O, no side effects. The result depends only on (caller, action,
resource state, requested fields).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from projecttrack.identity_access.domain import ROLE_STUDENT, ROLE_TEACHER, Caller

from .errors import Forbidden, NotFound
from .models import Project, StudentProfile


class Action:
    """Action constants understood by `authorize`."""

    LIST_PROJECTS = "project:list"
    VIEW_PROJECT = "project:view"
    CREATE_PROJECT = "project:create"
    EDIT_PROJECT = "project:edit"
    DELETE_PROJECT = "project:delete"
    SET_STATUS = "project:set_status"
    VIEW_PROJECT_STATS = "project:stats"
    ADD_MILESTONE = "milestone:add"
    UPDATE_MILESTONE = "milestone:update"
    DELETE_MILESTONE = "milestone:delete"
    ADD_COMMENT = "comment:add"
    LIST_STUDENTS = "student:list"
    VIEW_STUDENT = "student:view"
    CREATE_STUDENT = "student:create"
    EDIT_STUDENT = "student:edit"
    DELETE_STUDENT = "student:delete"
    VIEW_STUDENT_STATS = "student:stats"


TEACHER_ONLY_ACTIONS = frozenset(
    {
        Action.CREATE_PROJECT,
        Action.EDIT_PROJECT,
        Action.DELETE_PROJECT,
        Action.VIEW_PROJECT_STATS,
        Action.ADD_MILESTONE,
        Action.DELETE_MILESTONE,
        Action.LIST_STUDENTS,
        Action.CREATE_STUDENT,
        Action.EDIT_STUDENT,
        Action.DELETE_STUDENT,
        Action.VIEW_STUDENT_STATS,
    }
)

# Writes a student may perform on a project they own.
OWNER_WRITE_ACTIONS = frozenset({Action.SET_STATUS, Action.UPDATE_MILESTONE, Action.ADD_COMMENT})

# Teacher-only project actions; students who do not own the target get the
# project-level denial reason.
PROJECT_ADMIN_ACTIONS = frozenset({Action.CREATE_PROJECT, Action.EDIT_PROJECT, Action.DELETE_PROJECT})

# Milestone fields a student may change on an owned project.
STUDENT_MILESTONE_FIELDS = frozenset({"completed"})

KNOWN_ACTIONS = TEACHER_ONLY_ACTIONS | OWNER_WRITE_ACTIONS | {
    Action.LIST_PROJECTS,
    Action.VIEW_PROJECT,
    Action.VIEW_STUDENT,
}

NOT_AUTHORIZED_FOR_PROJECT = "not authorized to access this project"

logger = logging.getLogger("projecttrack.tracking.policy")

Resource = Union[Project, StudentProfile, None]


@dataclass(frozen=True)
class Decision:
    """Outcome of `authorize`.

    `scope_student_id` narrows listings to one student's rows when set.
    """

    allowed: bool
    code: str = ""
    reason: str = ""
    kind: str = "forbidden"
    scope_student_id: Optional[str] = None

    def raise_if_denied(self) -> None:
        if self.allowed:
            return
        if self.kind == "not_found":
            raise NotFound(self.code, self.reason)
        raise Forbidden(self.code, self.reason)


def _allow(scope_student_id: Optional[str] = None) -> Decision:
    return Decision(allowed=True, scope_student_id=scope_student_id)


def _deny(code: str, reason: str, *, kind: str = "forbidden") -> Decision:
    return Decision(allowed=False, code=code, reason=reason, kind=kind)


def _owns_project(caller: Caller, project: Resource) -> bool:
    if not isinstance(project, Project) or not caller.student_id:
        return False
    return project.student_id == caller.student_id


def authorize(caller: Optional[Caller], action: str, resource: Resource = None, *, fields: Iterable[str] = ()) -> Decision:
    """Decide whether `caller` may perform `action` on `resource`.

    Parameters:
        caller: resolved identity, or None for unauthenticated requests.
        action: one of the `Action` constants.
        resource: current state of the target project/profile (None for
            collection-level actions such as listing or creation).
        fields: for update actions, the names of fields the caller wants to
            change. Used to restrict students to milestone completion.
    """
    if action not in KNOWN_ACTIONS:
        return _deny("unknown_action", f"unknown action {action!r}")
    if caller is None:
        return _deny("unauthenticated", "authentication required")
    if caller.role == ROLE_TEACHER:
        return _allow()
    if caller.role != ROLE_STUDENT:
        return _deny("unknown_role", "role is not permitted")

    if action in PROJECT_ADMIN_ACTIONS and not _owns_project(caller, resource):
        return _deny("not_authorized_for_project", NOT_AUTHORIZED_FOR_PROJECT)
    if action in TEACHER_ONLY_ACTIONS:
        return _deny("teacher_role_required", "only teachers may perform this action")

    if action == Action.LIST_PROJECTS:
        if not caller.student_id:
            return _deny("student_not_found", "student profile not found", kind="not_found")
        return _allow(scope_student_id=caller.student_id)

    if action == Action.VIEW_STUDENT:
        if isinstance(resource, StudentProfile) and caller.student_id and resource.id == caller.student_id:
            return _allow()
        return _deny("student_not_found", "student not found", kind="not_found")

    if action == Action.VIEW_PROJECT:
        if _owns_project(caller, resource):
            return _allow()
        return _deny("project_not_found", "project not found", kind="not_found")

    # Remaining actions are owner writes.
    if not _owns_project(caller, resource):
        return _deny("not_authorized_for_project", NOT_AUTHORIZED_FOR_PROJECT)
    if action == Action.UPDATE_MILESTONE:
        disallowed = sorted(set(fields) - STUDENT_MILESTONE_FIELDS)
        if disallowed:
            return _deny(
                "field_not_permitted",
                f"students may only change milestone completion (rejected: {', '.join(disallowed)})",
            )
    return _allow()


def require(caller: Optional[Caller], action: str, resource: Resource = None, *, fields: Iterable[str] = ()) -> Decision:
    """Like `authorize`, but raise `NotFound`/`Forbidden` on denial."""
    decision = authorize(caller, action, resource, fields=fields)
    if not decision.allowed:
        logger.debug(
            "Denied %s for role=%s code=%s", action, caller.role if caller else None, decision.code
        )
        decision.raise_if_denied()
    return decision


__all__ = [
    "Action",
    "Decision",
    "authorize",
    "require",
    "TEACHER_ONLY_ACTIONS",
    "OWNER_WRITE_ACTIONS",
    "STUDENT_MILESTONE_FIELDS",
    "NOT_AUTHORIZED_FOR_PROJECT",
]
