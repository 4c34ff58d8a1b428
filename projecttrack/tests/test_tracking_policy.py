"""
Authorization gate: role matrix, ownership and milestone field restrictions.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from projecttrack.identity_access.domain import ROLE_STUDENT, ROLE_TEACHER, Caller
from projecttrack.tracking.errors import Forbidden, NotFound
from projecttrack.tracking.models import Project, StudentProfile
from projecttrack.tracking.policy import TEACHER_ONLY_ACTIONS, Action, authorize, require

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
TEACHER = Caller(account_id="t", role=ROLE_TEACHER, name="T")
OWNER = Caller(account_id="a1", role=ROLE_STUDENT, name="Alice", student_id="s1")
OTHER = Caller(account_id="a2", role=ROLE_STUDENT, name="Bob", student_id="s2")
UNLINKED = Caller(account_id="a3", role=ROLE_STUDENT, name="Carol")


def _project(student_id="s1") -> Project:
    return Project(id="p1", title="T", description="D", student_id=student_id, deadline=NOW, start_date=NOW)


def _profile(student_id="s1") -> StudentProfile:
    return StudentProfile(
        id=student_id,
        account_id="a1",
        name="Alice",
        email="alice@example.com",
        enrollment_number="CS1",
        roll_number="R1",
        department="CS",
        year="3",
    )


@pytest.mark.parametrize("action", sorted(TEACHER_ONLY_ACTIONS | {Action.VIEW_PROJECT, Action.ADD_COMMENT}))
def test_teacher_is_allowed_everything(action):
    assert authorize(TEACHER, action, _project()).allowed


@pytest.mark.parametrize("action", sorted(TEACHER_ONLY_ACTIONS))
def test_students_are_denied_teacher_only_actions(action):
    decision = authorize(OWNER, action, _project())
    assert not decision.allowed
    assert decision.kind == "forbidden"
    assert decision.code == "teacher_role_required"


def test_unauthenticated_caller_is_denied():
    decision = authorize(None, Action.LIST_PROJECTS)
    assert not decision.allowed and decision.code == "unauthenticated"


def test_unknown_action_is_denied_even_for_teachers():
    assert authorize(TEACHER, "project:explode").code == "unknown_action"


def test_student_listing_is_scoped_to_own_profile():
    decision = authorize(OWNER, Action.LIST_PROJECTS)
    assert decision.allowed and decision.scope_student_id == "s1"
    assert authorize(UNLINKED, Action.LIST_PROJECTS).kind == "not_found"


def test_foreign_project_read_looks_like_not_found():
    assert authorize(OWNER, Action.VIEW_PROJECT, _project()).allowed
    with pytest.raises(NotFound):
        require(OTHER, Action.VIEW_PROJECT, _project())


def test_foreign_project_write_is_forbidden():
    with pytest.raises(Forbidden) as exc:
        require(OTHER, Action.ADD_COMMENT, _project())
    assert exc.value.code == "not_authorized_for_project"


def test_unowned_project_is_not_writable_by_students():
    assert not authorize(OWNER, Action.SET_STATUS, _project(student_id=None)).allowed


def test_student_may_only_toggle_milestone_completion():
    assert authorize(OWNER, Action.UPDATE_MILESTONE, _project(), fields=["completed"]).allowed
    decision = authorize(OWNER, Action.UPDATE_MILESTONE, _project(), fields=["completed", "title"])
    assert not decision.allowed
    assert decision.code == "field_not_permitted"
    assert "title" in decision.reason


def test_teacher_may_edit_all_milestone_fields():
    assert authorize(TEACHER, Action.UPDATE_MILESTONE, _project(), fields=["title", "due_date"]).allowed


def test_student_views_only_own_profile():
    assert authorize(OWNER, Action.VIEW_STUDENT, _profile("s1")).allowed
    decision = authorize(OWNER, Action.VIEW_STUDENT, _profile("s2"))
    assert not decision.allowed and decision.kind == "not_found"


@pytest.mark.parametrize("action", [Action.EDIT_PROJECT, Action.DELETE_PROJECT])
def test_foreign_project_admin_actions_use_project_reason(action):
    decision = authorize(OTHER, action, _project())
    assert not decision.allowed
    assert decision.code == "not_authorized_for_project"
    assert decision.reason == "not authorized to access this project"


def test_student_create_without_project_uses_project_reason():
    assert authorize(OWNER, Action.CREATE_PROJECT).code == "not_authorized_for_project"
