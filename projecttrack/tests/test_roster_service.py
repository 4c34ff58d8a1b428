"""
Roster use cases: unique keys, derived project lists and referential
integrity when profiles are deleted.
"""
from __future__ import annotations

import logging

import pytest

from projecttrack.identity_access.accounts import AccountStore, new_account
from projecttrack.tracking.errors import Conflict, Forbidden, NotFound, ValidationFailed
from projecttrack.tracking.query import build_student_params
from projecttrack.tracking.services.roster import RosterService


def _project(projects, teacher, student_id, deadline, title="Robot"):
    return projects.create_project(
        teacher, title=title, description="Build it", student_id=student_id, deadline=deadline
    )


def test_duplicate_enrollment_number_conflicts(repo, make_student):
    first, _ = make_student(enrollment_number="CS2021001")
    with pytest.raises(Conflict) as exc:
        make_student(enrollment_number="CS2021001")
    assert exc.value.code == "duplicate_enrollment_number"
    stored = repo.get_student(first.id)
    assert stored.name == first.name
    assert stored.roll_number == first.roll_number
    assert repo.list_students(build_student_params()).total == 1


def test_duplicate_roll_number_conflicts_on_update(roster, teacher, make_student):
    first, _ = make_student()
    second, _ = make_student()
    with pytest.raises(Conflict) as exc:
        roster.update_student(teacher, second.id, {"roll_number": first.roll_number})
    assert exc.value.code == "duplicate_roll_number"
    # Keeping one's own keys is not a conflict.
    same = roster.update_student(teacher, first.id, {"roll_number": first.roll_number, "year": 4})
    assert same.year == "4"


def test_profile_project_list_is_derived_from_ownership(roster, projects, teacher, make_student, deadline):
    alice, _ = make_student("Alice Brown")
    bob, _ = make_student("Bob Smith")
    p1 = _project(projects, teacher, alice.id, deadline, "First")
    p2 = _project(projects, teacher, alice.id, deadline, "Second")

    profile, owned = roster.get_student(teacher, alice.id)
    assert sorted(profile.projects) == sorted([p1.id, p2.id])
    assert {p.id for p in owned} == {p1.id, p2.id}

    projects.update_project(teacher, p2.id, {"student_id": bob.id})
    assert roster.get_student(teacher, alice.id)[0].projects == [p1.id]
    assert roster.get_student(teacher, bob.id)[0].projects == [p2.id]

    projects.delete_project(teacher, p1.id)
    assert roster.get_student(teacher, alice.id)[0].projects == []


def test_deleting_student_clears_project_owner(roster, projects, repo, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _project(projects, teacher, profile.id, deadline)
    roster.delete_student(teacher, profile.id)

    assert projects.get_project(teacher, project.id).student_id is None
    assert repo.dangling_project_refs() == []
    with pytest.raises(NotFound):
        roster.get_student(teacher, profile.id)
    with pytest.raises(NotFound):
        roster.delete_student(teacher, profile.id)


def test_reconcile_reports_dangling_owner_refs(roster, projects, repo, teacher, make_student, deadline, caplog):
    profile, _ = make_student()
    project = _project(projects, teacher, profile.id, deadline)
    # Simulate a profile removed outside the repository API.
    del repo.students[profile.id]
    with caplog.at_level(logging.WARNING, logger="projecttrack.tracking.roster"):
        assert roster.reconcile_roster() == [(project.id, profile.id)]
    assert project.id in caplog.text


def test_students_see_only_their_own_profile(roster, make_student):
    alice, alice_caller = make_student("Alice Brown")
    bob, _ = make_student("Bob Smith")
    profile, _ = roster.get_student(alice_caller, alice.id)
    assert profile.id == alice.id
    with pytest.raises(NotFound):
        roster.get_student(alice_caller, bob.id)
    with pytest.raises(Forbidden):
        roster.list_students(alice_caller, build_student_params())
    with pytest.raises(Forbidden):
        roster.update_student(alice_caller, alice.id, {"phone_number": "555"})


def test_list_students_search_and_filters(roster, teacher, make_student):
    make_student("Alice Brown", department="Electronics", year="2")
    make_student("Bob Smith")
    make_student("Carol Brownlee")
    page = roster.list_students(teacher, build_student_params(search="brown", sort="name"))
    assert [s.name for s in page.items] == ["Alice Brown", "Carol Brownlee"]
    page = roster.list_students(teacher, build_student_params(department="Electronics"))
    assert page.total == 1


def test_update_student_validation(roster, teacher, make_student):
    profile, _ = make_student()
    with pytest.raises(ValidationFailed) as exc:
        roster.update_student(teacher, profile.id, {"projects": []})
    assert exc.value.code == "unknown_field"
    with pytest.raises(ValidationFailed) as exc:
        roster.update_student(teacher, profile.id, {"status": "expelled"})
    assert exc.value.code == "invalid_status"
    with pytest.raises(NotFound):
        roster.update_student(teacher, "missing", {"name": "X"})


def test_student_stats(roster, teacher, make_student):
    make_student()
    make_student(status="graduated")
    assert roster.get_student_stats(teacher) == {"total": 2, "status_stats": {"active": 1, "graduated": 1}}


def test_create_student_checks_linked_account(repo, teacher):
    accounts = AccountStore()
    student_account = accounts.create(
        new_account(name="Dana", email="dana@example.com", password="secret1", role="student")
    )
    teacher_account = accounts.create(
        new_account(name="Tom", email="tom@example.com", password="secret1", role="teacher")
    )
    service = RosterService(repo, accounts)
    data = {
        "name": "Dana",
        "email": "dana@example.com",
        "enrollment_number": "IT2022001",
        "roll_number": "22/IT/001",
        "department": "Information Technology",
        "year": "1",
    }
    created = service.create_student(teacher, {**data, "account_id": student_account.id})
    assert created.account_id == student_account.id

    with pytest.raises(Conflict) as exc:
        service.create_student(teacher, {**data, "account_id": student_account.id, "enrollment_number": "X"})
    assert exc.value.code == "account_already_linked"
    with pytest.raises(ValidationFailed):
        service.create_student(teacher, {**data, "account_id": teacher_account.id})
    with pytest.raises(NotFound):
        service.create_student(teacher, {**data, "account_id": "nobody"})
