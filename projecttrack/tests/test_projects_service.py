"""
Project use cases: creation, derived progress, milestone permissions, status
side effects and comments.
"""
from __future__ import annotations

import pytest

from projecttrack.tracking.errors import Forbidden, NotFound, ValidationFailed
from projecttrack.tracking.models import STATUS_COMPLETED, STATUS_IN_PROGRESS
from projecttrack.tracking.query import build_project_params


def _create(projects, teacher, student_id, deadline, /, **overrides):
    kwargs = dict(
        title="Line Following Robot",
        description="Design and program an autonomous robot",
        student_id=student_id,
        deadline=deadline,
        tags=["robotics", " embedded ", "robotics"],
        milestones=[
            {"title": "Requirements", "description": "Gather", "completed": True},
            {"title": "Design", "description": "Sketch", "completed": True},
            {"title": "Build", "description": "Solder"},
            {"title": "Test", "description": "Track runs"},
        ],
    )
    kwargs.update(overrides)
    return projects.create_project(teacher, **kwargs)


def test_create_project_derives_progress_and_normalizes_tags(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    assert project.progress == 50
    assert project.tags == ["robotics", "embedded"]
    assert project.status == "Not Started"
    assert all(m.completed_at for m in project.milestones[:2])


def test_adding_milestones_recomputes_progress(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    projects.add_milestone(teacher, project.id, title="Report", description="Write up")
    updated = projects.add_milestone(teacher, project.id, title="Demo", description="Present")
    assert len(updated.milestones) == 6
    assert updated.progress == 33


def test_deleting_last_milestone_keeps_previous_progress(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(
        projects, teacher, profile.id, deadline, milestones=[{"title": "Only", "description": "d", "completed": True}]
    )
    assert project.progress == 100
    updated = projects.delete_milestone(teacher, project.id, project.milestones[0].id)
    assert updated.milestones == []
    assert updated.progress == 100


def test_create_requires_existing_student(projects, teacher, deadline):
    with pytest.raises(NotFound) as exc:
        _create(projects, teacher, "missing", deadline)
    assert exc.value.code == "student_not_found"


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"title": "   "}, "invalid_title"),
        ({"title": "x" * 101}, "invalid_title"),
        ({"deadline": "not-a-date"}, "invalid_deadline"),
        ({"status": "Done"}, "invalid_status"),
        ({"tags": "robotics"}, "invalid_tags"),
        ({"milestones": [{"title": "No description"}]}, "invalid_milestone_description"),
    ],
)
def test_create_validates_fields(projects, teacher, make_student, deadline, overrides, code):
    profile, _ = make_student()
    with pytest.raises(ValidationFailed) as exc:
        _create(projects, teacher, profile.id, deadline, **overrides)
    assert exc.value.code == code


def test_students_cannot_create_projects(projects, make_student, deadline):
    profile, caller = make_student()
    with pytest.raises(Forbidden):
        _create(projects, caller, profile.id, deadline)


def test_owner_toggles_completion_but_not_other_fields(projects, teacher, make_student, deadline):
    profile, caller = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    target = project.milestones[2]

    updated = projects.update_milestone(caller, project.id, target.id, completed=True)
    assert updated.progress == 75
    assert updated.find_milestone(target.id).completed_at is not None

    with pytest.raises(Forbidden) as exc:
        projects.update_milestone(caller, project.id, target.id, completed=False, title="Renamed")
    assert exc.value.code == "field_not_permitted"
    assert projects.get_project(teacher, project.id).find_milestone(target.id).completed is True


def test_non_owner_student_is_rejected(projects, teacher, make_student, deadline):
    owner, _ = make_student("Alice Brown")
    _, intruder = make_student("Bob Smith")
    project = _create(projects, teacher, owner.id, deadline)

    with pytest.raises(NotFound):
        projects.get_project(intruder, project.id)
    with pytest.raises(Forbidden):
        projects.update_milestone(intruder, project.id, project.milestones[0].id, completed=False)
    with pytest.raises(Forbidden):
        projects.add_comment(intruder, project.id, "Looks good")


def test_unknown_milestone_is_not_found(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    with pytest.raises(NotFound) as exc:
        projects.update_milestone(teacher, project.id, "nope", completed=True)
    assert exc.value.code == "milestone_not_found"


def test_status_completed_sets_completed_at(projects, teacher, make_student, deadline):
    profile, caller = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    done = projects.set_project_status(caller, project.id, STATUS_COMPLETED)
    assert done.completed_at is not None
    reopened = projects.set_project_status(teacher, project.id, STATUS_IN_PROGRESS)
    assert reopened.completed_at is None
    with pytest.raises(ValidationFailed):
        projects.set_project_status(teacher, project.id, "Archived")


def test_update_project_rejects_progress_and_unknown_fields(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    with pytest.raises(ValidationFailed) as exc:
        projects.update_project(teacher, project.id, {"progress": 90})
    assert exc.value.code == "progress_is_derived"
    with pytest.raises(ValidationFailed) as exc:
        projects.update_project(teacher, project.id, {"owner": "x"})
    assert exc.value.code == "unknown_field"

    updated = projects.update_project(teacher, project.id, {"title": "Maze Robot", "status": STATUS_COMPLETED})
    assert updated.title == "Maze Robot"
    assert updated.completed_at is not None
    assert updated.progress == 50


def test_reassigning_to_missing_student_leaves_project_unchanged(projects, teacher, make_student, deadline):
    profile, _ = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    with pytest.raises(NotFound):
        projects.update_project(teacher, project.id, {"student_id": "ghost", "title": "Changed"})
    assert projects.get_project(teacher, project.id).title == "Line Following Robot"


def test_comments_snapshot_author(projects, teacher, make_student, deadline):
    profile, caller = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    projects.add_comment(teacher, project.id, "Please add a test plan")
    updated = projects.add_comment(caller, project.id, "  Added in milestone 4  ")
    assert [c.author_role for c in updated.comments] == ["teacher", "student"]
    assert updated.comments[1].text == "Added in milestone 4"
    assert updated.comments[1].author_name == profile.name
    with pytest.raises(ValidationFailed):
        projects.add_comment(teacher, project.id, "x" * 2001)


def test_student_listing_only_returns_own_projects(projects, teacher, make_student, deadline):
    alice, alice_caller = make_student("Alice Brown")
    bob, _ = make_student("Bob Smith")
    _create(projects, teacher, alice.id, deadline)
    _create(projects, teacher, bob.id, deadline, title="Library System")

    page = projects.list_projects(alice_caller, build_project_params(student_id=bob.id))
    assert page.total == 1
    assert page.items[0].student_id == alice.id
    assert projects.list_projects(teacher, build_project_params()).total == 2


def test_project_stats_are_teacher_only(projects, teacher, make_student, deadline):
    profile, caller = make_student()
    _create(projects, teacher, profile.id, deadline)
    _create(projects, teacher, profile.id, deadline, status=STATUS_COMPLETED)
    stats = projects.get_project_stats(teacher)
    assert stats == {"total": 2, "status_stats": {"Not Started": 1, "Completed": 1}}
    with pytest.raises(Forbidden):
        projects.get_project_stats(caller)


def test_delete_project(projects, teacher, make_student, deadline):
    profile, caller = make_student()
    project = _create(projects, teacher, profile.id, deadline)
    with pytest.raises(Forbidden):
        projects.delete_project(caller, project.id)
    projects.delete_project(teacher, project.id)
    with pytest.raises(NotFound):
        projects.get_project(teacher, project.id)


def test_non_owner_student_cannot_edit_or_delete(projects, teacher, make_student, deadline):
    owner, _ = make_student("Alice Brown")
    _, intruder = make_student("Bob Smith")
    project = _create(projects, teacher, owner.id, deadline)

    with pytest.raises(Forbidden) as exc:
        projects.update_project(intruder, project.id, {"title": "Taken over"})
    assert exc.value.code == "not_authorized_for_project"
    assert exc.value.message == "not authorized to access this project"
    with pytest.raises(Forbidden) as exc:
        projects.delete_project(intruder, project.id)
    assert exc.value.message == "not authorized to access this project"

    unchanged = projects.get_project(teacher, project.id)
    assert unchanged.title == "Line Following Robot"


def test_project_reads_embed_owner_summary(projects, roster, teacher, make_student, deadline):
    profile, caller = make_student("Alice Brown")
    project = _create(projects, teacher, profile.id, deadline)
    assert project.student["name"] == "Alice Brown"
    assert project.student["enrollment_number"] == profile.enrollment_number

    listed = projects.list_projects(caller, build_project_params()).items[0]
    assert listed.to_dict()["student"] == {
        "id": profile.id,
        "name": profile.name,
        "email": profile.email,
        "enrollment_number": profile.enrollment_number,
        "roll_number": profile.roll_number,
        "department": profile.department,
    }

    roster.delete_student(teacher, profile.id)
    orphan = projects.get_project(teacher, project.id)
    assert orphan.student is None
    assert orphan.to_dict()["student"] is None
