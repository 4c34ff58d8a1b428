"""
Progress engine: derived percentage, status side effects and milestone
completion timestamps.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from projecttrack.tracking.errors import ValidationFailed
from projecttrack.tracking.models import STATUS_COMPLETED, STATUS_IN_PROGRESS, Milestone, Project
from projecttrack.tracking.progress import (
    apply_status,
    percent_complete,
    recompute_progress,
    set_milestone_completed,
    validate_status,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _project(*done_flags: bool, progress: int = 0) -> Project:
    return Project(
        id="p-1",
        title="Robot",
        description="Line follower",
        student_id="s-1",
        deadline=NOW + timedelta(days=30),
        start_date=NOW,
        progress=progress,
        milestones=[
            Milestone(id=f"m-{i}", title=f"M{i}", description="d", completed=flag)
            for i, flag in enumerate(done_flags)
        ],
    )


@pytest.mark.parametrize(
    "completed,total,expected",
    [(0, 4, 0), (2, 4, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 200, 1), (4, 4, 100)],
)
def test_percent_complete_rounds_half_up(completed, total, expected):
    assert percent_complete(completed, total) == expected


def test_percent_complete_rejects_zero_total():
    with pytest.raises(ValueError):
        percent_complete(0, 0)


def test_recompute_progress_counts_completed_milestones():
    project = _project(True, True, False, False)
    assert recompute_progress(project) == 50
    assert project.progress == 50


def test_recompute_progress_keeps_last_value_without_milestones():
    project = _project(progress=40)
    assert recompute_progress(project) == 40


def test_apply_status_completed_sets_and_clears_completed_at():
    project = _project()
    apply_status(project, STATUS_COMPLETED, now=NOW)
    assert project.completed_at == NOW

    # Re-applying Completed keeps the original timestamp.
    apply_status(project, STATUS_COMPLETED, now=NOW + timedelta(days=1))
    assert project.completed_at == NOW

    apply_status(project, STATUS_IN_PROGRESS)
    assert project.status == STATUS_IN_PROGRESS
    assert project.completed_at is None


@pytest.mark.parametrize("bad", ["Done", "completed", "", None, 3])
def test_validate_status_rejects_unknown_values(bad):
    with pytest.raises(ValidationFailed) as exc:
        validate_status(bad)
    assert exc.value.code == "invalid_status"


def test_set_milestone_completed_tracks_timestamp():
    milestone = Milestone(id="m", title="Design", description="d")
    set_milestone_completed(milestone, True, now=NOW)
    assert milestone.completed and milestone.completed_at == NOW

    set_milestone_completed(milestone, True, now=NOW + timedelta(hours=1))
    assert milestone.completed_at == NOW

    set_milestone_completed(milestone, False)
    assert not milestone.completed and milestone.completed_at is None


def test_set_milestone_completed_requires_bool():
    milestone = Milestone(id="m", title="Design", description="d")
    with pytest.raises(ValidationFailed):
        set_milestone_completed(milestone, "yes")  # type: ignore[arg-type]
