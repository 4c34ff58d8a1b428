"""Seed demo data: one teacher, a few students and their projects.

Why:
    Local development and demos need a populated roster. Everything goes
    through the registration and project services, so the data satisfies the
    same validation, uniqueness and progress rules as API-created data.

Usage:
    python -m projecttrack.tools.seed_demo --students 3 --projects-per-student 2

    The backend follows the environment: with DATABASE_URL set the Postgres
    store is used, otherwise the run only populates process memory (useful as
    a smoke check). `--check` reports dangling project owners afterwards.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

import click

from projecttrack.identity_access.domain import ROLE_STUDENT, ROLE_TEACHER, Caller
from projecttrack.identity_access.registration import RegistrationService
from projecttrack.tracking.errors import TrackingError
from projecttrack.tracking.models import utcnow
from projecttrack.tracking.services.projects import ProjectsService

DEPARTMENTS = ("Computer Science", "Information Technology", "Electronics")

PROJECT_IDEAS = (
    ("E-Commerce Website Development", "Build a full-stack e-commerce website", ["web", "fullstack"]),
    ("Line Following Robot", "Design and program an autonomous robot", ["robotics", "embedded"]),
    ("Library Management System", "Track books, members and loans", ["database"]),
    ("Weather Data Dashboard", "Collect and visualize local weather data", ["data", "web"]),
)

MILESTONES = ("Requirements", "Design", "Implementation", "Testing")


def seed(
    registration: RegistrationService,
    projects: ProjectsService,
    *,
    students: int,
    projects_per_student: int,
    password: str,
) -> Dict[str, Any]:
    """Create the demo records and return a summary with the created ids."""
    teacher, _ = registration.register(
        name="Demo Teacher", email="teacher@example.com", password=password, role=ROLE_TEACHER
    )
    caller = Caller(account_id=teacher.id, role=ROLE_TEACHER, name=teacher.name)
    now = utcnow()
    student_ids: List[str] = []
    project_ids: List[str] = []
    for n in range(1, students + 1):
        department = DEPARTMENTS[(n - 1) % len(DEPARTMENTS)]
        prefix = "".join(word[0] for word in department.split()).upper()
        _, profile = registration.register(
            name=f"Demo Student {n}",
            email=f"student{n}@example.com",
            password=password,
            role=ROLE_STUDENT,
            profile={
                "enrollment_number": f"{prefix}{now.year}{n:03d}",
                "roll_number": f"{now.year % 100}/{prefix}/{n:03d}",
                "department": department,
                "year": str((n - 1) % 4 + 1),
            },
        )
        student_ids.append(profile.id)
        for k in range(projects_per_student):
            title, description, tags = PROJECT_IDEAS[(n + k) % len(PROJECT_IDEAS)]
            done = (n + k) % (len(MILESTONES) + 1)
            project = projects.create_project(
                caller,
                title=title,
                description=description,
                student_id=profile.id,
                deadline=(now + timedelta(days=30 * (k + 1))).isoformat(),
                tags=tags,
                milestones=[
                    {"title": m, "description": f"{m} phase", "completed": i < done}
                    for i, m in enumerate(MILESTONES)
                ],
            )
            project_ids.append(project.id)
    return {"teacher_id": teacher.id, "student_ids": student_ids, "project_ids": project_ids}


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--students", default=3, show_default=True, type=click.IntRange(0, 500), help="Number of students")
@click.option(
    "--projects-per-student", default=2, show_default=True, type=click.IntRange(0, 20), help="Projects per student"
)
@click.option("--password", default="password123", show_default=True, help="Password for all demo accounts")
@click.option("--check", is_flag=True, help="Report projects whose owner profile is missing after seeding")
def cli(students: int, projects_per_student: int, password: str, check: bool) -> None:
    from projecttrack.web import wiring

    try:
        summary = seed(
            wiring.registration_service(),
            wiring.projects_service(),
            students=students,
            projects_per_student=projects_per_student,
            password=password,
        )
    except TrackingError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}")
    click.echo(
        "Seeded backend={backend} teacher=1 students={s} projects={p}".format(
            backend=wiring.backend_name(), s=len(summary["student_ids"]), p=len(summary["project_ids"])
        )
    )
    if check:
        dangling = wiring.roster_service().reconcile_roster()
        click.echo(f"Dangling project owners: {len(dangling)}")


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
