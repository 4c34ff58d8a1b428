"""
Roster API routes (student profiles).

Teachers manage the roster; a student may read only their own profile.
Profiles include `project_details`, a short summary of the projects they own.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict

from projecttrack.tracking.query import build_student_params

from .. import wiring
from ..common import current_caller, json_private, no_content

students_router = APIRouter(tags=["Students"])


class StudentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: Any = None
    name: Any = None
    email: Any = None
    enrollment_number: Any = None
    roll_number: Any = None
    department: Any = None
    year: Any = None
    phone_number: Any = None
    status: Any = None


class StudentUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Any = None
    email: Any = None
    enrollment_number: Any = None
    roll_number: Any = None
    department: Any = None
    year: Any = None
    phone_number: Any = None
    status: Any = None


def _project_summary(project) -> dict:
    return {
        "id": project.id,
        "title": project.title,
        "status": project.status,
        "progress": project.progress,
        "deadline": project.deadline.isoformat(),
    }


@students_router.get("/api/students")
async def list_students(
    request: Request,
    status: Optional[str] = None,
    department: Optional[str] = None,
    year: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    page_size: Optional[str] = None,
):
    params = build_student_params(
        status=status,
        department=department,
        year=year,
        search=search,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    result = wiring.roster_service().list_students(current_caller(request), params)
    return json_private(result.to_dict(lambda s: s.to_dict()))


@students_router.post("/api/students")
async def create_student(request: Request, payload: StudentCreate):
    profile = wiring.roster_service().create_student(current_caller(request), payload.model_dump(exclude_unset=True))
    return json_private(profile.to_dict(), status_code=201)


@students_router.get("/api/students/stats")
async def student_stats(request: Request):
    return json_private(wiring.roster_service().get_student_stats(current_caller(request)))


@students_router.get("/api/students/{student_id}")
async def get_student(request: Request, student_id: str):
    profile, projects = wiring.roster_service().get_student(current_caller(request), student_id)
    payload = profile.to_dict()
    payload["project_details"] = [_project_summary(p) for p in projects]
    return json_private(payload)


@students_router.api_route("/api/students/{student_id}", methods=["PUT", "PATCH"])
async def update_student(request: Request, student_id: str, payload: StudentUpdate):
    profile = wiring.roster_service().update_student(
        current_caller(request), student_id, payload.model_dump(exclude_unset=True)
    )
    return json_private(profile.to_dict())


@students_router.delete("/api/students/{student_id}")
async def delete_student(request: Request, student_id: str):
    wiring.roster_service().delete_student(current_caller(request), student_id)
    return no_content()
