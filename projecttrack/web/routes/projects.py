"""
Project API routes: projects, milestones, comments and statistics.

Why:
    Thin adapter over `ProjectsService`. The router resolves the caller from
    the session context, maps payloads to service calls and serializes the
    result. Authorization and validation live in the service; typed failures
    are rendered by the app-level `TrackingError` handler.

Security:
    Responses are owner/role-scoped and always sent with
    `Cache-Control: private, no-store`.
"""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict

from projecttrack.tracking.query import build_project_params

from .. import wiring
from ..common import current_caller, json_private, no_content

projects_router = APIRouter(tags=["Projects"])


class MilestoneCreate(BaseModel):
    title: Any = None
    description: Any = None
    due_date: Any = None


class ProjectMilestoneInput(MilestoneCreate):
    completed: Any = None


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Any = None
    description: Any = None
    student_id: Any = None
    deadline: Any = None
    start_date: Any = None
    status: Any = None
    tags: Optional[List[Any]] = None
    milestones: Optional[List[ProjectMilestoneInput]] = None


class ProjectUpdate(BaseModel):
    # Unknown keys (including `progress`) reach the service, which rejects them by name.
    model_config = ConfigDict(extra="allow")

    title: Any = None
    description: Any = None
    student_id: Any = None
    deadline: Any = None
    start_date: Any = None
    status: Any = None
    tags: Any = None


class StatusUpdate(BaseModel):
    status: Any = None


class MilestoneUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Any = None
    description: Any = None
    due_date: Any = None
    completed: Any = None


class CommentCreate(BaseModel):
    text: Any = None


@projects_router.get("/api/projects")
async def list_projects(
    request: Request,
    status: Optional[str] = None,
    student_id: Optional[str] = None,
    tag: Optional[str] = None,
    deadline_before: Optional[str] = None,
    deadline_after: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    page_size: Optional[str] = None,
):
    """List projects with filters, search, sort and pagination.

    Students only ever see their own projects; a `student_id` filter they send
    is replaced with their own profile id.
    """
    params = build_project_params(
        status=status,
        student_id=student_id,
        tag=tag,
        deadline_before=deadline_before,
        deadline_after=deadline_after,
        search=search,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    result = wiring.projects_service().list_projects(current_caller(request), params)
    return json_private(result.to_dict(lambda p: p.to_dict()))


@projects_router.post("/api/projects")
async def create_project(request: Request, payload: ProjectCreate):
    milestones = None
    if payload.milestones is not None:
        milestones = [m.model_dump(exclude_unset=True) for m in payload.milestones]
    project = wiring.projects_service().create_project(
        current_caller(request),
        title=payload.title,
        description=payload.description,
        student_id=payload.student_id,
        deadline=payload.deadline,
        start_date=payload.start_date,
        status=payload.status,
        tags=payload.tags,
        milestones=milestones,
    )
    return json_private(project.to_dict(), status_code=201)


@projects_router.get("/api/projects/stats")
async def project_stats(request: Request):
    return json_private(wiring.projects_service().get_project_stats(current_caller(request)))


@projects_router.get("/api/projects/{project_id}")
async def get_project(request: Request, project_id: str):
    project = wiring.projects_service().get_project(current_caller(request), project_id)
    return json_private(project.to_dict())


@projects_router.api_route("/api/projects/{project_id}", methods=["PUT", "PATCH"])
async def update_project(request: Request, project_id: str, payload: ProjectUpdate):
    project = wiring.projects_service().update_project(
        current_caller(request), project_id, payload.model_dump(exclude_unset=True)
    )
    return json_private(project.to_dict())


@projects_router.delete("/api/projects/{project_id}")
async def delete_project(request: Request, project_id: str):
    wiring.projects_service().delete_project(current_caller(request), project_id)
    return no_content()


@projects_router.patch("/api/projects/{project_id}/status")
async def set_project_status(request: Request, project_id: str, payload: StatusUpdate):
    project = wiring.projects_service().set_project_status(current_caller(request), project_id, payload.status)
    return json_private(project.to_dict())


@projects_router.post("/api/projects/{project_id}/milestones")
async def add_milestone(request: Request, project_id: str, payload: MilestoneCreate):
    project = wiring.projects_service().add_milestone(
        current_caller(request),
        project_id,
        title=payload.title,
        description=payload.description,
        due_date=payload.due_date,
    )
    return json_private(project.to_dict(), status_code=201)


@projects_router.patch("/api/projects/{project_id}/milestones/{milestone_id}")
async def update_milestone(request: Request, project_id: str, milestone_id: str, payload: MilestoneUpdate):
    """Update a milestone.

    Teachers may change any field; the owning student may send only
    `completed`. Any other field from a student is rejected with 403.
    """
    changes = payload.model_dump(exclude_unset=True)
    project = wiring.projects_service().update_milestone(current_caller(request), project_id, milestone_id, **changes)
    return json_private(project.to_dict())


@projects_router.delete("/api/projects/{project_id}/milestones/{milestone_id}")
async def delete_milestone(request: Request, project_id: str, milestone_id: str):
    project = wiring.projects_service().delete_milestone(current_caller(request), project_id, milestone_id)
    return json_private(project.to_dict())


@projects_router.post("/api/projects/{project_id}/comments")
async def add_comment(request: Request, project_id: str, payload: CommentCreate):
    project = wiring.projects_service().add_comment(current_caller(request), project_id, payload.text)
    return json_private(project.to_dict(), status_code=201)
