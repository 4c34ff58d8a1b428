"""
Authentication routes: register, login, logout and the current account.

Notes:
    - Sessions are opaque ids kept server-side. Login and registration set the
      `projecttrack_session` cookie and also return the id as `token` so API
      clients can send it as `Authorization: Bearer <token>`.
    - Logout is best-effort and never fails: it removes the server-side session
      if one is presented and clears the cookie.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from projecttrack.identity_access.accounts import authenticate
from projecttrack.identity_access.domain import ROLE_STUDENT

from .. import wiring
from ..common import (
    clear_session_cookie,
    current_caller,
    json_private,
    no_content,
    private_error,
    session_id_from_request,
    set_session_cookie,
)
from ..config import session_ttl_seconds

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("projecttrack.web.auth")


class RegisterPayload(BaseModel):
    name: Any = None
    email: Any = None
    password: Any = None
    role: Any = ROLE_STUDENT
    enrollment_number: Any = None
    roll_number: Any = None
    department: Any = None
    year: Any = None
    phone_number: Any = None


class LoginPayload(BaseModel):
    email: Any = None
    password: Any = Field(default=None, repr=False)


def _session_response(account, student, *, status_code: int):
    ttl = session_ttl_seconds()
    rec = wiring.get_sessions().create(account_id=account.id, role=account.role, name=account.name, ttl_seconds=ttl)
    response = json_private(
        {
            "account": account.to_public_dict(),
            "student": student.to_dict() if student else None,
            "token": rec.session_id,
            "expires_in": ttl,
        },
        status_code=status_code,
    )
    set_session_cookie(response, rec.session_id, max_age=ttl)
    return response


@auth_router.post("/api/auth/register")
async def register(payload: RegisterPayload):
    """Register an account and log it in.

    Behavior:
        - 201 with account, student profile (students only) and session token
        - 400 on invalid fields or missing student fields
        - 409 when the email, enrollment number or roll number is taken
    """
    account, student = wiring.registration_service().register(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        profile={
            "enrollment_number": payload.enrollment_number,
            "roll_number": payload.roll_number,
            "department": payload.department,
            "year": payload.year,
            "phone_number": payload.phone_number,
        },
    )
    logger.info("Registered %s account", account.role)
    return _session_response(account, student, status_code=201)


@auth_router.post("/api/auth/login")
async def login(payload: LoginPayload):
    account = authenticate(wiring.get_accounts(), payload.email, payload.password)
    student = None
    if account.role == ROLE_STUDENT:
        student = wiring.roster_service().profile_for_account(account.id)
    return _session_response(account, student, status_code=200)


@auth_router.post("/api/auth/logout")
async def logout(request: Request):
    sid: Optional[str] = session_id_from_request(request)
    if sid:
        try:
            wiring.get_sessions().delete(sid)
        except Exception as exc:
            logger.warning("Session delete failed during logout: %s", exc.__class__.__name__)
    response = no_content()
    clear_session_cookie(response)
    return response


@auth_router.get("/api/auth/me")
async def me(request: Request):
    """Return the current account, plus the roster profile for students."""
    caller = current_caller(request)
    account = wiring.get_accounts().get(caller.account_id) if caller else None
    if account is None:
        return private_error({"error": "unauthenticated"}, status_code=401)
    student = None
    if caller.student_id:
        student = wiring.get_repo().get_student(caller.student_id)
    return json_private(
        {"account": account.to_public_dict(), "student": student.to_dict() if student else None}
    )
