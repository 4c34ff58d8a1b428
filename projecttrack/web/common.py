"""
Helpers shared by the API routers.

All API responses carry `Cache-Control: private, no-store`: the payloads are
role- and owner-scoped and must stay out of shared caches.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from projecttrack.identity_access.domain import ROLE_STUDENT, Caller
from projecttrack.tracking.errors import TrackingError

from . import wiring

PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}


def json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers."""
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def private_error(payload: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def no_content() -> Response:
    return Response(status_code=204, headers=dict(PRIVATE_HEADERS))


def error_response(exc: TrackingError) -> JSONResponse:
    return private_error(exc.to_dict(), status_code=exc.status_code)


def current_caller(request: Request) -> Optional[Caller]:
    """Build the explicit caller identity from the session context.

    Student callers are linked to their roster profile here, so services never
    consult request state.
    """
    user = getattr(request.state, "user", None)
    if not user or not user.get("sub"):
        return None
    role = user.get("role") or ""
    student_id = None
    if role == ROLE_STUDENT:
        profile = wiring.roster_service().profile_for_account(user["sub"])
        student_id = profile.id if profile else None
    return Caller(account_id=str(user["sub"]), role=role, name=user.get("name") or "", student_id=student_id)


SESSION_COOKIE_NAME = "projecttrack_session"


def session_id_from_request(request: Request) -> Optional[str]:
    """Return the opaque session id from the cookie or an `Authorization: Bearer` header."""
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        return sid
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def set_session_cookie(response: Response, value: str, *, max_age: int) -> None:
    # Hardened flags in every environment.
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=True,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/", secure=True, httponly=True, samesite="lax")
