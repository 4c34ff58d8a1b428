"ProjectTrack API"
from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from projecttrack import __version__
from projecttrack.tracking.errors import TrackingError

from . import config as _cfg
from . import wiring
from .common import PRIVATE_HEADERS, error_response, private_error, session_id_from_request


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via PROJECTTRACK_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("PROJECTTRACK_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("projecttrack.identity_access")

app = FastAPI(title="ProjectTrack", description="Academic project tracking for teachers and students", version=__version__)

from .routes.auth import auth_router  # noqa: E402
from .routes.projects import projects_router  # noqa: E402
from .routes.students import students_router  # noqa: E402

_PUBLIC_PATHS = {"/health", "/api/auth/register", "/api/auth/login", "/api/auth/logout"}


def _is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS or path in ("/docs", "/openapi.json")


# --- Error mapping ---------------------------------------------------------------


@app.exception_handler(TrackingError)
async def tracking_error_handler(request: Request, exc: TrackingError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies share the 400 contract of service-level validation.
    return private_error(
        {"error": "bad_request", "detail": "invalid_payload", "message": "request body is malformed"},
        status_code=400,
    )


# --- Auth Middleware --------------------------------------------------------------


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    sid = session_id_from_request(request)
    rec = None
    if sid:
        try:
            rec = wiring.get_sessions().get(sid)
        except Exception as exc:
            logger.warning("Session store get failed: %s", exc.__class__.__name__)

    if rec:
        # Minimal, read-only user context for downstream handlers.
        request.state.user = {"sub": rec.account_id, "name": rec.name, "role": rec.role}
    elif not _is_public_path(path):
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=dict(PRIVATE_HEADERS))
    return await call_next(request)


# --- Security Headers Middleware --------------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if _cfg.environment() in ("prod", "production"):
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Routes -----------------------------------------------------------------------

app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(students_router)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "healthy", "backend": wiring.backend_name()}, headers=dict(PRIVATE_HEADERS))
