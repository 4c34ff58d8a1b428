"""
Typed failures raised by the tracking services.

Why:
    Web adapters need a machine-readable error kind plus a human-readable
    message for every failure. The classes extend the builtin exceptions the
    services already used for these cases (LookupError, PermissionError,
    ValueError), so generic handlers keep working.
"""
from __future__ import annotations


class TrackingError(Exception):
    """Base class; `kind` is the stable error family, `code` the detail."""

    kind = "error"
    status_code = 500

    def __init__(self, code: str, message: str | None = None):
        super().__init__(code)
        self.code = code
        self.message = message or code.replace("_", " ")

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.code, "message": self.message}


class NotFound(TrackingError, LookupError):
    kind = "not_found"
    status_code = 404


class Forbidden(TrackingError, PermissionError):
    kind = "forbidden"
    status_code = 403


class ValidationFailed(TrackingError, ValueError):
    kind = "bad_request"
    status_code = 400


class Conflict(TrackingError):
    kind = "conflict"
    status_code = 409


class UpstreamUnavailable(TrackingError):
    kind = "upstream_unavailable"
    status_code = 503


__all__ = [
    "TrackingError",
    "NotFound",
    "Forbidden",
    "ValidationFailed",
    "Conflict",
    "UpstreamUnavailable",
]
