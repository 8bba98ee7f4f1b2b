"""Caller-facing error kinds for the callable operations.

Only these cross the service boundary. Store and engine failures are
logged where they are caught and re-raised as `Internal`.
"""

from __future__ import annotations


class ScribeError(Exception):
    """Base for errors surfaced to callers. `status` is the wire code."""

    status = "INTERNAL"
    http_status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


class Unauthenticated(ScribeError):
    status = "UNAUTHENTICATED"
    http_status = 401


class InvalidArgument(ScribeError):
    status = "INVALID_ARGUMENT"
    http_status = 400


class NotFound(ScribeError):
    status = "NOT_FOUND"
    http_status = 404


class Internal(ScribeError):
    status = "INTERNAL"
    http_status = 500
