"""Application errors mapped onto HTTP responses."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors that carry an HTTP status and a stable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class GitHubApiError(AppError):
    """Raised when a GitHub request fails or returns an unexpected status."""

    status_code = 502
    code = "GITHUB_API_ERROR"


class RateLimitError(GitHubApiError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class DatabaseError(AppError):
    status_code = 500
    code = "DATABASE_ERROR"


__all__ = [
    "AppError",
    "ValidationError",
    "NotFoundError",
    "GitHubApiError",
    "RateLimitError",
    "DatabaseError",
]
