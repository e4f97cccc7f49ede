"""Error taxonomy and the unified `{error: message}` envelope."""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.detail = detail


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidToken(AuthError):
    default_message = "Invalid or expired token"


class ConflictError(AppError):
    status_code = 400
    default_message = "User already exists"


class UpstreamError(AppError):
    """Third-party API failure; `detail` carries the provider message."""

    status_code = 500
    default_message = "Upstream service error"


class GenerationEmpty(AppError):
    default_message = "No response from generation service"


class GenerationMalformed(AppError):
    default_message = "Failed to parse AI summary"


def error_envelope(
    *,
    message: str,
    trace_id: str | None = None,
    detail: str | None = None,
) -> dict:
    out: dict = {"error": message}
    if detail:
        out["detail"] = detail
    if trace_id:
        out["traceId"] = trace_id
    return out
