"""Response models for the podcast-events validator API (OpenAPI docs)."""

from __future__ import annotations

from pydantic import BaseModel

from core.schema import ValidationResult


class ErrorResponse(BaseModel):
    error: str


INBOX_RESPONSES = {
    200: {"model": ValidationResult, "description": "All events in the batch are valid"},
    400: {"model": ErrorResponse, "description": "Malformed claims, body or event"},
    401: {"model": ErrorResponse, "description": "Missing Authorization header"},
    403: {"model": ErrorResponse, "description": "Bad Authorization header or envelope"},
    405: {"model": ErrorResponse, "description": "Method other than POST"},
    500: {"model": ErrorResponse, "description": "Internal error"},
}
