"""Pydantic schemas for API validation."""

from festive.schemas.common import ErrorResponse, PaginatedResponse

__all__ = [
    "ErrorResponse",
    "PaginatedResponse",
]
