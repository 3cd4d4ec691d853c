"""Common response schemas used across the API."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard paginated response wrapper.

    Attributes:
        items: List of items for the current page
        total: Total number of items matching the filters
        offset: Number of items skipped
        limit: Maximum items per page
        has_more: Whether more items exist beyond the current page
    """

    success: bool = True
    items: list[T]
    total: int = Field(..., description="Total number of matching items")
    offset: int = Field(..., description="Number of items skipped")
    limit: int = Field(..., description="Maximum items per page")
    has_more: bool = Field(..., description="Whether more items exist")


class ErrorResponse(BaseModel):
    """Standard error envelope returned for every failed request.

    Attributes:
        error: Machine-readable category (e.g. 'invalid_input', 'rate_limited')
        message: Human-readable error message
        reason: Finer-grained reason within the category, when one applies
    """

    success: bool = False
    error: str = Field(..., description="Error category")
    message: str = Field(..., description="Human-readable error message")
    reason: str | None = Field(None, description="Distinguishing reason, e.g. 'subscription_required'")
