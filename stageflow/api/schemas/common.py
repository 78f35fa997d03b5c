"""Common schemas for the StageFlow API.

Success bodies use the envelope ``{success, message, data[, pagination]}``
that the dashboard client consumes.
"""

from typing import Generic, TypeVar, Optional, Any
from pydantic import BaseModel

T = TypeVar("T")


class Pagination(BaseModel):
    """Offset pagination metadata."""
    limit: int
    offset: int
    total: int


class ApiResponse(BaseModel, Generic[T]):
    """Standard success envelope."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    pagination: Optional[Pagination] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
    data: Optional[Any] = None


def envelope(data: Any = None, message: Optional[str] = None, **pagination: int) -> ApiResponse:
    """Wrap a payload in the success envelope.

    Pass ``limit``, ``offset`` and ``total`` to attach pagination metadata.
    """
    return ApiResponse(
        success=True,
        message=message,
        data=data,
        pagination=Pagination(**pagination) if pagination else None,
    )
