"""Response envelope shared by every endpoint."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)


class ApiResponse(BaseModel, Generic[T]):
    """
    Successful response envelope.

    ``data`` and ``pagination`` are null when unset.
    """

    success: bool = True
    message: str
    data: Optional[T] = None
    pagination: Optional[PaginationMeta] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    details: Optional[Any] = None
