from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination block returned with list responses."""
    total: int = Field(..., description="Total matching records")
    page: int = Field(..., description="Current page (1-based)")
    limit: int = Field(..., description="Page size actually applied")
    pages: int = Field(..., description="Total number of pages")

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        return cls(total=total, page=page, limit=limit, pages=math.ceil(total / limit) if limit else 0)


class DataResponse(BaseModel, Generic[T]):
    """Success envelope for single resources."""
    success: bool = Field(True)
    data: T


class ListResponse(BaseModel, Generic[T]):
    """Success envelope for paginated collections."""
    success: bool = Field(True)
    data: List[T]
    pagination: PaginationMeta


class MessageResponse(BaseModel):
    """Standard message response."""
    success: bool = Field(True)
    message: str = Field(..., description="Human readable message")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Standardized API error envelope returned by exception handlers."""
    success: bool = Field(False)
    error: str = Field(..., description="Human-readable error message")
    type: str = Field(..., description="Machine-readable error type code")
    details: Optional[Any] = Field(default=None, description="Optional error details (e.g., field issues)")
    correlation_id: Optional[str] = Field(default=None, description="Request correlation ID")
    path: Optional[str] = Field(default=None, description="Request path")
    method: Optional[str] = Field(default=None, description="HTTP method")
    timestamp: datetime = Field(..., description="Error timestamp (UTC)")
