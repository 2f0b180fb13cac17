"""Pydantic schemas for request/response validation."""

from multistore.schemas.common import ErrorResponse, PaginatedResponse

__all__ = [
    "ErrorResponse",
    "PaginatedResponse",
]
