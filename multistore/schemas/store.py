"""Pydantic schemas for primary store onboarding."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from multistore.schemas.common import BaseSchema


class StoreCreate(BaseSchema):
    """Schema for registering a primary store."""

    name: str = Field(..., min_length=1, max_length=255, description="Store name")
    shop_domain: str = Field(..., min_length=1, max_length=255, description="Shop domain")
    api_token: str | None = Field(default=None, min_length=1, description="Admin API token")


class StoreUpdate(BaseSchema):
    """Schema for updating a store. The API token may be rotated at any time."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    api_token: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class StoreResponse(BaseSchema):
    """Schema for store response."""

    id: UUID
    organization_id: str
    name: str
    shop_domain: str
    has_api_token: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class StoreListResponse(BaseSchema):
    """Schema for listing stores."""

    items: list[StoreResponse]
    total: int
