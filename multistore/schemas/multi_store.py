"""Pydantic schemas for backup stores, product mappings and checkout routing."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, StrictBool, field_validator

from multistore.schemas.common import BaseSchema

# === Backup Store Registry ===


class BackupStoreCreate(BaseSchema):
    """Request to register a backup store."""

    shop_domain: str = Field(..., min_length=1, max_length=255, description="Shop domain")
    api_token: str = Field(..., min_length=1, description="Admin API access token")


class BackupStoreResponse(BaseSchema):
    """A registered backup store. The access token is never returned."""

    id: UUID
    shop_domain: str
    enabled: bool
    last_synced_at: datetime | None = None
    created_at: datetime


class ToggleRequest(BaseSchema):
    """Enable or disable something."""

    enabled: StrictBool


class ToggleResponse(BaseSchema):
    success: bool = True
    enabled: bool


class DeleteResponse(BaseSchema):
    success: bool = True


class MultiStoreConfigResponse(BaseSchema):
    """Failover configuration for a store, as shown in the dashboard."""

    enabled: bool
    backup_stores: list[BackupStoreResponse]
    last_sync_time: datetime | None = None
    max_backup_stores: int


# === Product Mapping Sync ===


SyncStatus = Literal["synced", "skipped", "failed"]


class BackupSyncReport(BaseSchema):
    """Outcome of syncing one backup store."""

    backup_store_id: UUID
    shop_domain: str
    status: SyncStatus
    mappings: int = 0
    reason: str | None = None


class SyncResult(BaseSchema):
    """Aggregate counts for a product mapping sync."""

    success: bool = True
    mappings_created: int
    primary_store_products: int = Field(description="Distinct SKUs in the primary catalog")
    backup_stores_processed: int
    synced_at: datetime
    stores: list[BackupSyncReport] = []


class PruneResponse(BaseSchema):
    success: bool = True
    deleted: int


class ProductMappingResponse(BaseSchema):
    """A persisted variant mapping."""

    id: UUID
    backup_store_id: UUID
    sku: str
    primary_variant_id: str
    backup_variant_id: str
    primary_product_title: str | None = None
    last_synced_at: datetime


# === Checkout Routing ===


class CartItem(BaseSchema):
    """A cart line as sent by the storefront script."""

    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)

    @field_validator("variant_id", mode="before")
    @classmethod
    def _coerce_variant_id(cls, value: Any) -> Any:
        # Storefront carts report variant ids as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class CheckoutRedirectRequest(BaseSchema):
    """Public checkout routing request."""

    shop_domain: str = Field(..., min_length=1, max_length=255)
    cart_items: list[CartItem] = Field(..., min_length=1)


RouteReason = Literal[
    "store_not_found",
    "multi_store_disabled",
    "no_backup_stores",
    "unmapped_items",
    "routing_failed",
]


class RouteResult(BaseSchema):
    """Checkout routing decision.

    ``redirect=False`` means "continue with the store's own checkout"; it is
    a normal outcome, not an error.
    """

    redirect: bool
    checkout_url: str | None = None
    backup_store: str | None = None
    items_mapped: int = 0
    reason: RouteReason | None = None
    message: str | None = None
    unmapped_variant_ids: list[str] = []
