"""Multi-store failover endpoints.

Dashboard endpoints act on the store named by the ``store_id`` query
parameter and require a merchant session. ``/checkout-redirect`` is public:
the storefront cart script calls it right before checkout.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from multistore.core.config import settings
from multistore.core.deps import CurrentStore, DBSession
from multistore.core.rate_limit import limiter
from multistore.schemas.common import PaginatedResponse
from multistore.schemas.multi_store import (
    BackupStoreCreate,
    BackupStoreResponse,
    CheckoutRedirectRequest,
    DeleteResponse,
    MultiStoreConfigResponse,
    ProductMappingResponse,
    PruneResponse,
    RouteResult,
    SyncResult,
    ToggleRequest,
    ToggleResponse,
)
from multistore.services.backup_store_service import BackupStoreService
from multistore.services.checkout_router import CheckoutRouter
from multistore.services.product_mapping_service import ProductMappingService

logger = logging.getLogger(__name__)

router = APIRouter()


# === Configuration ===


@router.get(
    "",
    response_model=MultiStoreConfigResponse,
    summary="Get multi-store configuration",
)
async def get_config(store: CurrentStore, db: DBSession) -> MultiStoreConfigResponse:
    """Feature flag, backup stores and the most recent sync time."""
    return await BackupStoreService(db).get_config(store)


@router.post("/toggle", response_model=ToggleResponse, summary="Enable or disable failover")
async def toggle_feature(
    data: ToggleRequest,
    store: CurrentStore,
    db: DBSession,
) -> ToggleResponse:
    enabled = await BackupStoreService(db).toggle_multi_store(store, data.enabled)
    return ToggleResponse(enabled=enabled)


# === Backup Stores ===


@router.post(
    "/stores",
    response_model=BackupStoreResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add backup store",
    description=(
        "Validate the token against Shopify and register the backup store. "
        "A product mapping sync is queued in the background."
    ),
)
async def add_backup_store(
    data: BackupStoreCreate,
    store: CurrentStore,
    db: DBSession,
) -> BackupStoreResponse:
    backup_store = await BackupStoreService(db).add_backup_store(
        store, data.shop_domain, data.api_token
    )
    return BackupStoreResponse.model_validate(backup_store)


@router.delete(
    "/stores/{backup_store_id}",
    response_model=DeleteResponse,
    summary="Remove backup store",
)
async def remove_backup_store(
    backup_store_id: UUID,
    store: CurrentStore,
    db: DBSession,
) -> DeleteResponse:
    """Remove a backup store and every product mapping that points at it."""
    await BackupStoreService(db).remove_backup_store(store, backup_store_id)
    return DeleteResponse()


@router.post(
    "/stores/{backup_store_id}/toggle",
    response_model=ToggleResponse,
    summary="Enable or disable a backup store",
)
async def toggle_backup_store(
    backup_store_id: UUID,
    data: ToggleRequest,
    store: CurrentStore,
    db: DBSession,
) -> ToggleResponse:
    backup_store = await BackupStoreService(db).toggle_backup_store(
        store, backup_store_id, data.enabled
    )
    return ToggleResponse(enabled=backup_store.enabled)


# === Product Mappings ===


@router.post("/sync-products", response_model=SyncResult, summary="Sync product mappings")
async def sync_products(store: CurrentStore, db: DBSession) -> SyncResult:
    """Match primary and backup catalogs by SKU and store the variant mappings."""
    return await ProductMappingService(db).sync_products(store)


@router.post(
    "/prune-mappings",
    response_model=PruneResponse,
    summary="Delete stale product mappings",
)
async def prune_mappings(
    store: CurrentStore,
    db: DBSession,
    backup_store_id: UUID | None = Query(None),
) -> PruneResponse:
    """Delete mappings that the latest sync of their backup store did not refresh."""
    if backup_store_id is not None:
        await BackupStoreService(db).get_backup_store(store.id, backup_store_id)
    deleted = await ProductMappingService(db).prune_stale_mappings(store, backup_store_id)
    return PruneResponse(deleted=deleted)


@router.get("/mappings", response_model=PaginatedResponse[ProductMappingResponse])
async def list_mappings(
    store: CurrentStore,
    db: DBSession,
    backup_store_id: UUID | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=250),
) -> PaginatedResponse[ProductMappingResponse]:
    return await ProductMappingService(db).list_mappings(
        store,
        backup_store_id=backup_store_id,
        page=page,
        page_size=page_size,
    )


# === Checkout (public) ===


@router.post("/checkout-redirect", response_model=RouteResult)
@limiter.limit(settings.checkout_rate_limit)
async def checkout_redirect(
    request: Request,  # noqa: ARG001 (slowapi reads it)
    data: CheckoutRedirectRequest,
    db: DBSession,
) -> RouteResult:
    """Decide whether this cart should check out on a backup store.

    Never fails the storefront: any internal error degrades to
    ``redirect=false`` so the shopper continues with the normal checkout.
    """
    try:
        return await CheckoutRouter(db).route(data.shop_domain, data.cart_items)
    except Exception:
        logger.exception("Checkout routing failed for %s", data.shop_domain)
        return RouteResult(
            redirect=False,
            reason="routing_failed",
            message="Failed to get checkout redirect",
        )
