"""Backup store registry: add, remove and toggle failover storefronts."""

import logging
from uuid import UUID

import httpx
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from multistore.core.config import settings
from multistore.core.encryption import encrypt_token
from multistore.core.exceptions import AlreadyExists, CapacityExceeded, NotFound, UpstreamError
from multistore.integrations.shopify.client import ShopifyClient
from multistore.models.backup_store import BackupStore
from multistore.models.multi_store_config import MultiStoreConfig
from multistore.models.product_mapping import ProductMapping
from multistore.models.store import Store
from multistore.schemas.multi_store import BackupStoreResponse, MultiStoreConfigResponse
from multistore.services.domain_service import normalize_shop_domain
from multistore.workers.tasks.multi_store import sync_product_mappings

logger = logging.getLogger(__name__)

# Upstream statuses that mean the merchant supplied a bad token
_REJECTED_CREDENTIAL_STATUSES = (401, 403)


class BackupStoreService:
    """Business logic for a store's set of backup storefronts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # === Queries ===

    async def list_backup_stores(
        self,
        store_id: UUID,
        *,
        enabled_only: bool = False,
    ) -> list[BackupStore]:
        """Return backup stores in the order they were added."""
        query = select(BackupStore).where(BackupStore.store_id == store_id)
        if enabled_only:
            query = query.where(BackupStore.enabled == True)  # noqa: E712
        query = query.order_by(BackupStore.created_at, BackupStore.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_backup_store(self, store_id: UUID, backup_store_id: UUID) -> BackupStore:
        """Get a backup store, verifying it belongs to ``store_id``.

        Raises:
            NotFound: If it does not exist or belongs to another store.
        """
        query = select(BackupStore).where(
            BackupStore.id == backup_store_id,
            BackupStore.store_id == store_id,
        )
        result = await self.db.execute(query)
        backup_store = result.scalar_one_or_none()
        if not backup_store:
            raise NotFound("Backup store not found")
        return backup_store

    async def is_multi_store_enabled(self, store_id: UUID) -> bool:
        query = select(MultiStoreConfig.enabled).where(MultiStoreConfig.store_id == store_id)
        enabled = (await self.db.execute(query)).scalar_one_or_none()
        return bool(enabled)

    async def get_config(self, store: Store) -> MultiStoreConfigResponse:
        """Feature flag, backup stores and the time of the most recent sync."""
        backup_stores = await self.list_backup_stores(store.id)

        last_sync_stmt = select(func.max(ProductMapping.last_synced_at)).where(
            ProductMapping.store_id == store.id
        )
        last_sync_time = (await self.db.execute(last_sync_stmt)).scalar()

        return MultiStoreConfigResponse(
            enabled=await self.is_multi_store_enabled(store.id),
            backup_stores=[BackupStoreResponse.model_validate(b) for b in backup_stores],
            last_sync_time=last_sync_time,
            max_backup_stores=settings.max_backup_stores,
        )

    # === Mutations ===

    async def add_backup_store(self, store: Store, shop_domain: str, api_token: str) -> BackupStore:
        """Validate a backup store's credential with Shopify and register it.

        The owning store row stays locked from the capacity check until
        commit, so concurrent adds for one store cannot exceed the limit.
        A product mapping sync is queued afterwards on a best-effort basis.

        Raises:
            ValidationError: If the domain is malformed.
            CapacityExceeded: If the store already has the maximum number of backups.
            UpstreamError: If Shopify rejects the credential or cannot be reached.
            AlreadyExists: If the canonical domain is already registered for the store.
        """
        domain = normalize_shop_domain(shop_domain)

        await self._lock_store(store.id)

        count_stmt = (
            select(func.count()).select_from(BackupStore).where(BackupStore.store_id == store.id)
        )
        count = (await self.db.execute(count_stmt)).scalar() or 0
        if count >= settings.max_backup_stores:
            raise CapacityExceeded(
                f"Maximum {settings.max_backup_stores} backup stores allowed"
            )

        canonical_domain = await self._validate_credential(domain, api_token)

        existing_stmt = select(BackupStore.id).where(
            BackupStore.store_id == store.id,
            BackupStore.shop_domain == canonical_domain,
        )
        if (await self.db.execute(existing_stmt)).scalar_one_or_none():
            raise AlreadyExists("This backup store is already added")

        backup_store = BackupStore(
            store_id=store.id,
            shop_domain=canonical_domain,
            api_token=encrypt_token(api_token),
            enabled=True,
        )
        self.db.add(backup_store)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyExists("This backup store is already added") from e
        await self.db.refresh(backup_store)

        logger.info("Added backup store %s for store %s", canonical_domain, store.id)
        self._schedule_sync(store.id)
        return backup_store

    async def remove_backup_store(self, store: Store, backup_store_id: UUID) -> None:
        """Delete a backup store together with all of its product mappings."""
        backup_store = await self.get_backup_store(store.id, backup_store_id)
        await self.db.delete(backup_store)
        await self.db.commit()
        logger.info("Removed backup store %s for store %s", backup_store.shop_domain, store.id)

    async def toggle_backup_store(
        self,
        store: Store,
        backup_store_id: UUID,
        enabled: bool,
    ) -> BackupStore:
        """Enable or disable a backup store. Its mappings are kept either way."""
        backup_store = await self.get_backup_store(store.id, backup_store_id)
        backup_store.enabled = enabled
        await self.db.commit()
        await self.db.refresh(backup_store)
        return backup_store

    async def toggle_multi_store(self, store: Store, enabled: bool) -> bool:
        """Turn checkout failover on or off for a store."""
        query = select(MultiStoreConfig).where(MultiStoreConfig.store_id == store.id)
        config = (await self.db.execute(query)).scalar_one_or_none()

        if config:
            config.enabled = enabled
        else:
            self.db.add(MultiStoreConfig(store_id=store.id, enabled=enabled))

        await self.db.commit()
        state = "enabled" if enabled else "disabled"
        logger.info("Multi-store checkout %s for store %s", state, store.id)
        return enabled

    # === Helpers ===

    async def _lock_store(self, store_id: UUID) -> None:
        query = select(Store.id).where(Store.id == store_id).with_for_update()
        await self.db.execute(query)

    async def _validate_credential(self, domain: str, api_token: str) -> str:
        """Call shop.json with the token and return Shopify's canonical domain."""
        client = ShopifyClient(domain, api_token)
        try:
            shop = await client.get_shop()
        except httpx.HTTPStatusError as e:
            upstream_status = e.response.status_code
            logger.warning("Credential check for %s failed: %s", domain, upstream_status)
            if upstream_status in _REJECTED_CREDENTIAL_STATUSES:
                raise UpstreamError(
                    "Invalid API token or insufficient permissions",
                    upstream_status=upstream_status,
                    status_code=400,
                ) from e
            raise UpstreamError(
                f"Shopify API error: {upstream_status}",
                upstream_status=upstream_status,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Credential check for %s failed: %s", domain, e)
            raise UpstreamError(f"Could not reach {domain}") from e

        return normalize_shop_domain(shop.get("myshopify_domain") or domain)

    def _schedule_sync(self, store_id: UUID) -> None:
        try:
            sync_product_mappings.delay(str(store_id))
        except Exception:
            # Broker unavailable; the merchant can still sync from the dashboard
            logger.warning(
                "Could not queue product mapping sync for store %s", store_id, exc_info=True
            )
