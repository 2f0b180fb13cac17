"""Product mapping sync: match primary and backup catalogs by SKU."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from cryptography.fernet import InvalidToken
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from multistore.core.config import settings
from multistore.core.encryption import decrypt_token
from multistore.core.exceptions import (
    EmptyPrimaryCatalog,
    NoApiToken,
    NoEnabledBackups,
    UpstreamError,
)
from multistore.integrations.shopify.client import CatalogProduct, CatalogResult, ShopifyClient
from multistore.models.backup_store import BackupStore
from multistore.models.product_mapping import ProductMapping
from multistore.models.store import Store
from multistore.schemas.common import PaginatedResponse
from multistore.schemas.multi_store import BackupSyncReport, ProductMappingResponse, SyncResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimaryVariantRef:
    """Where a SKU lives in the primary store."""

    variant_id: str
    product_title: str


@dataclass(frozen=True)
class BackupTarget:
    """Detached copy of a backup store, safe to use across rollbacks."""

    id: UUID
    shop_domain: str
    api_token: str | None


@dataclass(frozen=True)
class MatchedVariant:
    sku: str
    primary_variant_id: str
    backup_variant_id: str
    primary_product_title: str


def build_sku_index(products: list[CatalogProduct]) -> dict[str, PrimaryVariantRef]:
    """Index primary variants by SKU.

    Variants without a SKU are skipped. When several variants share a SKU
    the last one in catalog order wins.
    """
    index: dict[str, PrimaryVariantRef] = {}
    for product in products:
        for variant in product.variants:
            if variant.sku:
                index[variant.sku] = PrimaryVariantRef(variant.id, product.title)
    return index


def match_backup_variants(
    index: dict[str, PrimaryVariantRef],
    backup_products: list[CatalogProduct],
) -> list[MatchedVariant]:
    """Pair every backup variant whose SKU exists in the primary index.

    Duplicate SKUs in the backup catalog collapse to the last variant, the
    same rule the primary index follows, so each SKU yields one row.
    """
    matches: dict[str, MatchedVariant] = {}
    for product in backup_products:
        for variant in product.variants:
            if not variant.sku:
                continue
            primary = index.get(variant.sku)
            if primary is None:
                continue
            matches[variant.sku] = MatchedVariant(
                sku=variant.sku,
                primary_variant_id=primary.variant_id,
                backup_variant_id=variant.id,
                primary_product_title=primary.product_title,
            )
    return list(matches.values())


class ProductMappingService:
    """Builds and maintains the primary → backup variant mapping table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def sync_products(self, store: Store) -> SyncResult:
        """Rebuild mappings for every enabled backup store of ``store``.

        Backup stores are isolated from each other: an unreadable catalog is
        skipped and a failed write is rolled back and reported, and the
        remaining stores still sync. Rows that no longer match are left in
        place; see ``prune_stale_mappings``.

        Raises:
            NoApiToken: If the primary store has no Admin API token.
            NoEnabledBackups: If no backup store is enabled.
            UpstreamError: If the primary catalog cannot be fetched.
            EmptyPrimaryCatalog: If the primary store has no products.
        """
        try:
            primary_token = decrypt_token(store.api_token)
        except InvalidToken as e:
            raise NoApiToken("Stored API token for the primary store cannot be decrypted") from e
        if not primary_token:
            raise NoApiToken("No API token configured for the primary store")

        backups_stmt = (
            select(BackupStore)
            .where(BackupStore.store_id == store.id, BackupStore.enabled == True)  # noqa: E712
            .order_by(BackupStore.created_at, BackupStore.id)
        )
        targets = [
            BackupTarget(b.id, b.shop_domain, b.api_token)
            for b in (await self.db.execute(backups_stmt)).scalars().all()
        ]
        if not targets:
            raise NoEnabledBackups("No enabled backup stores found")

        logger.info("Fetching products from primary store %s", store.shop_domain)
        primary = await self._fetch_catalog(store.shop_domain, primary_token)
        if not primary.ok:
            raise UpstreamError(
                f"Could not fetch products from primary store: {primary.error}",
            )
        if primary.is_empty:
            raise EmptyPrimaryCatalog("No products found in primary store")

        index = build_sku_index(primary.products)
        logger.info("Found %d SKUs in primary store %s", len(index), store.shop_domain)

        catalogs = await self._fetch_backup_catalogs(targets)

        synced_at = datetime.now(UTC)
        reports: list[BackupSyncReport] = []
        store_id = store.id
        for target, catalog in zip(targets, catalogs, strict=True):
            reports.append(
                await self._sync_backup_store(store_id, target, catalog, index, synced_at)
            )

        total = sum(r.mappings for r in reports if r.status == "synced")
        return SyncResult(
            mappings_created=total,
            primary_store_products=len(index),
            backup_stores_processed=len(targets),
            synced_at=synced_at,
            stores=reports,
        )

    async def prune_stale_mappings(
        self,
        store: Store,
        backup_store_id: UUID | None = None,
    ) -> int:
        """Delete mappings the latest sync of their backup store did not refresh.

        A successful sync stamps the backup store and every row it writes with
        the same ``last_synced_at``. Rows older than their backup store's stamp
        were not matched by that sync, including when it matched nothing.
        """
        epochs_stmt = select(BackupStore.id, BackupStore.last_synced_at).where(
            BackupStore.store_id == store.id,
            BackupStore.last_synced_at.is_not(None),
        )
        if backup_store_id is not None:
            epochs_stmt = epochs_stmt.where(BackupStore.id == backup_store_id)
        epochs = (await self.db.execute(epochs_stmt)).all()

        deleted = 0
        for backup_id, epoch in epochs:
            stmt = delete(ProductMapping).where(
                ProductMapping.store_id == store.id,
                ProductMapping.backup_store_id == backup_id,
                ProductMapping.last_synced_at < epoch,
            )
            result = await self.db.execute(stmt)
            deleted += result.rowcount or 0  # type: ignore[attr-defined]

        await self.db.commit()
        logger.info("Pruned %d stale mappings for store %s", deleted, store.id)
        return deleted

    async def list_mappings(
        self,
        store: Store,
        *,
        backup_store_id: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> PaginatedResponse[ProductMappingResponse]:
        """List persisted mappings for diagnostics."""
        filters: list[Any] = [ProductMapping.store_id == store.id]
        if backup_store_id is not None:
            filters.append(ProductMapping.backup_store_id == backup_store_id)

        count_stmt = select(func.count()).select_from(ProductMapping).where(*filters)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(ProductMapping)
            .where(*filters)
            .order_by(ProductMapping.sku, ProductMapping.backup_store_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        mappings = list((await self.db.execute(stmt)).scalars().all())

        return PaginatedResponse[ProductMappingResponse](
            items=[ProductMappingResponse.model_validate(m) for m in mappings],
            total=total,
            page=page,
            page_size=page_size,
            pages=(total + page_size - 1) // page_size,
        )

    # === Helpers ===

    async def _fetch_catalog(self, shop_domain: str, access_token: str) -> CatalogResult:
        """Fetch a catalog within the configured deadline."""
        client = ShopifyClient(shop_domain, access_token)
        try:
            async with asyncio.timeout(settings.catalog_fetch_deadline):
                return await client.fetch_catalog()
        except TimeoutError:
            logger.error(
                "Timed out fetching products from %s after %ss",
                shop_domain,
                settings.catalog_fetch_deadline,
            )
            return CatalogResult(error="timeout")

    async def _fetch_backup_catalogs(self, targets: list[BackupTarget]) -> list[CatalogResult]:
        """Fetch backup catalogs with at most ``sync_concurrency`` in flight."""
        semaphore = asyncio.Semaphore(max(1, settings.sync_concurrency))

        async def _fetch(target: BackupTarget) -> CatalogResult:
            async with semaphore:
                logger.info("Fetching products from backup store %s", target.shop_domain)
                try:
                    token = decrypt_token(target.api_token)
                except InvalidToken:
                    logger.error("Stored API token for %s cannot be decrypted", target.shop_domain)
                    return CatalogResult(error="undecryptable API token")
                if not token:
                    return CatalogResult(error="missing API token")
                try:
                    return await self._fetch_catalog(target.shop_domain, token)
                except Exception as e:
                    # One broken backup store must not abort the others
                    logger.exception(
                        "Unexpected error fetching products from %s", target.shop_domain
                    )
                    return CatalogResult(error=f"unexpected error: {type(e).__name__}")

        return list(await asyncio.gather(*(_fetch(t) for t in targets)))

    async def _sync_backup_store(
        self,
        store_id: UUID,
        target: BackupTarget,
        catalog: CatalogResult,
        index: dict[str, PrimaryVariantRef],
        synced_at: datetime,
    ) -> BackupSyncReport:
        """Upsert one backup store's matches in a single transaction."""
        report = BackupSyncReport(
            backup_store_id=target.id,
            shop_domain=target.shop_domain,
            status="skipped",
        )

        if not catalog.ok:
            report.reason = catalog.error
            return report
        if catalog.is_empty:
            logger.info("No products in backup store %s, skipping", target.shop_domain)
            report.reason = "no products"
            return report

        matches = match_backup_variants(index, catalog.products)
        logger.info("Found %d matching SKUs for %s", len(matches), target.shop_domain)

        rows = [
            {
                "store_id": store_id,
                "backup_store_id": target.id,
                "sku": m.sku,
                "primary_variant_id": m.primary_variant_id,
                "backup_variant_id": m.backup_variant_id,
                "primary_product_title": m.primary_product_title,
                "last_synced_at": synced_at,
            }
            for m in matches
        ]

        try:
            await self._upsert_mappings(rows)
            await self.db.execute(
                update(BackupStore)
                .where(BackupStore.id == target.id)
                .values(last_synced_at=synced_at)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Error upserting mappings for %s", target.shop_domain)
            report.status = "failed"
            report.reason = str(e)[:500]
            return report

        report.status = "synced"
        report.mappings = len(rows)
        return report

    async def _upsert_mappings(self, rows: list[dict[str, Any]]) -> None:
        batch_size = settings.mapping_upsert_batch_size
        for i in range(0, len(rows), batch_size):
            chunk = rows[i : i + batch_size]
            stmt = pg_insert(ProductMapping).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=["store_id", "backup_store_id", "sku"],
                set_={
                    "primary_variant_id": stmt.excluded.primary_variant_id,
                    "backup_variant_id": stmt.excluded.backup_variant_id,
                    "primary_product_title": stmt.excluded.primary_product_title,
                    "last_synced_at": stmt.excluded.last_synced_at,
                    "updated_at": func.now(),
                },
            )
            await self.db.execute(stmt)
