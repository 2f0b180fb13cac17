"""Checkout routing: send a cart to a backup store via a cart permalink."""

import logging
import random
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from multistore.core.config import settings
from multistore.core.exceptions import UnmappedItems, ValidationError
from multistore.models.backup_store import BackupStore
from multistore.models.multi_store_config import MultiStoreConfig
from multistore.models.product_mapping import ProductMapping
from multistore.models.store import Store
from multistore.schemas.multi_store import CartItem, RouteResult
from multistore.services.domain_service import normalize_shop_domain

logger = logging.getLogger(__name__)


# === Backup selection ===


class BackupSelector(Protocol):
    """Picks the backup store a checkout is sent to."""

    def select(self, candidates: Sequence[BackupStore]) -> BackupStore: ...


class RandomBackupSelector:
    """Uniform random choice; spreads checkouts across all enabled backups."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def select(self, candidates: Sequence[BackupStore]) -> BackupStore:
        return self._rng.choice(candidates)


class OrderedBackupSelector:
    """Always the earliest-added enabled backup store."""

    def select(self, candidates: Sequence[BackupStore]) -> BackupStore:
        return candidates[0]


_SELECTORS: dict[str, type[RandomBackupSelector] | type[OrderedBackupSelector]] = {
    "random": RandomBackupSelector,
    "ordered": OrderedBackupSelector,
}


def get_backup_selector(name: str | None = None) -> BackupSelector:
    """Build the selector named by ``settings.backup_selector``."""
    name = name or settings.backup_selector
    try:
        return _SELECTORS[name]()
    except KeyError:
        raise ValueError(f"Unknown backup selector: {name}") from None


# === Permalinks ===


def build_cart_permalink(shop_domain: str, lines: Sequence[tuple[str, int]]) -> str:
    """Build ``https://{domain}/cart/{variant}:{qty},...`` in the given order."""
    joined = ",".join(f"{variant_id}:{quantity}" for variant_id, quantity in lines)
    return f"https://{shop_domain}/cart/{joined}"


# === Router ===


class CheckoutRouter:
    """Decides whether a cart goes to a backup store, and builds its URL.

    Reads only persisted state. Each outcome other than a redirect is a
    normal ``RouteResult`` so the storefront falls back to its own checkout.
    """

    def __init__(self, db: AsyncSession, selector: BackupSelector | None = None) -> None:
        self.db = db
        self.selector = selector or get_backup_selector()

    async def route(self, shop_domain: str, cart_items: Sequence[CartItem]) -> RouteResult:
        store = await self._get_store(shop_domain)
        if store is None:
            return RouteResult(redirect=False, reason="store_not_found", message="Store not found")

        if not await self._is_enabled(store):
            return RouteResult(
                redirect=False,
                reason="multi_store_disabled",
                message="Multi-store not enabled",
            )

        candidates = await self._enabled_backups(store)
        if not candidates:
            return RouteResult(
                redirect=False,
                reason="no_backup_stores",
                message="No backup stores available",
            )

        selected = self.selector.select(candidates)

        variant_map = await self._load_variant_map(store, selected, cart_items)
        unmapped = [item.variant_id for item in cart_items if item.variant_id not in variant_map]
        if unmapped:
            error = UnmappedItems(unmapped)
            logger.info(
                "Cannot route cart for %s to %s: %s",
                store.shop_domain,
                selected.shop_domain,
                error.message,
            )
            return RouteResult(
                redirect=False,
                reason="unmapped_items",
                message="Could not map cart items to backup store",
                unmapped_variant_ids=error.variant_ids,
            )

        lines = [(variant_map[item.variant_id], item.quantity) for item in cart_items]
        checkout_url = build_cart_permalink(selected.shop_domain, lines)
        logger.info("Redirecting checkout for %s to %s", store.shop_domain, selected.shop_domain)

        return RouteResult(
            redirect=True,
            checkout_url=checkout_url,
            backup_store=selected.shop_domain,
            items_mapped=len(lines),
        )

    async def _get_store(self, shop_domain: str) -> Store | None:
        try:
            domain = normalize_shop_domain(shop_domain)
        except ValidationError:
            return None

        query = select(Store).where(
            Store.shop_domain == domain,
            Store.is_active == True,  # noqa: E712
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _is_enabled(self, store: Store) -> bool:
        query = select(MultiStoreConfig.enabled).where(MultiStoreConfig.store_id == store.id)
        return bool((await self.db.execute(query)).scalar_one_or_none())

    async def _enabled_backups(self, store: Store) -> list[BackupStore]:
        query = (
            select(BackupStore)
            .where(BackupStore.store_id == store.id, BackupStore.enabled == True)  # noqa: E712
            .order_by(BackupStore.created_at, BackupStore.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _load_variant_map(
        self,
        store: Store,
        backup_store: BackupStore,
        cart_items: Sequence[CartItem],
    ) -> dict[str, str]:
        """Primary variant id → backup variant id for the cart's variants."""
        variant_ids = {item.variant_id for item in cart_items}
        query = (
            select(ProductMapping.primary_variant_id, ProductMapping.backup_variant_id)
            .where(
                ProductMapping.store_id == store.id,
                ProductMapping.backup_store_id == backup_store.id,
                ProductMapping.primary_variant_id.in_(variant_ids),
            )
            # Newest row wins if a variant's SKU changed and an old row lingers
            .order_by(ProductMapping.last_synced_at)
        )
        rows = (await self.db.execute(query)).all()
        return {row.primary_variant_id: row.backup_variant_id for row in rows}
