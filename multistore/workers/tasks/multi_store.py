"""Celery tasks for backup store product mapping maintenance."""

import asyncio
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select

from multistore.core.database import async_session_maker, engine
from multistore.core.exceptions import MultiStoreError, UpstreamError
from multistore.models.store import Store
from multistore.services.product_mapping_service import ProductMappingService
from multistore.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


def _run(coro: Any) -> Any:
    """Run a coroutine on a fresh event loop, then drop pooled DB connections.

    asyncpg connections are bound to the loop that opened them. Each task gets
    its own loop, so connections pooled by the previous task must not be reused.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task(
    name="tasks.multi_store.sync_product_mappings",
    base=BaseTask,
    bind=True,
)
def sync_product_mappings(self: BaseTask, store_id: str) -> dict[str, Any]:  # noqa: ARG001
    """Rebuild product mappings for a store's enabled backup stores."""
    return _run(_sync_product_mappings_async(UUID(store_id)))  # type: ignore[no-any-return]


async def _sync_product_mappings_async(store_id: UUID) -> dict[str, Any]:
    """Async implementation of the product mapping sync."""
    async with async_session_maker() as session:
        query = select(Store).where(Store.id == store_id)
        store = (await session.execute(query)).scalar_one_or_none()
        if not store:
            return {"store_id": str(store_id), "status": "skipped", "reason": "store not found"}

        try:
            result = await ProductMappingService(session).sync_products(store)
        except UpstreamError:
            # Transient; let the base task retry with backoff
            raise
        except MultiStoreError as e:
            logger.warning("Product mapping sync skipped for store %s: %s", store_id, e.message)
            return {"store_id": str(store_id), "status": "skipped", "reason": e.code}

    return {
        "store_id": str(store_id),
        "status": "completed",
        "mappings_created": result.mappings_created,
        "backup_stores_processed": result.backup_stores_processed,
    }

