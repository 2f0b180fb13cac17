"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from multistore.core.auth import CurrentUser, get_current_user
from multistore.core.database import get_async_session
from multistore.models.store import Store


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session so tests can override one dependency."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_user_organization_id(user: dict[str, Any]) -> str:
    """Extract the merchant's organization ID from the session payload."""
    org_id = user.get("activeOrganizationId")
    if not org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No active organization. Please select or create an organization.",
        )
    return str(org_id)


async def get_store_for_user(
    store_id: UUID,
    user: dict[str, Any],
    db: AsyncSession,
) -> Store:
    """Get a store by ID, verifying it belongs to the merchant's organization."""
    org_id = get_user_organization_id(user)

    query = select(Store).where(
        Store.id == store_id,
        Store.organization_id == org_id,
    )
    result = await db.execute(query)
    store = result.scalar_one_or_none()

    if not store:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Store not found or access denied",
        )

    return store


async def get_current_store(
    user: CurrentUser,
    db: DBSession,
    store_id: UUID = Query(..., description="Primary store ID"),
) -> Store:
    """Resolve the ``store_id`` query parameter to a store the merchant owns."""
    return await get_store_for_user(store_id, user, db)


CurrentStore = Annotated[Store, Depends(get_current_store)]


__all__ = [
    "CurrentStore",
    "CurrentUser",
    "DBSession",
    "get_current_store",
    "get_current_user",
    "get_db",
    "get_store_for_user",
    "get_user_organization_id",
]
