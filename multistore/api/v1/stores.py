"""Primary store onboarding endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from multistore.core.deps import (
    CurrentUser,
    DBSession,
    get_store_for_user,
    get_user_organization_id,
)
from multistore.core.encryption import encrypt_token
from multistore.models.store import Store
from multistore.schemas.store import (
    StoreCreate,
    StoreListResponse,
    StoreResponse,
    StoreUpdate,
)
from multistore.services.domain_service import normalize_shop_domain

router = APIRouter()


@router.get(
    "",
    response_model=StoreListResponse,
    summary="List stores",
    description="List all active stores for the merchant's organization.",
)
async def list_stores(
    user: CurrentUser,
    db: DBSession,
) -> StoreListResponse:
    org_id = get_user_organization_id(user)

    query = (
        select(Store)
        .where(Store.organization_id == org_id, Store.is_active == True)  # noqa: E712
        .order_by(Store.created_at.desc())
    )
    result = await db.execute(query)
    stores = list(result.scalars().all())

    return StoreListResponse(
        items=[StoreResponse.model_validate(store) for store in stores],
        total=len(stores),
    )


@router.post(
    "",
    response_model=StoreResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register store",
    description="Register a primary store for the merchant's organization.",
)
async def create_store(
    data: StoreCreate,
    user: CurrentUser,
    db: DBSession,
) -> StoreResponse:
    org_id = get_user_organization_id(user)

    store = Store(
        organization_id=org_id,
        name=data.name,
        shop_domain=normalize_shop_domain(data.shop_domain),
        api_token=encrypt_token(data.api_token) if data.api_token else None,
    )
    db.add(store)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A store with this domain is already registered",
        )
    await db.refresh(store)

    return StoreResponse.model_validate(store)


@router.get("/{store_id}", response_model=StoreResponse, summary="Get store")
async def get_store(
    store_id: UUID,
    user: CurrentUser,
    db: DBSession,
) -> StoreResponse:
    store = await get_store_for_user(store_id, user, db)
    return StoreResponse.model_validate(store)


@router.patch(
    "/{store_id}",
    response_model=StoreResponse,
    summary="Update store",
    description="Rename a store, rotate its Admin API token or deactivate it.",
)
async def update_store(
    store_id: UUID,
    data: StoreUpdate,
    user: CurrentUser,
    db: DBSession,
) -> StoreResponse:
    store = await get_store_for_user(store_id, user, db)

    update_data = data.model_dump(exclude_unset=True)
    if "api_token" in update_data:
        token = update_data.pop("api_token")
        store.api_token = encrypt_token(token) if token else None
    for field, value in update_data.items():
        setattr(store, field, value)

    await db.commit()
    await db.refresh(store)

    return StoreResponse.model_validate(store)
