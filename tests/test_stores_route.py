"""Tests for primary store onboarding endpoints.

Covers:
- POST /api/v1/stores (register store)
- GET /api/v1/stores (list stores)
- GET /api/v1/stores/{store_id} (get store)
- PATCH /api/v1/stores/{store_id} (update store, rotate token)

Auth enforcement is tested in test_auth.py.
"""

import uuid
from collections.abc import Callable
from typing import Any

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from multistore.core.encryption import decrypt_token
from multistore.models.store import Store
from tests.conftest import OTHER_ORG_ID, PRIMARY_SHOP, TEST_ORG_ID


async def _reload(db: AsyncSession, store_id: uuid.UUID) -> Store:
    stmt = select(Store).where(Store.id == store_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


# ---------------------------------------------------------------------------
# POST /api/v1/stores (create)
# ---------------------------------------------------------------------------


class TestCreateStore:
    """Tests for registering a primary store."""

    async def test_create_store_success(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        """Creating a store returns 201 with the full response shape."""
        response = await client.post(
            "/api/v1/stores",
            json={
                "name": "My Store",
                "shop_domain": "https://My-Store.myshopify.com/",
                "api_token": "shpat_primary",
            },
        )
        assert response.status_code == 201

        data = response.json()
        assert data["name"] == "My Store"
        assert data["shop_domain"] == "my-store.myshopify.com"
        assert data["has_api_token"] is True
        assert data["is_active"] is True
        assert data["organization_id"] == TEST_ORG_ID
        assert "api_token" not in data
        assert uuid.UUID(data["id"])
        assert data["created_at"] is not None

        saved = await _reload(db_session, uuid.UUID(data["id"]))
        assert decrypt_token(saved.api_token) == "shpat_primary"

    async def test_create_store_without_token(self, client: AsyncClient) -> None:
        """The token can be supplied later."""
        response = await client.post(
            "/api/v1/stores",
            json={"name": "Minimal Store", "shop_domain": "minimal.myshopify.com"},
        )
        assert response.status_code == 201
        assert response.json()["has_api_token"] is False

    async def test_duplicate_domain_returns_409(
        self, client: AsyncClient, store: Store  # noqa: ARG002
    ) -> None:
        response = await client.post(
            "/api/v1/stores",
            json={"name": "Copy", "shop_domain": PRIMARY_SHOP.upper()},
        )
        assert response.status_code == 409

    async def test_invalid_domain_returns_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/stores",
            json={"name": "Local", "shop_domain": "localhost"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    async def test_create_store_missing_fields_returns_422(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/stores", json={"name": "No domain"})
        assert response.status_code == 422

    async def test_create_store_empty_name_returns_422(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/stores", json={"name": "", "shop_domain": "x.myshopify.com"}
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# GET /api/v1/stores (list)
# ---------------------------------------------------------------------------


class TestListStores:
    """Tests for listing stores."""

    async def test_list_stores_returns_own_stores(
        self,
        client: AsyncClient,
        store: Store,
        other_store: Store,  # noqa: ARG002
    ) -> None:
        """Only stores of the caller's organization are listed."""
        response = await client.get("/api/v1/stores")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(store.id)

    async def test_list_stores_excludes_inactive(
        self, client: AsyncClient, store_factory: Callable[..., Any]
    ) -> None:
        await store_factory(shop_domain="paused.myshopify.com", is_active=False)

        response = await client.get("/api/v1/stores")

        assert response.json()["total"] == 0

    async def test_list_stores_empty_org(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/stores")
        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0}


# ---------------------------------------------------------------------------
# GET /api/v1/stores/{store_id}
# ---------------------------------------------------------------------------


class TestGetStore:
    """Tests for fetching one store."""

    async def test_get_store_success(self, client: AsyncClient, store: Store) -> None:
        response = await client.get(f"/api/v1/stores/{store.id}")
        assert response.status_code == 200
        assert response.json()["shop_domain"] == PRIMARY_SHOP

    async def test_get_nonexistent_store_returns_404(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/v1/stores/{uuid.uuid4()}")
        assert response.status_code == 404

    async def test_get_other_org_store_returns_404(
        self, client: AsyncClient, other_store: Store
    ) -> None:
        assert other_store.organization_id == OTHER_ORG_ID
        response = await client.get(f"/api/v1/stores/{other_store.id}")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# PATCH /api/v1/stores/{store_id}
# ---------------------------------------------------------------------------


class TestUpdateStore:
    """Tests for updating a store."""

    async def test_update_store_name(self, client: AsyncClient, store: Store) -> None:
        """Partial update: only name changes."""
        response = await client.patch(
            f"/api/v1/stores/{store.id}",
            json={"name": "Renamed Store"},
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed Store"
        assert response.json()["has_api_token"] is True

    async def test_rotate_api_token(
        self, client: AsyncClient, db_session: AsyncSession, store: Store
    ) -> None:
        response = await client.patch(
            f"/api/v1/stores/{store.id}",
            json={"api_token": "shpat_rotated"},
        )
        assert response.status_code == 200

        saved = await _reload(db_session, store.id)
        assert decrypt_token(saved.api_token) == "shpat_rotated"

    async def test_clear_api_token(self, client: AsyncClient, store: Store) -> None:
        response = await client.patch(f"/api/v1/stores/{store.id}", json={"api_token": None})
        assert response.status_code == 200
        assert response.json()["has_api_token"] is False

    async def test_deactivate_store(self, client: AsyncClient, store: Store) -> None:
        response = await client.patch(f"/api/v1/stores/{store.id}", json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    async def test_update_store_nonexistent_returns_404(self, client: AsyncClient) -> None:
        response = await client.patch(
            f"/api/v1/stores/{uuid.uuid4()}",
            json={"name": "Ghost"},
        )
        assert response.status_code == 404
