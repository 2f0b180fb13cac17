"""Pytest configuration and fixtures for the multi-store failover test suite.

Provides:
- Test database with table truncation cleanup per test
- Mock authentication (JWT bypass)
- Disabled rate limiting
- Model factory fixtures for Store, MultiStoreConfig, BackupStore and
  ProductMapping
- Shopify HTTP and Celery mocks
"""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from multistore.core.auth import get_current_user
from multistore.core.config import settings
from multistore.core.database import get_async_session
from multistore.core.deps import get_db
from multistore.core.encryption import encrypt_token
from multistore.core.rate_limit import limiter
from multistore.integrations.shopify.client import CatalogProduct, CatalogResult
from multistore.main import app
from multistore.models.backup_store import BackupStore
from multistore.models.base import Base
from multistore.models.multi_store_config import MultiStoreConfig
from multistore.models.product_mapping import ProductMapping
from multistore.models.store import Store

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_USER_ID = "test-user-id"
TEST_USER_EMAIL = "test@example.com"
TEST_ORG_ID = "test-org-id"
OTHER_ORG_ID = "other-org-id"

PRIMARY_SHOP = "primary.myshopify.com"
BACKUP_SHOP = "backup-1.myshopify.com"
PRIMARY_TOKEN = "shpat_primary_token"
BACKUP_TOKEN = "shpat_backup_token"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Session-scoped engine & table setup
# ---------------------------------------------------------------------------

_test_engine: Any = None
_test_session_factory: Any = None
_base_url = str(settings.database_url)
_TEST_DATABASE_URL = (
    _base_url
    if _base_url.endswith("/multistore_test")
    else _base_url.replace("/multistore", "/multistore_test")
)

# Tables to truncate after each test (reverse dependency order)
_TABLES_TO_TRUNCATE = [
    "product_mappings",
    "backup_stores",
    "multi_store_configs",
    "stores",
]


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def _create_tables() -> AsyncGenerator[None, None]:
    """Create all tables once per test session in the multistore_test database.

    Uses NullPool to avoid asyncpg connection-loop affinity issues with
    starlette's BaseHTTPMiddleware (which spawns sub-tasks).
    """
    global _test_engine, _test_session_factory  # noqa: PLW0603
    _test_engine = create_async_engine(
        _TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    _test_session_factory = async_sessionmaker(
        _test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await _test_engine.dispose()


# ---------------------------------------------------------------------------
# Per-test database session + cleanup
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(_create_tables: None) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and direct service tests.

    Cleanup is handled by the ``_cleanup_tables`` autouse fixture.
    """
    async with _test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(autouse=True)
async def _cleanup_tables() -> AsyncGenerator[None, None]:
    """Truncate all tables after each test to restore a clean state."""
    yield
    if _test_engine is not None:
        async with _test_engine.begin() as conn:
            await conn.execute(text(f"TRUNCATE {', '.join(_TABLES_TO_TRUNCATE)} CASCADE"))


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_user() -> dict[str, Any]:
    """Return the default authenticated test user payload (mimics decoded JWT)."""
    return {
        "sub": TEST_USER_ID,
        "email": TEST_USER_EMAIL,
        "activeOrganizationId": TEST_ORG_ID,
    }


# ---------------------------------------------------------------------------
# Authenticated client (overrides DB and Auth)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,  # noqa: ARG001  # Ensures _create_tables runs
    auth_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated async test client with all dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with _test_session_factory() as s:
            yield s

    async def _override_user() -> dict[str, Any]:
        return auth_user

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_current_user] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Unauthenticated client (overrides DB only, no auth bypass)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def unauthed_client(
    db_session: AsyncSession,  # noqa: ARG001  # Ensures _create_tables runs
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client. Auth is NOT overridden.

    Used for the public checkout endpoint and for 401 checks.
    """

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with _test_session_factory() as s:
            yield s

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Lightweight client (no DB, no auth, for stateless endpoint tests)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def store_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates primary Store instances in the test database."""

    async def _create(
        *,
        name: str = "Primary Store",
        shop_domain: str = PRIMARY_SHOP,
        organization_id: str = TEST_ORG_ID,
        api_token: str | None = PRIMARY_TOKEN,
        is_active: bool = True,
    ) -> Store:
        store = Store(
            organization_id=organization_id,
            name=name,
            shop_domain=shop_domain,
            api_token=encrypt_token(api_token) if api_token else None,
            is_active=is_active,
        )
        db_session.add(store)
        await db_session.commit()
        await db_session.refresh(store)
        return store

    return _create


@pytest.fixture
def multi_store_config_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that sets the failover flag for a store."""

    async def _create(*, store_id: UUID, enabled: bool = True) -> MultiStoreConfig:
        config = MultiStoreConfig(store_id=store_id, enabled=enabled)
        db_session.add(config)
        await db_session.commit()
        await db_session.refresh(config)
        return config

    return _create


@pytest.fixture
def backup_store_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates BackupStore instances with an encrypted token."""

    async def _create(
        *,
        store_id: UUID,
        shop_domain: str = BACKUP_SHOP,
        api_token: str = BACKUP_TOKEN,
        enabled: bool = True,
        created_at: datetime | None = None,
        last_synced_at: datetime | None = None,
    ) -> BackupStore:
        backup_store = BackupStore(
            store_id=store_id,
            shop_domain=shop_domain,
            api_token=encrypt_token(api_token),
            enabled=enabled,
            last_synced_at=last_synced_at,
        )
        if created_at is not None:
            backup_store.created_at = created_at
        db_session.add(backup_store)
        await db_session.commit()
        await db_session.refresh(backup_store)
        return backup_store

    return _create


@pytest.fixture
def mapping_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates ProductMapping rows."""

    async def _create(
        *,
        store_id: UUID,
        backup_store_id: UUID,
        sku: str,
        primary_variant_id: str,
        backup_variant_id: str,
        primary_product_title: str | None = "Test Product",
        last_synced_at: datetime | None = None,
    ) -> ProductMapping:
        mapping = ProductMapping(
            store_id=store_id,
            backup_store_id=backup_store_id,
            sku=sku,
            primary_variant_id=primary_variant_id,
            backup_variant_id=backup_variant_id,
            primary_product_title=primary_product_title,
            last_synced_at=last_synced_at or datetime.now(UTC),
        )
        db_session.add(mapping)
        await db_session.commit()
        await db_session.refresh(mapping)
        return mapping

    return _create


# ---------------------------------------------------------------------------
# Convenience fixtures (pre-built models)
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(store_factory: Callable[..., Any]) -> Store:
    """Primary store owned by the test organization."""
    return await store_factory()


@pytest.fixture
async def other_store(store_factory: Callable[..., Any]) -> Store:
    """Primary store owned by a different organization."""
    return await store_factory(
        name="Other Store",
        shop_domain="other.myshopify.com",
        organization_id=OTHER_ORG_ID,
    )


@pytest.fixture
async def backup_store(
    store: Store,
    backup_store_factory: Callable[..., Any],
) -> BackupStore:
    """Enabled backup store attached to ``store``."""
    return await backup_store_factory(store_id=store.id)


# ---------------------------------------------------------------------------
# Shopify catalog helpers
# ---------------------------------------------------------------------------


def make_product(title: str, variants: list[tuple[int | str, str | None]]) -> dict[str, Any]:
    """Build a raw Shopify product dict from ``(variant_id, sku)`` pairs."""
    return {
        "title": title,
        "variants": [
            {"id": variant_id, "sku": sku, "title": "Default", "price": "10.00"}
            for variant_id, sku in variants
        ],
    }


def make_catalog(*products: dict[str, Any]) -> CatalogResult:
    """Build a successful CatalogResult from raw product dicts."""
    return CatalogResult(products=[CatalogProduct.model_validate(p) for p in products])


@pytest.fixture
def mock_shopify_http() -> Generator[MagicMock, None, None]:
    """Mock httpx.AsyncClient for ShopifyClient unit tests.

    Provides fine-grained control over HTTP responses for testing the client.
    """
    with patch("multistore.integrations.shopify.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client

        mock_get_response = MagicMock()
        mock_get_response.json.return_value = {"products": []}
        mock_get_response.headers = {}
        mock_get_response.raise_for_status = MagicMock()
        mock_get_response.is_success = True

        mock_client.get.return_value = mock_get_response

        yield mock_client


@pytest.fixture
def mock_catalogs() -> Generator[dict[str, CatalogResult | Exception], None, None]:
    """Patch ShopifyClient in the mapping service to serve catalogs by domain.

    Tests fill the returned dict with ``{shop_domain: CatalogResult}``. Domains
    without an entry come back as a failed fetch; an exception value is raised.
    """
    catalogs: dict[str, CatalogResult | Exception] = {}

    def _make_client(shop_domain: str, access_token: str, **_kwargs: Any) -> MagicMock:
        async def _fetch() -> CatalogResult:
            catalog = catalogs.get(shop_domain, CatalogResult(error="HTTP 503"))
            if isinstance(catalog, Exception):
                raise catalog
            return catalog

        instance = MagicMock()
        instance.shop_domain = shop_domain
        instance.access_token = access_token
        instance.fetch_catalog = AsyncMock(side_effect=_fetch)
        return instance

    with patch(
        "multistore.services.product_mapping_service.ShopifyClient",
        side_effect=_make_client,
    ):
        yield catalogs


@pytest.fixture
def mock_credential_check() -> Generator[AsyncMock, None, None]:
    """Patch the shop.json credential check used when adding a backup store.

    By default the token is accepted and Shopify echoes the requested domain.
    """
    with patch("multistore.services.backup_store_service.ShopifyClient") as mock_class:
        requested: list[str] = []

        async def _echo_domain() -> dict[str, Any]:
            return {"myshopify_domain": requested[-1]}

        get_shop = AsyncMock(side_effect=_echo_domain)

        def _make_client(shop_domain: str, access_token: str, **_kwargs: Any) -> MagicMock:
            requested.append(shop_domain)
            instance = MagicMock()
            instance.get_shop = get_shop
            return instance

        mock_class.side_effect = _make_client
        yield get_shop


@pytest.fixture
def mock_sync_task() -> Generator[MagicMock, None, None]:
    """Mock the Celery sync task so adding a backup store never hits a broker."""
    with patch("multistore.services.backup_store_service.sync_product_mappings") as mock_task:
        yield mock_task
