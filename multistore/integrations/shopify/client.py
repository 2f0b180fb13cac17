"""Shopify Admin API client using httpx."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import BaseModel, Field, field_validator

from multistore.core.config import settings

logger = logging.getLogger(__name__)


class CatalogVariant(BaseModel):
    """The parts of a Shopify variant needed for SKU matching."""

    id: str
    sku: str | None = None
    title: str | None = None
    price: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("sku", mode="before")
    @classmethod
    def _blank_sku_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class CatalogProduct(BaseModel):
    """A Shopify product with its variants."""

    title: str = ""
    variants: list[CatalogVariant] = Field(default_factory=list)


class CatalogResult(BaseModel):
    """Outcome of fetching a store's catalog.

    ``error`` is set when the fetch failed, which lets callers tell a store
    that genuinely has no products apart from one that could not be read.
    """

    products: list[CatalogProduct] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.products


class ShopifyClient:
    """Async client for the Shopify Admin REST API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        timeout: float | None = None,
    ) -> None:
        self.shop_domain = shop_domain
        self.base_url = f"https://{shop_domain}/admin/api/{settings.shopify_api_version}"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self.timeout = timeout if timeout is not None else settings.shopify_request_timeout

    async def get_shop(self) -> dict[str, Any]:
        """Fetch shop info. Raises ``httpx.HTTPStatusError`` on a non-2xx reply."""
        async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/shop.json")
            response.raise_for_status()
            shop: dict[str, Any] = response.json().get("shop", {})
            return shop

    async def iter_product_pages(
        self,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield raw product pages, following the Link header cursor.

        Stops after ``max_pages`` pages even if Shopify reports more, so a
        misbehaving upstream cannot make a sync loop forever.
        """
        page_size = page_size or settings.catalog_page_size
        max_pages = max_pages or settings.catalog_max_pages
        url: str | None = f"{self.base_url}/products.json?limit={page_size}"
        pages = 0

        async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
            while url:
                if pages >= max_pages:
                    logger.warning(
                        "Catalog for %s truncated after %d pages",
                        self.shop_domain,
                        max_pages,
                    )
                    return
                response = await client.get(url)
                response.raise_for_status()
                pages += 1
                payload = response.json()
                if not isinstance(payload, dict):
                    raise ValueError(f"Unexpected products payload: {type(payload).__name__}")
                yield payload.get("products") or []

                url = self._get_next_page_url(response)

    async def fetch_catalog(self) -> CatalogResult:
        """Fetch every product and variant.

        Upstream failures are logged and returned as an error result rather
        than raised.
        """
        products: list[CatalogProduct] = []
        try:
            async for page in self.iter_product_pages():
                products.extend(CatalogProduct.model_validate(p) for p in page)
        except httpx.HTTPStatusError as e:
            logger.error(
                "Failed to fetch products from %s: %s",
                self.shop_domain,
                e.response.status_code,
            )
            return CatalogResult(error=f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("Error fetching products from %s: %s", self.shop_domain, e)
            return CatalogResult(error=str(e) or type(e).__name__)
        except ValueError as e:
            # Non-JSON body or a product that does not fit CatalogProduct
            logger.error("Unreadable products response from %s: %s", self.shop_domain, e)
            return CatalogResult(error=f"invalid response: {type(e).__name__}")

        return CatalogResult(products=products)

    async def get_all_products(self) -> list[CatalogProduct]:
        """Fetch all products; an unreadable catalog comes back empty."""
        result = await self.fetch_catalog()
        return result.products

    def _get_next_page_url(self, response: httpx.Response) -> str | None:
        """Extract next page URL from Link header for cursor pagination."""
        link_header = response.headers.get("link", "")
        if not link_header:
            return None

        for part in link_header.split(","):
            if 'rel="next"' in part:
                url: str = part.split(";")[0].strip().strip("<>")
                return url
        return None
