"""
Catalog Data Sources

The product catalog belongs to the publications service. Products are
fetched fresh on every call and never cached locally.

Two interchangeable sources are provided and one is chosen at startup:

- LiveCatalogSource reads the publications API over HTTP.
- FixtureCatalogSource reads a static JSON fixture for demos and tests.

Publication payload (publications API contract):
{
    "id": "pub-1",
    "productId": "prod-1",
    "title": "...",
    "description": "...",
    "media": [{"url": "...", "order": 0}],
    "product": {"price": 19990, "category": "Electronics", "condition": "new",
                "stock": 3, "brand": "Acme"}
}
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from catalog_search.exceptions import CatalogUnavailableError
from catalog_search.schemas.catalog import Product

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_PRODUCTS_FIXTURE = DATA_DIR / "products_fixture.json"


def normalize_publication(publication: dict[str, Any]) -> Product | None:
    """
    Flatten a publication payload into a Product.

    Publications without product data or missing any required field are
    dropped with a warning.
    """
    if not isinstance(publication, dict):
        logger.warning(f"Dropping malformed publication entry: {publication!r}")
        return None

    publication_id = publication.get("id")
    details = publication.get("product")
    if not isinstance(details, dict):
        logger.warning(f"Dropping publication {publication_id}: no product data")
        return None

    media = sorted(
        (m for m in publication.get("media") or [] if isinstance(m, dict) and m.get("url")),
        key=lambda m: m.get("order", 0),
    )

    try:
        return Product(
            id=str(publication_id) if publication_id is not None else "",
            product_id=str(publication.get("productId") or ""),
            title=publication.get("title") or "",
            description=publication.get("description") or "",
            price=details.get("price"),
            category=details.get("category") or "",
            condition=details.get("condition") or "",
            stock=details.get("stock") or 0,
            brand=details.get("brand") or "",
            media=media,
            image=media[0]["url"] if media else None,
        )
    except PydanticValidationError as e:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]}))
        logger.warning(f"Dropping publication {publication_id}: invalid or missing fields ({fields})")
        return None


def normalize_publications(publications: list[Any]) -> list[Product]:
    products = []
    for publication in publications:
        product = normalize_publication(publication)
        if product is not None:
            products.append(product)
    return products


class CatalogSource(ABC):
    """Where the filter engine gets its products from"""

    @abstractmethod
    async def fetch_products(self) -> list[Product]:
        """Return the full current catalog."""

    @abstractmethod
    async def fetch_product(self, product_id: str) -> Product | None:
        """Return one product by publication id or product id, or None."""


class LiveCatalogSource(CatalogSource):
    """
    Reads publications from the catalog service over HTTP.

    Every call is bounded by ``timeout``; timeouts, transport errors,
    non-2xx responses and unparseable bodies all surface as
    CatalogUnavailableError.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get(self, path: str) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.get(path)
        except httpx.TimeoutException as e:
            raise CatalogUnavailableError(reason=f"Catalog request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise CatalogUnavailableError(reason=f"Catalog request to {path} failed: {e}") from e

    async def fetch_products(self) -> list[Product]:
        response = await self._get("/publications")
        if response.status_code != 200:
            raise CatalogUnavailableError(reason=f"Catalog answered HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise CatalogUnavailableError(reason="Catalog returned a non-JSON body") from e

        data = body if isinstance(body, list) else body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise CatalogUnavailableError(reason="Catalog returned an unexpected payload")

        products = normalize_publications(data)
        logger.info(f"Fetched {len(data)} publications from catalog ({len(products)} usable)")
        return products

    async def fetch_product(self, product_id: str) -> Product | None:
        response = await self._get(f"/publications/{product_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CatalogUnavailableError(reason=f"Catalog answered HTTP {response.status_code}")

        try:
            return normalize_publication(response.json())
        except ValueError as e:
            raise CatalogUnavailableError(reason="Catalog returned a non-JSON body") from e


class FixtureCatalogSource(CatalogSource):
    """Serves products from a static JSON fixture"""

    def __init__(self, path: Path | str = DEFAULT_PRODUCTS_FIXTURE):
        self.path = Path(path)
        self._products: list[Product] | None = None

    def _load(self) -> list[Product]:
        if self._products is None:
            with self.path.open(encoding="utf-8") as f:
                self._products = normalize_publications(json.load(f))
            logger.info(f"Loaded {len(self._products)} fixture products from {self.path.name}")
        return self._products

    async def fetch_products(self) -> list[Product]:
        return list(self._load())

    async def fetch_product(self, product_id: str) -> Product | None:
        for product in self._load():
            if product_id in (product.id, product.product_id):
                return product
        return None

