"""
Catalog Filter Engine

Filters, sorts and paginates the product catalog in memory. The catalog
is owned by another service and has no index we can query, so every
search pulls the current product list and narrows it here.

Pipeline (fixed order): text -> price min -> price max -> category ->
condition -> sort -> page slice.
"""

import enum
import logging
import math
import random
from dataclasses import dataclass

from catalog_search.exceptions import ValidationError
from catalog_search.schemas.catalog import CategoryCount, PageMetadata, Product, ProductPage
from catalog_search.services.catalog import CatalogSource

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_TEXT_LENGTH = 100
MAX_CATEGORY_LENGTH = 50
MAX_CONDITION_LENGTH = 20


class SortOrder(str, enum.Enum):
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"

    @property
    def direction(self) -> str:
        return "asc" if self is SortOrder.PRICE_ASC else "desc"


def parse_price_range(value: str | None) -> tuple[float | None, float | None]:
    """
    Parse a ``priceRange`` value into inclusive (min, max) bounds.

    Accepted forms: ``"5000-10000"``, ``"5000-"`` (no upper bound) and
    ``"-5000"`` (no lower bound).
    """
    if value is None or not value.strip():
        return None, None

    raw = value.strip()
    if raw.count("-") != 1:
        raise ValidationError("priceRange must look like 'min-max', 'min-' or '-max'", field="priceRange")

    low_raw, high_raw = (part.strip() for part in raw.split("-"))
    if not low_raw and not high_raw:
        raise ValidationError("priceRange needs at least one bound", field="priceRange")

    try:
        low = float(low_raw) if low_raw else None
        high = float(high_raw) if high_raw else None
    except ValueError:
        raise ValidationError(f"priceRange bounds must be numbers, got '{value}'", field="priceRange") from None

    if (low is not None and not math.isfinite(low)) or (high is not None and not math.isfinite(high)):
        raise ValidationError("priceRange bounds must be finite numbers", field="priceRange")
    if low is not None and high is not None and low > high:
        raise ValidationError("priceRange minimum cannot exceed its maximum", field="priceRange")
    return low, high


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class FilterOptions:
    """Recognized search options. Instances are validated on construction."""

    text: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    category: str | None = None
    condition: str | None = None
    sort: SortOrder | None = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        for name in ("text", "category", "condition"):
            object.__setattr__(self, name, _clean(getattr(self, name)))

        errors = []
        if self.text and len(self.text) > MAX_TEXT_LENGTH:
            errors.append(("text", f"text must be at most {MAX_TEXT_LENGTH} characters"))
        if self.category and len(self.category) > MAX_CATEGORY_LENGTH:
            errors.append(("category", f"category must be at most {MAX_CATEGORY_LENGTH} characters"))
        if self.condition and len(self.condition) > MAX_CONDITION_LENGTH:
            errors.append(("condition", f"condition must be at most {MAX_CONDITION_LENGTH} characters"))
        if self.price_min is not None and self.price_min < 0:
            errors.append(("priceMin", "priceMin cannot be negative"))
        if self.price_max is not None and self.price_max < 0:
            errors.append(("priceMax", "priceMax cannot be negative"))
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            errors.append(("priceMin", "priceMin cannot exceed priceMax"))
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            errors.append(("page", "page must be an integer >= 1"))
        if (
            isinstance(self.page_size, bool)
            or not isinstance(self.page_size, int)
            or not 1 <= self.page_size <= MAX_PAGE_SIZE
        ):
            errors.append(("pageSize", f"pageSize must be an integer between 1 and {MAX_PAGE_SIZE}"))
        if self.sort is not None and not isinstance(self.sort, SortOrder):
            try:
                object.__setattr__(self, "sort", SortOrder(self.sort))
            except ValueError:
                allowed = ", ".join(s.value for s in SortOrder)
                errors.append(("sort", f"sort must be one of: {allowed}"))

        if errors:
            fields = [field for field, _ in errors]
            message = "; ".join(msg for _, msg in errors)
            raise ValidationError(
                f"Invalid search options ({', '.join(fields)}): {message}",
                field=fields[0],
                details={"fields": fields},
            )

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    def applied_filters(self) -> dict[str, str | float]:
        """Filters that were actually set, keyed by their public names."""
        filters = {
            "priceMin": self.price_min,
            "priceMax": self.price_max,
            "category": self.category,
            "condition": self.condition,
            "sort": self.sort.value if self.sort else None,
        }
        return {k: v for k, v in filters.items() if v is not None}


def paginate(total: int, page: int, page_size: int) -> PageMetadata:
    total_pages = math.ceil(total / page_size) if total else 0
    return PageMetadata(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


class CatalogFilterEngine:
    """Narrows, orders and pages the current catalog"""

    def __init__(self, source: CatalogSource):
        self.source = source

    @staticmethod
    def filter_products(products: list[Product], options: FilterOptions) -> list[Product]:
        """Apply every narrowing pass and the optional sort. Pure and deterministic."""
        filtered = products

        if options.text:
            needle = options.text.lower()
            filtered = [
                p
                for p in filtered
                if needle in p.title.lower() or needle in p.description.lower() or needle in p.brand.lower()
            ]

        if options.price_min is not None:
            filtered = [p for p in filtered if p.price >= options.price_min]

        if options.price_max is not None:
            filtered = [p for p in filtered if p.price <= options.price_max]

        if options.category:
            category = options.category.lower()
            filtered = [p for p in filtered if p.category.lower() == category]

        if options.condition:
            condition = options.condition.lower()
            filtered = [p for p in filtered if p.condition.lower() == condition]

        if options.sort is SortOrder.PRICE_ASC:
            filtered = sorted(filtered, key=lambda p: p.price)
        elif options.sort is SortOrder.PRICE_DESC:
            filtered = sorted(filtered, key=lambda p: p.price, reverse=True)

        return list(filtered)

    @classmethod
    def apply(cls, products: list[Product], options: FilterOptions) -> ProductPage:
        """Filter, sort and slice out the requested page."""
        filtered = cls.filter_products(products, options)
        start = (options.page - 1) * options.page_size
        page_items = filtered[start:start + options.page_size]
        return ProductPage(products=page_items, metadata=paginate(len(filtered), options.page, options.page_size))

    async def search(self, options: FilterOptions) -> ProductPage:
        """
        Search the current catalog.

        Raises:
            CatalogUnavailableError: the catalog could not be read
        """
        products = await self.source.fetch_products()
        result = self.apply(products, options)
        logger.info(
            f"Page {result.metadata.page}/{result.metadata.total_pages} - "
            f"showing {len(result.products)} of {result.metadata.total} products"
        )
        return result

    async def get_product(self, product_id: str) -> Product | None:
        return await self.source.fetch_product(product_id)

    async def products_by_id(self) -> dict[str, Product]:
        """Index the current catalog by product id (and publication id)."""
        index = {}
        for product in await self.source.fetch_products():
            index.setdefault(product.product_id, product)
            index.setdefault(product.id, product)
        return index

    async def category_counts(self) -> list[CategoryCount]:
        """
        Products per category in the current catalog, sorted by name.

        Categories differing only in case are counted together under the
        first spelling seen.
        """
        names: dict[str, str] = {}
        counts: dict[str, int] = {}
        for product in await self.source.fetch_products():
            key = product.category.lower()
            names.setdefault(key, product.category)
            counts[key] = counts.get(key, 0) + 1

        return [
            CategoryCount(name=names[key], total_products=counts[key])
            for key in sorted(names, key=lambda k: names[k].lower())
        ]

    async def random_sample(self, limit: int) -> tuple[list[Product], int]:
        """Random products from the current catalog plus the catalog size."""
        products = await self.source.fetch_products()
        return random.sample(products, min(limit, len(products))), len(products)
