"""
Search Service

Runs catalog searches and records them, serves suggestions, and manages
owner-scoped search history and product clicks.

Recording rules:
- A search query record is written for every search with non-empty text.
- A history entry is written only when the text is non-empty, an owner is
  known and the returned page has at least one product.

Filter-only searches (no text) are browsing, not searching, and record
nothing. Recording failures never fail the search itself.
"""

import logging
import time
from datetime import datetime

from catalog_search.exceptions import NotFoundOrForbiddenError, ValidationError
from catalog_search.models.click import Click
from catalog_search.models.search_history import SearchHistory
from catalog_search.models.search_query import SearchQuery
from catalog_search.policies import apply_policy
from catalog_search.schemas.catalog import ProductPage
from catalog_search.schemas.search import Suggestion
from catalog_search.services.filter_engine import CatalogFilterEngine, FilterOptions
from catalog_search.services.session_registry import is_anonymous_owner
from catalog_search.services.stores import (
    CLICKS_BY_OWNER_LIMIT,
    CLICKS_BY_PRODUCT_LIMIT,
    HISTORY_LIMIT,
    QUERY_EXPORT_LIMIT,
    SUGGESTION_LIMIT,
    ClickStore,
    HistoryStore,
    QueryStore,
)

logger = logging.getLogger(__name__)

MIN_MATCH_PREFIX = 2


def should_record_query(text: str | None) -> bool:
    """Every search with real text is counted for analytics, whoever runs it."""
    return bool(text and text.strip())


def should_record_history(text: str | None, owner_id: str | None, result_count: int) -> bool:
    """History keeps only text searches by a known owner that found something."""
    return should_record_query(text) and bool(owner_id) and result_count > 0


class SearchService:
    """Service for catalog search and per-owner search history"""

    def __init__(
        self,
        engine: CatalogFilterEngine,
        history_store: HistoryStore,
        query_store: QueryStore,
        click_store: ClickStore,
    ):
        self.engine = engine
        self.history_store = history_store
        self.query_store = query_store
        self.click_store = click_store

    # ========================================================================
    # Search
    # ========================================================================

    async def search(self, options: FilterOptions, owner_id: str | None = None) -> ProductPage:
        """
        Search the catalog and record the search.

        Args:
            options: Validated filter options
            owner_id: Owner to attribute history to, if any

        Returns:
            The requested page with pagination metadata

        Raises:
            CatalogUnavailableError: the catalog could not be read
        """
        start_time = time.perf_counter()
        result = await apply_policy("search.catalog", self.engine.search(options))

        if should_record_query(options.text):
            await apply_policy("search.record_query", self.query_store.append(SearchQuery(text=options.text)))

        if should_record_history(options.text, owner_id, len(result.products)):
            entry = SearchHistory(
                owner_id=owner_id,
                query_text=options.text,
                filters=options.applied_filters(),
                sort_field="price" if options.sort else None,
                sort_direction=options.sort.direction if options.sort else None,
                page=options.page,
                page_size=options.page_size,
                result_ids=[p.product_id for p in result.products],
            )
            await apply_policy("search.record_history", self.history_store.append(entry))

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Search completed in {execution_time_ms:.2f}ms ({result.metadata.total} results)")
        return result

    async def suggestions(self, text: str | None, owner_id: str | None = None) -> list[Suggestion]:
        """
        Get up to five suggestions.

        The owner's own history comes first (matching ``text`` when given,
        otherwise the most recent searches); the rest is padded with catalog
        titles matching ``text``.
        """
        text = (text or "").strip()
        suggestions: list[Suggestion] = []

        if owner_id:
            entries = await apply_policy(
                "suggestions.history",
                self.history_store.find_by_owner(owner_id, limit=SUGGESTION_LIMIT, text_contains=text or None),
                fallback=[],
            )
            suggestions.extend(
                Suggestion(text=e.query_text, kind="history", filters=e.filters or {}, id=e.id) for e in entries
            )

        missing = SUGGESTION_LIMIT - len(suggestions)
        if len(text) >= MIN_MATCH_PREFIX and missing > 0:
            page = await apply_policy(
                "suggestions.catalog",
                self.engine.search(FilterOptions(text=text, page_size=missing)),
            )
            if page is not None:
                suggestions.extend(Suggestion(text=p.title, kind="match") for p in page.products)

        return suggestions[:SUGGESTION_LIMIT]

    # ========================================================================
    # History
    # ========================================================================

    async def history(self, owner_id: str, limit: int = HISTORY_LIMIT) -> list[SearchHistory]:
        return await apply_policy("history.list", self.history_store.find_by_owner(owner_id, limit=limit))

    async def delete_history_entry(self, entry_id: int, owner_id: str) -> None:
        """
        Delete one history entry owned by ``owner_id``.

        Raises:
            NotFoundOrForbiddenError: the entry does not exist or belongs to another owner
        """
        deleted = await apply_policy("history.delete_one", self.history_store.delete_one(entry_id, owner_id))
        if not deleted:
            raise NotFoundOrForbiddenError(resource_id=entry_id)

    async def save_history_entry(
        self,
        owner_id: str,
        query_text: str,
        filters: dict | None = None,
        result_ids: list[str] | None = None,
    ) -> SearchHistory:
        """
        Save a search the client ran or browsed on its own, such as a
        category browse recorded under the category-browse placeholder.

        Raises:
            ValidationError: the query text is blank
        """
        if not should_record_query(query_text):
            raise ValidationError("queryText must not be blank", field="queryText")

        entry = SearchHistory(
            owner_id=owner_id,
            query_text=query_text.strip(),
            filters=filters or {},
            result_ids=result_ids or [],
        )
        return await apply_policy("history.save", self.history_store.append(entry))

    async def clear_history(self, owner_id: str) -> int:
        return await apply_policy("history.clear", self.history_store.delete_by_owner(owner_id))

    # ========================================================================
    # Clicks
    # ========================================================================

    async def record_click(self, product_id: str, product_name: str, owner_id: str | None = None) -> Click:
        click = await apply_policy(
            "clicks.record",
            self.click_store.append(Click(product_id=product_id, product_name=product_name, owner_id=owner_id)),
        )
        kind = "temporary" if owner_id is None or is_anonymous_owner(owner_id) else "permanent"
        logger.info(f"Recorded {kind} click on {product_name} ({product_id})")
        return click

    async def clicks_for_product(self, product_id: str, limit: int = CLICKS_BY_PRODUCT_LIMIT) -> list[Click]:
        return await apply_policy("clicks.by_product", self.click_store.find_by_product(product_id, limit=limit))

    async def clicks_for_owner(self, owner_id: str, limit: int = CLICKS_BY_OWNER_LIMIT) -> list[Click]:
        return await apply_policy("clicks.by_owner", self.click_store.find_by_owner(owner_id, limit=limit))

    # ========================================================================
    # Query export
    # ========================================================================

    async def export_queries(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = QUERY_EXPORT_LIMIT,
    ) -> list[SearchQuery]:
        return await apply_policy("analytics.export", self.query_store.find_between(since, until, limit=limit))
