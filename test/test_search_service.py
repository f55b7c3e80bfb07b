"""
Tests for the search service

Tests search recording rules, suggestions, history ownership and clicks.
"""

import asyncio

import pytest

from catalog_search.exceptions import CatalogUnavailableError, NotFoundOrForbiddenError
from catalog_search.models.search_history import SearchHistory
from catalog_search.services.filter_engine import CatalogFilterEngine, FilterOptions
from catalog_search.services.search_service import SearchService, should_record_history, should_record_query
from catalog_search.services.session_registry import anonymous_owner_id
from catalog_search.services.stores import ClickStore, HistoryStore, QueryStore
from utils.mock_utils import UnavailableCatalogSource, broken_session_factory


class HangingQueryStore(QueryStore):
    """Query store whose database never answers"""

    async def append(self, record):
        async def work(db):
            await asyncio.sleep(10)

        return await self._run("queries.append", work)


class TestRecordingRules:
    @pytest.mark.parametrize(("text", "expected"), [("laptop", True), ("", False), ("   ", False), (None, False)])
    def test_should_record_query(self, text, expected):
        assert should_record_query(text) is expected

    def test_should_record_history_needs_owner_and_results(self):
        assert should_record_history("laptop", "user_001", 3)
        assert not should_record_history("laptop", None, 3)
        assert not should_record_history("laptop", "user_001", 0)
        assert not should_record_history("", "user_001", 3)


class TestSearch:
    """Catalog search with recording side effects"""

    @pytest.mark.asyncio
    async def test_anonymous_laptop_search_records_query_and_history(
        self, search_service, registry, lifecycle, history_store, query_store
    ):
        session_id = registry.resolve(None).session_id
        owner_id = anonymous_owner_id(session_id)

        result = await search_service.search(FilterOptions(text="laptop"), owner_id=owner_id)

        assert result.metadata.total == 3
        assert len(await query_store.find_between()) == 1
        entries = await history_store.find_by_owner(owner_id)
        assert len(entries) == 1
        assert entries[0].query_text == "laptop"
        assert entries[0].result_ids == [p.product_id for p in result.products]

        await lifecycle.close_session(session_id)

        assert await history_store.find_by_owner(owner_id) == []
        # The owner-less query record outlives the session
        assert len(await query_store.find_between()) == 1

    @pytest.mark.asyncio
    async def test_history_keeps_filters_and_sort(self, search_service, history_store):
        options = FilterOptions(text="laptop", category="Electronics", price_max=1500, sort="price-desc", page_size=2)

        await search_service.search(options, owner_id="user_001")

        entry = (await history_store.find_by_owner("user_001"))[0]
        assert entry.filters == {"priceMax": 1500, "category": "Electronics", "sort": "price-desc"}
        assert entry.sort_field == "price"
        assert entry.sort_direction == "desc"
        assert entry.page_size == 2

    @pytest.mark.asyncio
    async def test_filter_only_search_records_nothing(self, search_service, history_store, query_store):
        result = await search_service.search(FilterOptions(category="Electronics"), owner_id="user_001")

        assert result.metadata.total > 0
        assert await query_store.find_between() == []
        assert await history_store.find_by_owner("user_001") == []

    @pytest.mark.asyncio
    async def test_search_without_results_records_query_only(self, search_service, history_store, query_store):
        result = await search_service.search(FilterOptions(text="submarine"), owner_id="user_001")

        assert result.metadata.total == 0
        assert [q.text for q in await query_store.find_between()] == ["submarine"]
        assert await history_store.find_by_owner("user_001") == []

    @pytest.mark.asyncio
    async def test_search_without_owner_records_query_only(self, search_service, query_store):
        await search_service.search(FilterOptions(text="laptop"))

        assert len(await query_store.find_between()) == 1

    @pytest.mark.asyncio
    async def test_store_outage_degrades_but_search_succeeds(self, filter_engine, caplog):
        service = SearchService(
            filter_engine,
            HistoryStore(broken_session_factory),
            QueryStore(broken_session_factory),
            ClickStore(broken_session_factory),
        )

        result = await service.search(FilterOptions(text="laptop"), owner_id="user_001")

        assert result.metadata.total == 3
        assert "[search.record_query] failed, continuing degraded" in caplog.text
        assert "[search.record_history] failed, continuing degraded" in caplog.text

    @pytest.mark.asyncio
    async def test_hanging_store_delays_search_by_at_most_the_timeout(
        self, filter_engine, session_factory, history_store, click_store, caplog
    ):
        service = SearchService(
            filter_engine, history_store, HangingQueryStore(session_factory, timeout=0.05), click_store
        )

        result = await asyncio.wait_for(service.search(FilterOptions(text="laptop"), owner_id="user_001"), timeout=1)

        assert result.metadata.total == 3
        assert "Store call 'queries.append' timed out after 0.05s" in caplog.text
        # The history write ran inline after the query write gave up
        assert len(await history_store.find_by_owner("user_001")) == 1

    @pytest.mark.asyncio
    async def test_catalog_outage_fails_the_search(self, history_store, query_store, click_store):
        service = SearchService(
            CatalogFilterEngine(UnavailableCatalogSource()), history_store, query_store, click_store
        )

        with pytest.raises(CatalogUnavailableError):
            await service.search(FilterOptions(text="laptop"), owner_id="user_001")

        assert await query_store.find_between() == []


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_history_first_then_catalog_matches(self, search_service, history_store):
        await history_store.append(SearchHistory(owner_id="user_001", query_text="laptop stand", result_ids=[]))

        suggestions = await search_service.suggestions("lap", owner_id="user_001")

        assert [s.kind for s in suggestions] == ["history", "match", "match", "match"]
        assert suggestions[0].text == "laptop stand"
        assert suggestions[0].id is not None
        assert {s.text for s in suggestions[1:]} == {"Laptop Pro 14", "Gaming Laptop X17", "Refurbished Laptop 13"}

    @pytest.mark.asyncio
    async def test_suggestions_are_capped_at_five(self, search_service, history_store):
        for i in range(4):
            await history_store.append(SearchHistory(owner_id="user_001", query_text=f"laptop {i}", result_ids=[]))

        suggestions = await search_service.suggestions("laptop", owner_id="user_001")

        assert len(suggestions) == 5
        assert [s.kind for s in suggestions] == ["history"] * 4 + ["match"]

    @pytest.mark.asyncio
    async def test_blank_text_returns_recent_history_only(self, search_service, history_store):
        await history_store.append(SearchHistory(owner_id="user_001", query_text="mouse", result_ids=[]))

        suggestions = await search_service.suggestions("", owner_id="user_001")

        assert [(s.text, s.kind) for s in suggestions] == [("mouse", "history")]

    @pytest.mark.asyncio
    async def test_one_character_does_not_match_catalog(self, search_service):
        assert await search_service.suggestions("l") == []

    @pytest.mark.asyncio
    async def test_catalog_outage_degrades_to_history(self, history_store, query_store, click_store):
        service = SearchService(
            CatalogFilterEngine(UnavailableCatalogSource()), history_store, query_store, click_store
        )
        await history_store.append(SearchHistory(owner_id="user_001", query_text="laptop", result_ids=[]))

        suggestions = await service.suggestions("laptop", owner_id="user_001")

        assert [s.text for s in suggestions] == ["laptop"]


class TestHistory:
    """Owner-scoped history management"""

    @pytest.mark.asyncio
    async def test_delete_someone_elses_entry_is_not_found(self, search_service, history_store):
        entry = await history_store.append(SearchHistory(owner_id="user_001", query_text="laptop", result_ids=[]))

        with pytest.raises(NotFoundOrForbiddenError) as exc_info:
            await search_service.delete_history_entry(entry.id, "user_002")

        assert exc_info.value.status_code == 404
        assert len(await history_store.find_by_owner("user_001")) == 1

    @pytest.mark.asyncio
    async def test_delete_own_entry(self, search_service, history_store):
        entry = await history_store.append(SearchHistory(owner_id="user_001", query_text="laptop", result_ids=[]))

        await search_service.delete_history_entry(entry.id, "user_001")

        assert await search_service.history("user_001") == []

    @pytest.mark.asyncio
    async def test_clear_history_counts(self, search_service, history_store):
        for text in ("a", "b"):
            await history_store.append(SearchHistory(owner_id="user_001", query_text=text, result_ids=[]))

        assert await search_service.clear_history("user_001") == 2


class TestClicks:
    @pytest.mark.asyncio
    async def test_record_and_read_clicks(self, search_service):
        await search_service.record_click("prod-001", "Laptop Pro 14", owner_id="user_001")
        await search_service.record_click("prod-001", "Laptop Pro 14")

        assert len(await search_service.clicks_for_product("prod-001")) == 2
        assert len(await search_service.clicks_for_owner("user_001")) == 1

    @pytest.mark.asyncio
    async def test_click_recording_fails_loudly(self, filter_engine):
        from catalog_search.exceptions import StoreFailureError

        service = SearchService(
            filter_engine,
            HistoryStore(broken_session_factory),
            QueryStore(broken_session_factory),
            ClickStore(broken_session_factory),
        )

        with pytest.raises(StoreFailureError):
            await service.record_click("prod-001", "Laptop Pro 14")
