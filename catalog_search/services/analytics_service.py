"""
Analytics Service

Read-only aggregation over recorded searches and clicks: popular
products, popular search terms, daily trends, overall statistics and flat
exports for the reporting system.

Records come from an AnalyticsSource chosen at startup:

- LiveAnalyticsSource aggregates the database tables with SQL.
- FixtureAnalyticsSource aggregates static JSON fixtures in memory.

Nothing here writes. Each aggregation is a single read, so it may lag
concurrent writers but is never internally inconsistent.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_search.exceptions import ValidationError
from catalog_search.models.click import Click
from catalog_search.models.search_history import SearchHistory
from catalog_search.models.search_query import SearchQuery
from catalog_search.policies import apply_policy
from catalog_search.schemas.analytics import (
    ClickExport,
    FacetCount,
    ProductClickCount,
    RecentSearch,
    SearchExport,
    SearchStats,
    TermCount,
    TopProduct,
    TrendPoint,
)
from catalog_search.services.filter_engine import CatalogFilterEngine
from catalog_search.services.session_registry import utcnow
from catalog_search.services.stores import run_store_call

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

# Placeholder text some clients store for category browsing; not a real search term
CATEGORY_BROWSE_SENTINEL = "[category-browse]"
RECENT_SEARCHES_LIMIT = 10

TOP_PRODUCTS_DEFAULT, TOP_PRODUCTS_MAX = 6, 20
TOP_TERMS_DEFAULT, TOP_TERMS_MAX = 10, 50
TRENDS_DEFAULT_DAYS, TRENDS_MAX_DAYS = 7, 90


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (some backends drop the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _bounded(name: str, value: int, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValidationError(f"{name} must be an integer between {low} and {high}", field=name)
    return value


def _facet_counts(values: list[Any]) -> list[FacetCount]:
    counts = Counter(str(v) for v in values if v not in (None, ""))
    return [FacetCount(value=v, count=c) for v, c in sorted(counts.items(), key=lambda item: (-item[1], item[0]))]


def _is_search_term(text: str | None) -> bool:
    return bool(text) and text.strip() != "" and text != CATEGORY_BROWSE_SENTINEL


# ============================================================================
# Record sources
# ============================================================================


class AnalyticsSource(ABC):
    @abstractmethod
    async def click_counts(self, limit: int) -> list[ProductClickCount]:
        """Clicks grouped by product, most clicked first."""

    @abstractmethod
    async def term_counts(self, limit: int) -> list[TermCount]:
        """History entries grouped by lower-cased text, most frequent first."""

    @abstractmethod
    async def history_activity(self, since: datetime) -> list[tuple[datetime, str]]:
        """(requested_at, owner_id) for every history entry since ``since``."""

    @abstractmethod
    async def stats(self) -> SearchStats:
        """Totals, filter facets and recent searches from one read."""

    @abstractmethod
    async def all_searches(self) -> list[SearchExport]:
        """Every recorded search query, newest first."""

    @abstractmethod
    async def all_clicks(self) -> list[ClickExport]:
        """Every recorded click, newest first, without owner ids."""


class LiveAnalyticsSource(AnalyticsSource):
    """Aggregates the database tables"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(self, operation, work):
        return await run_store_call(self._session_factory, operation, work, self._timeout)

    async def click_counts(self, limit: int) -> list[ProductClickCount]:
        async def work(db: AsyncSession):
            click_count = func.count(Click.id).label("click_count")
            stmt = (
                select(
                    Click.product_id,
                    func.max(Click.product_name).label("product_name"),
                    click_count,
                    func.max(Click.occurred_at).label("last_click"),
                )
                .where(Click.product_id != "")
                .group_by(Click.product_id)
                .order_by(click_count.desc(), Click.product_id.asc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return [
                ProductClickCount(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    click_count=row.click_count,
                    last_click=as_utc(row.last_click),
                )
                for row in result.all()
            ]

        return await self._run("analytics.click_counts", work)

    async def term_counts(self, limit: int) -> list[TermCount]:
        async def work(db: AsyncSession):
            term = func.lower(SearchHistory.query_text).label("term")
            count = func.count(SearchHistory.id).label("count")
            stmt = (
                select(term, count, func.max(SearchHistory.requested_at).label("last_searched"))
                .where(
                    SearchHistory.query_text.is_not(None),
                    SearchHistory.query_text.not_in([CATEGORY_BROWSE_SENTINEL, ""]),
                    func.trim(SearchHistory.query_text) != "",
                )
                .group_by(term)
                .order_by(count.desc(), term.asc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return [
                TermCount(term=row.term, count=row.count, last_searched=as_utc(row.last_searched))
                for row in result.all()
            ]

        return await self._run("analytics.term_counts", work)

    async def history_activity(self, since: datetime) -> list[tuple[datetime, str]]:
        async def work(db: AsyncSession):
            stmt = select(SearchHistory.requested_at, SearchHistory.owner_id).where(
                SearchHistory.requested_at >= since
            )
            result = await db.execute(stmt)
            return [(as_utc(row.requested_at), row.owner_id) for row in result.all()]

        return await self._run("analytics.history_activity", work)

    async def stats(self) -> SearchStats:
        async def work(db: AsyncSession):
            async with db.begin():
                if db.bind is not None and db.bind.dialect.name == "postgresql":
                    await db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
                total = (await db.execute(select(func.count(SearchHistory.id)))).scalar() or 0
                filters = (await db.execute(select(SearchHistory.filters))).scalars().all()
                recent = (
                    await db.execute(
                        select(
                            SearchHistory.id,
                            SearchHistory.query_text,
                            SearchHistory.requested_at,
                            SearchHistory.result_ids,
                        )
                        .order_by(SearchHistory.requested_at.desc(), SearchHistory.id.desc())
                        .limit(RECENT_SEARCHES_LIMIT)
                    )
                ).all()

            filters = [f or {} for f in filters]
            return SearchStats(
                total_searches=total,
                counts_by_category_filter=_facet_counts([f.get("category") for f in filters]),
                counts_by_condition_filter=_facet_counts([f.get("condition") for f in filters]),
                recent_searches=[
                    RecentSearch(
                        id=row.id,
                        query_text=row.query_text,
                        requested_at=as_utc(row.requested_at),
                        result_count=len(row.result_ids or []),
                    )
                    for row in recent
                ],
            )

        return await self._run("analytics.stats", work)

    async def all_searches(self) -> list[SearchExport]:
        async def work(db: AsyncSession):
            stmt = select(SearchQuery.text, SearchQuery.occurred_at).order_by(
                SearchQuery.occurred_at.desc(), SearchQuery.id.desc()
            )
            result = await db.execute(stmt)
            return [SearchExport(text=row.text, occurred_at=as_utc(row.occurred_at)) for row in result.all()]

        return await self._run("analytics.all_searches", work)

    async def all_clicks(self) -> list[ClickExport]:
        async def work(db: AsyncSession):
            # Owner ids are never selected
            stmt = select(Click.product_id, Click.product_name, Click.occurred_at).order_by(
                Click.occurred_at.desc(), Click.id.desc()
            )
            result = await db.execute(stmt)
            return [
                ClickExport(product_id=row.product_id, product_name=row.product_name, occurred_at=as_utc(row.occurred_at))
                for row in result.all()
            ]

        return await self._run("analytics.all_clicks", work)


class FixtureAnalyticsSource(AnalyticsSource):
    """Aggregates static fixture records in memory"""

    def __init__(self, data_dir: Path | str = DATA_DIR):
        data_dir = Path(data_dir)
        self._clicks = self._load(data_dir / "clicks_fixture.json")
        self._searches = self._load(data_dir / "searches_fixture.json")
        self._history = self._load(data_dir / "history_fixture.json")
        logger.info(
            f"Loaded analytics fixtures: {len(self._clicks)} clicks, "
            f"{len(self._searches)} searches, {len(self._history)} history entries"
        )

    @staticmethod
    def _load(path: Path) -> list[dict[str, Any]]:
        with path.open(encoding="utf-8") as f:
            records = json.load(f)
        for record in records:
            for key in ("occurredAt", "requestedAt"):
                if key in record:
                    record[key] = as_utc(datetime.fromisoformat(record[key].replace("Z", "+00:00")))
        return records

    async def click_counts(self, limit: int) -> list[ProductClickCount]:
        grouped: dict[str, dict[str, Any]] = {}
        for click in self._clicks:
            product_id = click.get("productId")
            if not product_id:
                continue
            entry = grouped.setdefault(
                product_id,
                {"product_name": click["productName"], "click_count": 0, "last_click": click["occurredAt"]},
            )
            entry["click_count"] += 1
            entry["last_click"] = max(entry["last_click"], click["occurredAt"])

        ranked = sorted(grouped.items(), key=lambda item: (-item[1]["click_count"], item[0]))
        return [ProductClickCount(product_id=pid, **data) for pid, data in ranked[:limit]]

    async def term_counts(self, limit: int) -> list[TermCount]:
        counts: Counter[str] = Counter()
        last_seen: dict[str, datetime] = {}
        for entry in self._history:
            text = entry.get("queryText")
            if not _is_search_term(text):
                continue
            term = text.lower()
            counts[term] += 1
            last_seen[term] = max(last_seen.get(term, entry["requestedAt"]), entry["requestedAt"])

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [TermCount(term=t, count=c, last_searched=last_seen[t]) for t, c in ranked[:limit]]

    async def history_activity(self, since: datetime) -> list[tuple[datetime, str]]:
        return [(e["requestedAt"], e["ownerId"]) for e in self._history if e["requestedAt"] >= since]

    async def stats(self) -> SearchStats:
        recent = sorted(self._history, key=lambda e: (e["requestedAt"], e["id"]), reverse=True)
        return SearchStats(
            total_searches=len(self._history),
            counts_by_category_filter=_facet_counts([(e.get("filters") or {}).get("category") for e in self._history]),
            counts_by_condition_filter=_facet_counts(
                [(e.get("filters") or {}).get("condition") for e in self._history]
            ),
            recent_searches=[
                RecentSearch(
                    id=e["id"],
                    query_text=e["queryText"],
                    requested_at=e["requestedAt"],
                    result_count=len(e.get("resultIds") or []),
                )
                for e in recent[:RECENT_SEARCHES_LIMIT]
            ],
        )

    async def all_searches(self) -> list[SearchExport]:
        ordered = sorted(self._searches, key=lambda s: s["occurredAt"], reverse=True)
        return [SearchExport(text=s["text"], occurred_at=s["occurredAt"]) for s in ordered]

    async def all_clicks(self) -> list[ClickExport]:
        ordered = sorted(self._clicks, key=lambda c: c["occurredAt"], reverse=True)
        return [
            ClickExport(product_id=c["productId"], product_name=c["productName"], occurred_at=c["occurredAt"])
            for c in ordered
        ]


# ============================================================================
# Aggregator
# ============================================================================


class AnalyticsAggregator:
    """Popularity, trend and statistics views over recorded activity"""

    def __init__(
        self,
        source: AnalyticsSource,
        engine: CatalogFilterEngine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.engine = engine
        self._clock = clock

    async def top_products(self, limit: int = TOP_PRODUCTS_DEFAULT) -> list[TopProduct]:
        """
        Most clicked products, joined with current catalog data.

        Products that no longer exist in the catalog are dropped.

        Raises:
            ValidationError: limit outside 1..20
            CatalogUnavailableError: the catalog could not be read for the join
        """
        limit = _bounded("limit", limit, 1, TOP_PRODUCTS_MAX)
        counts = await apply_policy("analytics.top_products", self.source.click_counts(limit))
        if not counts:
            return []

        catalog = await apply_policy("analytics.top_products", self.engine.products_by_id())

        top = []
        for entry in counts:
            product = catalog.get(entry.product_id)
            if product is None:
                logger.info(f"Dropping clicked product {entry.product_id}: no longer in the catalog")
                continue
            top.append(TopProduct(**entry.model_dump(), product=product))

        logger.info(f"Top {len(top)} clicked products computed")
        return top

    async def top_terms(self, limit: int = TOP_TERMS_DEFAULT) -> list[TermCount]:
        limit = _bounded("limit", limit, 1, TOP_TERMS_MAX)
        return await apply_policy("analytics.top_terms", self.source.term_counts(limit))

    async def trends(self, days: int = TRENDS_DEFAULT_DAYS) -> list[TrendPoint]:
        """Searches per UTC calendar day over the last ``days`` days, oldest first."""
        days = _bounded("days", days, 1, TRENDS_MAX_DAYS)
        since = self._clock() - timedelta(days=days)
        activity = await apply_policy("analytics.trends", self.source.history_activity(since))

        searches: Counter = Counter()
        owners: dict = defaultdict(set)
        for requested_at, owner_id in activity:
            day = as_utc(requested_at).date()
            searches[day] += 1
            owners[day].add(owner_id)

        return [
            TrendPoint(date=day, search_count=searches[day], distinct_owner_count=len(owners[day]))
            for day in sorted(searches)
        ]

    async def stats(self) -> SearchStats:
        return await apply_policy("analytics.stats", self.source.stats())

    async def all_searches(self) -> list[SearchExport]:
        searches = await apply_policy("analytics.export", self.source.all_searches())
        logger.info(f"Exported {len(searches)} searches")
        return searches

    async def all_clicks(self) -> list[ClickExport]:
        clicks = await apply_policy("analytics.export", self.source.all_clicks())
        logger.info(f"Exported {len(clicks)} clicks")
        return clicks
