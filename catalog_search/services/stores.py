"""
Record Stores

Durable append/query/delete operations over the three record streams:
search history, search queries and product clicks.

Each store owns one table. Every call opens its own database session,
is bounded by a timeout and reports persistence problems as
StoreFailureError, so callers can decide per operation whether a store
outage is fatal.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_search.exceptions import StoreFailureError
from catalog_search.models.click import Click
from catalog_search.models.search_history import SearchHistory
from catalog_search.models.search_query import SearchQuery
from catalog_search.services.session_registry import ANONYMOUS_PREFIX, mask_owner_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUGGESTION_LIMIT = 5
HISTORY_LIMIT = 10
CLICKS_BY_PRODUCT_LIMIT = 100
CLICKS_BY_OWNER_LIMIT = 50
QUERY_EXPORT_LIMIT = 1000


async def run_store_call(
    session_factory: async_sessionmaker[AsyncSession],
    operation: str,
    work: Callable[[AsyncSession], Awaitable[T]],
    timeout: float,
) -> T:
    """
    Run ``work`` in a fresh session with a bounded timeout.

    Raises:
        StoreFailureError: the database was unreachable, failed, or the call timed out
    """
    try:
        async with session_factory() as db:
            return await asyncio.wait_for(work(db), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StoreFailureError(f"Store call '{operation}' timed out after {timeout}s", operation=operation) from e
    except (SQLAlchemyError, OSError) as e:
        raise StoreFailureError(f"Store call '{operation}' failed: {e}", operation=operation) from e


class _Store:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await run_store_call(self._session_factory, operation, work, self._timeout)

    async def _append(self, operation: str, record):
        async def work(db: AsyncSession):
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return record

        return await self._run(operation, work)

    async def _anonymous_owner_ids(self, operation: str, model) -> set[str]:
        async def work(db: AsyncSession):
            stmt = select(model.owner_id).where(
                model.owner_id.like(f"{_escape_like(ANONYMOUS_PREFIX)}%", escape="\\")
            ).distinct()
            result = await db.execute(stmt)
            return set(result.scalars().all())

        return await self._run(operation, work)


class HistoryStore(_Store):
    """Per-owner search history"""

    async def append(self, record: SearchHistory) -> SearchHistory:
        saved = await self._append("history.append", record)
        logger.info(f"Saved search history {saved.id} for owner {mask_owner_id(saved.owner_id)}")
        return saved

    async def find_by_owner(
        self,
        owner_id: str,
        limit: int = HISTORY_LIMIT,
        newest_first: bool = True,
        text_contains: str | None = None,
    ) -> list[SearchHistory]:
        """
        Get an owner's history entries.

        Args:
            owner_id: Authenticated user id or anonymous owner id
            limit: Maximum entries
            newest_first: Order by request time descending
            text_contains: Case-insensitive substring the query text must contain
        """

        async def work(db: AsyncSession):
            stmt = select(SearchHistory).where(SearchHistory.owner_id == owner_id)
            if text_contains:
                stmt = stmt.where(SearchHistory.query_text.ilike(f"%{_escape_like(text_contains)}%", escape="\\"))
            order = SearchHistory.requested_at.desc() if newest_first else SearchHistory.requested_at.asc()
            stmt = stmt.order_by(order, SearchHistory.id.desc() if newest_first else SearchHistory.id.asc())
            result = await db.execute(stmt.limit(limit))
            return list(result.scalars().all())

        return await self._run("history.find_by_owner", work)

    async def delete_by_owner(self, owner_id: str) -> int:
        async def work(db: AsyncSession):
            result = await db.execute(delete(SearchHistory).where(SearchHistory.owner_id == owner_id))
            await db.commit()
            return result.rowcount or 0

        count = await self._run("history.delete_by_owner", work)
        logger.info(f"Deleted {count} search history entries for owner {mask_owner_id(owner_id)}")
        return count

    async def delete_one(self, record_id: int, owner_id: str) -> bool:
        """Delete one entry only if it belongs to ``owner_id``. Anything else is a no-op."""

        async def work(db: AsyncSession):
            result = await db.execute(
                delete(SearchHistory).where(SearchHistory.id == record_id, SearchHistory.owner_id == owner_id)
            )
            await db.commit()
            return (result.rowcount or 0) > 0

        return await self._run("history.delete_one", work)

    async def anonymous_owner_ids(self) -> set[str]:
        """Every anonymous owner id that still has history entries."""
        return await self._anonymous_owner_ids("history.anonymous_owners", SearchHistory)


class QueryStore(_Store):
    """Owner-less search texts kept for analytics"""

    async def append(self, record: SearchQuery) -> SearchQuery:
        saved = await self._append("queries.append", record)
        logger.debug(f"Recorded search query for analytics: '{saved.text}'")
        return saved

    async def find_between(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = QUERY_EXPORT_LIMIT,
    ) -> list[SearchQuery]:
        """Query records in an optional time window, newest first."""

        async def work(db: AsyncSession):
            stmt = select(SearchQuery)
            if since is not None:
                stmt = stmt.where(SearchQuery.occurred_at >= since)
            if until is not None:
                stmt = stmt.where(SearchQuery.occurred_at <= until)
            stmt = stmt.order_by(SearchQuery.occurred_at.desc(), SearchQuery.id.desc()).limit(limit)
            result = await db.execute(stmt)
            return list(result.scalars().all())

        return await self._run("queries.find_between", work)


class ClickStore(_Store):
    """Product clicks"""

    async def append(self, record: Click) -> Click:
        saved = await self._append("clicks.append", record)
        logger.info(f"Recorded click on {saved.product_name} ({saved.product_id})")
        return saved

    async def find_by_owner(self, owner_id: str, limit: int = CLICKS_BY_OWNER_LIMIT) -> list[Click]:
        async def work(db: AsyncSession):
            stmt = (
                select(Click)
                .where(Click.owner_id == owner_id)
                .order_by(Click.occurred_at.desc(), Click.id.desc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

        return await self._run("clicks.find_by_owner", work)

    async def find_by_product(self, product_id: str, limit: int = CLICKS_BY_PRODUCT_LIMIT) -> list[Click]:
        async def work(db: AsyncSession):
            stmt = (
                select(Click)
                .where(Click.product_id == product_id)
                .order_by(Click.occurred_at.desc(), Click.id.desc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

        return await self._run("clicks.find_by_product", work)

    async def delete_by_owner(self, owner_id: str) -> int:
        async def work(db: AsyncSession):
            result = await db.execute(delete(Click).where(Click.owner_id == owner_id))
            await db.commit()
            return result.rowcount or 0

        count = await self._run("clicks.delete_by_owner", work)
        logger.info(f"Deleted {count} clicks for owner {mask_owner_id(owner_id)}")
        return count

    async def anonymous_owner_ids(self) -> set[str]:
        """Every anonymous owner id that still has clicks."""
        return await self._anonymous_owner_ids("clicks.anonymous_owners", Click)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
