"""
Session Lifecycle Coordinator

Expires anonymous sessions and removes everything they left behind.

A session is closed in two steps: its history entries and clicks are
deleted first, then its registry entry is removed. Session ids are never
reused, so nobody can observe records belonging to a session that is
already gone. If the store is unreachable the session stays registered
and the sweep picks it up again on its next run. Each sweep also deletes
anonymous records whose session is no longer registered, such as rows
written by a request that was still in flight when its session expired.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from catalog_search.policies import apply_policy
from catalog_search.services.session_registry import (
    SessionRegistry,
    anonymous_owner_id,
    mask_owner_id,
    mask_session_id,
    session_id_from_owner,
)
from catalog_search.services.stores import ClickStore, HistoryStore

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = timedelta(minutes=5)


@dataclass(frozen=True)
class CascadeResult:
    session_id: str
    history_deleted: int
    clicks_deleted: int


@dataclass
class SweepReport:
    expired: int = 0
    cleaned: list[CascadeResult] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    orphans_cleaned: list[str] = field(default_factory=list)


class SessionLifecycleCoordinator:
    """Owns the periodic expiry sweep and explicit session close"""

    def __init__(self, registry: SessionRegistry, history_store: HistoryStore, click_store: ClickStore):
        self.registry = registry
        self.history_store = history_store
        self.click_store = click_store
        self._sweep_lock = asyncio.Lock()

    async def _cascade_owner(self, owner_id: str) -> tuple[int, int]:
        history_deleted = await self.history_store.delete_by_owner(owner_id)
        clicks_deleted = await self.click_store.delete_by_owner(owner_id)
        return history_deleted, clicks_deleted

    async def _cascade(self, session_id: str) -> CascadeResult:
        history_deleted, clicks_deleted = await self._cascade_owner(anonymous_owner_id(session_id))
        return CascadeResult(session_id=session_id, history_deleted=history_deleted, clicks_deleted=clicks_deleted)

    async def close_session(self, session_id: str) -> CascadeResult:
        """
        Close a session now: delete its records, then forget it.

        Closing an unknown session still clears any records left under its
        owner id. A session refreshed while its records were being deleted
        stays registered and is left to the sweep.

        Raises:
            StoreFailureError: records could not be deleted; the session stays registered
        """
        masked = mask_session_id(session_id)
        logger.info(f"Closing anonymous session {masked}")
        seen = self.registry.peek(session_id)
        result = await apply_policy("session.close", self._cascade(session_id))
        if seen is not None and not self.registry.remove_if_unchanged(session_id, seen):
            logger.info(f"Session {masked} was used again while closing, left for the sweep")
        logger.info(
            f"Session {masked} closed: {result.history_deleted} searches, {result.clicks_deleted} clicks removed"
        )
        return result

    async def _orphaned_owners(self) -> set[str]:
        owners = await self.history_store.anonymous_owner_ids()
        owners |= await self.click_store.anonymous_owner_ids()
        return {owner for owner in owners if not self.registry.contains(session_id_from_owner(owner))}

    async def _clean_orphans(self, report: SweepReport) -> None:
        # Requests already past session resolution can still write after their session was removed
        orphans = await apply_policy("session.orphan_scan", self._orphaned_owners(), fallback=set())
        for owner_id in sorted(orphans):
            deleted = await apply_policy("session.sweep_cascade", self._cascade_owner(owner_id))
            if deleted is not None:
                report.orphans_cleaned.append(owner_id)
                logger.info(f"[Sweep] Removed records of unregistered owner {mask_owner_id(owner_id)}")

    async def sweep(self) -> SweepReport:
        """
        Expire every session idle for longer than the timeout, then delete
        anonymous records whose session is no longer registered.

        Never raises for store failures: affected sessions are left
        registered and retried on the next run.
        """
        if self._sweep_lock.locked():
            logger.info("[Sweep] Previous sweep still running, skipping this run")
            return SweepReport()

        async with self._sweep_lock:
            report = SweepReport()
            expired = self.registry.collect_expired()
            report.expired = len(expired)

            for session_id in expired:
                # A request may have refreshed the session since the snapshot
                if not self.registry.is_expired(session_id):
                    report.skipped.append(session_id)
                    continue

                result = await apply_policy("session.sweep_cascade", self._cascade(session_id))
                if result is None:
                    report.failed.append(session_id)
                    continue

                if not self.registry.remove_if_expired(session_id):
                    report.skipped.append(session_id)
                    continue
                report.cleaned.append(result)

            await self._clean_orphans(report)

            if report.expired or report.orphans_cleaned:
                logger.info(
                    f"[Sweep] {len(report.cleaned)} expired sessions cleaned, "
                    f"{len(report.failed)} deferred, {len(report.skipped)} refreshed, "
                    f"{len(report.orphans_cleaned)} orphaned owners cleaned"
                )
            return report
