"""
Tests for the anonymous session registry
"""

import logging
import threading
from datetime import timedelta

import pytest

from catalog_search.services.session_registry import (
    SESSION_TIMEOUT,
    SessionRegistry,
    anonymous_owner_id,
    is_anonymous_owner,
    mask_owner_id,
    mask_session_id,
    session_id_from_owner,
)
from utils.mock_utils import FakeClock


class TestResolve:
    """Session resolution from a client-presented id"""

    def test_resolve_without_candidate_creates_session(self, registry):
        resolution = registry.resolve(None)

        assert resolution.is_new is True
        assert resolution.session_id.startswith("session_")
        assert registry.is_active(resolution.session_id)

    def test_resolve_active_session_keeps_id(self, registry):
        first = registry.resolve(None)

        again = registry.resolve(first.session_id)

        assert again.session_id == first.session_id
        assert again.is_new is False

    def test_resolve_refreshes_last_activity(self, registry, clock):
        session_id = registry.resolve(None).session_id

        clock.advance(hours=11)
        registry.resolve(session_id)
        clock.advance(hours=11)

        assert registry.is_active(session_id)
        assert registry.get(session_id).last_activity == clock.now - timedelta(hours=11)

    def test_resolve_expired_session_mints_new_id(self, registry, clock):
        old_id = registry.resolve(None).session_id
        clock.advance(hours=12, seconds=1)

        resolution = registry.resolve(old_id)

        assert resolution.is_new is True
        assert resolution.session_id != old_id

    def test_resolve_unknown_id_is_not_adopted(self, registry):
        resolution = registry.resolve("session_made-up-by-client")

        assert resolution.is_new is True
        assert resolution.session_id != "session_made-up-by-client"
        assert not registry.contains("session_made-up-by-client")

    def test_session_ids_never_collide(self, registry):
        ids = {registry.resolve(None).session_id for _ in range(500)}

        assert len(ids) == 500


class TestExpiry:
    """Inactivity timeout handling"""

    def test_timeout_is_twelve_hours(self):
        assert SESSION_TIMEOUT == timedelta(hours=12)
        assert SessionRegistry().timeout == SESSION_TIMEOUT

    def test_session_expires_exactly_at_timeout(self, registry, clock):
        session_id = registry.resolve(None).session_id

        clock.advance(hours=11, minutes=59, seconds=59)
        assert registry.is_active(session_id)

        clock.advance(seconds=1)
        assert not registry.is_active(session_id)
        assert registry.get(session_id) is None
        assert registry.is_expired(session_id)

    def test_expired_session_stays_registered_until_removed(self, registry, clock):
        session_id = registry.resolve(None).session_id
        clock.advance(hours=13)

        assert registry.contains(session_id)
        assert registry.collect_expired() == [session_id]

    def test_collect_expired_ignores_active_sessions(self, registry, clock):
        stale = registry.resolve(None).session_id
        clock.advance(hours=6)
        fresh = registry.resolve(None).session_id
        clock.advance(hours=6)

        expired = registry.collect_expired()

        assert stale in expired
        assert fresh not in expired

    def test_unknown_session_is_neither_active_nor_expired(self, registry):
        assert not registry.is_active("session_unknown")
        assert not registry.is_expired("session_unknown")


class TestRemoval:
    def test_remove_is_idempotent(self, registry):
        session_id = registry.resolve(None).session_id

        assert registry.remove(session_id) is True
        assert registry.remove(session_id) is False
        assert registry.remove("session_never-existed") is False
        assert not registry.contains(session_id)

    def test_stats_counts_active_and_registered(self, registry, clock):
        registry.resolve(None)
        clock.advance(hours=13)
        registry.resolve(None)

        assert registry.stats() == {"active": 1, "registered": 2}

    def test_remove_if_expired_leaves_active_sessions(self, registry, clock):
        session_id = registry.resolve(None).session_id

        assert registry.remove_if_expired(session_id) is False
        assert registry.contains(session_id)

        clock.advance(hours=12)

        assert registry.remove_if_expired(session_id) is True
        assert registry.remove_if_expired(session_id) is False
        assert not registry.contains(session_id)

    def test_remove_if_unchanged_skips_refreshed_session(self, registry, clock):
        session_id = registry.resolve(None).session_id
        seen = registry.peek(session_id)

        clock.advance(minutes=1)
        registry.resolve(session_id)

        assert registry.remove_if_unchanged(session_id, seen) is False
        assert registry.contains(session_id)
        assert registry.remove_if_unchanged(session_id, registry.peek(session_id)) is True
        assert not registry.contains(session_id)

    def test_refresh_within_same_instant_still_counts_as_change(self, registry):
        session_id = registry.resolve(None).session_id
        seen = registry.peek(session_id)

        registry.resolve(session_id)

        assert registry.peek(session_id).refresh_count == 1
        assert registry.remove_if_unchanged(session_id, seen) is False


class TestOwnerIds:
    """Anonymous owner id derivation"""

    @pytest.mark.parametrize(
        "session_id",
        ["session_1b4e28ba-2fa1-11d2-883f-0016d3cca427", "session_x", "session_with_underscores_inside"],
    )
    def test_derive_then_extract_round_trips(self, session_id):
        owner_id = anonymous_owner_id(session_id)

        assert owner_id == f"anonymous_{session_id}"
        assert session_id_from_owner(owner_id) == session_id
        assert anonymous_owner_id(session_id_from_owner(owner_id)) == owner_id

    @pytest.mark.parametrize("owner_id", ["user_001", "42", "", None])
    def test_extract_returns_none_for_authenticated_owners(self, owner_id):
        assert session_id_from_owner(owner_id) is None
        assert not is_anonymous_owner(owner_id)

    def test_masked_ids_keep_only_a_prefix(self):
        session_id = "session_1b4e28ba-2fa1-11d2-883f-0016d3cca427"

        assert mask_session_id(session_id) == "session_1b4e28ba..."
        assert mask_owner_id(anonymous_owner_id(session_id)) == "anonymous_session_1b4e28ba..."

    @pytest.mark.parametrize("owner_id", ["user_001", None])
    def test_authenticated_owners_are_not_masked(self, owner_id):
        assert mask_owner_id(owner_id) == owner_id

    def test_created_session_is_logged_masked(self, registry, caplog):
        with caplog.at_level(logging.INFO, logger="catalog_search.services.session_registry"):
            session_id = registry.resolve(None).session_id

        assert mask_session_id(session_id) in caplog.text
        assert session_id not in caplog.text


class TestConcurrency:
    def test_parallel_resolution_is_consistent(self):
        registry = SessionRegistry(clock=FakeClock())
        seen: list[str] = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                session_id = registry.resolve(None).session_id
                registry.resolve(session_id)
                with lock:
                    seen.append(session_id)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(seen)) == 400
        assert registry.stats() == {"active": 400, "registered": 400}
