"""Unit tests for the persisted cache and its per-user view."""

import json
import logging
from datetime import timedelta
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from portfolio_ledger.lib.cache import CacheManager, UserCache, namespaced_key


@pytest.fixture
def manager(tmp_path):
    """Provide CacheManager instance."""
    return CacheManager(cache_dir=tmp_path / "cache")


@pytest.mark.unit
class TestCacheManagerTTL:
    """Test suite for entry expiry."""

    def test_fresh_until_ttl_then_deleted(self, manager):
        """Present at 4:59, absent and deleted at 5:01."""
        key = "portfolio_alice_holdings"
        with freeze_time("2024-06-01 12:00:00") as frozen:
            assert manager.set(key, [{"id": "h-1"}]) is True

            frozen.tick(timedelta(minutes=4, seconds=59))
            assert manager.get(key) == [{"id": "h-1"}]

            frozen.tick(timedelta(seconds=2))
            assert manager.get(key) is None
            assert not (manager.cache_dir / f"{key}.json").exists()

    def test_expired_at_exactly_ttl(self, manager):
        with freeze_time("2024-06-01 12:00:00") as frozen:
            manager.set("portfolio_alice_holdings", 1)
            frozen.tick(timedelta(minutes=5))
            assert manager.get("portfolio_alice_holdings") is None

    def test_entry_layout(self, manager):
        with freeze_time("2024-06-01 12:00:00"):
            manager.set("portfolio_alice_aggregates", {"total": "10"})
            raw = json.loads((manager.cache_dir / "portfolio_alice_aggregates.json").read_text())

        assert raw["data"] == {"total": "10"}
        assert isinstance(raw["timestamp"], float)

    def test_miss(self, manager):
        assert manager.get("portfolio_nobody_holdings") is None

    def test_unreadable_entry_is_removed(self, manager):
        path = manager.cache_dir / "portfolio_alice_holdings.json"
        path.write_text("{not json")

        assert manager.get("portfolio_alice_holdings") is None
        assert not path.exists()


@pytest.mark.unit
class TestCacheManagerWrites:
    """Test suite for size limits and quota handling."""

    def test_oversized_entry_is_skipped(self, tmp_path, caplog):
        manager = CacheManager(cache_dir=tmp_path / "cache", max_entry_bytes=100)

        with caplog.at_level(logging.WARNING):
            assert manager.set("portfolio_alice_transactions", "x" * 200) is False

        assert manager.keys() == []
        assert "Cache too large" in caplog.text

    def test_default_limit_is_two_mib(self, manager):
        assert manager.set("portfolio_alice_transactions", "x" * (2 * 1024 * 1024)) is False
        assert manager.set("portfolio_alice_transactions", "x" * (1024 * 1024)) is True

    def test_quota_sweeps_own_namespace_first(self, manager):
        manager.set("portfolio_alice_holdings", "x" * 1000)
        manager.set("portfolio_alice_transactions", "x" * 1000)
        manager.set("portfolio_bob_holdings", "x" * 1000)
        manager.quota_bytes = manager.usage_bytes() + 500

        assert manager.set("portfolio_alice_aggregates", "y" * 1000) is True
        assert manager.keys() == ["portfolio_alice_aggregates", "portfolio_bob_holdings"]

    def test_quota_sweep_spares_users_sharing_a_prefix(self, manager):
        """alice's sweep must not touch alice2 or alice_2, whose keys start the same way."""
        manager.set("portfolio_alice_holdings", "x" * 1000)
        manager.set("portfolio_alice_transactions", "x" * 1000)
        manager.set("portfolio_alice2_holdings", "x" * 1000)
        manager.set("portfolio_alice_2_holdings", "x" * 1000)
        manager.quota_bytes = manager.usage_bytes() + 500

        assert UserCache(manager, "alice").set("aggregates", "y" * 1000) is True
        assert set(manager.keys()) == {
            "portfolio_alice_aggregates",
            "portfolio_alice2_holdings",
            "portfolio_alice_2_holdings",
        }

    def test_quota_falls_back_to_global_sweep(self, manager):
        manager.set("portfolio_alice_holdings", "x" * 1000)
        manager.set("portfolio_alice_transactions", "x" * 1000)
        manager.set("portfolio_bob_holdings", "x" * 1000)
        manager.quota_bytes = 1500

        assert manager.set("portfolio_alice_aggregates", "y" * 1000) is True
        assert manager.keys() == ["portfolio_alice_aggregates"]

    def test_quota_never_fits(self, manager):
        manager.set("portfolio_bob_holdings", "x" * 100)
        manager.quota_bytes = 50

        assert manager.set("portfolio_alice_holdings", "y" * 1000) is False
        assert manager.keys() == []

    def test_write_error_is_not_raised(self, manager):
        with patch.object(manager, "_write", side_effect=OSError("read-only filesystem")):
            assert manager.set("portfolio_alice_holdings", []) is False

    def test_sweep_by_prefix(self, manager):
        manager.set("portfolio_alice_holdings", 1)
        manager.set("portfolio_bob_holdings", 1)
        manager.set("other", 1)

        assert manager.sweep("portfolio_") == 2
        assert manager.keys() == ["other"]


@pytest.mark.unit
class TestUserCache:
    """Test suite for UserCache."""

    def test_namespaced_keys(self, manager):
        cache = UserCache(manager, "alice")

        assert cache.key("holdings") == "portfolio_alice_holdings"
        assert namespaced_key("alice", "aggregates") == "portfolio_alice_aggregates"
        with pytest.raises(ValueError):
            cache.key("settings")

    def test_invalidate_removes_only_own_keys(self, manager):
        alice = UserCache(manager, "alice")
        bob = UserCache(manager, "bob")
        for section in ("holdings", "transactions", "aggregates"):
            alice.set(section, [])
        bob.set("holdings", [])

        alice.invalidate()

        assert manager.keys() == ["portfolio_bob_holdings"]

    def test_freshness_mark(self, manager):
        cache = UserCache(manager, "alice")
        with freeze_time("2024-06-01 12:00:00") as frozen:
            assert cache.is_fresh() is False
            cache.mark_fresh()

            frozen.tick(timedelta(minutes=4))
            assert cache.is_fresh() is True

            cache.invalidate()
            assert cache.is_fresh() is False

            cache.mark_fresh()
            frozen.tick(timedelta(minutes=6))
            assert cache.is_fresh() is False
