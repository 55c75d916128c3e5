"""Pytest configuration and fixtures for all tests."""

import os
import tempfile
from pathlib import Path

import pytest

from portfolio_ledger.lib.cache import CacheManager, UserCache
from portfolio_ledger.lib.db import init_db, reset_db, reset_engine
from portfolio_ledger.lib.records import TransactionDraft
from portfolio_ledger.services.ledger import Ledger

TEST_USER = "test-user_1"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Initialize test database before any tests run.

    Creates a temporary database for testing that is automatically cleaned up.
    Uses session scope so database is created once per test session.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        test_db_path = Path(tmp.name)

    # Set environment variable for test database BEFORE initializing
    os.environ["PORTFOLIO_LEDGER_DB_PATH"] = str(test_db_path)

    init_db(test_db_path)

    yield test_db_path

    reset_engine()
    if test_db_path.exists():
        test_db_path.unlink()


@pytest.fixture(autouse=True)
def reset_database_between_tests(setup_test_database):
    """Reset database state between each test.

    This ensures test isolation by clearing all data between tests
    while keeping the schema intact.
    """
    reset_engine()
    reset_db(setup_test_database)

    yield


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep cache files and logs out of the home directory."""
    monkeypatch.setenv("PORTFOLIO_LEDGER_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("LOG_FILE", "")


@pytest.fixture
def cache_manager(tmp_path):
    """Cache manager writing into a temporary directory."""
    return CacheManager(cache_dir=tmp_path / "cache")


@pytest.fixture
def user_cache(cache_manager):
    """Namespaced cache of the test user."""
    return UserCache(cache_manager, TEST_USER)


@pytest.fixture
def ledger(user_cache):
    """Ledger of the test user backed by the test database."""
    return Ledger(TEST_USER, cache=user_cache)


def make_draft(**overrides) -> TransactionDraft:
    """Buy draft for 10 units at 2450 on 2024-01-15, with overrides."""
    fields = {
        "type": "buy",
        "date": "2024-01-15",
        "quantity": "10",
        "price": "2450",
    }
    fields.update(overrides)
    return TransactionDraft(**fields)


@pytest.fixture
def draft_factory():
    """Factory for transaction drafts."""
    return make_draft
