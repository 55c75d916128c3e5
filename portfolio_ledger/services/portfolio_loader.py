"""
Portfolio load path and the per-user session lifecycle.

Load order: in-process freshness mark, then the persisted cache (holdings and
transactions must both be present), then the store. A store load repopulates
both cache tiers and creates the portfolio aggregate if holdings exist without one.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from portfolio_ledger.lib import config
from portfolio_ledger.lib.cache import CacheManager, UserCache
from portfolio_ledger.lib.db import SessionFactory
from portfolio_ledger.lib.errors import RecomputeFailedError
from portfolio_ledger.lib.records import (
    PortfolioAggregateRecord,
    TransactionRecord,
    holding_list_adapter,
    transaction_list_adapter,
)
from portfolio_ledger.lib.validators import validate_user_id
from portfolio_ledger.services.ledger import Ledger
from portfolio_ledger.services.pagination import PaginationEngine

logger = logging.getLogger(__name__)

SOURCE_MEMORY = "memory"
SOURCE_CACHE = "cache"
SOURCE_STORE = "store"


@dataclass
class PortfolioSnapshot:
    """Everything a client needs to render a portfolio, plus where it came from."""

    holdings: list[Any] = field(default_factory=list)
    transactions: list[TransactionRecord] = field(default_factory=list)
    aggregate: Optional[PortfolioAggregateRecord] = None
    source: str = SOURCE_STORE


class PortfolioLoader:
    """Loads a user's portfolio through the two cache tiers."""

    def __init__(self, ledger: Ledger, cache: UserCache):
        self.ledger = ledger
        self.cache = cache
        self._snapshot: Optional[PortfolioSnapshot] = None

    def load(self, force: bool = False) -> PortfolioSnapshot:
        """
        Load the portfolio.

        Args:
            force: Skip both cache tiers and read the store

        Returns:
            PortfolioSnapshot with ``source`` set to memory, cache or store
        """
        if not force and self._snapshot is not None and self.cache.is_fresh():
            logger.debug("Using in-memory portfolio (no fetch needed)")
            self._snapshot.source = SOURCE_MEMORY
            return self._snapshot

        snapshot = None if force else self._from_cache()
        if snapshot is None:
            snapshot = self._from_store()

        self._snapshot = snapshot
        self.cache.mark_fresh()
        return snapshot

    def _from_cache(self) -> Optional[PortfolioSnapshot]:
        cached_holdings = self.cache.get("holdings")
        cached_transactions = self.cache.get("transactions")
        if cached_holdings is None or cached_transactions is None:
            return None

        try:
            snapshot = PortfolioSnapshot(
                holdings=holding_list_adapter.validate_python(cached_holdings),
                transactions=transaction_list_adapter.validate_python(cached_transactions),
                source=SOURCE_CACHE,
            )
            cached_aggregate = self.cache.get("aggregates")
            if cached_aggregate is not None:
                snapshot.aggregate = PortfolioAggregateRecord.model_validate(cached_aggregate)
        except ValidationError as e:
            logger.warning(f"Discarding malformed cached portfolio: {e.error_count()} errors")
            self.cache.invalidate()
            return None

        logger.info("Loaded portfolio from cache")
        return snapshot

    def _from_store(self) -> PortfolioSnapshot:
        logger.info("Fetching portfolio from store")
        holdings = self.ledger.list_holdings()
        transactions = self.ledger.fetch_all_transactions()
        aggregate = self.ledger.load_aggregate()

        if not holdings and not transactions:
            logger.info("Portfolio is empty")

        if aggregate is None and holdings:
            try:
                self.ledger.recompute_portfolio()
                aggregate = self.ledger.load_aggregate()
            except RecomputeFailedError as e:
                logger.warning(f"Could not create portfolio aggregates: {e.message}")

        self.cache.set("holdings", holding_list_adapter.dump_python(holdings, mode="json"))
        self.cache.set(
            "transactions", transaction_list_adapter.dump_python(transactions, mode="json")
        )
        if aggregate is not None:
            self.cache.set("aggregates", aggregate.model_dump(mode="json"))

        return PortfolioSnapshot(
            holdings=holdings,
            transactions=transactions,
            aggregate=aggregate,
            source=SOURCE_STORE,
        )


class PortfolioSession:
    """
    Per-user handles with an explicit lifecycle.

    ``open()`` is called once after authentication. When a different user than the
    previous one signs in, that user's cached keys are cleared before anything is
    read. ``close()`` (logout) invalidates them again.
    """

    def __init__(
        self,
        user_id: str,
        session_factory: Optional[SessionFactory] = None,
        cache_manager: Optional[CacheManager] = None,
    ):
        self.user_id = validate_user_id(user_id)
        self.cache_manager = cache_manager or CacheManager()
        self.cache = UserCache(self.cache_manager, self.user_id)
        self.ledger = Ledger(self.user_id, session_factory, cache=self.cache)
        self.pages = PaginationEngine(self.user_id, session_factory)
        self.loader = PortfolioLoader(self.ledger, self.cache)
        self.is_open = False

    @property
    def _last_user_path(self) -> Path:
        return self.cache_manager.cache_dir / config.LAST_USER_KEY

    def last_user_id(self) -> Optional[str]:
        """User id of the previous session on this machine, if recorded."""
        path = self._last_user_path
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def open(self) -> "PortfolioSession":
        """Start the session, clearing this user's cache after a user switch."""
        previous = self.last_user_id()
        if previous and previous != self.user_id:
            logger.info("User changed, clearing cache")
            self.cache.invalidate()

        self._last_user_path.write_text(self.user_id, encoding="utf-8")
        self.is_open = True
        return self

    def close(self) -> None:
        """End the session (logout)."""
        self.cache.invalidate()
        self.is_open = False

    def __enter__(self) -> "PortfolioSession":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
