"""
Cursor-based paging over a holding's live transactions.

Pages are ordered newest first (date, then id, descending). Each fetched page
returns an explicit cursor for the next one; callers walk forward with it and keep
their own stack to step back. Jumping to an arbitrary page number without walking
the pages before it is not supported.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError

from portfolio_ledger.lib import config
from portfolio_ledger.lib.db import SessionFactory, db_session
from portfolio_ledger.lib.errors import PageFetchFailedError
from portfolio_ledger.lib.records import TransactionRecord, to_transaction_record
from portfolio_ledger.models import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageCursor:
    """Resume-after position: the last record of a fetched page."""

    holding_id: str
    page_size: int
    page_number: int
    last_date: date
    last_id: str


@dataclass
class TransactionPage:
    """One page of live transactions.

    Attributes:
        holding_id: Holding the page belongs to
        page_number: 1-based page number
        page_size: Requested page size
        items: At most page_size records, newest first
        has_more: True when at least one more record exists after this page
        next_cursor: Cursor to fetch the following page, None when has_more is False
    """

    holding_id: str
    page_number: int
    page_size: int
    items: list[TransactionRecord] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[PageCursor] = None


def approximate_count(transactions: Iterable[Any], holding_id: str) -> int:
    """
    Live transactions of a holding in an already-loaded set.

    Only for labels such as "page 2 of ~3"; paging itself relies on has_more.
    """
    return sum(1 for t in transactions if t.holding_id == holding_id and not t.deleted)


class PaginationEngine:
    """Fetches transaction pages straight from the store."""

    def __init__(self, user_id: str, session_factory: Optional[SessionFactory] = None):
        self.user_id = user_id
        self._session_factory = session_factory

    def fetch_page(
        self,
        holding_id: str,
        page_size: int = config.DEFAULT_PAGE_SIZE,
        after: Optional[PageCursor] = None,
    ) -> TransactionPage:
        """
        Fetch one page of a holding's non-deleted transactions.

        Requests page_size + 1 rows; the extra row only signals that another page
        exists and is not returned.

        Args:
            holding_id: Holding to list
            page_size: Records per page
            after: Cursor from the previous page; None fetches page 1

        Returns:
            TransactionPage

        Raises:
            ValueError: Bad page size, or a cursor from another listing
            PageFetchFailedError: Store query failed
        """
        if page_size < 1:
            raise ValueError(f"Page size must be positive, got {page_size}")
        if after is not None and (
            after.holding_id != holding_id or after.page_size != page_size
        ):
            raise ValueError("Cursor belongs to a different holding or page size")

        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.holding_id == holding_id,
                Transaction.deleted.is_(False),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(page_size + 1)
        )
        if after is not None:
            stmt = stmt.where(
                or_(
                    Transaction.date < after.last_date,
                    and_(Transaction.date == after.last_date, Transaction.id < after.last_id),
                )
            )

        try:
            with db_session(self._session_factory) as session:
                rows = list(session.execute(stmt).scalars())
                records = [to_transaction_record(t) for t in rows]
        except SQLAlchemyError as e:
            logger.error(f"Page fetch failed for holding {holding_id}: {e}")
            raise PageFetchFailedError(holding_id, str(e)) from e

        page_number = after.page_number + 1 if after is not None else 1
        has_more = len(records) > page_size
        items = records[:page_size]

        next_cursor = None
        if has_more:
            last = items[-1]
            next_cursor = PageCursor(
                holding_id=holding_id,
                page_size=page_size,
                page_number=page_number,
                last_date=last.date,
                last_id=last.id,
            )

        return TransactionPage(
            holding_id=holding_id,
            page_number=page_number,
            page_size=page_size,
            items=items,
            has_more=has_more,
            next_cursor=next_cursor,
        )


class TransactionBrowser:
    """
    Caller-side paging state: the holding filter, page size and a cursor stack.

    Changing the filter or the page size drops every cursor and bumps a generation
    counter; a fetch that completes under an older generation is discarded so it
    cannot overwrite the newer selection.
    """

    def __init__(
        self,
        engine: PaginationEngine,
        holding_id: Optional[str] = None,
        page_size: int = config.DEFAULT_PAGE_SIZE,
    ):
        self.engine = engine
        self.holding_id = holding_id
        self.page_size = page_size
        self.current: Optional[TransactionPage] = None
        self.generation = 0
        # _cursors[i] is the cursor that fetched page i + 1 (None for page 1)
        self._cursors: list[Optional[PageCursor]] = []

    def _reset(self) -> None:
        self.generation += 1
        self.current = None
        self._cursors = []

    def set_filter(self, holding_id: Optional[str]) -> None:
        """Select another holding; paging restarts at page 1."""
        if holding_id != self.holding_id:
            self.holding_id = holding_id
            self._reset()

    def set_page_size(self, page_size: int) -> None:
        """Change the page size; paging restarts at page 1."""
        if page_size != self.page_size:
            self.page_size = page_size
            self._reset()

    @property
    def page_number(self) -> int:
        return self.current.page_number if self.current is not None else 0

    @property
    def has_next(self) -> bool:
        return self.current is not None and self.current.has_more

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    def _load(self, after: Optional[PageCursor], depth: int) -> Optional[TransactionPage]:
        if self.holding_id is None:
            return None

        generation = self.generation
        try:
            page = self.engine.fetch_page(self.holding_id, self.page_size, after)
        except PageFetchFailedError:
            if generation == self.generation:
                self._reset()
            raise

        if generation != self.generation:
            logger.debug(f"Discarding superseded page fetch for holding {page.holding_id}")
            return None

        self._cursors = self._cursors[:depth] + [after]
        self.current = page
        return page

    def first(self) -> Optional[TransactionPage]:
        """Load page 1."""
        return self._load(None, 0)

    def next(self) -> Optional[TransactionPage]:
        """Load the page after the current one."""
        if not self.has_next or self.current is None:
            return None
        return self._load(self.current.next_cursor, len(self._cursors))

    def previous(self) -> Optional[TransactionPage]:
        """Load the page before the current one."""
        if not self.has_previous:
            return None
        depth = len(self._cursors) - 2
        return self._load(self._cursors[depth], depth)

    def reload(self) -> Optional[TransactionPage]:
        """Refetch the current page, e.g. after a mutation."""
        if not self._cursors:
            return self.first()
        depth = len(self._cursors) - 1
        return self._load(self._cursors[depth], depth)
