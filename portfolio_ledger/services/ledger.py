"""Ledger service: atomic writes of holdings and transactions, then recompute.

Every mutation is two-phase. The write itself is one atomic batch (new holding
and its first transaction become visible together or not at all). Only after it
commits are the holding statistics and the portfolio aggregate recomputed, as a
best-effort follow-up whose failure never rolls the write back.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_ledger.lib import config
from portfolio_ledger.lib.cache import UserCache
from portfolio_ledger.lib.db import SessionFactory, db_session
from portfolio_ledger.lib.errors import (
    BatchTooLargeError,
    CommitFailedError,
    DuplicateSymbolError,
    HoldingNotFoundError,
    InsufficientQuantityError,
    InvalidPriceError,
    RecomputeFailedError,
    TransactionNotFoundError,
    ValidationRejected,
)
from portfolio_ledger.lib.records import (
    PortfolioAggregateRecord,
    TransactionDraft,
    TransactionRecord,
    TypeAggregateRecord,
    to_aggregate_record,
    to_holding_record,
    to_transaction_record,
)
from portfolio_ledger.lib.validators import (
    fits_scale,
    parse_decimal,
    sanitize_text,
    validate_holding_name,
    validate_symbol,
    validate_user_id,
)
from portfolio_ledger.models import (
    Holding,
    InstrumentType,
    PortfolioAggregate,
    Transaction,
    TransactionType,
)
from portfolio_ledger.services.aggregation import (
    HoldingStats,
    PortfolioSummary,
    fold_holding_stats,
    fold_portfolio_summary,
    fold_type_summary,
)
from portfolio_ledger.services.transaction_validator import (
    ValidatedTransaction,
    ValidationContext,
    validate_transaction,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewHolding:
    """Holding reference meaning "create a holding of this type with the transaction"."""

    type: InstrumentType


HoldingRef = Union[str, NewHolding]


@dataclass
class SaveResult:
    """Outcome of a committed mutation.

    Attributes:
        transaction: The committed transaction (a tombstone after delete)
        holding: The affected holding, re-read after the recompute step
        holding_created: True when the write also created the holding
        stats: Fresh holding statistics, None when recompute failed
        portfolio: Fresh portfolio rollup, None when recompute failed
        stats_stale: True when the write committed but recompute failed
        warning: Message to surface when stats_stale is True
    """

    transaction: Optional[TransactionRecord]
    holding: Any
    holding_created: bool = False
    stats: Optional[HoldingStats] = None
    portfolio: Optional[PortfolioSummary] = None
    stats_stale: bool = False
    warning: Optional[str] = None


@dataclass
class WriteBatch:
    """Records staged for one atomic commit, bounded in size."""

    session: Session
    max_size: int = config.MAX_BATCH_SIZE
    staged: list[Any] = field(default_factory=list)

    def stage(self, record: Any) -> None:
        """Add a create or update to the batch."""
        if len(self.staged) + 1 > self.max_size:
            raise BatchTooLargeError(len(self.staged) + 1, self.max_size)
        self.staged.append(record)
        self.session.add(record)


class Ledger:
    """Owns a user's holdings and transaction log in the store."""

    def __init__(
        self,
        user_id: str,
        session_factory: Optional[SessionFactory] = None,
        cache: Optional[UserCache] = None,
        max_batch_size: int = config.MAX_BATCH_SIZE,
    ):
        """
        Initialize the ledger.

        Args:
            user_id: Opaque identifier from the identity provider
            session_factory: Store session factory (default: process-wide one)
            cache: User cache invalidated after every successful mutation
            max_batch_size: Most operations staged in one atomic commit
        """
        self.user_id = validate_user_id(user_id)
        self._session_factory = session_factory
        self.cache = cache
        self.max_batch_size = max_batch_size

    # Reads

    def _holding(self, session: Session, holding_id: str, lock: bool = False) -> Holding:
        stmt = select(Holding).where(Holding.id == holding_id, Holding.user_id == self.user_id)
        if lock:
            stmt = stmt.with_for_update()
        holding = session.execute(stmt).scalar_one_or_none()
        if holding is None:
            raise HoldingNotFoundError(holding_id)
        return holding

    def _transaction(
        self, session: Session, transaction_id: str, lock: bool = False
    ) -> Transaction:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id, Transaction.user_id == self.user_id
        )
        if lock:
            stmt = stmt.with_for_update()
        transaction = session.execute(stmt).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def _live_transactions(self, session: Session, holding_id: str) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.holding_id == holding_id,
                Transaction.user_id == self.user_id,
                Transaction.deleted.is_(False),
            )
            .order_by(Transaction.created_at, Transaction.id)
        )
        return list(session.execute(stmt).scalars())

    def _symbols_in_use(self, session: Session, instrument_type: InstrumentType) -> frozenset[str]:
        stmt = select(Holding.symbol).where(
            Holding.user_id == self.user_id, Holding.type == instrument_type
        )
        return frozenset(symbol.upper() for symbol in session.execute(stmt).scalars())

    def get_holding(self, holding_id: str) -> Any:
        """Holding record by id."""
        with db_session(self._session_factory) as session:
            return to_holding_record(self._holding(session, holding_id))

    def list_holdings(self) -> list[Any]:
        """All holding records of the user, oldest first."""
        with db_session(self._session_factory) as session:
            stmt = (
                select(Holding)
                .where(Holding.user_id == self.user_id)
                .order_by(Holding.created_at, Holding.id)
            )
            return [to_holding_record(h) for h in session.execute(stmt).scalars()]

    def get_transaction(self, transaction_id: str) -> TransactionRecord:
        """Transaction record by id, soft-deleted ones included."""
        with db_session(self._session_factory) as session:
            return to_transaction_record(self._transaction(session, transaction_id))

    def fetch_all_transactions(
        self, limit: int = config.TRANSACTION_FETCH_LIMIT
    ) -> list[TransactionRecord]:
        """
        Unbounded fetch of the user's transactions, tombstones included.

        Capped at ``limit`` rows; reaching the cap is logged because later rows
        are silently missing from the result.
        """
        with db_session(self._session_factory) as session:
            stmt = (
                select(Transaction)
                .where(Transaction.user_id == self.user_id)
                .order_by(Transaction.created_at, Transaction.id)
                .limit(limit)
            )
            rows = list(session.execute(stmt).scalars())

        if len(rows) >= limit:
            logger.warning(
                f"Transaction limit reached ({limit}), some transactions may not be loaded"
            )
        return [to_transaction_record(t) for t in rows]

    def load_aggregate(self) -> Optional[PortfolioAggregateRecord]:
        """The stored portfolio aggregate, or None if never computed."""
        with db_session(self._session_factory) as session:
            aggregate = session.get(PortfolioAggregate, self.user_id)
            return to_aggregate_record(aggregate) if aggregate is not None else None

    # Writes

    def create_holding(
        self,
        instrument_type: InstrumentType,
        name: str,
        symbol: str,
        category: Optional[str] = None,
        current_price: Decimal = Decimal("0"),
    ) -> Any:
        """
        Explicitly create an empty holding.

        Raises:
            ValidationRejected: Bad name/symbol, or symbol already used in the type
            CommitFailedError: Store write failed
        """
        instrument_type = InstrumentType(instrument_type)
        name = validate_holding_name(sanitize_text(name))
        symbol = validate_symbol(sanitize_text(symbol))
        category = sanitize_text(category) or None if category else None
        price = self._validate_current_price(current_price)

        try:
            with db_session(self._session_factory) as session:
                if symbol in self._symbols_in_use(session, instrument_type):
                    raise DuplicateSymbolError(symbol, instrument_type.value)
                holding = self._new_holding(instrument_type, name, symbol, category, price)
                WriteBatch(session, self.max_batch_size).stage(holding)
                session.flush()
                record = to_holding_record(holding)
        except SQLAlchemyError as e:
            logger.error(f"Holding create failed: {e}")
            raise CommitFailedError(str(e)) from e

        self._invalidate_cache()
        logger.info(f"Created {instrument_type.value} holding {record.id}")
        return record

    def _new_holding(
        self,
        instrument_type: InstrumentType,
        name: str,
        symbol: str,
        category: Optional[str],
        current_price: Decimal,
    ) -> Holding:
        """Holding row with every denormalized field zeroed."""
        now = datetime.now(timezone.utc)
        return Holding(
            user_id=self.user_id,
            type=instrument_type,
            symbol=symbol,
            name=name,
            category=category,
            current_price=current_price,
            total_quantity=Decimal("0"),
            avg_cost=Decimal("0"),
            total_cost=Decimal("0"),
            current_value=Decimal("0"),
            total_income=Decimal("0"),
            last_transaction_date=None,
            transaction_count=0,
            created_at=now,
            updated_at=now,
        )

    def save_transaction(
        self,
        draft: TransactionDraft,
        holding_ref: HoldingRef,
        transaction_id: Optional[str] = None,
    ) -> SaveResult:
        """
        Validate and atomically commit a transaction, creating its holding if asked.

        Args:
            draft: Raw transaction input
            holding_ref: Existing holding id, or NewHolding(type) to create one
            transaction_id: Id of the transaction to edit; None creates a new one

        Returns:
            SaveResult; check ``stats_stale`` for a failed recompute follow-up

        Raises:
            ValidationRejected: Input rejected, nothing written
            HoldingNotFoundError / TransactionNotFoundError: Unknown reference
            CommitFailedError: Atomic write failed, nothing written
        """
        context = self._validation_context(holding_ref, transaction_id)
        validated = validate_transaction(draft, context)

        creates_holding = isinstance(holding_ref, NewHolding)
        previous_holding_id: Optional[str] = None

        try:
            with db_session(self._session_factory) as session:
                batch = WriteBatch(session, self.max_batch_size)

                if isinstance(holding_ref, NewHolding):
                    if validated.symbol in self._symbols_in_use(session, holding_ref.type):
                        raise DuplicateSymbolError(validated.symbol or "", holding_ref.type.value)
                    holding = self._new_holding(
                        holding_ref.type,
                        validated.name or "",
                        validated.symbol or "",
                        validated.category,
                        validated.price,
                    )
                    batch.stage(holding)
                    session.flush()
                else:
                    holding = self._holding(session, holding_ref, lock=True)
                    if validated.type == TransactionType.SELL:
                        self._recheck_sell(session, holding, validated, transaction_id)

                if transaction_id is None:
                    transaction = Transaction(user_id=self.user_id, holding_id=holding.id)
                else:
                    transaction = self._transaction(session, transaction_id, lock=True)
                    previous_holding_id = transaction.holding_id
                    transaction.holding_id = holding.id
                self._apply(transaction, validated)
                batch.stage(transaction)

                session.flush()
                if previous_holding_id is not None:
                    for affected_id in {previous_holding_id, holding.id}:
                        self._reject_oversold(session, affected_id)
                transaction_record = to_transaction_record(transaction)
                holding_id = holding.id
        except ValidationRejected:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Batch commit failed: {e}")
            raise CommitFailedError(str(e)) from e

        logger.info(
            f"Committed {validated.type.value} transaction {transaction_record.id}"
            + (f" with new holding {holding_id}" if creates_holding else "")
        )

        affected = [holding_id]
        if previous_holding_id and previous_holding_id != holding_id:
            affected.append(previous_holding_id)

        result = SaveResult(
            transaction=transaction_record, holding=None, holding_created=creates_holding
        )
        self._follow_up(result, affected)
        return result

    def _validation_context(
        self, holding_ref: HoldingRef, transaction_id: Optional[str]
    ) -> ValidationContext:
        """Read what validation needs, outside the write batch."""
        with db_session(self._session_factory) as session:
            editing = None
            if transaction_id is not None:
                editing = to_transaction_record(self._transaction(session, transaction_id))

            if isinstance(holding_ref, NewHolding):
                return ValidationContext(
                    instrument_type=holding_ref.type,
                    existing_symbols=self._symbols_in_use(session, holding_ref.type),
                    editing=editing,
                )

            holding = to_holding_record(self._holding(session, holding_ref))
            return ValidationContext(
                instrument_type=InstrumentType(holding.type), holding=holding, editing=editing
            )

    def _recheck_sell(
        self,
        session: Session,
        holding: Holding,
        validated: ValidatedTransaction,
        transaction_id: Optional[str],
    ) -> None:
        """Repeat the sell check against the stored log while the holding row is locked.

        A concurrent writer may have sold from the same holding after validation read
        it; the fresh fold sees that sell, so the later batch is rejected.
        """
        others = [
            t for t in self._live_transactions(session, holding.id) if t.id != transaction_id
        ]
        available = fold_holding_stats(holding, others).total_quantity
        if validated.quantity > available:
            raise InsufficientQuantityError(holding.symbol, available, validated.quantity)

    def _reject_oversold(self, session: Session, holding_id: str) -> None:
        """An edit may shrink or move a buy; the remaining log must still cover every sell."""
        holding = self._holding(session, holding_id)
        stats = fold_holding_stats(holding, self._live_transactions(session, holding_id))
        if stats.total_quantity < 0:
            raise ValidationRejected(
                "Cannot save this edit: later sells would exceed the units bought"
            )

    @staticmethod
    def _apply(transaction: Transaction, validated: ValidatedTransaction) -> None:
        transaction.type = validated.type
        transaction.date = validated.date
        transaction.quantity = validated.quantity
        transaction.price = validated.price
        transaction.amount = validated.amount
        transaction.interest_rate = validated.interest_rate
        transaction.interest_start_date = validated.interest_start_date
        transaction.deleted = False
        transaction.deleted_at = None
        transaction.updated_at = datetime.now(timezone.utc)

    def delete_transaction(self, transaction_id: str) -> SaveResult:
        """
        Soft-delete a transaction, then recompute.

        Raises:
            TransactionNotFoundError: Unknown or already deleted
            ValidationRejected: Removing the entry would leave more sold than bought
            CommitFailedError: Store write failed
        """
        try:
            with db_session(self._session_factory) as session:
                transaction = self._transaction(session, transaction_id, lock=True)
                if transaction.deleted:
                    raise TransactionNotFoundError(transaction_id, "already deleted")

                holding = self._holding(session, transaction.holding_id, lock=True)
                if TransactionType(transaction.type) == TransactionType.BUY:
                    remaining = [
                        t
                        for t in self._live_transactions(session, holding.id)
                        if t.id != transaction.id
                    ]
                    if fold_holding_stats(holding, remaining).total_quantity < 0:
                        raise ValidationRejected(
                            "Cannot delete this buy: later sells would exceed the units bought"
                        )

                transaction.deleted = True
                transaction.deleted_at = datetime.now(timezone.utc)
                session.flush()
                transaction_record = to_transaction_record(transaction)
        except (ValidationRejected, TransactionNotFoundError, HoldingNotFoundError):
            raise
        except SQLAlchemyError as e:
            logger.error(f"Soft delete failed: {e}")
            raise CommitFailedError(str(e)) from e

        logger.info(f"Soft-deleted transaction {transaction_id}")

        result = SaveResult(transaction=transaction_record, holding=None)
        self._follow_up(result, [transaction_record.holding_id])
        return result

    def update_current_price(self, holding_id: str, price: Union[Decimal, str]) -> SaveResult:
        """
        Set a holding's externally supplied price, then recompute.

        Returns:
            SaveResult with ``transaction`` set to None
        """
        new_price = self._validate_current_price(price)
        try:
            with db_session(self._session_factory) as session:
                holding = self._holding(session, holding_id, lock=True)
                holding.current_price = new_price
                holding.updated_at = datetime.now(timezone.utc)
        except HoldingNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Price update failed: {e}")
            raise CommitFailedError(str(e)) from e

        result = SaveResult(transaction=None, holding=None)
        self._follow_up(result, [holding_id])
        return result

    @staticmethod
    def _validate_current_price(price: Union[Decimal, str, int, float]) -> Decimal:
        parsed = parse_decimal(price)
        if parsed is None or not parsed.is_finite() or parsed < 0:
            raise InvalidPriceError(price, "current price must be zero or positive")
        if parsed > config.MAX_PRICE:
            raise InvalidPriceError(price, f"cannot exceed {config.MAX_PRICE}")
        if not fits_scale(parsed):
            raise InvalidPriceError(
                price, f"at most {config.DECIMAL_PLACES} decimal places are stored"
            )
        return parsed

    # Recompute

    def _follow_up(self, result: SaveResult, holding_ids: list[str]) -> None:
        """Recompute affected holdings and the portfolio; never undoes the write."""
        try:
            for holding_id in holding_ids:
                stats = self.recompute_holding(holding_id)
                if holding_id == holding_ids[0]:
                    result.stats = stats
            result.portfolio = self.recompute_portfolio()
        except RecomputeFailedError as e:
            logger.warning(f"Transaction saved but stats update failed: {e.message}")
            result.stats_stale = True
            result.warning = e.message
            result.stats = None

        try:
            result.holding = self.get_holding(holding_ids[0])
        except SQLAlchemyError as e:
            logger.warning(f"Could not re-read holding {holding_ids[0]}: {e}")

        self._invalidate_cache()

    def recompute_holding(self, holding_id: str) -> HoldingStats:
        """
        Refold a holding's live transactions and store the denormalized fields.

        Raises:
            HoldingNotFoundError: Unknown holding
            RecomputeFailedError: Store read or write failed
        """
        try:
            with db_session(self._session_factory) as session:
                holding = self._holding(session, holding_id, lock=True)
                stats = fold_holding_stats(holding, self._live_transactions(session, holding_id))

                holding.total_quantity = stats.total_quantity
                holding.avg_cost = stats.avg_cost
                holding.total_cost = stats.total_cost
                holding.current_value = stats.current_value
                holding.total_income = stats.total_income
                holding.last_transaction_date = stats.last_transaction_date
                holding.transaction_count = stats.transaction_count
                holding.updated_at = datetime.now(timezone.utc)
        except SQLAlchemyError as e:
            raise RecomputeFailedError(str(e)) from e

        logger.debug(f"Holding stats updated for {holding_id}")
        return stats

    def recompute_portfolio(self) -> PortfolioSummary:
        """
        Re-derive and store the portfolio aggregate from all holdings.

        Raises:
            RecomputeFailedError: Store read or write failed
        """
        try:
            with db_session(self._session_factory) as session:
                holdings = session.execute(
                    select(Holding).where(Holding.user_id == self.user_id)
                ).scalars()
                summary = fold_portfolio_summary(fold_type_summary(holdings))

                aggregate = session.get(PortfolioAggregate, self.user_id)
                if aggregate is None:
                    aggregate = PortfolioAggregate(user_id=self.user_id)
                    session.add(aggregate)

                aggregate.total_cost = summary.total_cost
                aggregate.current_value = summary.current_value
                aggregate.total_income = summary.total_income
                aggregate.total_gain = summary.total_gain
                aggregate.total_return = summary.total_return
                aggregate.by_type = {
                    instrument_type.value: TypeAggregateRecord(
                        total_cost=item.total_cost,
                        current_value=item.current_value,
                        total_income=item.total_income,
                        total_gain=item.total_gain,
                        total_return=item.total_return,
                    ).model_dump(mode="json")
                    for instrument_type, item in summary.by_type.items()
                }
                aggregate.last_calculated = summary.last_calculated
        except SQLAlchemyError as e:
            raise RecomputeFailedError(str(e)) from e

        logger.debug("Portfolio aggregates updated")
        return summary

    def _invalidate_cache(self) -> None:
        if self.cache is not None:
            self.cache.invalidate()
