"""Folds of the transaction log into holding, per-type and portfolio statistics.

Every function here is pure: callers pass the holding(s) and transactions and get
fresh numbers back. Recomputation is always total, never an in-place patch.
Inputs are duck-typed so both ORM rows and cached records can be folded.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from portfolio_ledger.lib import config
from portfolio_ledger.models import InstrumentType, TransactionType

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class HoldingStats:
    """Derived statistics of one holding.

    Attributes:
        holding_id: Holding the stats belong to
        type: Instrument type
        total_quantity: Sum of bought units minus sold units
        avg_cost: total_cost / total_quantity, 0 when nothing is held
        total_cost: Sum of buy amounts (sells do not reduce it)
        current_value: total_quantity * current price, or latest balance for bank
        capital_gain: current_value - total_cost
        total_income: Dividends + interest + accrued gold interest
        total_gain: capital_gain + total_income
        total_return: total_gain / total_cost * 100, 0 when total_cost is 0
        accrued_interest: Gold interest included in total_income
        last_transaction_date: Latest live transaction date
        transaction_count: Number of live transactions
    """

    holding_id: str
    type: InstrumentType
    total_quantity: Decimal = ZERO
    avg_cost: Decimal = ZERO
    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    capital_gain: Decimal = ZERO
    total_income: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_return: Decimal = ZERO
    accrued_interest: Decimal = ZERO
    last_transaction_date: Optional[date] = None
    transaction_count: int = 0


@dataclass
class TypeSummary:
    """Rollup of all holdings of one instrument type."""

    type: InstrumentType
    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    total_income: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_return: Decimal = ZERO
    holding_count: int = 0


@dataclass
class PortfolioSummary:
    """Whole-portfolio rollup with the per-type rollups it was built from."""

    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    total_income: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_return: Decimal = ZERO
    by_type: dict[InstrumentType, TypeSummary] = field(default_factory=dict)
    last_calculated: Optional[datetime] = None


def safe_return(total_gain: Decimal, total_cost: Decimal) -> Decimal:
    """Percentage return, 0 when there is no cost basis."""
    if total_cost > 0:
        return total_gain / total_cost * HUNDRED
    return ZERO


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def live_transactions(holding_id: str, transactions: Iterable[Any]) -> list[Any]:
    """Non-deleted transactions of one holding, in input order."""
    return [t for t in transactions if t.holding_id == holding_id and not t.deleted]


def accrued_gold_interest(
    total_cost: Decimal, transactions: list[Any], today: Optional[date] = None
) -> Decimal:
    """
    Simple interest accrued on a gold holding.

    Only the first buy carrying an interest rate is used; its rate applies to the
    whole cost basis from its interest start date (or its date) until today.
    Lots with different rates or dates are not tracked separately.

    Args:
        total_cost: Cost basis of the holding
        transactions: Live transactions of the holding
        today: Accrual end date (default: date.today())

    Returns:
        total_cost * rate/100 * days/365, never negative
    """
    rated_buy = next(
        (
            t
            for t in transactions
            if TransactionType(t.type) == TransactionType.BUY and t.interest_rate
        ),
        None,
    )
    if rated_buy is None:
        return ZERO

    if today is None:
        today = date.today()

    start = rated_buy.interest_start_date or rated_buy.date
    days_held = max((today - start).days, 0)
    rate = _decimal(rated_buy.interest_rate)
    return total_cost * (rate / HUNDRED) * Decimal(days_held) / Decimal(config.DAYS_PER_YEAR)


def fold_holding_stats(
    holding: Any, transactions: Iterable[Any], today: Optional[date] = None
) -> HoldingStats:
    """
    Fold a holding's live transactions into its statistics.

    Non-bank holdings use a cumulative running-average cost model: buys add
    quantity and cost, sells subtract quantity only, dividends and interest add
    income. Bank holdings are valued at the amount of their most recent entry.

    Args:
        holding: Holding row or record (needs id, type, current_price)
        transactions: Transactions to fold; other holdings' and deleted ones are skipped
        today: Date used for gold interest accrual

    Returns:
        Fresh HoldingStats
    """
    instrument_type = InstrumentType(holding.type)
    live = live_transactions(holding.id, transactions)
    stats = HoldingStats(
        holding_id=holding.id, type=instrument_type, transaction_count=len(live)
    )
    if live:
        stats.last_transaction_date = max(t.date for t in live)

    if instrument_type == InstrumentType.BANK:
        # sorted() is stable, so same-day entries keep store order
        latest = sorted(live, key=lambda t: t.date, reverse=True)
        stats.current_value = _decimal(latest[0].amount) if latest else ZERO
        return stats

    for txn in live:
        txn_type = TransactionType(txn.type)
        if txn_type == TransactionType.BUY:
            stats.total_quantity += _decimal(txn.quantity)
            stats.total_cost += _decimal(txn.amount)
        elif txn_type == TransactionType.SELL:
            stats.total_quantity -= _decimal(txn.quantity)
        elif txn_type in (TransactionType.DIVIDEND, TransactionType.INTEREST):
            stats.total_income += _decimal(txn.amount)

    if instrument_type == InstrumentType.GOLD:
        stats.accrued_interest = accrued_gold_interest(stats.total_cost, live, today)
        stats.total_income += stats.accrued_interest

    if stats.total_quantity > 0:
        stats.avg_cost = stats.total_cost / stats.total_quantity
    stats.current_value = stats.total_quantity * _decimal(holding.current_price)
    stats.capital_gain = stats.current_value - stats.total_cost
    stats.total_gain = stats.capital_gain + stats.total_income
    stats.total_return = safe_return(stats.total_gain, stats.total_cost)
    return stats


def holding_stats(holding: Any) -> HoldingStats:
    """
    Statistics from a holding's stored denormalized fields.

    Current value of non-bank holdings is re-derived from the current price so
    that a price update is reflected without refolding the log.
    """
    instrument_type = InstrumentType(holding.type)
    stats = HoldingStats(
        holding_id=holding.id,
        type=instrument_type,
        last_transaction_date=holding.last_transaction_date,
        transaction_count=holding.transaction_count or 0,
    )

    if instrument_type == InstrumentType.BANK:
        stats.current_value = _decimal(holding.current_value)
        return stats

    stats.total_quantity = _decimal(holding.total_quantity)
    stats.avg_cost = _decimal(holding.avg_cost)
    stats.total_cost = _decimal(holding.total_cost)
    stats.total_income = _decimal(holding.total_income)
    stats.current_value = stats.total_quantity * _decimal(holding.current_price)
    stats.capital_gain = stats.current_value - stats.total_cost
    stats.total_gain = stats.capital_gain + stats.total_income
    stats.total_return = safe_return(stats.total_gain, stats.total_cost)
    return stats


def fold_type_summary(holdings: Iterable[Any]) -> list[TypeSummary]:
    """
    Sum holding statistics per instrument type.

    Only types with at least one holding appear, in InstrumentType order.
    """
    summary: dict[InstrumentType, TypeSummary] = {}

    for holding in holdings:
        stats = holding_stats(holding)
        item = summary.setdefault(stats.type, TypeSummary(type=stats.type))
        item.total_cost += stats.total_cost
        item.current_value += stats.current_value
        item.total_income += stats.total_income
        item.total_gain += stats.total_gain
        item.holding_count += 1

    for item in summary.values():
        item.total_return = safe_return(item.total_gain, item.total_cost)

    return [summary[t] for t in InstrumentType if t in summary]


def fold_portfolio_summary(
    type_summaries: Iterable[TypeSummary], now: Optional[datetime] = None
) -> PortfolioSummary:
    """Sum per-type rollups into the whole-portfolio rollup."""
    portfolio = PortfolioSummary(last_calculated=now or datetime.now(timezone.utc))

    for item in type_summaries:
        portfolio.total_cost += item.total_cost
        portfolio.current_value += item.current_value
        portfolio.total_income += item.total_income
        portfolio.total_gain += item.total_gain
        portfolio.by_type[item.type] = item

    portfolio.total_return = safe_return(portfolio.total_gain, portfolio.total_cost)
    return portfolio
