"""Ordered validation of transaction drafts before they are committed."""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from portfolio_ledger.lib import config
from portfolio_ledger.lib.errors import (
    AmountTooLargeError,
    DuplicateSymbolError,
    InsufficientQuantityError,
    InvalidDateError,
    InvalidTransactionTypeError,
)
from portfolio_ledger.lib.records import TransactionDraft
from portfolio_ledger.lib.validators import (
    STORE_QUANTUM,
    parse_date,
    sanitize_text,
    validate_date,
    validate_holding_name,
    validate_percentage,
    validate_price,
    validate_quantity,
    validate_symbol,
)
from portfolio_ledger.models import (
    FLAT_AMOUNT_TYPES,
    QUANTITY_TYPES,
    InstrumentType,
    TransactionType,
)

ZERO = Decimal("0")

_BASE_TYPES = (
    TransactionType.BUY,
    TransactionType.SELL,
    TransactionType.DIVIDEND,
    TransactionType.INTEREST,
)


def allowed_transaction_types(instrument_type: InstrumentType) -> tuple[TransactionType, ...]:
    """Transaction types valid for an instrument type; ``balance`` is bank-only."""
    if InstrumentType(instrument_type) == InstrumentType.BANK:
        return _BASE_TYPES + (TransactionType.BALANCE,)
    return _BASE_TYPES


def compute_amount(
    transaction_type: TransactionType, quantity: Decimal, price: Decimal
) -> Decimal:
    """Income and balance entries take the price verbatim; buys and sells multiply.

    The product is rounded to the stored scale so the returned amount is the
    value that gets committed.
    """
    if transaction_type in FLAT_AMOUNT_TYPES:
        return price
    return (quantity * price).quantize(STORE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass
class ValidationContext:
    """What the validator needs to know about the target holding.

    Attributes:
        instrument_type: Type of the target (or to-be-created) holding
        holding: Existing holding, or None when the draft creates one
        existing_symbols: Upper-cased symbols already used within instrument_type
        editing: Transaction being edited, if any
        today: Current date (default: date.today())
    """

    instrument_type: InstrumentType
    holding: Optional[Any] = None
    existing_symbols: frozenset[str] = frozenset()
    editing: Optional[Any] = None
    today: Optional[date] = None

    @property
    def creates_holding(self) -> bool:
        return self.holding is None

    def available_quantity(self) -> Decimal:
        """Units that may be sold, crediting back an edited sell."""
        if self.holding is None:
            return ZERO
        available = Decimal(self.holding.total_quantity or 0)
        editing = self.editing
        if (
            editing is not None
            and not editing.deleted
            and editing.holding_id == self.holding.id
            and TransactionType(editing.type) == TransactionType.SELL
        ):
            available += Decimal(editing.quantity or 0)
        return available


@dataclass
class ValidatedTransaction:
    """A draft that passed every check, with its derived amount."""

    type: TransactionType
    date: date
    quantity: Decimal
    price: Decimal
    amount: Decimal
    interest_rate: Optional[Decimal] = None
    interest_start_date: Optional[date] = None
    name: Optional[str] = None
    symbol: Optional[str] = None
    category: Optional[str] = None


def validate_transaction(
    draft: TransactionDraft, context: ValidationContext
) -> ValidatedTransaction:
    """
    Validate a draft, short-circuiting on the first failure.

    Checks, in order: date, type for the instrument, buy/sell quantity, sell
    against holding quantity, price, derived amount, new holding fields and
    symbol uniqueness, gold interest rate.

    Args:
        draft: Sanitized raw input
        context: Target holding information

    Returns:
        ValidatedTransaction ready for the ledger

    Raises:
        ValidationRejected: A subclass naming the first failed check
    """
    instrument_type = InstrumentType(context.instrument_type)

    # 1. Date
    txn_date = validate_date(draft.date, today=context.today)

    # 2. Type
    try:
        txn_type = TransactionType(draft.type.lower())
    except ValueError:
        raise InvalidTransactionTypeError(draft.type, instrument_type.value) from None
    if txn_type not in allowed_transaction_types(instrument_type):
        raise InvalidTransactionTypeError(txn_type.value, instrument_type.value)

    # 3-4. Quantity, and the holding must cover a sell
    quantity = ZERO
    if txn_type in QUANTITY_TYPES:
        quantity = validate_quantity(draft.quantity)
        if txn_type == TransactionType.SELL:
            available = context.available_quantity()
            if quantity > available:
                symbol = context.holding.symbol if context.holding is not None else draft.symbol
                raise InsufficientQuantityError(symbol or "new holding", available, quantity)

    # 5. Price / amount
    price = validate_price(draft.price)

    # 6. Derived amount
    amount = compute_amount(txn_type, quantity, price)
    if amount > config.MAX_AMOUNT:
        raise AmountTooLargeError(amount, config.MAX_AMOUNT)

    validated = ValidatedTransaction(
        type=txn_type, date=txn_date, quantity=quantity, price=price, amount=amount
    )

    # 7. New holding fields
    if context.creates_holding:
        validated.name = validate_holding_name(draft.name)
        validated.symbol = validate_symbol(draft.symbol)
        if validated.symbol in context.existing_symbols:
            raise DuplicateSymbolError(validated.symbol, instrument_type.value)
        validated.category = sanitize_text(draft.category) if draft.category else None

    # 8. Gold interest
    if instrument_type == InstrumentType.GOLD:
        if draft.interest_rate is not None:
            validated.interest_rate = validate_percentage(draft.interest_rate)
        if draft.interest_start_date:
            start = parse_date(draft.interest_start_date)
            if start is None:
                raise InvalidDateError(draft.interest_start_date, "invalid interest start date")
            validated.interest_start_date = start

    return validated
