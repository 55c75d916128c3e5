"""Unit tests for the ordered transaction validation."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from portfolio_ledger.lib.errors import (
    AmountTooLargeError,
    DuplicateSymbolError,
    InsufficientQuantityError,
    InvalidDateError,
    InvalidHoldingFieldsError,
    InvalidInterestRateError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidTransactionTypeError,
)
from portfolio_ledger.lib.records import TransactionDraft
from portfolio_ledger.models import InstrumentType, TransactionType
from portfolio_ledger.services.transaction_validator import (
    ValidationContext,
    allowed_transaction_types,
    compute_amount,
    validate_transaction,
)

TODAY = date(2024, 6, 1)


def make_draft(**overrides):
    fields = {"type": "buy", "date": "2024-01-15", "quantity": "10", "price": "2450"}
    fields.update(overrides)
    return TransactionDraft(**fields)


def stock_holding(total_quantity="10"):
    return SimpleNamespace(
        id="h-1", symbol="RELIANCE", type="stock", total_quantity=Decimal(total_quantity)
    )


def existing(instrument_type=InstrumentType.STOCK, holding=None, editing=None):
    return ValidationContext(
        instrument_type=instrument_type,
        holding=holding or stock_holding(),
        editing=editing,
        today=TODAY,
    )


def new_holding(instrument_type=InstrumentType.STOCK, symbols=()):
    return ValidationContext(
        instrument_type=instrument_type, existing_symbols=frozenset(symbols), today=TODAY
    )


@pytest.mark.unit
class TestHelpers:
    """Test suite for type and amount helpers."""

    def test_balance_only_for_bank(self):
        assert TransactionType.BALANCE in allowed_transaction_types(InstrumentType.BANK)
        for instrument_type in (InstrumentType.STOCK, InstrumentType.FUND, InstrumentType.GOLD):
            assert TransactionType.BALANCE not in allowed_transaction_types(instrument_type)

    def test_compute_amount(self):
        assert compute_amount(TransactionType.BUY, Decimal("10"), Decimal("2450")) == Decimal(
            "24500"
        )
        assert compute_amount(TransactionType.DIVIDEND, Decimal("0"), Decimal("120")) == Decimal(
            "120"
        )
        assert compute_amount(TransactionType.BALANCE, Decimal("5"), Decimal("900")) == Decimal(
            "900"
        )

    def test_compute_amount_is_rounded_to_stored_scale(self):
        amount = compute_amount(TransactionType.BUY, Decimal("0.12345678"), Decimal("0.5"))

        assert amount == Decimal("0.06172839")
        assert amount.as_tuple().exponent == -8


@pytest.mark.unit
class TestValidateTransaction:
    """Test suite for validate_transaction."""

    def test_valid_buy_on_existing_holding(self):
        validated = validate_transaction(make_draft(), existing())

        assert validated.type == TransactionType.BUY
        assert validated.date == date(2024, 1, 15)
        assert validated.quantity == Decimal("10")
        assert validated.amount == Decimal("24500")
        assert validated.name is None

    def test_date_checked_first(self):
        """A bad date wins over every later failure."""
        draft = make_draft(date="2024-07-01", quantity="-1", price="0")
        with pytest.raises(InvalidDateError):
            validate_transaction(draft, existing())

    def test_balance_rejected_for_stock(self):
        with pytest.raises(InvalidTransactionTypeError, match="balance"):
            validate_transaction(make_draft(type="balance"), existing())

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidTransactionTypeError):
            validate_transaction(make_draft(type="transfer"), existing())

    def test_quantity_required_for_buy(self):
        with pytest.raises(InvalidQuantityError):
            validate_transaction(make_draft(quantity=""), existing())

    def test_income_ignores_quantity(self):
        validated = validate_transaction(
            make_draft(type="dividend", quantity=None, price="150"), existing()
        )
        assert validated.quantity == Decimal("0")
        assert validated.amount == Decimal("150")

    def test_sell_within_holding(self):
        validated = validate_transaction(
            make_draft(type="sell", quantity="4", price="2600"), existing()
        )
        assert validated.amount == Decimal("10400")

    def test_sell_more_than_held(self):
        with pytest.raises(InsufficientQuantityError, match="insufficient quantity"):
            validate_transaction(make_draft(type="sell", quantity="11"), existing())

    def test_edited_sell_is_credited_back(self):
        """Holding shows 6 after a recorded sell of 4; editing it to 10 is allowed."""
        editing = SimpleNamespace(
            holding_id="h-1", type="sell", quantity=Decimal("4"), deleted=False
        )
        context = existing(holding=stock_holding("6"), editing=editing)

        validated = validate_transaction(make_draft(type="sell", quantity="10"), context)
        assert validated.quantity == Decimal("10")

        with pytest.raises(InsufficientQuantityError):
            validate_transaction(make_draft(type="sell", quantity="10.5"), context)

    def test_sell_on_new_holding_rejected(self):
        draft = make_draft(type="sell", name="Reliance", symbol="RELIANCE")
        with pytest.raises(InsufficientQuantityError):
            validate_transaction(draft, new_holding())

    def test_price_checked_after_quantity(self):
        with pytest.raises(InvalidPriceError):
            validate_transaction(make_draft(price="0"), existing())

    def test_amount_limit(self):
        """1,000,000 units at 1,001 exceeds the 1e9 amount cap."""
        with pytest.raises(AmountTooLargeError):
            validate_transaction(make_draft(quantity="1000000", price="1001"), existing())

    def test_new_holding_fields(self):
        draft = make_draft(name="Reliance Industries", symbol="reliance.ns", category="Energy")
        validated = validate_transaction(draft, new_holding())

        assert validated.name == "Reliance Industries"
        assert validated.symbol == "RELIANCE.NS"
        assert validated.category == "Energy"

    def test_new_holding_requires_name_and_symbol(self):
        with pytest.raises(InvalidHoldingFieldsError):
            validate_transaction(make_draft(symbol="RELIANCE"), new_holding())
        with pytest.raises(InvalidHoldingFieldsError):
            validate_transaction(make_draft(name="Reliance"), new_holding())

    def test_duplicate_symbol_is_case_insensitive(self):
        draft = make_draft(name="Reliance", symbol="reliance")
        with pytest.raises(DuplicateSymbolError):
            validate_transaction(draft, new_holding(symbols={"RELIANCE"}))

    def test_gold_interest_rate(self):
        draft = make_draft(
            name="Gold Bond",
            symbol="SGB",
            interest_rate="2.5",
            interest_start_date="2024-02-01",
        )
        validated = validate_transaction(draft, new_holding(InstrumentType.GOLD))

        assert validated.interest_rate == Decimal("2.5")
        assert validated.interest_start_date == date(2024, 2, 1)

    def test_gold_interest_rate_out_of_range(self):
        draft = make_draft(name="Gold Bond", symbol="SGB", interest_rate="101")
        with pytest.raises(InvalidInterestRateError):
            validate_transaction(draft, new_holding(InstrumentType.GOLD))

    def test_interest_rate_ignored_outside_gold(self):
        validated = validate_transaction(make_draft(interest_rate="101"), existing())
        assert validated.interest_rate is None

    def test_bank_balance(self):
        draft = make_draft(type="balance", quantity=None, price="50000", name="HDFC", symbol="HDFC")
        validated = validate_transaction(draft, new_holding(InstrumentType.BANK))

        assert validated.type == TransactionType.BALANCE
        assert validated.amount == Decimal("50000")
