"""Unit tests for input validators."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from portfolio_ledger.lib.errors import (
    InvalidDateError,
    InvalidHoldingFieldsError,
    InvalidInterestRateError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidUserIdError,
    ValidationRejected,
)
from portfolio_ledger.lib.validators import (
    parse_decimal,
    sanitize_text,
    validate_date,
    validate_holding_name,
    validate_percentage,
    validate_price,
    validate_quantity,
    validate_symbol,
    validate_user_id,
)

TODAY = date(2024, 6, 1)


@pytest.mark.unit
class TestSanitizeText:
    """Test suite for sanitize_text."""

    def test_strips_markup(self):
        """Angle brackets, javascript: and event handlers are removed."""
        assert sanitize_text("  <b>Reliance</b>  ") == "bReliance/b"
        assert sanitize_text("javascript:alert(1)") == "alert(1)"
        assert sanitize_text("x onclick=alert(1)") == "x alert(1)"

    def test_truncates(self):
        """Text is capped at the maximum length."""
        assert len(sanitize_text("a" * 600)) == 500
        assert sanitize_text("abcdef", max_length=3) == "abc"


@pytest.mark.unit
class TestParseDecimal:
    """Test suite for parse_decimal."""

    def test_parses_strings_and_numbers(self):
        assert parse_decimal("2450.50") == Decimal("2450.50")
        assert parse_decimal(10) == Decimal("10")
        assert parse_decimal(Decimal("1.5")) == Decimal("1.5")

    def test_missing_or_garbage_is_none(self):
        assert parse_decimal(None) is None
        assert parse_decimal("   ") is None
        assert parse_decimal("abc") is None


@pytest.mark.unit
class TestValidateQuantity:
    """Test suite for validate_quantity."""

    def test_valid_quantity(self):
        assert validate_quantity("10") == Decimal("10")
        assert validate_quantity("0.5") == Decimal("0.5")
        assert validate_quantity("1000000") == Decimal("1000000")

    def test_rejects_non_positive(self):
        with pytest.raises(InvalidQuantityError, match="positive"):
            validate_quantity("0")
        with pytest.raises(InvalidQuantityError):
            validate_quantity("-5")

    def test_rejects_missing_and_non_finite(self):
        with pytest.raises(InvalidQuantityError):
            validate_quantity(None)
        with pytest.raises(InvalidQuantityError):
            validate_quantity("NaN")
        with pytest.raises(InvalidQuantityError):
            validate_quantity("Infinity")

    def test_rejects_above_maximum(self):
        with pytest.raises(InvalidQuantityError, match="cannot exceed"):
            validate_quantity("1000000.01")

    def test_precision_beyond_stored_scale_is_rejected(self):
        assert validate_quantity("0.12345678") == Decimal("0.12345678")
        assert validate_quantity("1.500000000") == Decimal("1.5")
        with pytest.raises(InvalidQuantityError, match="8 decimal places"):
            validate_quantity("0.123456784")


@pytest.mark.unit
class TestValidatePrice:
    """Test suite for validate_price."""

    def test_valid_price(self):
        assert validate_price("2450") == Decimal("2450")
        assert validate_price("10000000") == Decimal("10000000")

    def test_rejects_invalid(self):
        with pytest.raises(InvalidPriceError):
            validate_price("0")
        with pytest.raises(InvalidPriceError):
            validate_price("")
        with pytest.raises(InvalidPriceError, match="cannot exceed"):
            validate_price("10000000.01")

    def test_errors_are_validation_rejections(self):
        with pytest.raises(ValidationRejected):
            validate_price("-1")

    def test_precision_beyond_stored_scale_is_rejected(self):
        assert validate_price("2450.00000001") == Decimal("2450.00000001")
        with pytest.raises(InvalidPriceError, match="8 decimal places"):
            validate_price("2450.000000001")


@pytest.mark.unit
class TestValidateDate:
    """Test suite for validate_date."""

    def test_accepts_formats(self):
        assert validate_date("2024-01-15", today=TODAY) == date(2024, 1, 15)
        assert validate_date("2024/01/15", today=TODAY) == date(2024, 1, 15)
        assert validate_date(date(2024, 1, 15), today=TODAY) == date(2024, 1, 15)
        assert validate_date(datetime(2024, 1, 15, 23, 59), today=TODAY) == date(2024, 1, 15)

    def test_today_is_allowed(self):
        assert validate_date(TODAY, today=TODAY) == TODAY

    def test_rejects_future(self):
        with pytest.raises(InvalidDateError, match="future"):
            validate_date("2024-06-02", today=TODAY)

    def test_rejects_before_minimum(self):
        assert validate_date("2000-01-01", today=TODAY) == date(2000, 1, 1)
        with pytest.raises(InvalidDateError, match="before"):
            validate_date("1999-12-31", today=TODAY)

    def test_rejects_missing_and_malformed(self):
        with pytest.raises(InvalidDateError, match="select a date"):
            validate_date(None, today=TODAY)
        with pytest.raises(InvalidDateError, match="select a date"):
            validate_date("  ", today=TODAY)
        with pytest.raises(InvalidDateError, match="format"):
            validate_date("15.01.2024", today=TODAY)


@pytest.mark.unit
class TestValidatePercentage:
    """Test suite for validate_percentage."""

    def test_range(self):
        assert validate_percentage("0") == Decimal("0")
        assert validate_percentage("7.5") == Decimal("7.5")
        assert validate_percentage("100") == Decimal("100")

    def test_rejects_out_of_range(self):
        with pytest.raises(InvalidInterestRateError):
            validate_percentage("-0.1")
        with pytest.raises(InvalidInterestRateError):
            validate_percentage("100.1")
        with pytest.raises(InvalidInterestRateError):
            validate_percentage("abc")


@pytest.mark.unit
class TestHoldingFields:
    """Test suite for holding name and symbol validation."""

    def test_symbol_is_upper_cased(self):
        assert validate_symbol(" reliance.ns ") == "RELIANCE.NS"
        assert validate_symbol("gold-24k") == "GOLD-24K"

    def test_symbol_length_and_charset(self):
        with pytest.raises(InvalidHoldingFieldsError, match="between"):
            validate_symbol("A")
        with pytest.raises(InvalidHoldingFieldsError, match="between"):
            validate_symbol("A" * 21)
        with pytest.raises(InvalidHoldingFieldsError, match="only contain"):
            validate_symbol("AA PL")

    def test_name(self):
        assert validate_holding_name(" Reliance ") == "Reliance"
        with pytest.raises(InvalidHoldingFieldsError, match="at least"):
            validate_holding_name("R")
        with pytest.raises(InvalidHoldingFieldsError, match="name and symbol"):
            validate_holding_name(None)


@pytest.mark.unit
class TestValidateUserId:
    """Test suite for validate_user_id."""

    def test_valid(self):
        assert validate_user_id("abc-DEF_123") == "abc-DEF_123"

    def test_invalid(self):
        with pytest.raises(InvalidUserIdError):
            validate_user_id("")
        with pytest.raises(InvalidUserIdError):
            validate_user_id("../etc")
        with pytest.raises(InvalidUserIdError):
            validate_user_id("a b")
