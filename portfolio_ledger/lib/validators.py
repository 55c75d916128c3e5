"""
Input validation utilities.

Provides primitive bound checks and sanitization for transaction input:
numbers, dates, percentages, holding names and symbols, user ids and free text.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from portfolio_ledger.lib import config
from portfolio_ledger.lib.errors import (
    InvalidDateError,
    InvalidHoldingFieldsError,
    InvalidInterestRateError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidUserIdError,
)

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JAVASCRIPT_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)

STORE_QUANTUM = Decimal(1).scaleb(-config.DECIMAL_PLACES)


def sanitize_text(text: str, max_length: int = config.MAX_TEXT_LENGTH) -> str:
    """
    Sanitize free-text user input.

    Strips angle brackets, ``javascript:`` and inline event-handler patterns,
    trims whitespace and truncates to ``max_length``. The store's access rules are
    the real security boundary; this only keeps obvious markup out of records.

    Examples:
        >>> sanitize_text("  <b>Reliance</b>  ")
        'bReliance/b'
        >>> sanitize_text("x onclick=alert(1)")
        'x alert(1)'
    """
    text = _ANGLE_BRACKETS.sub("", text)
    text = _JAVASCRIPT_SCHEME.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    return text.strip()[:max_length]


def parse_decimal(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal]:
    """
    Parse a loosely typed number.

    Returns None when the value is missing or not a number. Non-finite values
    (NaN, Infinity) are returned as-is so callers can reject them explicitly.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def fits_scale(value: Decimal) -> bool:
    """True when ``value`` is stored without rounding in a Numeric(20, 8) column."""
    return value == value.quantize(STORE_QUANTUM)


def validate_quantity(
    quantity: Union[Decimal, str, None], max_value: Decimal = Decimal(config.MAX_QUANTITY)
) -> Decimal:
    """
    Validate quantity is a finite positive number within range.

    Args:
        quantity: Quantity to validate
        max_value: Maximum allowed value (default: 1,000,000)

    Returns:
        Validated quantity

    Raises:
        InvalidQuantityError: If quantity is missing, not finite, or out of range

    Examples:
        >>> validate_quantity("10")
        Decimal('10')
        >>> validate_quantity("-5")
        Traceback (most recent call last):
        ...
        InvalidQuantityError: Invalid quantity: -5 (must be a positive number)
    """
    parsed = parse_decimal(quantity)
    if parsed is None or not parsed.is_finite() or parsed <= 0:
        raise InvalidQuantityError(quantity, "must be a positive number")

    if parsed > max_value:
        raise InvalidQuantityError(quantity, f"cannot exceed {max_value} units")

    if not fits_scale(parsed):
        raise InvalidQuantityError(
            quantity, f"at most {config.DECIMAL_PLACES} decimal places are stored"
        )

    return parsed


def validate_price(
    price: Union[Decimal, str, None], max_value: Decimal = Decimal(config.MAX_PRICE)
) -> Decimal:
    """
    Validate price (or flat amount) is a finite positive number within range.

    Args:
        price: Price to validate
        max_value: Maximum allowed value (default: 10,000,000)

    Returns:
        Validated price

    Raises:
        InvalidPriceError: If price is missing, not finite, or out of range
    """
    parsed = parse_decimal(price)
    if parsed is None or not parsed.is_finite() or parsed <= 0:
        raise InvalidPriceError(price, "price/amount must be a positive number")

    if parsed > max_value:
        raise InvalidPriceError(price, f"cannot exceed {max_value}")

    if not fits_scale(parsed):
        raise InvalidPriceError(
            price, f"at most {config.DECIMAL_PLACES} decimal places are stored"
        )

    return parsed


def parse_date(date_value: Union[date, datetime, str, None]) -> Optional[date]:
    """Parse a date object or ISO-style string; None when unparseable."""
    if date_value is None:
        return None
    if isinstance(date_value, datetime):
        return date_value.date()
    if isinstance(date_value, date):
        return date_value
    text = date_value.strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def validate_date(
    date_value: Union[date, datetime, str, None],
    min_date: date = config.MIN_TRANSACTION_DATE,
    today: Optional[date] = None,
) -> date:
    """
    Validate a transaction date.

    The date must be present, parseable, not after today (any time today is
    allowed) and not before ``min_date``.

    Args:
        date_value: Date to validate (date object, datetime object, or string)
        min_date: Minimum allowed date (default: 2000-01-01)
        today: Current date (default: date.today())

    Returns:
        Validated date

    Raises:
        InvalidDateError: If the date is missing, malformed or out of range

    Examples:
        >>> validate_date("2024-01-15", today=date(2024, 6, 1))
        datetime.date(2024, 1, 15)
    """
    if date_value is None or (isinstance(date_value, str) and not date_value.strip()):
        raise InvalidDateError(date_value, "please select a date")

    parsed_date = parse_date(date_value)
    if parsed_date is None:
        raise InvalidDateError(date_value, "invalid date format")

    if today is None:
        today = date.today()

    if parsed_date > today:
        raise InvalidDateError(parsed_date, "transaction date cannot be in the future")

    if parsed_date < min_date:
        raise InvalidDateError(parsed_date, f"date is before {min_date}")

    return parsed_date


def validate_percentage(
    percentage: Union[Decimal, str, None],
    min_value: Decimal = Decimal("0"),
    max_value: Decimal = Decimal(config.MAX_INTEREST_RATE),
) -> Decimal:
    """
    Validate an interest rate percentage.

    Raises:
        InvalidInterestRateError: If the rate is not a number within [min, max]

    Examples:
        >>> validate_percentage("7.5")
        Decimal('7.5')
    """
    parsed = parse_decimal(percentage)
    if parsed is None or not parsed.is_finite() or parsed < min_value or parsed > max_value:
        raise InvalidInterestRateError(percentage)

    return parsed


def validate_holding_name(name: Optional[str]) -> str:
    """Validate a new holding's display name."""
    name = (name or "").strip()
    if not name:
        raise InvalidHoldingFieldsError("Please enter both name and symbol for a new holding")
    if len(name) < config.NAME_MIN_LENGTH:
        raise InvalidHoldingFieldsError(
            f"Holding name must be at least {config.NAME_MIN_LENGTH} characters"
        )
    return name


def validate_symbol(symbol: Optional[str]) -> str:
    """
    Validate and normalize a holding symbol.

    Returns:
        Upper-cased symbol

    Examples:
        >>> validate_symbol(" reliance.ns ")
        'RELIANCE.NS'
    """
    symbol = (symbol or "").strip()
    if not symbol:
        raise InvalidHoldingFieldsError("Please enter both name and symbol for a new holding")
    if not config.SYMBOL_MIN_LENGTH <= len(symbol) <= config.SYMBOL_MAX_LENGTH:
        raise InvalidHoldingFieldsError(
            f"Symbol must be between {config.SYMBOL_MIN_LENGTH} and "
            f"{config.SYMBOL_MAX_LENGTH} characters"
        )
    if not re.match(config.SYMBOL_PATTERN, symbol):
        raise InvalidHoldingFieldsError(
            "Symbol can only contain letters, numbers, dots and hyphens"
        )
    return symbol.upper()


def validate_user_id(user_id: Optional[str]) -> str:
    """
    Validate the opaque user identifier supplied by the identity provider.

    Raises:
        InvalidUserIdError: If empty or containing characters outside [A-Za-z0-9_-]
    """
    if not user_id or not re.match(config.USER_ID_PATTERN, user_id):
        raise InvalidUserIdError(user_id or "")
    return user_id
