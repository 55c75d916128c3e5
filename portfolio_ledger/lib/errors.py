"""Custom exception classes for portfolio-ledger."""

from decimal import Decimal
from typing import Union

Number = Union[Decimal, float, int, str]


class PortfolioLedgerError(Exception):
    """Base exception for all portfolio-ledger errors."""

    def __init__(self, message: str):
        """Initialize with error message."""
        self.message = message
        super().__init__(message)


class DataError(PortfolioLedgerError):
    """Data validation or processing errors."""

    pass


class ValidationRejected(DataError):
    """User-correctable input error. Surfaced verbatim, never retried."""

    def __init__(self, reason: str):
        """
        Initialize with rejection reason.

        Args:
            reason: Human readable reason shown to the caller
        """
        self.reason = reason
        super().__init__(reason)


class InvalidDateError(ValidationRejected):
    """Invalid, missing or out-of-range transaction date."""

    def __init__(self, date_value: object, reason: str = ""):
        """
        Initialize with date details.

        Args:
            date_value: The rejected date value
            reason: Why the date was rejected
        """
        message = f"Invalid date: '{date_value}'"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidTransactionTypeError(ValidationRejected):
    """Transaction type not allowed for the instrument type."""

    def __init__(self, transaction_type: str, instrument_type: str):
        """
        Initialize with type details.

        Args:
            transaction_type: Requested transaction type
            instrument_type: Instrument type of the holding
        """
        message = (
            f"Invalid transaction type '{transaction_type}' "
            f"for {instrument_type} holdings"
        )
        super().__init__(message)


class InvalidQuantityError(ValidationRejected):
    """Invalid quantity value."""

    def __init__(self, quantity: object, reason: str = ""):
        """
        Initialize with quantity details.

        Args:
            quantity: The invalid quantity
            reason: Reason why quantity is invalid
        """
        message = f"Invalid quantity: {quantity}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InsufficientQuantityError(ValidationRejected):
    """Attempt to sell more units than held."""

    def __init__(self, symbol: str, available: Number, requested: Number):
        """
        Initialize with quantity details.

        Args:
            symbol: Holding symbol
            available: Available quantity
            requested: Requested quantity to sell
        """
        self.available = available
        self.requested = requested
        message = (
            f"insufficient quantity: cannot sell {requested} units of {symbol}, "
            f"only {available} units held"
        )
        super().__init__(message)


class InvalidPriceError(ValidationRejected):
    """Invalid price or amount value."""

    def __init__(self, price: object, reason: str = ""):
        """
        Initialize with price details.

        Args:
            price: The invalid price
            reason: Reason why price is invalid
        """
        message = f"Invalid price: {price}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class AmountTooLargeError(ValidationRejected):
    """Derived transaction amount exceeds the allowed maximum."""

    def __init__(self, amount: Number, maximum: Number):
        """
        Initialize with amount details.

        Args:
            amount: Derived amount
            maximum: Maximum allowed amount
        """
        message = f"Transaction amount {amount} exceeds maximum {maximum}"
        super().__init__(message)


class InvalidHoldingFieldsError(ValidationRejected):
    """New holding name or symbol is malformed."""

    pass


class DuplicateSymbolError(ValidationRejected):
    """Symbol already used by another holding of the same instrument type."""

    def __init__(self, symbol: str, instrument_type: str):
        """
        Initialize with symbol details.

        Args:
            symbol: Upper-cased symbol
            instrument_type: Instrument type that already uses it
        """
        message = f"A {instrument_type} holding with symbol '{symbol}' already exists"
        super().__init__(message)


class InvalidInterestRateError(ValidationRejected):
    """Gold interest rate outside [0, 100]."""

    def __init__(self, rate: object):
        """
        Initialize with rate.

        Args:
            rate: The rejected rate
        """
        message = f"Interest rate must be between 0 and 100, got {rate}"
        super().__init__(message)


class InvalidUserIdError(ValidationRejected):
    """Opaque user identifier has an unexpected format."""

    def __init__(self, user_id: str):
        """Initialize with the rejected identifier."""
        super().__init__(f"Invalid user id format: {user_id!r}")


class StoreError(PortfolioLedgerError):
    """Store operation errors."""

    pass


class CommitFailedError(StoreError):
    """Atomic write failed. Holding and transaction state is unchanged."""

    def __init__(self, details: str = ""):
        """
        Initialize commit failure.

        Args:
            details: Underlying store error text
        """
        message = "Failed to save transaction"
        if details:
            message += f": {details}"
        super().__init__(message)


class RecomputeFailedError(StoreError):
    """Aggregate recomputation failed after a successful commit."""

    def __init__(self, details: str = ""):
        """
        Initialize recompute failure.

        Args:
            details: Underlying error text
        """
        message = "Transaction saved, but portfolio stats update failed. Please refresh."
        if details:
            message += f" ({details})"
        super().__init__(message)


class PageFetchFailedError(StoreError):
    """Pagination query failed."""

    def __init__(self, holding_id: str, details: str = ""):
        """
        Initialize page fetch failure.

        Args:
            holding_id: Holding whose transactions were requested
            details: Underlying error text
        """
        message = f"Failed to load transactions for holding {holding_id}"
        if details:
            message += f": {details}"
        super().__init__(message)


class BatchTooLargeError(StoreError):
    """Too many operations staged in one atomic batch."""

    def __init__(self, size: int, maximum: int):
        """Initialize with batch size details."""
        super().__init__(f"Operation too large: {size} writes staged, maximum is {maximum}")


class HoldingNotFoundError(StoreError):
    """Holding not found for user."""

    def __init__(self, holding_id: str):
        """
        Initialize with holding ID.

        Args:
            holding_id: The holding ID that wasn't found
        """
        message = f"Holding not found: {holding_id}"
        super().__init__(message)


class TransactionNotFoundError(StoreError):
    """Transaction not found, or already deleted when a live one is required."""

    def __init__(self, transaction_id: str, reason: str = "not found"):
        """
        Initialize with transaction ID.

        Args:
            transaction_id: The transaction ID
            reason: "not found" or "already deleted"
        """
        message = f"Transaction {transaction_id} {reason}"
        super().__init__(message)


class CacheError(PortfolioLedgerError):
    """Local cache errors. Never escape the cache layer."""

    pass


class CacheWriteSkipped(CacheError):
    """Serialized payload too large to cache."""

    def __init__(self, key: str, size: int, limit: int):
        """Initialize with payload size details."""
        super().__init__(f"Cache too large for {key}: {size} bytes (limit {limit}), skipping")


class QuotaExceededError(CacheError):
    """Persisted cache storage quota exhausted."""

    def __init__(self, key: str):
        """Initialize with the key being written."""
        super().__init__(f"Cache storage quota exceeded while writing {key}")


# Error message helpers


def format_error_message(error: Exception) -> str:
    """
    Format exception into user-friendly error message.

    Args:
        error: The exception to format

    Returns:
        Formatted error message
    """
    if isinstance(error, PortfolioLedgerError):
        return error.message

    # Generic errors
    error_type = type(error).__name__
    return f"{error_type}: {str(error)}"


def get_error_color(error: Exception) -> str:
    """
    Get Rich color for error type.

    Args:
        error: The exception

    Returns:
        Rich color name
    """
    if isinstance(error, RecomputeFailedError):
        return "yellow"
    elif isinstance(error, (ValidationRejected, DataError)):
        return "red"
    elif isinstance(error, CacheError):
        return "orange"
    elif isinstance(error, StoreError):
        return "magenta"
    else:
        return "red"
