"""Unit tests for the exception hierarchy and CLI error helpers."""

import pytest

from portfolio_ledger.lib.errors import (
    CacheWriteSkipped,
    CommitFailedError,
    DataError,
    InsufficientQuantityError,
    InvalidDateError,
    PageFetchFailedError,
    PortfolioLedgerError,
    RecomputeFailedError,
    StoreError,
    TransactionNotFoundError,
    ValidationRejected,
    format_error_message,
    get_error_color,
)


@pytest.mark.unit
class TestHierarchy:
    """Test suite for exception classes."""

    def test_validation_errors_are_data_errors(self):
        error = InvalidDateError("2099-01-01", "date cannot be in the future")

        assert isinstance(error, ValidationRejected)
        assert isinstance(error, DataError)
        assert isinstance(error, PortfolioLedgerError)
        assert error.reason == error.message
        assert "future" in error.message

    def test_store_errors(self):
        for error in (
            CommitFailedError("disk I/O error"),
            RecomputeFailedError(),
            PageFetchFailedError("h-1"),
            TransactionNotFoundError("t-1", "already deleted"),
        ):
            assert isinstance(error, StoreError)

    def test_insufficient_quantity_message(self):
        error = InsufficientQuantityError("RELIANCE", "6", "8")

        assert error.available == "6"
        assert error.requested == "8"
        assert error.message.startswith("insufficient quantity")
        assert "RELIANCE" in error.message

    def test_recompute_message_asks_for_refresh(self):
        assert "Please refresh" in RecomputeFailedError("locked").message

    def test_transaction_not_found_default_reason(self):
        assert TransactionNotFoundError("t-1").message == "Transaction t-1 not found"


@pytest.mark.unit
class TestHelpers:
    """Test suite for format_error_message and get_error_color."""

    def test_format_own_errors_verbatim(self):
        assert format_error_message(CommitFailedError()) == "Failed to save transaction"

    def test_format_foreign_errors_with_type(self):
        assert format_error_message(KeyError("x")) == "KeyError: 'x'"

    def test_colors(self):
        assert get_error_color(RecomputeFailedError()) == "yellow"
        assert get_error_color(InvalidDateError("x")) == "red"
        assert get_error_color(CacheWriteSkipped("k", 10, 5)) == "orange"
        assert get_error_color(CommitFailedError()) == "magenta"
        assert get_error_color(RuntimeError()) == "red"
