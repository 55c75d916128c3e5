"""Unit tests for log redaction."""

import logging

import pytest

from portfolio_ledger.lib.logging_config import SensitiveDataFilter


def make_record(msg, args=None):
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


@pytest.mark.unit
class TestSensitiveDataFilter:
    """Test suite for SensitiveDataFilter."""

    @pytest.fixture
    def log_filter(self):
        return SensitiveDataFilter()

    def test_redacts_user_id_assignment(self, log_filter):
        record = make_record("Cache invalidated for user_id=test-user_1")

        assert log_filter.filter(record) is True
        assert record.getMessage() == "Cache invalidated for user_id=[REDACTED]"

    def test_redacts_user_id_in_args(self, log_filter):
        record = make_record("Cache invalidated for user_id=%s", ("test-user_1",))
        log_filter.filter(record)

        assert record.getMessage() == "Cache invalidated for user_id=[REDACTED]"

    def test_redacts_cache_keys(self, log_filter):
        record = make_record("Cache too large for %s", ("portfolio_test-user_1_transactions",))
        log_filter.filter(record)

        assert record.getMessage() == "Cache too large for portfolio_[REDACTED]_transactions"

    def test_redacts_bearer_tokens(self, log_filter):
        record = make_record("Authorization: Bearer abc.def-ghi")
        log_filter.filter(record)

        assert record.getMessage() == "Authorization: Bearer [REDACTED]"

    def test_redacts_dict_args(self, log_filter):
        record = make_record("%(user_id)s loaded %(count)s", {"user_id": "alice", "count": 3})
        log_filter.filter(record)

        assert record.getMessage() == "[REDACTED] loaded 3"

    def test_leaves_other_messages_alone(self, log_filter):
        record = make_record("Loaded %d holdings", (4,))
        log_filter.filter(record)

        assert record.getMessage() == "Loaded 4 holdings"
