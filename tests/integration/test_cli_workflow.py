"""Integration tests for CLI workflows against the test database."""

import re
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from portfolio_ledger import __version__
from portfolio_ledger.cli import main

USER = ["--user", "test-user_1"]


@pytest.fixture
def cli_runner():
    """Provide Click test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep the CLI from attaching handlers to the runner's captured streams."""
    with patch("portfolio_ledger.cli.setup_logging"):
        yield


def invoke(runner, *args, **kwargs):
    return runner.invoke(main, [*USER, *args], **kwargs)


def add_first_buy(runner):
    """Create a stock holding with one buy and return (holding_id, transaction_id)."""
    result = invoke(
        runner,
        "transaction", "add",
        "--new-type", "stock",
        "--name", "Reliance Industries",
        "--symbol", "reliance",
        "--date", "2024-01-15",
        "--quantity", "10",
        "--price", "2450",
    )
    assert result.exit_code == 0, result.output
    holding_id = re.search(r"New holding: (\S+)", result.output).group(1)
    transaction_id = re.search(r"Transaction: (\S+)", result.output).group(1)
    return holding_id, transaction_id


@pytest.mark.integration
class TestCLIWorkflow:
    """Test suite for full CLI workflows."""

    def test_version(self, cli_runner):
        result = cli_runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_add_then_list_holdings(self, cli_runner):
        add_first_buy(cli_runner)

        first = invoke(cli_runner, "holding", "list")
        assert first.exit_code == 0, first.output
        assert "RELIANCE" in first.output
        assert "Source: store" in first.output

        # a new invocation finds the persisted cache
        second = invoke(cli_runner, "holding", "list")
        assert "Source: cache" in second.output

        fresh = invoke(cli_runner, "holding", "list", "--refresh")
        assert "Source: store" in fresh.output

    def test_add_to_existing_holding_and_show(self, cli_runner):
        holding_id, _ = add_first_buy(cli_runner)

        result = invoke(
            cli_runner,
            "transaction", "add",
            "--holding", holding_id,
            "--type", "sell",
            "--date", "2024-02-01",
            "--quantity", "4",
            "--price", "2600",
        )
        assert result.exit_code == 0, result.output
        assert "Total Quantity: 6" in result.output

        shown = invoke(cli_runner, "holding", "show", holding_id)
        assert shown.exit_code == 0
        assert "Quantity: 6" in shown.output
        assert "Transactions: 2" in shown.output

    def test_oversell_is_rejected(self, cli_runner):
        holding_id, _ = add_first_buy(cli_runner)

        result = invoke(
            cli_runner,
            "transaction", "add",
            "--holding", holding_id,
            "--type", "sell",
            "--date", "2024-02-01",
            "--quantity", "11",
            "--price", "2600",
        )

        assert result.exit_code == 1
        assert "insufficient quantity" in result.output

    def test_holding_reference_is_required(self, cli_runner):
        result = invoke(cli_runner, "transaction", "add", "--price", "10")

        assert result.exit_code == 2
        assert "exactly one of --holding or --new-type" in result.output

    def test_paged_transaction_list(self, cli_runner):
        holding_id, _ = add_first_buy(cli_runner)
        for day in range(1, 12):
            result = invoke(
                cli_runner,
                "transaction", "add",
                "--holding", holding_id,
                "--date", f"2024-03-{day:02d}",
                "--quantity", "1",
                "--price", "2500",
            )
            assert result.exit_code == 0, result.output

        first = invoke(cli_runner, "transaction", "list", holding_id)
        assert first.exit_code == 0, first.output
        assert "Page 1" in first.output
        assert "More transactions available" in first.output

        both = invoke(cli_runner, "transaction", "list", holding_id, "--pages", "2")
        assert "Page 2" in both.output
        assert "More transactions available" not in both.output

    def test_portfolio_summary(self, cli_runner):
        add_first_buy(cli_runner)

        result = invoke(cli_runner, "portfolio", "summary")

        assert result.exit_code == 0, result.output
        assert "stock" in result.output
        assert "Total" in result.output
        assert "24,500.00" in result.output

    def test_edit_and_delete(self, cli_runner):
        holding_id, transaction_id = add_first_buy(cli_runner)

        edited = invoke(cli_runner, "transaction", "edit", transaction_id, "--quantity", "12")
        assert edited.exit_code == 0, edited.output
        assert "Total Quantity: 12" in edited.output

        deleted = invoke(cli_runner, "transaction", "delete", transaction_id, "--yes")
        assert deleted.exit_code == 0, deleted.output
        assert "Transaction deleted" in deleted.output

        again = invoke(cli_runner, "transaction", "delete", transaction_id, "--yes")
        assert again.exit_code == 1
        assert "already deleted" in again.output

        listing = invoke(cli_runner, "transaction", "list", holding_id)
        assert "No transactions found" in listing.output

    def test_delete_needs_confirmation(self, cli_runner):
        _, transaction_id = add_first_buy(cli_runner)

        result = invoke(cli_runner, "transaction", "delete", transaction_id, input="n\n")

        assert "Aborted" in result.output

    def test_unknown_holding(self, cli_runner):
        result = invoke(cli_runner, "holding", "show", "missing-id")

        assert result.exit_code == 1
        assert "Holding not found" in result.output

    def test_price_update_and_cache_clear(self, cli_runner):
        holding_id, _ = add_first_buy(cli_runner)

        priced = invoke(cli_runner, "holding", "price", holding_id, "2600")
        assert priced.exit_code == 0, priced.output
        assert "Current Value: 26,000.00" in priced.output

        invoke(cli_runner, "holding", "list")
        cleared = invoke(cli_runner, "cache", "clear")
        assert "Cache cleared" in cleared.output
        assert "Source: store" in invoke(cli_runner, "holding", "list").output

        everything = invoke(cli_runner, "cache", "clear", "--all")
        assert everything.exit_code == 0
        assert "Cleared" in everything.output

    def test_users_are_isolated(self, cli_runner):
        add_first_buy(cli_runner)

        result = cli_runner.invoke(main, ["--user", "someone-else", "holding", "list"])

        assert result.exit_code == 0
        assert "No holdings found" in result.output
