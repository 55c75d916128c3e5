"""Helpers shared by the CLI command groups."""

from decimal import Decimal
from typing import Any, NoReturn, Optional

import click
from rich.console import Console

from portfolio_ledger.lib.errors import format_error_message, get_error_color
from portfolio_ledger.services.ledger import SaveResult
from portfolio_ledger.services.portfolio_loader import PortfolioSession

console = Console()


def get_portfolio_session(ctx: click.Context) -> PortfolioSession:
    """The opened session of the invoking user, created on first use."""
    obj = ctx.ensure_object(dict)
    session = obj.get("SESSION")
    if session is None:
        session = PortfolioSession(obj.get("USER", "local")).open()
        obj["SESSION"] = session
    return session


def fail(error: Exception) -> NoReturn:
    """Print an error in its colour and exit with status 1."""
    color = get_error_color(error)
    console.print(f"[{color}]✗ Error: {format_error_message(error)}[/{color}]")
    raise click.exceptions.Exit(1)


def money(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    return f"{value:,.2f}"


def quantity(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    return f"{value.normalize():f}" if value == value.to_integral() else f"{value:,.4f}"


def percent(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    color = "green" if value >= 0 else "red"
    return f"[{color}]{value:+.2f}%[/{color}]"


def short_id(identifier: str) -> str:
    return identifier[:8]


def print_save_result(result: SaveResult, action: str) -> None:
    """Report a committed mutation, including a stale-stats warning."""
    console.print(f"[green]✓ {action}[/green]")
    if result.transaction is not None:
        console.print(f"Transaction: {result.transaction.id}")

    holding: Any = result.holding
    if holding is not None:
        if result.holding_created:
            console.print(f"New holding: {holding.id}")
        console.print(f"\nHolding {holding.symbol} ({holding.type}):")
        if holding.type == "bank":
            console.print(f"└─ Balance: {money(holding.current_value)}")
        else:
            console.print(f"├─ Total Quantity: {quantity(holding.total_quantity)}")
            console.print(f"├─ Average Cost: {money(holding.avg_cost)}")
            console.print(f"├─ Total Cost: {money(holding.total_cost)}")
            console.print(f"└─ Current Value: {money(holding.current_value)}")

    if result.stats_stale:
        console.print(f"\n[yellow]⚠ {result.warning}[/yellow]")
