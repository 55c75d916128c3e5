"""Holding subcommands for listing, creating and pricing holdings."""

from typing import Optional

import click
from rich.table import Table

from portfolio_ledger.cli.common import (
    console,
    fail,
    get_portfolio_session,
    money,
    percent,
    print_save_result,
    quantity,
    short_id,
)
from portfolio_ledger.lib.errors import PortfolioLedgerError
from portfolio_ledger.models import InstrumentType
from portfolio_ledger.services.aggregation import holding_stats

INSTRUMENT_TYPES = [t.value for t in InstrumentType]


@click.group()
def holding() -> None:
    """Manage holdings."""
    pass


@holding.command("list")
@click.option(
    "--type", "instrument_type", type=click.Choice(INSTRUMENT_TYPES), help="Only this type"
)
@click.option("--refresh", is_flag=True, help="Bypass the cache and read the database")
@click.pass_context
def list_holdings(ctx: click.Context, instrument_type: Optional[str], refresh: bool) -> None:
    """List all holdings."""
    try:
        snapshot = get_portfolio_session(ctx).loader.load(force=refresh)
    except PortfolioLedgerError as e:
        fail(e)

    holdings = [h for h in snapshot.holdings if instrument_type in (None, h.type)]
    if not holdings:
        console.print("[yellow]No holdings found.[/yellow]")
        console.print("Add one with 'portfolio-ledger transaction add --new-type ...'")
        return

    table = Table(title=f"Holdings ({len(holdings)})")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="magenta", no_wrap=True)
    table.add_column("Symbol", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Quantity", justify="right", style="yellow")
    table.add_column("Avg Cost", justify="right", style="blue")
    table.add_column("Price", justify="right", style="white")
    table.add_column("Value", justify="right", style="white")
    table.add_column("Return", justify="right")

    for item in holdings:
        stats = holding_stats(item)
        is_bank = item.type == InstrumentType.BANK.value
        table.add_row(
            short_id(item.id),
            item.type,
            item.symbol,
            item.name,
            "-" if is_bank else quantity(stats.total_quantity),
            "-" if is_bank else money(stats.avg_cost),
            "-" if is_bank else money(item.current_price),
            money(stats.current_value),
            "-" if is_bank else percent(stats.total_return),
        )

    console.print(table)
    console.print(f"[dim]Source: {snapshot.source}[/dim]")


@holding.command()
@click.argument("holding_id")
@click.pass_context
def show(ctx: click.Context, holding_id: str) -> None:
    """Show one holding with its statistics."""
    try:
        item = get_portfolio_session(ctx).ledger.get_holding(holding_id)
    except PortfolioLedgerError as e:
        fail(e)

    stats = holding_stats(item)
    console.print(f"[bold cyan]{item.symbol}[/bold cyan] {item.name} ({item.type})")
    console.print(f"ID: {item.id}")
    if item.category:
        console.print(f"Category: {item.category}")

    if item.type == InstrumentType.BANK.value:
        console.print(f"Balance: {money(stats.current_value)}")
    else:
        console.print(f"Quantity: {quantity(stats.total_quantity)}")
        console.print(f"Average Cost: {money(stats.avg_cost)}")
        console.print(f"Total Cost: {money(stats.total_cost)}")
        console.print(f"Current Price: {money(item.current_price)}")
        console.print(f"Current Value: {money(stats.current_value)}")
        console.print(f"Capital Gain: {money(stats.capital_gain)}")
        console.print(f"Income: {money(stats.total_income)}")
        console.print(f"Total Return: {percent(stats.total_return)}")

    console.print(f"Transactions: {stats.transaction_count}")
    if stats.last_transaction_date:
        console.print(f"Last Transaction: {stats.last_transaction_date}")


@holding.command()
@click.option(
    "--type", "instrument_type", required=True, type=click.Choice(INSTRUMENT_TYPES)
)
@click.option("--name", required=True, help="Display name")
@click.option("--symbol", required=True, help="Symbol, unique within the type")
@click.option("--category", default=None, help="Optional category")
@click.option("--price", default="0", help="Current price per unit")
@click.pass_context
def create(
    ctx: click.Context,
    instrument_type: str,
    name: str,
    symbol: str,
    category: Optional[str],
    price: str,
) -> None:
    """Create an empty holding."""
    try:
        record = get_portfolio_session(ctx).ledger.create_holding(
            InstrumentType(instrument_type), name, symbol, category, price
        )
    except PortfolioLedgerError as e:
        fail(e)

    console.print(f"[green]✓ Holding created: {record.symbol}[/green]")
    console.print(f"ID: {record.id}")


@holding.command()
@click.argument("holding_id")
@click.argument("price")
@click.pass_context
def price(ctx: click.Context, holding_id: str, price: str) -> None:
    """Set the current price of a holding."""
    try:
        result = get_portfolio_session(ctx).ledger.update_current_price(holding_id, price)
    except PortfolioLedgerError as e:
        fail(e)

    print_save_result(result, f"Price updated to {price}")
