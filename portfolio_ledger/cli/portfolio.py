"""Portfolio summary command."""

import click
from rich.table import Table

from portfolio_ledger.cli.common import console, fail, get_portfolio_session, money, percent
from portfolio_ledger.lib.errors import PortfolioLedgerError
from portfolio_ledger.lib.records import PortfolioAggregateRecord, TypeAggregateRecord
from portfolio_ledger.services.aggregation import fold_portfolio_summary, fold_type_summary


@click.group()
def portfolio() -> None:
    """Portfolio-wide statistics."""
    pass


@portfolio.command()
@click.option("--refresh", is_flag=True, help="Bypass the cache and read the database")
@click.pass_context
def summary(ctx: click.Context, refresh: bool) -> None:
    """Show totals per instrument type and for the whole portfolio."""
    session = get_portfolio_session(ctx)
    try:
        snapshot = session.loader.load(force=refresh)
    except PortfolioLedgerError as e:
        fail(e)

    aggregate = snapshot.aggregate
    if aggregate is None:
        # Not stored yet; derive it from the loaded holdings for display only
        folded = fold_portfolio_summary(fold_type_summary(snapshot.holdings))
        aggregate = PortfolioAggregateRecord(
            user_id=session.user_id,
            total_cost=folded.total_cost,
            current_value=folded.current_value,
            total_income=folded.total_income,
            total_gain=folded.total_gain,
            total_return=folded.total_return,
            by_type={
                t: TypeAggregateRecord(
                    total_cost=item.total_cost,
                    current_value=item.current_value,
                    total_income=item.total_income,
                    total_gain=item.total_gain,
                    total_return=item.total_return,
                )
                for t, item in folded.by_type.items()
            },
            last_calculated=folded.last_calculated,
        )

    table = Table(title="Portfolio Summary", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Cost", justify="right", style="blue")
    table.add_column("Value", justify="right", style="white")
    table.add_column("Income", justify="right", style="green")
    table.add_column("Gain", justify="right", style="yellow")
    table.add_column("Return", justify="right")

    for instrument_type, item in aggregate.by_type.items():
        table.add_row(
            instrument_type.value,
            money(item.total_cost),
            money(item.current_value),
            money(item.total_income),
            money(item.total_gain),
            percent(item.total_return),
        )

    table.add_row(
        "[bold]Total[/bold]",
        money(aggregate.total_cost),
        f"[bold]{money(aggregate.current_value)}[/bold]",
        money(aggregate.total_income),
        money(aggregate.total_gain),
        percent(aggregate.total_return),
    )

    console.print(table)
    if aggregate.last_calculated:
        console.print(
            f"[dim]Last calculated: {aggregate.last_calculated:%Y-%m-%d %H:%M:%S} "
            f"(source: {snapshot.source})[/dim]"
        )
