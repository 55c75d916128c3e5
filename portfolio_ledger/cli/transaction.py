"""Transaction subcommands: add, edit, delete and paged listing."""

from datetime import date
from typing import Any, Optional

import click
from rich.table import Table

from portfolio_ledger.cli.common import (
    console,
    fail,
    get_portfolio_session,
    money,
    print_save_result,
    quantity,
    short_id,
)
from portfolio_ledger.lib import config
from portfolio_ledger.lib.errors import PortfolioLedgerError
from portfolio_ledger.lib.records import TransactionDraft
from portfolio_ledger.models import InstrumentType, TransactionType
from portfolio_ledger.services.ledger import HoldingRef, NewHolding
from portfolio_ledger.services.pagination import TransactionBrowser, approximate_count

TRANSACTION_TYPES = [t.value for t in TransactionType]
INSTRUMENT_TYPES = [t.value for t in InstrumentType]


@click.group()
def transaction() -> None:
    """Record and browse transactions."""
    pass


@transaction.command()
@click.option("--holding", "holding_id", default=None, help="Existing holding ID")
@click.option(
    "--new-type",
    type=click.Choice(INSTRUMENT_TYPES),
    default=None,
    help="Create a holding of this type together with the transaction",
)
@click.option("--name", default=None, help="New holding name")
@click.option("--symbol", default=None, help="New holding symbol")
@click.option("--category", default=None, help="New holding category")
@click.option(
    "--type", "txn_type", type=click.Choice(TRANSACTION_TYPES), default="buy", show_default=True
)
@click.option(
    "--date", "txn_date", default=None, help="Transaction date (YYYY-MM-DD, default today)"
)
@click.option("--quantity", "qty", default=None, help="Units bought or sold")
@click.option("--price", required=True, help="Price per unit, or the amount for income/balance")
@click.option("--interest-rate", default=None, help="Annual interest rate in percent (gold)")
@click.option("--interest-start-date", default=None, help="Interest accrual start (gold)")
@click.pass_context
def add(
    ctx: click.Context,
    holding_id: Optional[str],
    new_type: Optional[str],
    name: Optional[str],
    symbol: Optional[str],
    category: Optional[str],
    txn_type: str,
    txn_date: Optional[str],
    qty: Optional[str],
    price: str,
    interest_rate: Optional[str],
    interest_start_date: Optional[str],
) -> None:
    """Add a transaction to a holding, or create a holding with its first transaction."""
    if (holding_id is None) == (new_type is None):
        console.print("[red]Error: Give exactly one of --holding or --new-type[/red]")
        raise click.exceptions.Exit(2)

    holding_ref: HoldingRef = (
        holding_id if holding_id is not None else NewHolding(InstrumentType(new_type))
    )
    draft = TransactionDraft(
        type=txn_type,
        date=txn_date or date.today().isoformat(),
        quantity=qty,
        price=price,
        interest_rate=interest_rate,
        interest_start_date=interest_start_date,
        name=name,
        symbol=symbol,
        category=category,
    )

    try:
        result = get_portfolio_session(ctx).ledger.save_transaction(draft, holding_ref)
    except PortfolioLedgerError as e:
        fail(e)

    print_save_result(result, "Transaction recorded")


@transaction.command()
@click.argument("transaction_id")
@click.option("--holding", "holding_id", default=None, help="Move to another holding")
@click.option("--type", "txn_type", type=click.Choice(TRANSACTION_TYPES), default=None)
@click.option("--date", "txn_date", default=None, help="Transaction date (YYYY-MM-DD)")
@click.option("--quantity", "qty", default=None, help="Units bought or sold")
@click.option("--price", default=None, help="Price per unit, or the amount for income/balance")
@click.option("--interest-rate", default=None, help="Annual interest rate in percent (gold)")
@click.option("--interest-start-date", default=None, help="Interest accrual start (gold)")
@click.pass_context
def edit(
    ctx: click.Context,
    transaction_id: str,
    holding_id: Optional[str],
    txn_type: Optional[str],
    txn_date: Optional[str],
    qty: Optional[str],
    price: Optional[str],
    interest_rate: Optional[str],
    interest_start_date: Optional[str],
) -> None:
    """Edit a transaction; omitted options keep their recorded values."""
    session = get_portfolio_session(ctx)
    try:
        current = session.ledger.get_transaction(transaction_id)
        draft = TransactionDraft(
            type=txn_type or current.type.value,
            date=txn_date or current.date.isoformat(),
            quantity=qty if qty is not None else current.quantity,
            price=price if price is not None else current.price,
            interest_rate=interest_rate if interest_rate is not None else current.interest_rate,
            interest_start_date=interest_start_date or current.interest_start_date,
        )
        result = session.ledger.save_transaction(
            draft, holding_id or current.holding_id, transaction_id=transaction_id
        )
    except PortfolioLedgerError as e:
        fail(e)

    print_save_result(result, "Transaction updated")


@transaction.command()
@click.argument("transaction_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, transaction_id: str, yes: bool) -> None:
    """Delete a transaction (it is kept as a tombstone for audit)."""
    if not yes and not click.confirm(f"Delete transaction {transaction_id}?"):
        click.echo("Aborted.")
        return

    try:
        result = get_portfolio_session(ctx).ledger.delete_transaction(transaction_id)
    except PortfolioLedgerError as e:
        fail(e)

    print_save_result(result, "Transaction deleted")


def _page_table(page: Any, total: int, page_size: int) -> Table:
    pages = max(1, -(-total // page_size))
    table = Table(title=f"Page {page.page_number} of ~{pages} (~{total} transactions)")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Date", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Quantity", justify="right", style="white")
    table.add_column("Price", justify="right", style="blue")
    table.add_column("Amount", justify="right", style="green")

    for txn in page.items:
        table.add_row(
            short_id(txn.id),
            str(txn.date),
            txn.type.value,
            quantity(txn.quantity) if txn.quantity else "-",
            money(txn.price),
            money(txn.amount),
        )
    return table


@transaction.command("list")
@click.argument("holding_id")
@click.option(
    "--page-size",
    type=click.Choice([str(n) for n in config.PAGE_SIZE_OPTIONS]),
    default=str(config.DEFAULT_PAGE_SIZE),
    show_default=True,
)
@click.option("--pages", default=1, type=int, show_default=True, help="Pages to walk")
@click.pass_context
def list_transactions(ctx: click.Context, holding_id: str, page_size: str, pages: int) -> None:
    """List a holding's transactions, newest first."""
    session = get_portfolio_session(ctx)
    size = int(page_size)
    browser = TransactionBrowser(session.pages, holding_id, size)

    try:
        total = approximate_count(session.loader.load().transactions, holding_id)
        page = browser.first()
        shown = 0
        while page is not None and shown < pages:
            if not page.items:
                console.print("[yellow]No transactions found.[/yellow]")
                return
            console.print(_page_table(page, total, size))
            shown += 1
            page = browser.next() if shown < pages else None
    except PortfolioLedgerError as e:
        fail(e)

    if browser.has_next:
        console.print(f"[dim]More transactions available, use --pages {pages + 1}[/dim]")
