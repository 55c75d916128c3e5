"""Cache management commands."""

import click

from portfolio_ledger.cli.common import console, get_portfolio_session
from portfolio_ledger.lib import config


@click.group()  # type: ignore[misc]
def cache() -> None:
    """Manage the local cache."""
    pass


@cache.command("clear")  # type: ignore[misc]
@click.option("--all", "clear_all", is_flag=True, help="Clear cached data of every user")
@click.pass_context  # type: ignore[misc]
def cache_clear(ctx: click.Context, clear_all: bool) -> None:
    """Clear cached portfolio data."""
    session = get_portfolio_session(ctx)
    if clear_all:
        removed = session.cache_manager.sweep(config.CACHE_KEY_PREFIX)
        console.print(f"[green]✓ Cleared {removed} cached entries[/green]")
    else:
        session.cache.invalidate()
        console.print("[green]✓ Cache cleared[/green]")
