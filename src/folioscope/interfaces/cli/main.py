"""Folioscope CLI application."""

import asyncio
from collections.abc import Awaitable, Callable

import typer
from rich.console import Console
from rich.table import Table

from folioscope import __version__
from folioscope.core.models import DiscoveredToken, PortfolioSnapshot, TimePeriod
from folioscope.interfaces.cli.context import close_context, get_context
from folioscope.utils.errors import ConfigError, StoreOpenError

app = typer.Typer(
    name="folioscope",
    help="Portfolio snapshots, price cache and analytics",
    no_args_is_help=True,
)

snapshots_app = typer.Typer(help="Inspect and prune stored snapshots")
app.add_typer(snapshots_app, name="snapshots")

cache_app = typer.Typer(help="Inspect and clear the price cache")
app.add_typer(cache_app, name="cache")

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"Folioscope v{__version__}")
        raise typer.Exit()


def _run(action: Callable[[], Awaitable[None]]) -> None:
    """Run an async command, reporting bad settings or an unavailable store."""

    async def _wrapped() -> None:
        try:
            await action()
        finally:
            await close_context()

    try:
        asyncio.run(_wrapped())
    except ConfigError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(1)
    except StoreOpenError as e:
        console.print(f"[bold red]Snapshot store unavailable: {e}[/bold red]")
        raise typer.Exit(1)


def _holdings_from(snapshot: PortfolioSnapshot) -> list[DiscoveredToken]:
    return [
        DiscoveredToken(
            address=token.address,
            symbol=token.symbol,
            name=token.name,
            balance=token.balance,
            price=token.price,
            value=token.value,
        )
        for token in snapshot.tokens
    ]


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Folioscope - portfolio data engine."""
    pass


@app.command()
def status() -> None:
    """Show snapshot database and cache status."""

    async def _status() -> None:
        ctx = await get_context()
        db_stats = await ctx.store.get_database_stats()
        cache_stats = await ctx.cache.stats()

        table = Table(title="Folioscope Status")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Version", __version__)
        table.add_row("Snapshots", str(db_stats.total_snapshots))
        table.add_row("Wallets", str(len(db_stats.wallets)))
        table.add_row(
            "Oldest",
            db_stats.oldest_snapshot.strftime("%Y-%m-%d %H:%M") if db_stats.oldest_snapshot else "-",
        )
        table.add_row(
            "Newest",
            db_stats.newest_snapshot.strftime("%Y-%m-%d %H:%M") if db_stats.newest_snapshot else "-",
        )
        table.add_row("Cached Prices", str(cache_stats.memory_entries))
        table.add_row(
            "Cache Mode",
            "memory-only" if cache_stats.is_memory_only or not cache_stats.is_storage_available else "durable",
        )

        console.print(table)

    _run(_status)


@app.command()
def analytics(
    wallet: str = typer.Argument(..., help="Wallet address"),
    period: TimePeriod = typer.Option(TimePeriod.WEEK, "--period", "-p", help="Lookback period"),
) -> None:
    """Show performance and health using the latest snapshot as holdings."""

    async def _analytics() -> None:
        ctx = await get_context()
        latest = await ctx.store.get_latest_snapshot(wallet)
        if latest is None:
            console.print(f"[dim]No snapshots for {wallet}[/dim]")
            return

        holdings = _holdings_from(latest)
        performances = await ctx.analytics.calculate_token_performance(wallet, holdings, period)
        stats = await ctx.analytics.calculate_portfolio_stats(wallet, holdings, period)
        health = await ctx.analytics.get_portfolio_health(wallet, holdings)

        table = Table(title=f"Token Performance ({period.value})")
        table.add_column("Token", style="cyan")
        table.add_column("Value")
        table.add_column("Change")
        table.add_column("Change %")
        table.add_column("Allocation")

        for perf in sorted(performances, key=lambda p: p.current_value, reverse=True):
            table.add_row(
                perf.symbol,
                f"${perf.current_value:,.2f}",
                f"${perf.change:,.2f}",
                "new" if perf.is_new_position else f"{perf.change_percent:+.2f}%",
                f"{perf.allocation:.1f}%",
            )
        console.print(table)

        console.print(f"Total value: [green]${stats.total_value:,.2f}[/green]")
        console.print(f"Gains: ${stats.total_gains:,.2f} ({stats.total_gains_percent:+.2f}%)")
        console.print(f"Volatility: {stats.volatility:,.2f}")
        console.print(
            f"Diversification: {health.diversification_score}/100, "
            f"risk: [bold]{health.risk_level.value}[/bold]"
        )
        for recommendation in health.recommendations:
            console.print(f"[yellow]- {recommendation}[/yellow]")

    _run(_analytics)


# Snapshots subcommands


@snapshots_app.command("list")
def snapshots_list(
    wallet: str = typer.Argument(..., help="Wallet address"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of snapshots to show"),
) -> None:
    """List a wallet's most recent snapshots."""

    async def _list() -> None:
        ctx = await get_context()
        snapshots = await ctx.store.get_snapshots(wallet, limit=limit)

        table = Table(title=f"Snapshots for {wallet[:10]}...")
        table.add_column("ID", style="dim")
        table.add_column("Time")
        table.add_column("Total Value", style="green")
        table.add_column("Tokens")
        table.add_column("Chain")

        for snapshot in snapshots:
            table.add_row(
                str(snapshot.id),
                snapshot.timestamp.strftime("%Y-%m-%d %H:%M"),
                f"${snapshot.total_value:,.2f}",
                str(snapshot.token_count),
                snapshot.chain_id,
            )

        console.print(table)
        if not snapshots:
            console.print("[dim]No snapshots yet[/dim]")

    _run(_list)


@snapshots_app.command("prune")
def snapshots_prune(
    wallet: str = typer.Argument(..., help="Wallet address"),
    days: float = typer.Option(90, "--days", "-d", help="Delete snapshots older than this"),
) -> None:
    """Delete a wallet's snapshots older than a number of days."""

    async def _prune() -> None:
        ctx = await get_context()
        deleted = await ctx.store.prune_old_snapshots(wallet, days)
        console.print(f"[green]Deleted {deleted} snapshots[/green]")

    _run(_prune)


@snapshots_app.command("clear")
def snapshots_clear(
    wallet: str | None = typer.Argument(None, help="Wallet address; omit to clear everything"),
) -> None:
    """Delete snapshots for one wallet or for all wallets."""
    if wallet is None:
        typer.confirm("Delete ALL stored snapshots?", abort=True)

    async def _clear() -> None:
        ctx = await get_context()
        if wallet is None:
            deleted = await ctx.store.clear_all_data()
        else:
            deleted = await ctx.store.clear_wallet_data(wallet)
        console.print(f"[green]Deleted {deleted} snapshots[/green]")

    _run(_clear)


# Cache subcommands


@cache_app.command("stats")
def cache_stats() -> None:
    """Show price cache statistics."""

    async def _stats() -> None:
        ctx = await get_context()
        stats = await ctx.cache.stats()

        table = Table(title="Price Cache")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Memory entries", str(stats.memory_entries))
        table.add_row("Durable entries", str(stats.storage_entries))
        table.add_row("Durable size", f"{stats.storage_size} bytes")
        table.add_row("Durable available", "yes" if stats.is_storage_available else "no")
        table.add_row("Memory-only", "yes" if stats.is_memory_only else "no")
        console.print(table)

    _run(_stats)


@cache_app.command("clear")
def cache_clear(
    durable_only: bool = typer.Option(
        False, "--durable-only", help="Keep in-process entries, clear only durable storage"
    ),
) -> None:
    """Clear the price cache."""

    async def _clear() -> None:
        ctx = await get_context()
        if durable_only:
            await ctx.cache.clear_durable()
            console.print("[green]Durable cache cleared[/green]")
        else:
            await ctx.cache.clear()
            console.print("[green]Cache cleared[/green]")

    _run(_clear)
