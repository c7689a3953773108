"""Typer-based CLI for the balance dashboard."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .errors import MoonyError

if TYPE_CHECKING:
    from .di import AppContainer
    from .exchanges.protocol import ExchangeBalanceReport
    from .metrics import PerformanceMetrics


# Import with local function to avoid circular imports
def _load_settings(config_path: Optional[Path] = None):
    from .config import load_settings
    return load_settings(config_path)


def _build_container(settings):
    from .di import build_container
    return build_container(settings)


app = typer.Typer(help="Crypto exchange balance dashboard CLI")
console = Console()
logger = logging.getLogger(__name__)


def run_cli(argv: list[str] | None = None) -> None:
    """Run CLI with optional argv parameter."""
    app(argv)


def init_components(config_path: Optional[Path] = None) -> "AppContainer":
    """Load settings and build the application container."""
    settings = _load_settings(config_path)
    return _build_container(settings)


def _fail(action: str, error: Exception) -> None:
    logger.error("Failed to %s: %s", action, error, exc_info=not isinstance(error, MoonyError))
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(1)


def _format_usd(value: float) -> str:
    return f"${value:,.2f}"


def _format_change(change: float, percentage: float) -> str:
    style = "green" if change >= 0 else "red"
    return f"[{style}]{change:+,.2f} ({percentage:+.2f}%)[/{style}]"


async def _fetch_balances(container: "AppContainer") -> list["ExchangeBalanceReport"]:
    try:
        return await container.aggregator.get_all_balances()
    finally:
        await container.aclose()


def _print_reports(reports: list["ExchangeBalanceReport"], show_assets: bool) -> None:
    table = Table(title="Balances")
    table.add_column("Account", style="cyan")
    table.add_column("Total USD", justify="right", style="green")
    table.add_column("Assets", style="magenta")
    table.add_column("Status")

    for report in reports:
        if show_assets:
            assets = "\n".join(f"{b.asset} {b.total:.8f}" for b in report.balances)
        else:
            assets = ", ".join(b.asset for b in report.balances)
        status = f"[red]{report.error}[/red]" if report.error else "[green]ok[/green]"
        table.add_row(report.exchange, _format_usd(report.total_usd), assets, status)

    console.print(table)
    grand_total = sum(r.total_usd for r in reports)
    console.print(f"\n[bold]Total Balance:[/bold] {_format_usd(grand_total)}")


def _print_metrics(metrics: Optional["PerformanceMetrics"]) -> None:
    if metrics is None:
        console.print("[yellow]No balance history recorded yet[/yellow]")
        return

    console.print(Panel.fit(
        f"Current: [bold]{_format_usd(metrics.current)}[/bold]\n"
        f"24h Change: {_format_change(metrics.daily.change, metrics.daily.percentage)}\n"
        f"7d Change: {_format_change(metrics.weekly.change, metrics.weekly.percentage)}\n"
        f"30d Change: {_format_change(metrics.monthly.change, metrics.monthly.percentage)}",
        title="Performance",
    ))


@app.command()
def balances(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
    assets: bool = typer.Option(False, "--assets", help="Show per-asset totals"),
    save: bool = typer.Option(False, "--save", help="Record a history snapshot"),
) -> None:
    """Fetch balances from every configured account."""
    try:
        container = init_components(config)
        with console.status("Fetching balances..."):
            reports = asyncio.run(_fetch_balances(container))

        _print_reports(reports, assets)

        if save:
            container.history.save_reports(reports)
            console.print("[green]✓ Snapshot recorded[/green]")
    except typer.Exit:
        raise
    except Exception as e:
        _fail("fetch balances", e)


@app.command()
def snapshot(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Fetch balances, record a snapshot and show performance."""
    from .metrics import get_metrics

    try:
        container = init_components(config)
        with console.status("Fetching balances..."):
            reports = asyncio.run(_fetch_balances(container))

        _print_reports(reports, show_assets=False)
        history = container.history.save_reports(reports)
        console.print("[green]✓ Snapshot recorded[/green]")
        _print_metrics(get_metrics(history))
    except typer.Exit:
        raise
    except Exception as e:
        _fail("record snapshot", e)


@app.command()
def credentials_set(
    kind: str = typer.Argument(..., help="Exchange kind (bybit, binance, okx)"),
    api_key: str = typer.Option(..., prompt=True, help="API key"),
    api_secret: str = typer.Option(..., prompt=True, hide_input=True, help="API secret"),
    passphrase: Optional[str] = typer.Option(None, help="API passphrase (OKX)"),
    index: int = typer.Option(0, help="Account slot for exchanges with several accounts"),
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Store API credentials for one exchange account."""
    from .exchanges.kinds import ExchangeKind

    try:
        exchange_kind = ExchangeKind(kind.lower())
    except ValueError:
        supported = ", ".join(k.value for k in ExchangeKind)
        console.print(f"[red]Error:[/red] Unknown exchange '{kind}'. Supported: {supported}")
        raise typer.Exit(1)

    if exchange_kind.requires_passphrase and not passphrase:
        console.print(f"[red]Error:[/red] {exchange_kind.display_name} requires --passphrase")
        raise typer.Exit(1)

    try:
        container = init_components(config)
        applied = container.credentials.set(
            exchange_kind, api_key, api_secret, passphrase, account_index=index
        )
    except Exception as e:
        _fail("save credentials", e)
        return

    if not applied:
        slots = container.credentials.slot_count(exchange_kind)
        console.print(
            f"[yellow]⚠ {exchange_kind.display_name} has {slots} account slot(s); index {index} ignored[/yellow]"
        )
        return

    console.print(f"[green]✓ {exchange_kind.display_name} API credentials have been saved[/green]")


@app.command()
def credentials_clear(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Remove all stored API credentials."""
    if not yes:
        typer.confirm("Remove all stored API credentials?", abort=True)

    try:
        container = init_components(config)
        container.credentials.clear()
    except Exception as e:
        _fail("clear credentials", e)

    console.print("[green]✓ All API credentials have been removed[/green]")


@app.command()
def credentials_status(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Show which accounts have credentials configured."""
    try:
        container = init_components(config)
    except Exception as e:
        _fail("load credentials", e)
        return

    table = Table(title="Credentials")
    table.add_column("Account", style="cyan")
    table.add_column("Exchange", style="blue")
    table.add_column("Slot", justify="right")
    table.add_column("Status")

    for account in container.settings.accounts:
        configured = container.credentials.is_configured(account.kind, account.account_index)
        table.add_row(
            account.label,
            account.kind.display_name,
            str(account.account_index),
            "[green]configured[/green]" if configured else "[yellow]missing[/yellow]",
        )

    console.print(table)


@app.command()
def history_show(
    time_range: str = typer.Option("30d", "--range", help="Range (7d/30d/90d/1y/all)"),
    format_type: str = typer.Option("table", "--format", help="Output format (table/json/csv)"),
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Show daily balance history."""
    from .history import TimeRange

    try:
        selected = TimeRange(time_range)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid range '{time_range}'")
        raise typer.Exit(1)

    try:
        container = init_components(config)
        history = container.history.get_history(selected)
    except Exception as e:
        _fail("show history", e)
        return

    if not history:
        console.print(f"[yellow]No balance history in range {selected.value}[/yellow]")
        return

    labels: list[str] = []
    for snap in history:
        for label in snap.exchanges:
            if label not in labels:
                labels.append(label)

    if format_type == "json":
        console.print_json(json.dumps([s.to_dict() for s in history]))
    elif format_type == "csv":
        typer.echo(",".join(["date", "total_usd", *labels]))
        for snap in history:
            row = [snap.day.isoformat(), f"{snap.total_usd:.2f}"]
            row += [f"{snap.exchanges.get(label, 0.0):.2f}" for label in labels]
            typer.echo(",".join(row))
    else:
        table = Table(title=f"Balance History ({selected.value})")
        table.add_column("Date", style="dim")
        table.add_column("Total", justify="right", style="green")
        for label in labels:
            table.add_column(label, justify="right")

        for snap in history:
            table.add_row(
                snap.day.isoformat(),
                _format_usd(snap.total_usd),
                *[_format_usd(snap.exchanges.get(label, 0.0)) for label in labels],
            )
        console.print(table)
        console.print(f"\n[bold]Total records:[/bold] {len(history)}")


@app.command()
def metrics(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Show 24h, 7d and 30d change from recorded history."""
    from .history import TimeRange
    from .metrics import get_metrics

    try:
        container = init_components(config)
        history = container.history.get_history(TimeRange.ALL)
    except Exception as e:
        _fail("compute metrics", e)
        return

    _print_metrics(get_metrics(history))


def main():
    """CLI main entry point."""
    app()


if __name__ == "__main__":
    main()
