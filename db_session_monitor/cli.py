"""
Command Line Interface for DB Session Monitor.
"""

import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich import print as rprint

from .config import MonitorConfig, load_config
from .exceptions import ConfigurationError, NotificationError
from .logging_config import setup_logging
from .monitoring.alerts import Alert, AlertType, format_alert
from .monitoring.monitor import CheckSummary, DatabaseMonitor
from .notifications import EmailNotifier, MultiNotifier, Notifier, build_notifier
from .service import MonitorService
from .version import get_build_info

app = typer.Typer(
    name="db-session-monitor",
    help="Database session monitor with threshold alerts",
    add_completion=False
)
console = Console()

DEFAULT_CONFIG = Path("config.yaml")


def _load(config_path: Path) -> MonitorConfig:
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        rprint(f"❌ [red]{e}[/red]")
        raise typer.Exit(1)


def _build_monitor(config: MonitorConfig) -> DatabaseMonitor:
    return DatabaseMonitor(config, build_notifier(config))


async def _test_email_channels(notifier: Notifier) -> None:
    """Log in to every configured SMTP server; failures are only reported."""
    notifiers = notifier.notifiers if isinstance(notifier, MultiNotifier) else [notifier]
    for channel in notifiers:
        if not isinstance(channel, EmailNotifier):
            continue
        try:
            await channel.test_connection()
            rprint("✅ [green]Email connection test successful[/green]")
        except NotificationError as e:
            rprint(f"⚠️  [yellow]Email connection test failed: {e}[/yellow]")


async def _run_service(monitor: DatabaseMonitor, config: MonitorConfig, enable_http: bool) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt
            pass

    await _test_email_channels(monitor.notifier)
    await MonitorService(config, monitor, enable_http=enable_http).run(stop_event)


async def _check_once(monitor: DatabaseMonitor) -> CheckSummary:
    try:
        return await monitor.check_all_instances()
    finally:
        await monitor.close()


def _summary_table(config: MonitorConfig, summary: CheckSummary) -> Table:
    table = Table(title="Database Session Check")
    table.add_column("Database", style="cyan")
    table.add_column("Engine")
    table.add_column("Status")
    table.add_column("Active", justify="right")
    table.add_column("Inactive", justify="right")
    table.add_column("Idle", justify="right")
    table.add_column("Waiting", justify="right")
    table.add_column("Total", justify="right")

    for db in config.databases:
        stats = summary.stats.get(db.name)
        if stats is None:
            error = summary.errors.get(db.name)
            table.add_row(db.name, db.type, f"[red]{error}[/red]", "-", "-", "-", "-", "-")
            continue
        table.add_row(
            db.name,
            db.type,
            "[green]ok[/green]",
            str(stats.active),
            str(stats.inactive),
            str(stats.idle),
            str(stats.waiting),
            str(stats.total),
        )

    return table


@app.command()
def run(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Configuration file"),
    no_http: bool = typer.Option(False, "--no-http", help="Do not start the HTTP status server")
):
    """Run the monitor until interrupted."""
    monitor_config = _load(config)
    setup_logging(monitor_config.logging)

    try:
        monitor = _build_monitor(monitor_config)
    except NotificationError as e:
        rprint(f"❌ [red]{e}[/red]")
        raise typer.Exit(1)

    try:
        asyncio.run(_run_service(monitor, monitor_config, enable_http=not no_http))
    except KeyboardInterrupt:
        rprint("\n👋 Monitoring stopped")


@app.command()
def check(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Configuration file")
):
    """Run a single polling cycle and print the results."""
    monitor_config = _load(config)
    setup_logging(monitor_config.logging)

    try:
        monitor = _build_monitor(monitor_config)
    except NotificationError as e:
        rprint(f"❌ [red]{e}[/red]")
        raise typer.Exit(1)

    summary = asyncio.run(_check_once(monitor))
    console.print(_summary_table(monitor_config, summary))

    if not summary.ok:
        rprint(f"❌ [red]{summary.failed_count} of {len(monitor_config.databases)} databases failed[/red]")
        raise typer.Exit(1)


@app.command("validate-config")
def validate_config(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Configuration file")
):
    """Validate a configuration file."""
    monitor_config = _load(config)

    table = Table(title=f"Configured Databases ({config})")
    table.add_column("Name", style="cyan")
    table.add_column("Engine")
    table.add_column("Address")
    table.add_column("TLS")

    for db in monitor_config.databases:
        tls = f"certs: {db.cert_path}" if db.cert_path else db.ssl_mode
        table.add_row(db.name, db.type, f"{db.host}:{db.port}", tls)

    console.print(table)
    rprint("✅ [green]Configuration is valid[/green]")


@app.command("test-notifier")
def test_notifier(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Configuration file")
):
    """Send a test alert through the configured notification channels."""
    monitor_config = _load(config)
    setup_logging(monitor_config.logging)

    alert = Alert(
        database_name="test",
        alert_type=AlertType.CONNECTION_ERROR,
        message="Test alert from db-session-monitor"
    )
    subject, body = format_alert(alert, monitor_config.pool.health_check_interval)

    try:
        notifier = build_notifier(monitor_config)
        asyncio.run(notifier.send_alert(subject, body))
    except NotificationError as e:
        rprint(f"❌ [red]Failed to send test alert: {e}[/red]")
        raise typer.Exit(1)

    rprint("✅ [green]Test alert sent[/green]")


@app.command()
def version():
    """Show version information."""
    info = get_build_info()

    table = Table(title="DB Session Monitor")
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Version", info['version'])
    table.add_row("Python", info['python_version'])
    table.add_row("Minimum Python", info['min_python'])

    console.print(table)


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
