"""
Command-line interface for the tracker.
Provides commands for running the server and one-off lookups.
"""

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from tracker import __version__

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="Ultimate Tracker")
def cli():
    """Ultimate Tracker - unified shipment tracking with live presence"""
    pass


@cli.command()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    help="Path to configuration file"
)
@click.option("--host", help="Listen address (overrides HOST)")
@click.option("--port", "-p", type=int, help="Listen port (overrides PORT)")
def run(config, host, port):
    """Run the tracker server in foreground mode."""
    console.print(Panel.fit(
        f"[bold blue]Ultimate Tracker v{__version__}[/bold blue]\n"
        "Press Ctrl+C to stop",
        title="Starting Server"
    ))

    from tracker.core import run_server
    run_server(config, host=host, port=port)


@cli.command()
@click.argument("tracking_number")
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    help="Path to configuration file"
)
def track(tracking_number, config):
    """Look up a single tracking number."""
    from tracker.config import init_config
    from tracker.core import build_services
    from tracker.exceptions import TrackerError

    services = build_services(init_config(config))

    async def lookup():
        try:
            return await services.tracking.track(tracking_number)
        finally:
            await services.close()

    try:
        result = asyncio.run(lookup())
    except TrackerError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)

    console.print(Panel.fit(
        f"[bold]{result.carrier}[/bold] {result.tracking_number}\n"
        f"Status: [green]{result.status}[/green]\n"
        f"Estimated delivery: {result.estimated_delivery}",
        title="Tracking"
    ))

    table = Table(title="Activity")
    table.add_column("Time", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Location")

    for event in result.activity:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M"),
            event.status,
            event.location or "[dim]-[/dim]",
        )

    console.print(table)


@cli.command()
@click.argument("tracking_number")
def detect(tracking_number):
    """Show which carrier a tracking number belongs to."""
    from tracker.models import CarrierTag
    from tracker.tracking.detector import detect_carrier

    carrier = detect_carrier(tracking_number)
    if carrier == CarrierTag.UNKNOWN:
        console.print(f'[yellow]Could not detect carrier for "{tracking_number}"[/yellow]')
        raise SystemExit(1)

    console.print(f"[green]{carrier.display_name}[/green]")


@cli.command()
def formats():
    """List supported tracking number formats, in matching order."""
    from tracker.tracking.detector import DETECTION_RULES

    table = Table(title="Tracking Number Formats")
    table.add_column("#", style="dim")
    table.add_column("Carrier", style="cyan")
    table.add_column("Format", style="green")

    for position, rule in enumerate(DETECTION_RULES, start=1):
        table.add_row(str(position), rule.carrier.display_name, rule.description)

    console.print(table)


@cli.command(name="config")
@click.option(
    "--config", "-c", "config_file",
    type=click.Path(exists=True),
    help="Path to configuration file"
)
def show_config(config_file):
    """Show the effective configuration."""
    from tracker.config import TrackerConfig
    config = TrackerConfig.from_env(config_file)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Listen", f"{config.host}:{config.port}")
    table.add_row("Cache TTL", f"{config.cache_ttl_seconds}s")
    table.add_row("Amazon User", config.amazon_username or "[dim]Not set[/dim]")
    table.add_row("Amazon Password", "********" if config.amazon_password else "[dim]Not set[/dim]")
    table.add_row("Amazon Session TTL", f"{config.amazon_session_ttl}s")
    table.add_row("Request Timeout", f"{config.request_timeout}s")
    table.add_row("Log File", config.log_file)

    console.print(table)

    for error in config.validate():
        color = "yellow" if error.startswith("Warning:") else "red"
        console.print(f"[{color}]{error}[/{color}]")


@cli.command()
@click.argument("config_path", type=click.Path())
def init(config_path):
    """Initialize configuration file."""
    config_path = Path(config_path)

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    template = '''# Ultimate Tracker Configuration

# Server
HOST=0.0.0.0
PORT=3000

# Tracking cache (seconds)
CACHE_TTL_SECONDS=600

# Amazon order tracking (optional)
AMZ_USER=
AMZ_PASSWORD=
AMZ_SESSION_TTL=3600

# Outbound request timeout (seconds)
REQUEST_TIMEOUT=30

# Logging
LOG_LEVEL=INFO
LOG_FILE=logs/tracker.log
'''

    config_path.write_text(template, encoding='utf-8')
    console.print(f"[green]✓ Configuration file created: {config_path}[/green]")
    console.print("\nEdit this file with your settings, then run:")
    console.print(f"  tracker run --config {config_path}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
