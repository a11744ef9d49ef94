"""Command line interface for ReviewSync.

Provides commands for key generation, schema creation, on-demand syncs,
integration status and running the API server.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from reviewsync import __version__
from reviewsync.bootstrap import Services
from reviewsync.config import SyncConfig, load_config_from_env
from reviewsync.core.timeutils import ensure_utc
from reviewsync.integrations.credentials.encryption import generate_encryption_key
from reviewsync.integrations.models import Platform, SyncReport, SyncStatus
from reviewsync.observability.logging import setup_logging

console = Console()

PLATFORM_CHOICES = sorted({p.value for p in Platform} | {"facebook"})


def load_config() -> SyncConfig:
    """Load configuration, turning validation failures into CLI errors.

    Raises:
        click.ClickException: If the configuration is invalid
    """
    try:
        config = load_config_from_env()
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise click.ClickException(f"Invalid configuration: {messages}") from e
    setup_logging(log_level=config.log_level, json_logs=config.json_logs)
    return config


@asynccontextmanager
async def open_services(config: SyncConfig) -> AsyncIterator[Services]:
    """Start services for one command and close them afterwards."""
    services = Services(config)
    try:
        await services.startup()
        yield services
    finally:
        await services.close()


def render_report(report: SyncReport) -> None:
    table = Table(title=f"Sync {report.account_id}")
    table.add_column("Platform", style="cyan")
    table.add_column("Status")
    table.add_column("Created", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Reason")

    colors = {SyncStatus.SYNCED: "green", SyncStatus.SKIPPED: "yellow", SyncStatus.FAILED: "red"}
    for platform, result in report.results.items():
        color = colors[result.status]
        table.add_row(
            platform.value,
            f"[{color}]{result.status.value}[/{color}]",
            str(result.created),
            str(result.updated),
            str(result.skipped),
            str(result.failed),
            result.reason.value if result.reason else "",
        )
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="reviewsync")
def cli() -> None:
    """ReviewSync - external review synchronization."""
    pass


@cli.command(name="generate-key")
def generate_key() -> None:
    """Print a new credential encryption key.

    Examples:
        reviewsync generate-key
    """
    click.echo(generate_encryption_key().decode())


@cli.command(name="init-db")
def init_db() -> None:
    """Create database tables if they do not exist."""
    config = load_config()

    async def _init() -> None:
        async with open_services(config):
            pass

    asyncio.run(_init())
    console.print("[green]Database initialized[/green]")


@cli.command(name="sync")
@click.argument("account_id")
@click.option(
    "--platform",
    "platforms",
    multiple=True,
    type=click.Choice(PLATFORM_CHOICES, case_sensitive=False),
    help="Platform to sync (repeatable; default: all)",
)
@click.option(
    "--since",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Ignore the stored watermark and fetch reviews from this UTC time",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format (table or json)",
)
def sync(
    account_id: str,
    platforms: tuple[str, ...],
    since: Optional[datetime],
    output_format: str,
) -> None:
    """Sync reviews for one account.

    Examples:
        reviewsync sync acct-1
        reviewsync sync acct-1 --platform meta --since 2024-01-01
    """
    config = load_config()
    selected = [Platform.parse(p) for p in platforms] or None

    async def _sync() -> SyncReport:
        async with open_services(config) as services:
            return await services.orchestrator.sync_account(
                account_id, selected, ensure_utc(since)
            )

    report = asyncio.run(_sync())
    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        render_report(report)

    if report.results and not report.success:
        raise SystemExit(1)


@cli.command(name="sync-all")
def sync_all() -> None:
    """Sync every account with an active credential."""
    config = load_config()

    async def _sync_all():
        async with open_services(config) as services:
            return await services.orchestrator.sync_all_connected()

    result = asyncio.run(_sync_all())
    for report in result.reports.values():
        render_report(report)
    for account_id, error in result.errors.items():
        console.print(f"[red]{account_id}: {error}[/red]")
    console.print(
        f"{len(result.reports)} accounts synced, {len(result.errors)} failed, "
        f"{result.total_created} reviews created"
    )


@cli.command(name="status")
@click.argument("account_id")
def status(account_id: str) -> None:
    """Show the integration status of an account."""
    config = load_config()

    async def _status():
        async with open_services(config) as services:
            return await services.credential_store.list_for_account(account_id)

    credentials = {c.platform: c for c in asyncio.run(_status())}

    table = Table(title=f"Integrations for {account_id}")
    table.add_column("Platform", style="cyan")
    table.add_column("Status")
    table.add_column("Resource")
    table.add_column("Token expiry")
    table.add_column("Last synced")
    for platform in Platform:
        credential = credentials.get(platform)
        if credential is None:
            table.add_row(platform.value, "[dim]not connected[/dim]", "", "", "")
            continue
        table.add_row(
            platform.value,
            credential.status.value,
            credential.resource_id,
            credential.token_expiry.isoformat(),
            credential.last_synced_at.isoformat() if credential.last_synced_at else "never",
        )
    console.print(table)


@cli.command(name="serve")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.option("--no-scheduler", is_flag=True, help="Do not run the periodic batch sync")
def serve(host: str, port: int, no_scheduler: bool) -> None:
    """Run the API server."""
    import uvicorn

    from reviewsync.api.app import create_app

    config = load_config()
    uvicorn.run(create_app(config=config, enable_scheduler=not no_scheduler), host=host, port=port)


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
