"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from trendclaw.config import settings
from trendclaw.logging import configure_logging

app = typer.Typer(
    name="trendclaw",
    help="TrendClaw - Buying-signal and trend monitoring backed by the OpenClaw gateway.",
)
console = Console()

T = TypeVar("T")


@app.callback()
def main(log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL")) -> None:
    configure_logging(log_level or settings.log_level)


def _with_gateway(action: Callable[[Any], Awaitable[T]]) -> T:
    """Connect, run ``action(provisioner)`` and always disconnect."""
    from trendclaw.gateway.client import GatewayClient
    from trendclaw.gateway.provisioning import JobProvisioner

    async def run() -> T:
        gateway = GatewayClient.from_settings(settings)
        try:
            await gateway.connect()
            return await action(JobProvisioner(gateway, settings=settings))
        finally:
            await gateway.disconnect()

    return asyncio.run(run())


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: int = typer.Option(None, help="Port (defaults to PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    console.print(f"[bold blue]Starting TrendClaw API on {host or settings.host}:{port or settings.port}[/bold blue]")
    uvicorn.run(
        "trendclaw.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def identity() -> None:
    """Load or create the device identity and show its id."""
    from trendclaw.gateway.identity import IdentityError, load_or_create

    try:
        device = load_or_create(settings.identity_path)
    except IdentityError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[cyan]Path:[/cyan] {settings.identity_path}")
    console.print(f"[cyan]Device ID:[/cyan] {device.device_id}")
    console.print(f"[cyan]Public key:[/cyan] {device.public_key_b64url}")


@app.command()
def seed(entities_path: str = typer.Option("entities.yaml", "--path", help="Path to entities YAML file")) -> None:
    """Upsert clients and niches from a YAML file."""
    from trendclaw.seed import seed_entities

    console.print("[bold blue]Seeding monitored entities...[/bold blue]")
    try:
        stats = seed_entities(entities_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    table = Table(title="Seed Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green")
    for key, value in stats.items():
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)
    console.print("[bold green]Done![/bold green]")


@app.command()
def provision() -> None:
    """Create gateway jobs for every active entity that has none."""
    from trendclaw.db import get_db
    from trendclaw.gateway.errors import GatewayError
    from trendclaw.models import Client, Niche

    async def run(provisioner: Any) -> list[tuple[str, str, str | None]]:
        results: list[tuple[str, str, str | None]] = []
        with get_db() as session:
            for model in (Client, Niche):
                pending = session.query(model).filter_by(is_active=True, cron_job_id=None).all()
                for entity in pending:
                    cron_job_id = await provisioner.provision(entity.tenant_id, entity)
                    results.append((model.__name__, entity.name, cron_job_id))
        return results

    try:
        results = _with_gateway(run)
    except GatewayError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    if not results:
        console.print("[yellow]Nothing to provision.[/yellow]")
        return

    table = Table(title="Provisioned Jobs")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Cron Job", style="green")
    for kind, name, cron_job_id in results:
        table.add_row(kind, name, cron_job_id or "[red]failed[/red]")
    console.print(table)


@app.command()
def jobs(raw: bool = typer.Option(False, "--json", help="Print the raw cron.list response")) -> None:
    """List jobs registered on the gateway."""
    from trendclaw.gateway.errors import GatewayError

    async def run(provisioner: Any) -> Any:
        return await provisioner.list_jobs()

    try:
        result = _with_gateway(run)
    except GatewayError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    job_list = result.get("jobs", []) if isinstance(result, dict) else result
    if raw or not isinstance(job_list, list):
        console.print_json(json.dumps(result, default=str))
        return

    table = Table(title="Gateway Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Enabled", style="green")
    for job in job_list:
        if not isinstance(job, dict):
            continue
        table.add_row(str(job.get("id", "")), str(job.get("name", "")), "Yes" if job.get("enabled") else "No")
    console.print(table)


@app.command()
def status() -> None:
    """Show local monitoring status."""
    from sqlalchemy.exc import SQLAlchemyError

    from trendclaw.db import get_db
    from trendclaw.models import Client, MonitoringJob, Niche, Signal

    console.print("[bold blue]TrendClaw Status[/bold blue]\n")

    try:
        with get_db() as session:
            client_count = session.query(Client).filter_by(is_active=True).count()
            niche_count = session.query(Niche).filter_by(is_active=True).count()
            console.print(f"[cyan]Clients:[/cyan] {client_count} active")
            console.print(f"[cyan]Niches:[/cyan] {niche_count} active")

            signal_count = session.query(Signal).count()
            console.print(f"[cyan]Signals:[/cyan] {signal_count} stored")

            recent_jobs = (
                session.query(MonitoringJob)
                .order_by(MonitoringJob.last_run_at.desc().nulls_last())
                .limit(10)
                .all()
            )
            if recent_jobs:
                console.print("\n[bold]Monitoring Jobs:[/bold]")
                table = Table()
                table.add_column("Cron Job", style="cyan")
                table.add_column("Type", style="white")
                table.add_column("Last Run", style="white")
                table.add_column("Status", style="green")

                for job in recent_jobs:
                    last_run = job.last_run_at.isoformat(timespec="minutes") if job.last_run_at else "never"
                    table.add_row(job.cron_job_id, job.job_type, last_run, job.last_status or "-")

                console.print(table)

    except SQLAlchemyError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        console.print("[yellow]Tip:[/yellow] Run 'alembic upgrade head' to set up the database.")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
