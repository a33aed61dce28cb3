"""
Typer CLI for the lumen-sync data layer.

Commands:
    lumen status                       - Probe remote store, blob store and grader
    lumen orgs                         - List merged organizations
    lumen identities [--org ID]        - List merged identities
    lumen units [--org ID] [--all]     - List learning units visible to a tenant
    lumen register NAME EMAIL          - Register a new identity
    lumen award IDENTITY AMOUNT        - Award experience points
    lumen upload FILE DESTINATION      - Upload an asset (mock URL on failure)

Usage:
    lumen --help
    lumen units --org CLI-TESLA
    lumen award OP-442 150
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from config import get_settings
from lumen.core.errors import ValidationError
from lumen.repository import LumenRepository

T = TypeVar("T")

app = typer.Typer(help="lumen-sync CLI: seed + local cache + remote store data layer")
console = Console()


def _run(operation: Callable[[LumenRepository], Awaitable[T]]) -> T:
    """Run one repository operation on a fresh event loop."""

    async def runner() -> T:
        async with LumenRepository.from_settings() as repo:
            return await operation(repo)

    return asyncio.run(runner())


# ========================================
# Diagnostics
# ========================================


@app.command("status")
def status() -> None:
    """Show connectivity of the remote services and the grader."""

    async def snapshot(repo: LumenRepository):
        grader_enabled = repo.grader is not None and repo.grader.enabled
        return await repo.diagnose(), grader_enabled, await repo.is_grader_available()

    report, grader_enabled, grader_online = _run(snapshot)

    table = Table(title="Lumen Connectivity")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for service in (report.remote_store, report.blob_store):
        color = "green" if service.reachable and service.error_kind is None else (
            "yellow" if service.reachable else "red"
        )
        table.add_row(service.name, f"[{color}]{service.label}[/{color}]", service.detail)

    if not grader_enabled:
        table.add_row("grader", "[yellow]demo mode[/yellow]", "no language model API key")
    elif grader_online:
        table.add_row("grader", "[green]online[/green]", "")
    else:
        table.add_row("grader", "[red]unreachable[/red]", "key rejected or service down")

    console.print(table)
    if report.fully_offline:
        console.print("[yellow]Operating entirely on seed + local data.[/yellow]")


# ========================================
# Listings
# ========================================


@app.command("orgs")
def list_orgs() -> None:
    """List organizations (seed < remote < local)."""
    organizations = _run(lambda repo: repo.list_organizations())

    table = Table(title=f"Organizations ({len(organizations)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Industry")
    table.add_column("Seats", justify="right")
    table.add_column("Status")
    for org in organizations:
        table.add_row(org.id, org.name, org.industry, str(org.seat_count), org.status.value)
    console.print(table)


@app.command("identities")
def list_identities(
    org: Optional[str] = typer.Option(None, "--org", help="Organization ID"),
) -> None:
    """List identities, optionally for one organization."""
    identities = _run(lambda repo: repo.list_identities(org))

    table = Table(title=f"Identities ({len(identities)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("XP", justify="right")
    table.add_column("Rank")
    for identity in identities:
        table.add_row(
            identity.id,
            identity.name,
            identity.email,
            identity.role.value,
            str(identity.progression.xp),
            identity.progression.rank,
        )
    console.print(table)


@app.command("units")
def list_units(
    org: Optional[str] = typer.Option(None, "--org", help="Organization ID (global units only if omitted)"),
    show_all: bool = typer.Option(False, "--all", help="Operator view: every tenant's units"),
) -> None:
    """List learning units visible to a tenant."""
    units = _run(lambda repo: repo.list_learning_units(org, unscoped=show_all))

    table = Table(title=f"Learning Units ({len(units)})")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("XP", justify="right")
    table.add_column("Tenant", style="dim")
    for unit in units:
        table.add_row(
            unit.id,
            unit.title,
            unit.category,
            unit.status.value,
            f"{unit.progress}%",
            str(unit.xp_reward),
            unit.organization_id or "global",
        )
    console.print(table)


# ========================================
# Writes
# ========================================


@app.command("register")
def register(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="Email (unique, case-insensitive)"),
    role: str = typer.Option("Student", "--role", help="Student, Teacher or Admin"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization ID"),
) -> None:
    """Register a new identity."""
    try:
        identity = _run(lambda repo: repo.register_identity(name, email, role, org))
    except ValidationError as e:
        console.print(f"[red]Registration rejected:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Registered[/green] {identity.id} ({identity.email}) in {identity.organization_id}")


@app.command("award")
def award(
    identity_id: str = typer.Argument(..., help="Identity ID"),
    amount: int = typer.Argument(..., help="Experience points (>= 0)"),
) -> None:
    """Award experience points."""
    try:
        result = _run(lambda repo: repo.award_experience(identity_id, amount))
    except ValidationError as e:
        console.print(f"[red]Award rejected:[/red] {e}")
        raise typer.Exit(code=1)

    if not result.applied:
        console.print(f"[yellow]Award not applied[/yellow] (total {result.new_total} XP)")
        raise typer.Exit(code=1)

    console.print(f"{identity_id}: [bold]{result.new_total}[/bold] XP")
    if result.new_rank:
        console.print(f"[bold magenta]PROMOTED TO RANK: {result.new_rank.upper()}[/bold magenta]")


@app.command("upload")
def upload(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    destination: str = typer.Argument(..., help="Destination path in the blob store"),
) -> None:
    """Upload an asset; falls back to a mock URL when storage is unavailable."""
    data = file.read_bytes()

    with Progress(TextColumn("{task.description}"), BarColumn(), TextColumn("{task.percentage:>3.0f}%"),
                  console=console) as progress:
        task_id = progress.add_task(f"Uploading {file.name}", total=max(len(data), 1))

        def on_progress(sent: int, total: int) -> None:
            progress.update(task_id, completed=sent)

        url = _run(lambda repo: repo.upload_asset(data, destination, on_progress=on_progress))

    console.print(f"[green]Asset URL:[/green] {url}")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )

    app()


if __name__ == "__main__":
    main()
