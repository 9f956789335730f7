"""RenewDesk CLI — command-line interface for the renewal engine.

Provides commands for the renewal scan, overdue sweep, escalations, quote
comparison, renewal status changes, risk scoring, and template seeding.
Uses Typer for argument parsing and Rich for formatted terminal output.

Usage::

    python -m renewdesk.cli --help
    python -m renewdesk.cli scan --days 60
    python -m renewdesk.cli escalations
    python -m renewdesk.cli compare --renewal 550e8400-e29b-41d4-a716-446655440000
    python -m renewdesk.cli set-status 550e8400-e29b-41d4-a716-446655440000 --status bound
    python -m renewdesk.cli score --type cyber_liability --premium 120000 --days 10
"""

from __future__ import annotations

import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Any, Coroutine, List, Optional, TypeVar
from uuid import UUID

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from renewdesk.config import settings

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & console setup
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="renewdesk",
    help="RenewDesk CLI — insurance renewal lifecycle and workflow engine.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True, style="bold red")

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("renewdesk.cli")

RISK_COLORS = {"high": "red", "medium": "yellow", "low": "green"}

# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Execute a coroutine from synchronous CLI context."""
    from renewdesk.db import dispose_engine

    async def _wrapped() -> T:
        try:
            return await coro
        finally:
            await dispose_engine()

    return asyncio.run(_wrapped())


def _engine():
    from renewdesk.engine import RenewalEngine
    from renewdesk.stores.sql import sql_stores

    return RenewalEngine(sql_stores())


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        err_console.print(f"Invalid UUID: {value}")
        raise typer.Exit(1)


def _print_errors(errors: list[str]) -> None:
    if errors:
        console.print("\n[bold red]Errors:[/bold red]")
        for err in errors[:10]:
            console.print(f"  [red]- {err}[/red]")


# ---------------------------------------------------------------------------
# Command: init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create the RenewDesk tables in the configured database."""
    try:
        from renewdesk.db import Base, get_engine

        async def _create() -> None:
            async with get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        with console.status("[bold green]Creating tables...[/bold green]"):
            _run(_create())
        console.print(f"[green]Created {len(Base.metadata.tables)} tables.[/green]")

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"init-db failed: {exc}")
        logger.exception("CLI init-db command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: scan
# ---------------------------------------------------------------------------


@app.command("scan")
def scan(
    days: int = typer.Option(
        settings.scan_lookahead_days, "--days", "-d", help="Lookahead window in days"
    ),
) -> None:
    """Open renewals for active policies expiring within the window.

    Examples:

      renewdesk scan

      renewdesk scan --days 60
    """
    console.print(
        Panel(
            f"[bold cyan]RenewDesk Renewal Scan[/bold cyan]\n"
            f"Lookahead: [yellow]{days} days[/yellow]",
            title="Scan",
            expand=False,
        )
    )

    try:
        with console.status("[bold green]Scanning expiring policies...[/bold green]"):
            result = _run(_engine().run_expiring_policy_scan(days))

        table = Table(title="Scan Results", box=box.ROUNDED)
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", justify="right")
        table.add_row("Renewals Created", str(result.created))
        table.add_row("Renewals Skipped", str(result.skipped))
        table.add_row("Errors", str(len(result.errors)))
        console.print(table)
        _print_errors(result.errors)

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Scan failed: {exc}")
        logger.exception("CLI scan command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: sweep
# ---------------------------------------------------------------------------


@app.command("sweep")
def sweep() -> None:
    """Mark every open task past its due date as overdue."""
    try:
        with console.status("[bold green]Sweeping overdue tasks...[/bold green]"):
            moved = _run(_engine().sweep_overdue_tasks())
        console.print(f"[green]{moved} task(s) marked overdue.[/green]")

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Sweep failed: {exc}")
        logger.exception("CLI sweep command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: run-job
# ---------------------------------------------------------------------------


@app.command("run-job")
def run_job(
    days: int = typer.Option(
        settings.scan_lookahead_days, "--days", "-d", help="Lookahead window in days"
    ),
) -> None:
    """Run the full renewal job: scan, then overdue sweep."""
    try:
        with console.status("[bold green]Running renewal job...[/bold green]"):
            result = _run(_engine().run_renewal_job(days))

        table = Table(title="Renewal Job", box=box.ROUNDED)
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", justify="right")
        table.add_row("Renewals Created", str(result.renewals_created))
        table.add_row("Renewals Skipped", str(result.renewals_skipped))
        table.add_row("Tasks Marked Overdue", str(result.tasks_marked_overdue))
        table.add_row("Errors", str(len(result.errors)))
        console.print(table)
        _print_errors(result.errors)

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Renewal job failed: {exc}")
        logger.exception("CLI run-job command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: escalations
# ---------------------------------------------------------------------------


@app.command("escalations")
def escalations() -> None:
    """List open renewals due soon that have no quotes or have gone stale."""
    try:
        with console.status("[bold green]Checking escalations...[/bold green]"):
            entries = _run(_engine().list_escalations())

        if not entries:
            console.print("[green]No renewals need attention.[/green]")
            return

        table = Table(title=f"Escalations ({len(entries)})", box=box.ROUNDED)
        table.add_column("Renewal", style="dim", width=36)
        table.add_column("Client", style="cyan")
        table.add_column("Policy Type", style="dim")
        table.add_column("Due In", justify="right")
        table.add_column("Risk", width=8)
        table.add_column("Overdue", justify="right")
        table.add_column("Reason")

        for entry in entries:
            color = RISK_COLORS.get(entry.risk_score.value, "white")
            table.add_row(
                str(entry.renewal_id),
                entry.client_name,
                entry.policy_type.value if entry.policy_type else "-",
                f"{entry.days_until_due}d",
                f"[{color}]{entry.risk_score.value.upper()}[/{color}]",
                str(entry.overdue_tasks),
                entry.reason,
            )
        console.print(table)

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Escalations command failed: {exc}")
        logger.exception("CLI escalations command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: compare
# ---------------------------------------------------------------------------


@app.command("compare")
def compare(
    renewal: Optional[str] = typer.Option(
        None, "--renewal", "-r", help="Renewal UUID: compare all of its quotes"
    ),
    quote: Optional[List[str]] = typer.Option(
        None, "--quote", "-q", help="Quote UUID (repeat for a side-by-side set)"
    ),
) -> None:
    """Compare quotes against the expiring premium.

    Examples:

      renewdesk compare --renewal 550e8400-e29b-41d4-a716-446655440000

      renewdesk compare -q <id1> -q <id2>
    """
    if not renewal and not quote:
        err_console.print("Provide --renewal or at least two --quote ids.")
        raise typer.Exit(1)

    try:
        engine = _engine()
        with console.status("[bold green]Comparing quotes...[/bold green]"):
            if renewal:
                comparison = _run(engine.compare_quotes(_parse_uuid(renewal)))
            else:
                comparison = _run(engine.compare_quote_set([_parse_uuid(q) for q in quote]))

        table = Table(
            title=f"Quotes vs expiring premium ${comparison.expiring_premium:,.2f}",
            box=box.ROUNDED,
        )
        table.add_column("Carrier", style="cyan")
        table.add_column("Premium", justify="right")
        table.add_column("Change", justify="right")
        table.add_column("Coverage Limit", justify="right")
        table.add_column("Deductible", justify="right")
        table.add_column("", width=10)

        for item in comparison.quotes:
            q = item.quote
            if item.price_change is None:
                change = "-"
            else:
                color = "green" if item.price_change <= 0 else "red"
                change = f"[{color}]{item.price_change:+.1f}%[/{color}]"
            marks = []
            if q.id == comparison.best_value_id:
                marks.append("[green]best[/green]")
            if q.id == comparison.selected_quote_id:
                marks.append("[bold]selected[/bold]")
            table.add_row(
                q.carrier,
                f"${q.premium:,.2f}",
                change,
                f"${q.coverage_limit:,.0f}",
                f"${q.deductible:,.0f}" if q.deductible is not None else "-",
                " ".join(marks),
            )
        console.print(table)

        if comparison.total_quotes:
            console.print(
                f"Lowest [green]${comparison.lowest_premium:,.2f}[/green]  "
                f"Highest [red]${comparison.highest_premium:,.2f}[/red]  "
                f"Average ${comparison.average_premium:,.2f}"
            )

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Compare failed: {exc}")
        logger.exception("CLI compare command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: score
# ---------------------------------------------------------------------------


@app.command("score")
def score(
    policy_type: str = typer.Option(..., "--type", "-t", help="Policy type, e.g. cyber_liability"),
    premium: str = typer.Option(..., "--premium", "-p", help="Annual premium"),
    days: int = typer.Option(..., "--days", "-d", help="Days until expiration"),
) -> None:
    """Score renewal risk for a hypothetical policy without touching the database."""
    from renewdesk.lifecycle.risk import score_risk
    from renewdesk.models import PolicyType

    try:
        ptype = PolicyType(policy_type)
    except ValueError:
        valid = ", ".join(p.value for p in PolicyType)
        err_console.print(f"Unknown policy type '{policy_type}'. Valid: {valid}")
        raise typer.Exit(1)
    try:
        amount = Decimal(premium)
    except InvalidOperation:
        err_console.print(f"Invalid premium: {premium}")
        raise typer.Exit(1)

    assessment = score_risk(ptype, amount, days)
    color = RISK_COLORS.get(assessment.level.value, "white")
    console.print(
        Panel(
            f"Level: [{color}]{assessment.level.value.upper()}[/{color}]  "
            f"Points: [yellow]{assessment.points}[/yellow]\n"
            + "\n".join(f"  - {factor}" for factor in assessment.factors),
            title="Risk Score",
            expand=False,
        )
    )


# ---------------------------------------------------------------------------
# Command: set-status
# ---------------------------------------------------------------------------


@app.command("set-status")
def set_status(
    renewal: str = typer.Argument(..., help="Renewal id"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="e.g. bound, lost"),
    risk: Optional[str] = typer.Option(None, "--risk", "-r", help="Override risk: low/medium/high"),
) -> None:
    """Move a renewal to a new status and/or override its risk level."""
    from renewdesk.models import RenewalStatus, RiskLevel

    renewal_id = _parse_uuid(renewal)
    try:
        new_status = RenewalStatus(status) if status else None
        new_risk = RiskLevel(risk) if risk else None
    except ValueError as exc:
        err_console.print(f"Invalid value: {exc}")
        raise typer.Exit(1)

    try:
        updated = _run(_engine().update_renewal_status(renewal_id, new_status, new_risk))
        color = RISK_COLORS.get(updated.risk_score.value, "white")
        console.print(
            f"Renewal [cyan]{updated.id}[/cyan] is now [bold]{updated.status.value}[/bold] "
            f"(risk [{color}]{updated.risk_score.value}[/{color}])"
        )

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Status update failed: {exc}")
        logger.exception("CLI set-status command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: seed-templates
# ---------------------------------------------------------------------------


@app.command("seed-templates")
def seed_templates() -> None:
    """Copy the default renewal checklist into an empty template table."""
    try:
        with console.status("[bold green]Seeding templates...[/bold green]"):
            inserted = _run(_engine().seed_default_templates())
        if inserted:
            console.print(f"[green]Seeded {inserted} default task templates.[/green]")
        else:
            console.print("[yellow]Templates already exist; nothing seeded.[/yellow]")

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Seed failed: {exc}")
        logger.exception("CLI seed-templates command failed")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
