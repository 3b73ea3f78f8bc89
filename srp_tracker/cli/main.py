"""
CLI interface for SRP Tracker.

Provides command-line access to request submission, review and statistics.
"""

import logging
import sys
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from srp_tracker.config.loader import load_settings
from srp_tracker.core.collaborators import Actor, Role
from srp_tracker.core.errors import ConfigError
from srp_tracker.core.lifecycle import SubmissionPayload
from srp_tracker.core.tiers import get_tier_table
from srp_tracker.service.api import OperationResult, SrpService, build_service, load_tiers_or_unbounded
from srp_tracker.storage.models import SrpRequest
from srp_tracker.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "approved": "green",
    "denied": "red",
}


def get_service() -> SrpService:
    """Build the service from environment settings, reloading tiers each run."""
    settings = load_settings()
    tier_table = get_tier_table()
    tier_table.clear()
    load_tiers_or_unbounded(tier_table, settings.tiers_path)
    try:
        return build_service(settings, tier_table=tier_table)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)


def _actor(user: str, name: Optional[str], role: str) -> Actor:
    try:
        parsed_role = Role(role.lower())
    except ValueError:
        console.print(f"[red]Error:[/] unknown role '{role}' (member, fc, admin)")
        sys.exit(EXIT_CODE_FAIL)
    return Actor(user_id=user, display_name=name or user, role=parsed_role)


def _unwrap(result: OperationResult):
    """Print a failed result and exit, or return its value."""
    if not result.ok:
        console.print(f"[red]Error ({result.error_code}):[/] {result.message}")
        sys.exit(EXIT_CODE_FAIL)
    return result.value


def _format_amount(amount: Optional[int]) -> str:
    if amount is None:
        return "-"
    return f"{amount:,}"


def _status_text(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _print_request(request: SrpRequest) -> None:
    console.print(f"\n[bold]SRP Request[/bold] {request.id}")
    console.print("-" * 40)
    console.print(f"Status: {_status_text(request.status.value)}")
    console.print(f"Pilot: {request.owner_id}")
    console.print(f"Asset: {request.asset_type_name} ({request.category})")
    console.print(f"Claimed value: {_format_amount(request.claimed_value)}")
    console.print(f"Operation: {request.operation_type.value}"
                  + (f" - {request.fleet_name}" if request.fleet_name else ""))
    if request.is_special_role:
        console.print("Special role: yes")
    console.print(f"Estimated payout: {_format_amount(request.estimated_payout)}")
    console.print(f"Payout: {_format_amount(request.payout_amount)}")
    if request.killmail_url:
        console.print(f"Killmail: {request.killmail_url}")
    if request.loss_description:
        console.print(f"Description: {request.loss_description}")
    if request.reviewer_note:
        console.print(f"Reviewer note: {request.reviewer_note}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log lifecycle events to stderr")
):
    """SRP Tracker CLI."""
    try:
        settings = load_settings()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    level = logging.INFO if verbose else getattr(logging, settings.log_level.upper())
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if ctx.invoked_subcommand is None:
        console.print("SRP Tracker - Use --help to see available commands")


@app.command()
def init():
    """Initialize the SRP Tracker database."""
    settings = load_settings()
    try:
        initialize_schema(settings.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show which database and tier file are in use."""
    settings = load_settings()
    tier_table = get_tier_table()
    tier_table.clear()
    loaded = load_tiers_or_unbounded(tier_table, settings.tiers_path)
    console.print(f"Database: {settings.db_path}")
    if loaded:
        console.print(f"[green]✓[/] Tiers loaded: version {tier_table.version()}")
    else:
        console.print("[yellow]![/] Tiers not loaded - payouts are uncapped")


@app.command()
def tiers():
    """List payout tiers and their caps."""
    settings = load_settings()
    tier_table = get_tier_table()
    tier_table.clear()
    if not load_tiers_or_unbounded(tier_table, settings.tiers_path):
        console.print("[yellow]No tier file loaded - payouts are uncapped[/]")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"SRP Tiers (version {tier_table.version()})")
    table.add_column("Tier")
    table.add_column("Max payout", justify="right")
    table.add_column("Categories")
    for tier in tier_table.all_tiers():
        table.add_row(tier.name, _format_amount(tier.max_payout), ", ".join(tier.categories))
    console.print(table)


@app.command()
def estimate(
    asset_type_id: int = typer.Argument(..., help="Catalog id of the lost asset"),
    value: int = typer.Argument(..., help="Claimed loss value"),
    operation: str = typer.Option("fleet", "--operation", "-o", help="solo or fleet"),
    special_role: bool = typer.Option(False, "--special-role", "-s", help="Pilot flew a special fleet role")
):
    """Estimate the payout for a loss without submitting it."""
    service = get_service()
    result = _unwrap(service.estimate_payout(asset_type_id, value, operation, special_role))
    breakdown = result.breakdown

    console.print("\n[bold]SRP Payout Estimate[/bold]")
    console.print("-" * 40)
    console.print(f"Base value: {_format_amount(breakdown.base_value)}")
    console.print(f"Operation multiplier: x{breakdown.operation_multiplier}")
    if breakdown.is_special_role:
        console.print(f"Special role multiplier: x{breakdown.special_role_multiplier}")
    if breakdown.cap is None:
        console.print("Cap: none (uncatalogued tier)")
    else:
        console.print(f"Cap: {_format_amount(breakdown.cap)} ({breakdown.tier_applied})"
                      + (" [yellow]applied[/]" if breakdown.capped else ""))
    console.print(f"[bold]Estimated payout: {_format_amount(result.final_amount)}[/bold]")


@app.command("register-fleet")
def register_fleet(
    operation_name: str = typer.Argument(..., help="Name of the operation"),
    user: str = typer.Option(..., "--user", "-u", help="Your user id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
    role: str = typer.Option("fc", "--role", "-r", help="member, fc or admin"),
    scheduled_at: Optional[datetime] = typer.Option(
        None, "--scheduled-at", formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"],
        help="When the operation forms up (default: now)"
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Operation briefing"),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Staging system")
):
    """Register a fleet operation that losses can be filed against."""
    service = get_service()
    fleet = _unwrap(service.register_fleet(
        _actor(user, name, role), operation_name,
        scheduled_at=scheduled_at, description=description, location=location
    ))
    console.print(f"[green]✓[/] Fleet registered: {fleet.id}")
    console.print(f"Scheduled: {fleet.scheduled_at:%Y-%m-%d %H:%M}")


@app.command()
def submit(
    asset_type_id: int = typer.Argument(..., help="Catalog id of the lost asset"),
    value: int = typer.Argument(..., help="Claimed loss value"),
    user: str = typer.Option(..., "--user", "-u", help="Your user id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
    operation: str = typer.Option("fleet", "--operation", "-o", help="solo or fleet"),
    fleet: Optional[str] = typer.Option(None, "--fleet", "-f", help="Fleet id (required for fleet losses)"),
    special_role: bool = typer.Option(False, "--special-role", "-s", help="Pilot flew a special fleet role"),
    description: str = typer.Option("", "--description", "-d", help="What happened"),
    killmail: Optional[str] = typer.Option(None, "--killmail", "-k", help="zKillboard link")
):
    """Submit an SRP request for a lost asset."""
    service = get_service()
    payload = SubmissionPayload(
        asset_type_id=asset_type_id,
        claimed_value=value,
        operation_type=operation,
        is_special_role=special_role,
        loss_description=description,
        fleet_ref=fleet,
        killmail_url=killmail
    )
    request = _unwrap(service.submit_request(_actor(user, name, "member"), payload))
    console.print(f"[green]✓[/] Request submitted: {request.id}")
    console.print(f"Estimated payout: {_format_amount(request.estimated_payout)}")


@app.command("list")
def list_requests(
    owner: Optional[str] = typer.Option(None, "--owner", help="Only this submitter's requests"),
    status_filter: str = typer.Option("all", "--status", help="pending, processing, approved, denied or all")
):
    """List SRP requests, newest first."""
    service = get_service()
    requests = _unwrap(service.list_requests(owner, status_filter))

    if not requests:
        console.print("\n[dim]No SRP requests found.[/]")
        return

    table = Table(title="SRP Requests")
    table.add_column("Id")
    table.add_column("Pilot")
    table.add_column("Asset")
    table.add_column("Claimed", justify="right")
    table.add_column("Estimate", justify="right")
    table.add_column("Payout", justify="right")
    table.add_column("Status")
    for request in requests:
        table.add_row(
            request.id,
            request.owner_id,
            request.asset_type_name,
            _format_amount(request.claimed_value),
            _format_amount(request.estimated_payout),
            _format_amount(request.payout_amount),
            _status_text(request.status.value)
        )
    console.print(table)


@app.command()
def show(request_id: str = typer.Argument(..., help="Request id")):
    """Show one request and its history."""
    service = get_service()
    detail = _unwrap(service.get_request(request_id))
    _print_request(detail.request)

    console.print("\n[bold]History[/bold]")
    for item in detail.history:
        line = f"{item.timestamp:%Y-%m-%d %H:%M} {item.kind:<10} {item.actor}"
        if item.note:
            line += f" - {item.note}"
        console.print(line)


@app.command()
def process(
    request_id: str = typer.Argument(..., help="Request id"),
    user: str = typer.Option(..., "--user", "-u", help="Your user id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
    role: str = typer.Option("fc", "--role", "-r", help="member, fc or admin"),
    note: Optional[str] = typer.Option(None, "--note", help="Optional note")
):
    """Mark a pending request as being processed."""
    service = get_service()
    request = _unwrap(service.mark_processing(request_id, _actor(user, name, role), note))
    console.print(f"[green]✓[/] Request {request.id} is {_status_text(request.status.value)}")


@app.command()
def review(
    request_id: str = typer.Argument(..., help="Request id"),
    decision: str = typer.Argument(..., help="approve or deny"),
    user: str = typer.Option(..., "--user", "-u", help="Your user id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
    role: str = typer.Option("fc", "--role", "-r", help="member, fc or admin"),
    note: Optional[str] = typer.Option(None, "--note", help="Reason (required to deny)"),
    payout: Optional[int] = typer.Option(None, "--payout", "-p", help="Payout amount (required to approve)")
):
    """Approve or deny a request."""
    service = get_service()
    request = _unwrap(service.review_request(request_id, _actor(user, name, role), decision, note, payout))
    console.print(f"[green]✓[/] Request {request.id} is {_status_text(request.status.value)}")
    if request.payout_amount is not None:
        console.print(f"Payout: {_format_amount(request.payout_amount)}")


@app.command()
def pay(
    request_id: str = typer.Argument(..., help="Request id"),
    user: str = typer.Option(..., "--user", "-u", help="Your user id"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
    role: str = typer.Option("fc", "--role", "-r", help="member, fc or admin"),
    note: Optional[str] = typer.Option(None, "--note", help="Optional payment reference")
):
    """Record that an approved request has been paid."""
    service = get_service()
    request = _unwrap(service.mark_paid(request_id, _actor(user, name, role), note))
    console.print(f"[green]✓[/] Request {request.id} paid: {_format_amount(request.payout_amount)}")


@app.command()
def stats(owner: Optional[str] = typer.Option(None, "--owner", help="Only this submitter's requests")):
    """Show dashboard statistics."""
    service = get_service()
    result = _unwrap(service.get_stats(owner))

    console.print("\n[bold]SRP Dashboard[/bold]")
    console.print("-" * 40)
    console.print(f"Pending requests: {result.pending_count}")
    console.print(f"Approved today: {result.approved_today}")
    console.print(f"Total paid out: {_format_amount(result.total_paid_out)}")
    console.print(f"Average processing time: {result.average_processing_hours:.1f}h")


if __name__ == "__main__":
    app()
