#!/usr/bin/env python3
"""
Studio CRM Terminal CLI
Command-line interface for contracts, the delivery countdown and the client timeline.
"""

import logging
import re
import sys
import click
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from studiocrm.config import config
from studiocrm.engine import contracts as service
from studiocrm.engine.contracts import StaleContractError
from studiocrm.engine.countdown import AWAITING_SIGNATURE, compute_progress
from studiocrm.engine.lifecycle import InvalidTransitionError, TRANSITIONS, allowed_targets, utcnow
from studiocrm.engine.status_meta import STATUS_INFO, status_label
from studiocrm.models import Contract, ContractStatus, DeliveryStatus, Milestone, MilestoneType
from studiocrm.logging_config import configure_logging, log_call

_EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

STATUS_CHOICES = [s.value for s in ContractStatus]
MILESTONE_CHOICES = [m.value for m in MilestoneType]
ACTOR_CHOICES = ['photographer', 'client', 'system']


def _window_option():
    return click.option(
        '--window-days', type=click.IntRange(1, config.MAX_DELIVERY_WINDOW_DAYS),
        help='Delivery window in days (used when the event is marked completed)',
    )


def _fmt_dt(value: Optional[datetime]) -> str:
    if value is None:
        return '(not set)'
    return value.astimezone(ZoneInfo(config.TIMEZONE)).strftime('%Y-%m-%d %H:%M')


def _fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


@log_call
def _prompt_date(label: str, default: Optional[date] = None) -> Optional[date]:
    """Prompt for a date, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("studiocrm")
    default_str = str(default) if default else ""
    while True:
        raw = click.prompt(label, default=default_str, show_default=bool(default_str)) or ""
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.debug(f"_prompt_date | rejected input={raw!r}")
            click.echo("  Invalid format — please use YYYY-MM-DD.", err=True)


@log_call
def _prompt_email() -> Optional[str]:
    """Prompt for a client email address, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("studiocrm")
    while True:
        raw = click.prompt("Client email", default="", show_default=False) or None
        if raw is None:
            return None
        if _EMAIL_RE.match(raw):
            return raw
        logger.debug(f"_prompt_email | rejected input={raw!r}")
        click.echo("  Invalid email address — please try again or press Enter to skip.", err=True)


def _apply_status_change(contract_id: int, new_status: str, **kwargs) -> Contract:
    """Call the service and turn its failures into CLI errors (exit code 1)."""
    logger = logging.getLogger("studiocrm")
    try:
        contract = service.change_status(contract_id, new_status, **kwargs)
    except InvalidTransitionError as e:
        logger.warning(f"status change rejected for contract {contract_id}: {e}")
        targets = ', '.join(sorted(s.value for s in allowed_targets(e.current_status))) or 'none (terminal)'
        _fail(f"Error: {e}. Allowed from {e.current_status}: {targets}")
    except StaleContractError as e:
        logger.warning(f"status change conflict for contract {contract_id}: {e}")
        _fail(f"Error: {e}. Re-run the command to retry.")
    except ValueError as e:
        logger.warning(f"status change invalid input for contract {contract_id}: {e}")
        _fail(f"Error: {e}")

    if contract is None:
        logger.warning(f"status change | contract_id={contract_id} not found")
        _fail(f"Contract ID {contract_id} not found.")
    return contract


@click.group()
def cli():
    """Studio CRM - Photography Contracts & Gallery Delivery"""
    configure_logging()


# =============================================================================
# CONTRACTS COMMANDS
# =============================================================================

@cli.group('contracts')
def contracts_group():
    """Manage client contracts"""
    pass


@contracts_group.command('list')
@click.option('--status', type=click.Choice(STATUS_CHOICES), help='Filter by status')
@click.option('--client', help='Filter by client name (partial match)')
@click.option('--limit', default=100, type=click.IntRange(min=1), help='Max results (default: 100)')
@log_call
def contracts_list(status, client, limit):
    """List contracts"""
    results = service.search_contracts(status=status, client=client, limit=limit)

    if not results:
        click.echo("No contracts found.")
        return

    click.echo(f"\nFound {len(results)} contracts:\n")
    click.echo(f"{'ID':<6} {'Client':<28} {'Event':<14} {'Event Date':<12} {'Status':<20}")
    click.echo("-" * 82)

    for c in results:
        click.echo(
            f"{c.id:<6} {c.client_name[:26]:<28} "
            f"{(c.event_type or '')[:12]:<14} {str(c.event_date or ''):<12} "
            f"{status_label(c.status):<20}"
        )


@contracts_group.command('show')
@click.argument('contract_id', type=int)
@log_call
def contracts_show(contract_id):
    """Show contract details, delivery countdown and timeline"""
    logger = logging.getLogger("studiocrm")
    contract = service.get_contract(contract_id)

    if not contract:
        logger.warning(f"contracts_show | contract_id={contract_id} not found")
        _fail(f"Contract ID {contract_id} not found.")

    info = STATUS_INFO[contract.status]
    click.echo(f"\n{'='*80}")
    click.echo(f"CONTRACT #{contract.id}: {contract.title or contract.client_name}")
    click.echo(f"{'='*80}")
    click.echo(f"Client:      {contract.client_name}")
    click.echo(f"Email:       {contract.client_email or '(not set)'}")
    click.echo(f"Event:       {contract.event_type or '(not set)'}")
    click.echo(f"Event Date:  {contract.event_date or '(not set)'}")
    click.echo(f"Status:      {info.label} — {info.description}")
    click.echo(f"Signed:      {_fmt_dt(contract.signed_at)}")
    if contract.status in AWAITING_SIGNATURE:
        click.echo(f"Expires:     {_fmt_dt(contract.expires_at)}")
    click.echo(f"Window:      {contract.delivery_window_days} days")
    click.echo(f"Next:        {', '.join(sorted(s.value for s in allowed_targets(contract.status))) or '(terminal)'}")

    if contract.notes:
        click.echo(f"\nNotes:\n{contract.notes}")

    click.echo(f"\n{'='*80}")
    click.echo("DELIVERY")
    click.echo(f"{'='*80}")
    _echo_progress(compute_progress(contract, utcnow()))

    click.echo(f"\n{'='*80}")
    click.echo("TIMELINE")
    click.echo(f"{'='*80}")

    milestones = service.get_milestones(contract_id)
    if milestones:
        for m in milestones:
            click.echo(f"\n[{_fmt_dt(m.occurred_at)}] {m.title}")
            if m.description:
                click.echo(f"  {m.description[:100]}")
    else:
        click.echo("No milestones yet.")

    click.echo()


def _echo_progress(progress):
    if progress.delivery_status is DeliveryStatus.PENDING_EVENT:
        click.echo("Waiting for the event to be completed.")
        return
    if progress.delivery_status is DeliveryStatus.DELIVERED:
        click.echo("Gallery delivered. 100%")
        return

    click.echo(f"Estimated:   {progress.estimated_delivery_date}")
    click.echo(f"Elapsed:     {progress.days_elapsed} days ({progress.percent_complete:.0f}%)")
    if progress.is_overdue:
        click.echo(f"Remaining:   OVERDUE by {-progress.days_remaining} days")
    else:
        click.echo(f"Remaining:   {progress.days_remaining} days")


@contracts_group.command('add')
@log_call
def contracts_add():
    """Add a new contract (interactive)"""
    click.echo("\n=== ADD NEW CONTRACT ===\n")

    client_name = click.prompt("Client name", type=str)
    client_email = _prompt_email()
    title = click.prompt("Title", default="", show_default=False) or None
    event_type = click.prompt("Event type (wedding/portrait/event/etc)", default="wedding")
    event_date = _prompt_date("Event date (YYYY-MM-DD)")
    window = click.prompt(
        "Delivery window (days)",
        type=click.IntRange(1, config.MAX_DELIVERY_WINDOW_DAYS),
        default=config.DEFAULT_DELIVERY_WINDOW_DAYS,
    )
    notes = click.prompt("Notes", default="", show_default=False) or None

    contract = Contract(
        client_name=client_name,
        client_email=client_email,
        title=title,
        event_type=event_type,
        event_date=event_date,
        delivery_window_days=window,
        notes=notes,
    )

    contract_id = service.create_contract(contract)
    click.echo(f"\n✓ Created contract #{contract_id} for {client_name} (draft)")


@contracts_group.command('edit')
@click.argument('contract_id', type=int)
@click.option('--client-name', help='Client name')
@click.option('--email', help='Client email')
@click.option('--title', help='Contract title')
@click.option('--event-type', help='Event type')
@click.option('--event-date', help='Event date (YYYY-MM-DD)')
@click.option('--expires-on', help='Signing deadline (YYYY-MM-DD, end of that day)')
@click.option('--notes', help='Notes')
@log_call
def contracts_edit(contract_id, client_name, email, title, event_type, event_date, expires_on, notes):
    """Edit contract details (status changes go through 'contracts status')"""
    updates = {}
    if client_name:
        updates['client_name'] = client_name
    if email:
        if not _EMAIL_RE.match(email):
            _fail(f"Invalid email address: {email}")
        updates['client_email'] = email
    if title:
        updates['title'] = title
    if event_type:
        updates['event_type'] = event_type
    if event_date:
        try:
            updates['event_date'] = date.fromisoformat(event_date)
        except ValueError:
            _fail("Invalid event date — please use YYYY-MM-DD.")
    if expires_on:
        try:
            deadline = date.fromisoformat(expires_on)
        except ValueError:
            _fail("Invalid deadline — please use YYYY-MM-DD.")
        updates['expires_at'] = datetime.combine(deadline, time.max, tzinfo=ZoneInfo(config.TIMEZONE))
    if notes:
        updates['notes'] = notes

    if not updates:
        click.echo("Nothing to update. Use --help to see options.")
        return

    if service.update_contract(contract_id, updates):
        click.echo(f"✓ Updated contract #{contract_id}: {', '.join(updates)}")
    else:
        _fail(f"Contract ID {contract_id} not found.")


@contracts_group.command('delete')
@click.argument('contract_id', type=int)
@click.option('--hard', is_flag=True, help='Permanently delete instead of soft delete')
@click.confirmation_option(prompt='Delete this contract?')
@log_call
def contracts_delete(contract_id, hard):
    """Delete a contract"""
    if service.delete_contract(contract_id, soft=not hard):
        click.echo(f"✓ Deleted contract #{contract_id}")
    else:
        _fail(f"Contract ID {contract_id} not found.")


@contracts_group.command('status')
@click.argument('contract_id', type=int)
@click.argument('new_status', type=click.Choice(STATUS_CHOICES))
@click.option('--reason', help='Why the status changed (shown on the timeline)')
@click.option('--by', 'changed_by_type', type=click.Choice(ACTOR_CHOICES), default='photographer',
              show_default=True, help='Who made the change')
@_window_option()
@log_call
def contracts_status(contract_id, new_status, reason, changed_by_type, window_days):
    """Move a contract to a new status"""
    contract = _apply_status_change(
        contract_id,
        new_status,
        delivery_window_days=window_days,
        reason=reason,
        changed_by_type=changed_by_type,
    )
    click.echo(f"✓ Contract #{contract_id} is now: {status_label(contract.status)}")
    if contract.status is ContractStatus.IN_PROGRESS:
        click.echo(f"  Estimated delivery: {contract.estimated_delivery_date}")


@contracts_group.command('complete-event')
@click.argument('contract_id', type=int)
@_window_option()
@log_call
def contracts_complete_event(contract_id, window_days):
    """Mark the event completed and start the delivery countdown"""
    contract = _apply_status_change(
        contract_id,
        ContractStatus.IN_PROGRESS.value,
        delivery_window_days=window_days,
    )
    click.echo(f"✓ Event completed for contract #{contract_id}")
    click.echo(
        f"  Delivery window: {contract.delivery_window_days} days "
        f"(estimated delivery {contract.estimated_delivery_date})"
    )


@contracts_group.command('milestone')
@click.argument('contract_id', type=int)
@click.option('--title', required=True, help='Milestone title')
@click.option('--type', 'milestone_type', type=click.Choice(MILESTONE_CHOICES), default='custom',
              show_default=True)
@click.option('--description', help='Shown to the client')
@click.option('--notes', help='Internal notes (not shown to the client)')
@log_call
def contracts_milestone(contract_id, title, milestone_type, description, notes):
    """Record a milestone on the client timeline"""
    logger = logging.getLogger("studiocrm")
    if not service.get_contract(contract_id):
        logger.warning(f"contracts_milestone | contract_id={contract_id} not found")
        _fail(f"Contract ID {contract_id} not found.")

    milestone_id = service.record_milestone(Milestone(
        contract_id=contract_id,
        type=milestone_type,
        title=title,
        description=description,
        notes=notes,
        occurred_at=utcnow(),
    ))
    click.echo(f"✓ Recorded milestone #{milestone_id}: {title}")


@contracts_group.command('history')
@click.argument('contract_id', type=int)
@log_call
def contracts_history(contract_id):
    """Show the status change history of a contract"""
    changes = service.get_status_history(contract_id)
    if not changes:
        click.echo("No status changes recorded.")
        return

    for ch in changes:
        previous = ch.previous_status.value if ch.previous_status else '—'
        line = f"[{_fmt_dt(ch.created_at)}] {previous} → {ch.new_status.value} (by {ch.changed_by_type})"
        if ch.reason:
            line += f": {ch.reason}"
        click.echo(line)


# =============================================================================
# DELIVERY COMMANDS
# =============================================================================

@cli.command('deliveries')
@click.option('--overdue', is_flag=True, help='Only show overdue deliveries')
@log_call
def deliveries(overdue):
    """Show active delivery countdowns (most urgent first)"""
    results = service.get_active_deliveries()
    if overdue:
        results = [(c, p) for c, p in results if p.is_overdue]

    if not results:
        click.echo("No active deliveries." if not overdue else "No overdue deliveries. 🎉")
        return

    click.echo(f"\n{len(results)} active deliveries:\n")
    click.echo(f"{'ID':<6} {'Client':<28} {'Status':<20} {'Due':<12} {'Left':>6} {'Done':>6}")
    click.echo("-" * 82)
    for c, p in results:
        left = f"{p.days_remaining}d" if p.days_remaining is not None else '—'
        done = f"{p.percent_complete:.0f}%" if p.percent_complete is not None else '—'
        flag = "  OVERDUE" if p.is_overdue else ""
        click.echo(
            f"{c.id:<6} {c.client_name[:26]:<28} {status_label(c.status):<20} "
            f"{str(p.estimated_delivery_date or ''):<12} {left:>6} {done:>6}{flag}"
        )


@cli.command('reminders')
@click.option('--days-before', type=click.IntRange(min=1), default=None,
              help='Almost-due threshold in days (default: REMINDER_DAYS_BEFORE_DUE)')
@log_call
def reminders(days_before):
    """Run the daily delivery and signing reminder check"""
    counts = service.send_delivery_reminders(almost_due_days=days_before)
    signing = service.send_signing_reminders()
    click.echo(f"✓ Overdue notices: {counts['overdue']}")
    click.echo(f"✓ Almost-due notices: {counts['almost_due']}")
    click.echo(f"✓ Signing reminders: {signing}")


@cli.command('expire')
@log_call
def expire():
    """Archive unsigned contracts whose signing deadline has passed"""
    archived = service.archive_expired_contracts()
    if not archived:
        click.echo("No expired contracts.")
        return
    ids = ', '.join(f"#{contract_id}" for contract_id in archived)
    click.echo(f"✓ Archived {len(archived)} expired contracts: {ids}")


@cli.command('statuses')
@log_call
def statuses():
    """List contract statuses and their allowed next steps"""
    click.echo(f"\n{'Status':<13} {'Label':<20} {'Next':<30}")
    click.echo("-" * 80)
    for status, targets in TRANSITIONS.items():
        nxt = ', '.join(sorted(t.value for t in targets)) or '(terminal)'
        click.echo(f"{status.value:<13} {STATUS_INFO[status].label:<20} {nxt:<30}")
    click.echo()


@cli.command('init-db')
@log_call
def init_db():
    """Create the database tables if they don't exist"""
    from studiocrm.db.connection import init_schema

    init_schema()
    click.echo("✓ Database schema is up to date")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
