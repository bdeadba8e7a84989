"""
Contract Service - Persistence for the Contract Lifecycle
Reads contract snapshots, applies lifecycle.transition(), and writes the result back
with an optimistic-concurrency check. Records the status audit trail and milestone
timeline in the same transaction, then notifies subscribers via the event bus.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from studiocrm.db.connection import get_db_cursor
from studiocrm.models import (
    Contract, ContractStatus, DeliveryProgress, Milestone, MilestoneType, StatusChange,
)
from studiocrm.engine.lifecycle import Clock, transition, utcnow
from studiocrm.engine.countdown import (
    AWAITING_SIGNATURE, REMINDER_ALMOST_DUE, REMINDER_OVERDUE, SIGNING_REMINDER_DAYS,
    compute_progress, days_until_expiry, expiry_reminder_kind, reminder_kind,
)
from studiocrm.engine.status_meta import MILESTONE_INFO
from studiocrm.bus.events import (
    bus, EVENT_CONTRACT_CREATED, EVENT_CONTRACT_UPDATED, EVENT_CONTRACT_DELETED,
    EVENT_CONTRACT_STATUS_CHANGED, EVENT_EVENT_COMPLETED, EVENT_CONTRACT_DELIVERED,
    EVENT_MILESTONE_RECORDED, EVENT_DELIVERY_OVERDUE, EVENT_DELIVERY_ALMOST_DUE,
    EVENT_CONTRACT_EXPIRING, EVENT_CONTRACT_EXPIRED,
)
from studiocrm.config import config

logger = logging.getLogger(__name__)

# Allowlist for dynamic UPDATE queries. Lifecycle columns are absent on purpose:
# status, event_completed_at, signed_at and delivery_window_days move only via change_status()
_CONTRACT_COLUMNS = {
    'client_name', 'client_email', 'title', 'event_type', 'event_date', 'expires_at', 'notes',
}

_ACTOR_TYPES = {'photographer', 'client', 'system'}

# Statuses whose contracts have a running delivery countdown
_ACTIVE_DELIVERY_STATUSES = (
    ContractStatus.IN_PROGRESS, ContractStatus.EDITING, ContractStatus.READY,
)

# Status reached -> system milestone recorded on the client timeline
_STATUS_MILESTONES = {
    ContractStatus.SIGNED: MilestoneType.CONTRACT_SIGNED,
    ContractStatus.IN_PROGRESS: MilestoneType.EVENT_COMPLETED,
    ContractStatus.EDITING: MilestoneType.EDITING_STARTED,
    ContractStatus.READY: MilestoneType.EDITING_COMPLETE,
    ContractStatus.DELIVERED: MilestoneType.DELIVERY_COMPLETE,
}


class StaleContractError(RuntimeError):
    """The contract's status changed between the read and the write. Re-read and retry."""

    def __init__(self, contract_id: int, expected_status: ContractStatus):
        self.contract_id = contract_id
        self.expected_status = expected_status
        super().__init__(
            f"Contract {contract_id} is no longer '{expected_status}'; it was changed concurrently"
        )


def _validate_columns(updates: Dict[str, Any], allowed: set, entity: str) -> None:
    """Raise ValueError if any key in updates is not an allowed column name."""
    invalid = set(updates.keys()) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {invalid}")


def _validate_window_days(days: int) -> None:
    if not 1 <= days <= config.MAX_DELIVERY_WINDOW_DAYS:
        raise ValueError(
            f"Delivery window must be between 1 and {config.MAX_DELIVERY_WINDOW_DAYS} days, got {days}"
        )


def _insert_milestone(cur, milestone: Milestone) -> int:
    cur.execute("""
        INSERT INTO milestones (
            contract_id, type, title, description, notes,
            occurred_at, is_system_generated, created_at
        ) VALUES (
            %(contract_id)s, %(type)s, %(title)s, %(description)s, %(notes)s,
            COALESCE(%(occurred_at)s, NOW()), %(is_system_generated)s, NOW()
        ) RETURNING id
    """, {**milestone.__dict__, 'type': milestone.type.value})
    return cur.fetchone()['id']


def _status_milestone(contract: Contract, reason: Optional[str], occurred_at: datetime) -> Optional[Milestone]:
    """System milestone for reaching contract.status, or None if the status has none."""
    milestone_type = _STATUS_MILESTONES.get(contract.status)
    if milestone_type is None:
        return None

    description = reason
    if milestone_type is MilestoneType.EVENT_COMPLETED:
        occurred_at = contract.event_completed_at or occurred_at
        description = (
            "Your event has been completed! Editing will begin shortly. "
            f"Expected delivery in {contract.delivery_window_days} days."
        )
    elif milestone_type is MilestoneType.CONTRACT_SIGNED:
        occurred_at = contract.signed_at or occurred_at

    return Milestone(
        contract_id=contract.id,
        type=milestone_type,
        title=MILESTONE_INFO[milestone_type].label,
        description=description,
        occurred_at=occurred_at,
        is_system_generated=True,
    )


# =============================================================================
# CONTRACT OPERATIONS
# =============================================================================

def create_contract(contract: Contract) -> int:
    """
    Create a new contract in draft and start its timeline.
    Returns: contract_id
    """
    if contract.status is not ContractStatus.DRAFT:
        raise ValueError(f"New contracts start in draft, got '{contract.status}'")
    _validate_window_days(contract.delivery_window_days)

    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO contracts (
                client_name, client_email, title, event_type, event_date,
                status, delivery_window_days, expires_at, notes, created_at, updated_at
            ) VALUES (
                %(client_name)s, %(client_email)s, %(title)s, %(event_type)s, %(event_date)s,
                %(status)s, %(delivery_window_days)s, %(expires_at)s, %(notes)s, NOW(), NOW()
            ) RETURNING id
        """, {**contract.__dict__, 'status': contract.status.value})

        contract_id = cur.fetchone()['id']

        _insert_milestone(cur, Milestone(
            contract_id=contract_id,
            type=MilestoneType.CONTRACT_INITIATED,
            title=MILESTONE_INFO[MilestoneType.CONTRACT_INITIATED].label,
            is_system_generated=True,
        ))

    logger.info(f"Created contract ID {contract_id}: {contract.client_name}")
    bus.emit(EVENT_CONTRACT_CREATED, {'contract_id': contract_id, 'contract': contract})
    return contract_id


def get_contract(contract_id: int) -> Optional[Contract]:
    """Get contract by ID."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contracts
            WHERE id = %s AND deleted_at IS NULL
        """, (contract_id,))

        row = cur.fetchone()
        if row:
            return Contract(**row)
        logger.debug(f"get_contract: contract_id={contract_id} not found")
        return None


def search_contracts(
    status: Optional[str] = None,
    client: Optional[str] = None,
    limit: int = 100
) -> List[Contract]:
    """
    Search contracts with optional filters.
    Raises ValueError for an unknown status.
    """
    conditions = ["deleted_at IS NULL"]
    params = {'limit': limit}

    if status:
        conditions.append("status = %(status)s")
        params['status'] = ContractStatus(status).value

    if client:
        conditions.append("client_name ILIKE %(client)s")
        params['client'] = f"%{client}%"

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM contracts
            WHERE {where_clause}
            ORDER BY updated_at DESC
            LIMIT %(limit)s
        """, params)

        rows = cur.fetchall()
        logger.debug(f"search_contracts: {len(rows)} results (status={status}, client={client})")
        return [Contract(**row) for row in rows]


def update_contract(contract_id: int, updates: Dict[str, Any]) -> bool:
    """
    Update descriptive contract fields (client, title, event details, notes).
    Returns: True if updated, False if not found
    """
    if not updates:
        return False

    # Guard: only known columns may appear in the SET clause
    _validate_columns(updates, _CONTRACT_COLUMNS, 'contract')

    set_clause = ', '.join(f"{key} = %({key})s" for key in updates.keys())
    params = {**updates, 'contract_id': contract_id}

    with get_db_cursor() as cur:
        cur.execute(f"""
            UPDATE contracts
            SET {set_clause}, updated_at = NOW()
            WHERE id = %(contract_id)s AND deleted_at IS NULL
        """, params)
        updated = cur.rowcount > 0

    if updated:
        logger.info(f"Updated contract ID {contract_id}: {list(updates.keys())}")
        bus.emit(EVENT_CONTRACT_UPDATED, {'contract_id': contract_id, 'updates': updates})
    return updated


def delete_contract(contract_id: int, soft: bool = True) -> bool:
    """
    Delete contract (soft delete by default).
    Returns: True if deleted, False if not found
    """
    with get_db_cursor() as cur:
        if soft:
            cur.execute("""
                UPDATE contracts
                SET deleted_at = NOW()
                WHERE id = %s AND deleted_at IS NULL
            """, (contract_id,))
        else:
            cur.execute("DELETE FROM contracts WHERE id = %s", (contract_id,))
        deleted = cur.rowcount > 0

    if deleted:
        logger.info(f"{'Soft ' if soft else ''}Deleted contract ID {contract_id}")
        bus.emit(EVENT_CONTRACT_DELETED, {'contract_id': contract_id, 'soft': soft})
    return deleted


# =============================================================================
# LIFECYCLE OPERATIONS
# =============================================================================

def change_status(
    contract_id: int,
    new_status,
    *,
    delivery_window_days: Optional[int] = None,
    reason: Optional[str] = None,
    changed_by_type: str = 'photographer',
    clock: Clock = utcnow,
    expected_status: Optional[ContractStatus] = None,
) -> Optional[Contract]:
    """
    Move a contract to new_status and persist the result.
    With expected_status, the move only applies if the contract is still in that status.

    Returns: the updated Contract, or None if the contract does not exist
    Raises:
        ValueError: bad delivery window or actor type
        InvalidTransitionError: new_status is not reachable from the current status
        StaleContractError: another writer changed the status first
    """
    if delivery_window_days is not None:
        _validate_window_days(delivery_window_days)
    if changed_by_type not in _ACTOR_TYPES:
        raise ValueError(f"Invalid actor type: {changed_by_type!r}")

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contracts
            WHERE id = %s AND deleted_at IS NULL
        """, (contract_id,))
        row = cur.fetchone()
        if not row:
            logger.debug(f"change_status: contract_id={contract_id} not found")
            return None

        current = Contract(**row)
        if expected_status is not None and current.status is not ContractStatus(expected_status):
            raise StaleContractError(contract_id, ContractStatus(expected_status))
        updated = transition(current, new_status, delivery_window_days=delivery_window_days, clock=clock)

        # Compare-and-swap on status: zero rows means someone else moved it
        cur.execute("""
            UPDATE contracts
            SET status = %(status)s,
                event_completed_at = %(event_completed_at)s,
                delivery_window_days = %(delivery_window_days)s,
                signed_at = %(signed_at)s,
                updated_at = NOW()
            WHERE id = %(contract_id)s AND status = %(expected_status)s AND deleted_at IS NULL
        """, {
            'status': updated.status.value,
            'event_completed_at': updated.event_completed_at,
            'delivery_window_days': updated.delivery_window_days,
            'signed_at': updated.signed_at,
            'contract_id': contract_id,
            'expected_status': current.status.value,
        })
        if cur.rowcount == 0:
            raise StaleContractError(contract_id, current.status)

        cur.execute("""
            INSERT INTO contract_status_history (
                contract_id, previous_status, new_status, changed_by_type, reason, created_at
            ) VALUES (%s, %s, %s, %s, %s, NOW())
        """, (contract_id, current.status.value, updated.status.value, changed_by_type, reason))

        milestone = _status_milestone(updated, reason, clock())
        if milestone:
            milestone.id = _insert_milestone(cur, milestone)

    logger.info(f"Contract ID {contract_id}: {current.status} → {updated.status} (by {changed_by_type})")

    bus.emit(EVENT_CONTRACT_STATUS_CHANGED, {
        'contract_id': contract_id,
        'previous_status': current.status,
        'new_status': updated.status,
        'reason': reason,
        'changed_by_type': changed_by_type,
    })
    if updated.event_completed_at is not None and current.event_completed_at is None:
        bus.emit(EVENT_EVENT_COMPLETED, {
            'contract_id': contract_id,
            'event_completed_at': updated.event_completed_at,
            'delivery_window_days': updated.delivery_window_days,
            'estimated_delivery_date': updated.estimated_delivery_date,
        })
    if updated.status is ContractStatus.DELIVERED:
        bus.emit(EVENT_CONTRACT_DELIVERED, {'contract_id': contract_id, 'contract': updated})
    if milestone:
        bus.emit(EVENT_MILESTONE_RECORDED, {'contract_id': contract_id, 'milestone': milestone})

    return updated


def mark_event_completed(
    contract_id: int,
    delivery_window_days: Optional[int] = None,
    clock: Clock = utcnow,
) -> Optional[Contract]:
    """Signed -> in_progress: the event happened, start the delivery countdown."""
    return change_status(
        contract_id,
        ContractStatus.IN_PROGRESS,
        delivery_window_days=delivery_window_days,
        clock=clock,
    )


def get_status_history(contract_id: int) -> List[StatusChange]:
    """Status changes for a contract, oldest first."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contract_status_history
            WHERE contract_id = %s
            ORDER BY created_at ASC, id ASC
        """, (contract_id,))

        rows = cur.fetchall()
        logger.debug(f"get_status_history: contract_id={contract_id} → {len(rows)} changes")
        return [StatusChange(**row) for row in rows]


# =============================================================================
# MILESTONE OPERATIONS
# =============================================================================

def record_milestone(milestone: Milestone) -> int:
    """
    Record a milestone on a contract's timeline.
    Returns: milestone_id
    """
    if not milestone.title:
        raise ValueError("Milestone title is required")

    with get_db_cursor() as cur:
        milestone_id = _insert_milestone(cur, milestone)

    logger.info(f"Recorded milestone ID {milestone_id} ({milestone.type}) for contract {milestone.contract_id}")
    bus.emit(EVENT_MILESTONE_RECORDED, {'contract_id': milestone.contract_id, 'milestone': milestone})
    return milestone_id


def get_milestones(contract_id: int) -> List[Milestone]:
    """Timeline for a contract, in the order things happened."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM milestones
            WHERE contract_id = %s
            ORDER BY occurred_at ASC, id ASC
        """, (contract_id,))

        rows = cur.fetchall()
        logger.debug(f"get_milestones: contract_id={contract_id} → {len(rows)} milestones")
        return [Milestone(**row) for row in rows]


# =============================================================================
# DELIVERY COUNTDOWN
# =============================================================================

def get_delivery_progress(contract_id: int, now: Optional[datetime] = None) -> Optional[DeliveryProgress]:
    """Delivery countdown for one contract, or None if it does not exist."""
    contract = get_contract(contract_id)
    if contract is None:
        return None
    return compute_progress(contract, now or utcnow())


def get_active_deliveries(now: Optional[datetime] = None) -> List[Tuple[Contract, DeliveryProgress]]:
    """
    Contracts with a running countdown (in_progress, editing, ready),
    most urgent first.
    """
    now = now or utcnow()

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contracts
            WHERE deleted_at IS NULL
              AND status = ANY(%s)
        """, ([s.value for s in _ACTIVE_DELIVERY_STATUSES],))
        rows = cur.fetchall()

    results = [(contract, compute_progress(contract, now)) for contract in (Contract(**row) for row in rows)]
    results.sort(key=lambda item: (item[1].days_remaining is None, item[1].days_remaining or 0))
    logger.debug(f"get_active_deliveries: {len(results)} active deliveries")
    return results


def send_delivery_reminders(
    now: Optional[datetime] = None,
    almost_due_days: Optional[int] = None,
) -> Dict[str, int]:
    """
    Daily reminder run: notify once when a delivery becomes overdue and once
    when it is almost due.
    Returns: counts per reminder kind
    """
    if almost_due_days is None:
        almost_due_days = config.REMINDER_DAYS_BEFORE_DUE

    counts = {REMINDER_OVERDUE: 0, REMINDER_ALMOST_DUE: 0}
    events = {REMINDER_OVERDUE: EVENT_DELIVERY_OVERDUE, REMINDER_ALMOST_DUE: EVENT_DELIVERY_ALMOST_DUE}

    for contract, progress in get_active_deliveries(now):
        kind = reminder_kind(progress, almost_due_days)
        if kind is None:
            continue
        bus.emit(events[kind], {'contract_id': contract.id, 'contract': contract, 'progress': progress})
        counts[kind] += 1

    logger.info(f"Delivery reminders sent: {counts[REMINDER_OVERDUE]} overdue, {counts[REMINDER_ALMOST_DUE]} almost due")
    return counts


# =============================================================================
# SIGNING DEADLINE
# =============================================================================

def archive_expired_contracts(now: Optional[datetime] = None) -> List[int]:
    """
    Archive unsigned (sent/viewed) contracts whose signing deadline has passed.
    Each goes through change_status() as the system actor, pinned to the status it
    was found in, so a contract signed in the meantime is left alone.
    Returns: ids of the archived contracts
    """
    now = now or utcnow()

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT id, status FROM contracts
            WHERE deleted_at IS NULL
              AND status = ANY(%s)
              AND expires_at IS NOT NULL
              AND expires_at < %s
            ORDER BY expires_at ASC, id ASC
        """, ([s.value for s in AWAITING_SIGNATURE], now))
        rows = cur.fetchall()

    archived = []
    for row in rows:
        contract_id = row['id']
        try:
            contract = change_status(
                contract_id,
                ContractStatus.ARCHIVED,
                reason='Contract expired before it was signed',
                changed_by_type='system',
                clock=lambda: now,
                expected_status=row['status'],
            )
        except StaleContractError as e:
            logger.warning(f"archive_expired_contracts: skipped contract ID {contract_id}: {e}")
            continue
        if contract is None:
            continue

        archived.append(contract_id)
        bus.emit(EVENT_CONTRACT_EXPIRED, {'contract_id': contract_id, 'contract': contract})

    logger.info(f"Archived {len(archived)} expired contracts")
    return archived


def send_signing_reminders(now: Optional[datetime] = None) -> int:
    """
    Daily signing reminder run: notify once when an unsigned contract is
    3 days and once when it is 1 day from its signing deadline.
    Returns: number of reminders sent
    """
    now = now or utcnow()
    horizon = now + timedelta(days=max(SIGNING_REMINDER_DAYS))

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contracts
            WHERE deleted_at IS NULL
              AND status = ANY(%s)
              AND expires_at IS NOT NULL
              AND expires_at >= %s
              AND expires_at <= %s
        """, ([s.value for s in AWAITING_SIGNATURE], now, horizon))
        rows = cur.fetchall()

    sent = 0
    for contract in (Contract(**row) for row in rows):
        if expiry_reminder_kind(contract, now) is None:
            continue
        bus.emit(EVENT_CONTRACT_EXPIRING, {
            'contract_id': contract.id,
            'contract': contract,
            'days_remaining': days_until_expiry(contract, now),
        })
        sent += 1

    logger.info(f"Signing reminders sent: {sent}")
    return sent
