"""
Contract Lifecycle - Status Transition Rules
Single source of truth for which status changes are legal and what they set.

No database access, no logging, no side effects: callers pass a snapshot of the
contract and persist the returned copy themselves.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Optional, Union

from studiocrm.models import Contract, ContractStatus

Clock = Callable[[], datetime]

S = ContractStatus

# Current status -> legal target statuses
TRANSITIONS: Dict[ContractStatus, FrozenSet[ContractStatus]] = {
    S.DRAFT: frozenset({S.SENT, S.ARCHIVED}),
    S.SENT: frozenset({S.VIEWED, S.SIGNED, S.ARCHIVED}),
    S.VIEWED: frozenset({S.SIGNED, S.ARCHIVED}),
    S.SIGNED: frozenset({S.IN_PROGRESS, S.ARCHIVED}),
    S.IN_PROGRESS: frozenset({S.EDITING, S.ARCHIVED}),
    S.EDITING: frozenset({S.READY, S.ARCHIVED}),
    S.READY: frozenset({S.DELIVERED, S.ARCHIVED}),
    S.DELIVERED: frozenset({S.ARCHIVED}),
    S.ARCHIVED: frozenset(),  # terminal
}


class InvalidTransitionError(ValueError):
    """The requested status is not reachable from the contract's current status."""

    def __init__(self, current_status, attempted_status):
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(f"Cannot transition from {current_status} to {attempted_status}")


def check_exhaustive(table: dict, name: str, keys=ContractStatus) -> None:
    """Raise RuntimeError if an enum-keyed table is missing any member of keys."""
    missing = set(keys) - set(table)
    if missing:
        raise RuntimeError(f"{name} is missing keys: {sorted(k.value for k in missing)}")


check_exhaustive(TRANSITIONS, 'TRANSITIONS')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(status) -> Optional[ContractStatus]:
    try:
        return ContractStatus(status)
    except ValueError:
        return None


def allowed_targets(current: Union[ContractStatus, str]) -> FrozenSet[ContractStatus]:
    """Statuses reachable from current in one step. Unknown statuses reach nothing."""
    status = _coerce(current)
    if status is None:
        return frozenset()
    return TRANSITIONS[status]


def can_transition(current: Union[ContractStatus, str], target: Union[ContractStatus, str]) -> bool:
    """True if target is a legal next status after current."""
    target_status = _coerce(target)
    return target_status is not None and target_status in allowed_targets(current)


def transition(
    contract: Contract,
    target_status: Union[ContractStatus, str],
    delivery_window_days: Optional[int] = None,
    clock: Clock = utcnow,
) -> Contract:
    """
    Move a contract to target_status.

    Args:
        contract: Snapshot of the current contract. Never mutated.
        target_status: Requested status (enum member or its string value)
        delivery_window_days: Only used by signed -> in_progress (event completed)
        clock: Returns the current time; injected so tests stay deterministic

    Returns: a new Contract with the status and any derived fields updated
    Raises: InvalidTransitionError if the move is not in TRANSITIONS
    """
    target = _coerce(target_status)
    if target is None or target not in TRANSITIONS[contract.status]:
        raise InvalidTransitionError(contract.status, target if target is not None else target_status)

    changes = {'status': target}

    if target is S.SIGNED and contract.signed_at is None:
        changes['signed_at'] = clock()

    # Event completed: the delivery countdown starts here
    if contract.status is S.SIGNED and target is S.IN_PROGRESS:
        changes['event_completed_at'] = clock()
        if delivery_window_days is not None:
            changes['delivery_window_days'] = delivery_window_days

    return replace(contract, **changes)
