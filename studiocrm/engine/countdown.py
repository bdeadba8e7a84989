"""
Delivery Countdown
Derives the delivery progress view of a contract from its event completion time,
delivery window and the current time, and classifies unsigned contracts against
their signing deadline. Pure functions; nothing is stored.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from studiocrm.models import (
    Contract, ContractStatus, DeliveryProgress, DeliveryStatus, effective_window_days,
)

REMINDER_OVERDUE = 'overdue'
REMINDER_ALMOST_DUE = 'almost_due'
REMINDER_CONTRACT_EXPIRING = 'contract_expiring'

# Unsigned contracts: remind the client this many days before the signing deadline
SIGNING_REMINDER_DAYS = (3, 1)

# Statuses in which a contract is still waiting for the client's signature
AWAITING_SIGNATURE = (ContractStatus.SENT, ContractStatus.VIEWED)

_window = effective_window_days


def estimated_delivery_date(event_completed_at: Optional[datetime], delivery_window_days: int) -> Optional[date]:
    if event_completed_at is None:
        return None
    return (event_completed_at + timedelta(days=_window(delivery_window_days))).date()


def _days_elapsed(event_completed_at: datetime, now: datetime) -> int:
    return max(0, (now - event_completed_at) // timedelta(days=1))


def compute_progress(contract: Contract, now: datetime) -> DeliveryProgress:
    """
    Compute the delivery countdown for a contract at time now.

    - delivered: closed at 100% with 0 days remaining, whatever the elapsed time
    - no event_completed_at: pending_event, no counts
    - otherwise: days elapsed/remaining against the delivery window;
      percent is progress through the window, so it stops at 100 when overdue
    """
    completed_at = contract.event_completed_at

    if contract.status is ContractStatus.DELIVERED:
        # Also covers a delivered row with no event_completed_at (written outside transition())
        return DeliveryProgress(
            delivery_status=DeliveryStatus.DELIVERED,
            days_elapsed=_days_elapsed(completed_at, now) if completed_at else None,
            days_remaining=0,
            percent_complete=100.0,
            is_overdue=False,
            estimated_delivery_date=estimated_delivery_date(completed_at, contract.delivery_window_days),
        )

    if completed_at is None:
        return DeliveryProgress(delivery_status=DeliveryStatus.PENDING_EVENT)

    window = _window(contract.delivery_window_days)
    elapsed = _days_elapsed(completed_at, now)
    remaining = window - elapsed
    percent = min(100.0, max(0.0, elapsed / window * 100))

    return DeliveryProgress(
        delivery_status=DeliveryStatus.IN_PROGRESS,
        days_elapsed=elapsed,
        days_remaining=remaining,
        percent_complete=round(percent, 2),
        is_overdue=remaining < 0,
        estimated_delivery_date=estimated_delivery_date(completed_at, window),
    )


def reminder_kind(progress: DeliveryProgress, almost_due_days: int = 3) -> Optional[str]:
    """
    Classify a progress view for the daily reminder run.
    Returns 'overdue' on the first overdue day, 'almost_due' when exactly
    almost_due_days remain, otherwise None.
    """
    if progress.delivery_status is not DeliveryStatus.IN_PROGRESS:
        return None
    if progress.days_remaining == -1:
        return REMINDER_OVERDUE
    if progress.days_remaining == almost_due_days:
        return REMINDER_ALMOST_DUE
    return None


def days_until_expiry(contract: Contract, now: datetime) -> Optional[int]:
    """Whole days left before expires_at, rounded up. None without a deadline."""
    if contract.expires_at is None:
        return None
    return -((now - contract.expires_at) // timedelta(days=1))


def is_expired(contract: Contract, now: datetime) -> bool:
    """True for an unsigned contract whose signing deadline has passed."""
    return (
        contract.status in AWAITING_SIGNATURE
        and contract.expires_at is not None
        and contract.expires_at < now
    )


def expiry_reminder_kind(
    contract: Contract,
    now: datetime,
    days_before: Tuple[int, ...] = SIGNING_REMINDER_DAYS,
) -> Optional[str]:
    """
    Classify an unsigned contract for the signing reminder run.
    Returns 'contract_expiring' when exactly one of days_before days remain
    before the deadline, otherwise None.
    """
    if contract.status not in AWAITING_SIGNATURE or is_expired(contract, now):
        return None
    if days_until_expiry(contract, now) in days_before:
        return REMINDER_CONTRACT_EXPIRING
    return None
