"""
Data Models
Enumerations and dataclasses for all entities. These are pure Python objects, no database logic.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional


DEFAULT_DELIVERY_WINDOW_DAYS = 60


def effective_window_days(days: int) -> int:
    """Delivery window used for date math. A stored zero or negative window counts as one day."""
    return days if days > 0 else 1


class ContractStatus(str, Enum):
    """Contract lifecycle status. Values match the database column."""
    DRAFT = 'draft'
    SENT = 'sent'
    VIEWED = 'viewed'
    SIGNED = 'signed'
    IN_PROGRESS = 'in_progress'
    EDITING = 'editing'
    READY = 'ready'
    DELIVERED = 'delivered'
    ARCHIVED = 'archived'

    def __str__(self):
        return self.value


class DeliveryStatus(str, Enum):
    PENDING_EVENT = 'pending_event'
    IN_PROGRESS = 'in_progress'
    DELIVERED = 'delivered'

    def __str__(self):
        return self.value


class MilestoneType(str, Enum):
    CONTRACT_INITIATED = 'contract_initiated'
    CONTRACT_SIGNED = 'contract_signed'
    EVENT_COMPLETED = 'event_completed'
    EDITING_STARTED = 'editing_started'
    EDITING_COMPLETE = 'editing_complete'
    GALLERY_CREATED = 'gallery_created'
    GALLERY_PUBLISHED = 'gallery_published'
    DELIVERY_COMPLETE = 'delivery_complete'
    CUSTOM = 'custom'

    def __str__(self):
        return self.value


@dataclass
class Contract:
    """Photographer/client contract tracked through the delivery lifecycle"""
    id: Optional[int] = None
    client_name: str = ''
    client_email: Optional[str] = None
    title: Optional[str] = None
    event_type: Optional[str] = None
    event_date: Optional[date] = None
    status: ContractStatus = ContractStatus.DRAFT
    delivery_window_days: int = DEFAULT_DELIVERY_WINDOW_DAYS
    event_completed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None  # signing deadline while sent or viewed
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        # Rows from the database carry the status as a plain string
        self.status = ContractStatus(self.status)

    @property
    def estimated_delivery_date(self) -> Optional[date]:
        """event_completed_at + delivery_window_days, or None before the event is completed."""
        if self.event_completed_at is None:
            return None
        return (self.event_completed_at + timedelta(days=effective_window_days(self.delivery_window_days))).date()


@dataclass(frozen=True)
class DeliveryProgress:
    """Read-only countdown view derived from a contract. Never persisted."""
    delivery_status: DeliveryStatus
    days_elapsed: Optional[int] = None
    days_remaining: Optional[int] = None
    percent_complete: Optional[float] = None
    is_overdue: bool = False
    estimated_delivery_date: Optional[date] = None


@dataclass
class Milestone:
    """Timeline entry shown to the client"""
    id: Optional[int] = None
    contract_id: int = 0
    type: MilestoneType = MilestoneType.CUSTOM
    title: str = ''
    description: Optional[str] = None
    notes: Optional[str] = None
    occurred_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    is_system_generated: bool = False

    def __post_init__(self):
        self.type = MilestoneType(self.type)


@dataclass
class StatusChange:
    """Audit record of a single status transition"""
    id: Optional[int] = None
    contract_id: int = 0
    previous_status: Optional[ContractStatus] = None
    new_status: ContractStatus = ContractStatus.DRAFT
    changed_by_type: str = 'photographer'
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.previous_status is not None:
            self.previous_status = ContractStatus(self.previous_status)
        self.new_status = ContractStatus(self.new_status)
