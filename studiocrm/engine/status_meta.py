"""
Status Metadata
Display labels, icons and descriptions for contract statuses and milestone types.
Static data only; every status-keyed table is checked for completeness at import.
"""

from dataclasses import dataclass
from typing import Dict, List

from studiocrm.engine.lifecycle import check_exhaustive
from studiocrm.models import ContractStatus, MilestoneType


@dataclass(frozen=True)
class StatusInfo:
    label: str
    icon: str
    color: str
    description: str


@dataclass(frozen=True)
class MilestoneInfo:
    label: str
    icon: str
    color: str


S = ContractStatus
M = MilestoneType

STATUS_INFO: Dict[ContractStatus, StatusInfo] = {
    S.DRAFT: StatusInfo('Draft', 'FileText', 'stone', 'Contract is being prepared'),
    S.SENT: StatusInfo('Awaiting Signature', 'Send', 'amber', 'Waiting for client to sign'),
    S.VIEWED: StatusInfo('Viewed', 'Eye', 'blue', 'Client has viewed the contract'),
    S.SIGNED: StatusInfo('Signed', 'PenTool', 'emerald', 'Contract signed, awaiting event'),
    S.IN_PROGRESS: StatusInfo('In Progress', 'Play', 'blue', 'Event completed, work in progress'),
    S.EDITING: StatusInfo('Editing', 'Palette', 'purple', 'Photos are being edited'),
    S.READY: StatusInfo('Ready for Delivery', 'CheckCircle', 'teal', 'Gallery is ready to be delivered'),
    S.DELIVERED: StatusInfo('Delivered', 'Gift', 'green', 'Gallery has been delivered'),
    S.ARCHIVED: StatusInfo('Archived', 'Archive', 'stone', 'Contract is archived'),
}

MILESTONE_INFO: Dict[MilestoneType, MilestoneInfo] = {
    M.CONTRACT_INITIATED: MilestoneInfo('Contract Created', 'FileText', 'stone'),
    M.CONTRACT_SIGNED: MilestoneInfo('Contract Signed', 'PenTool', 'emerald'),
    M.EVENT_COMPLETED: MilestoneInfo('Event Completed', 'Camera', 'blue'),
    M.EDITING_STARTED: MilestoneInfo('Editing Started', 'Palette', 'purple'),
    M.EDITING_COMPLETE: MilestoneInfo('Editing Complete', 'CheckCircle', 'indigo'),
    M.GALLERY_CREATED: MilestoneInfo('Gallery Created', 'Images', 'amber'),
    M.GALLERY_PUBLISHED: MilestoneInfo('Gallery Published', 'Globe', 'teal'),
    M.DELIVERY_COMPLETE: MilestoneInfo('Delivered', 'Gift', 'green'),
    M.CUSTOM: MilestoneInfo('Update', 'Bell', 'stone'),
}

check_exhaustive(STATUS_INFO, 'STATUS_INFO')
check_exhaustive(MILESTONE_INFO, 'MILESTONE_INFO', keys=MilestoneType)

# Headline progression shown to clients; viewed and archived are side states
STATUS_ORDER: List[ContractStatus] = [
    S.DRAFT, S.SENT, S.SIGNED, S.IN_PROGRESS, S.EDITING, S.READY, S.DELIVERED,
]


def status_label(status) -> str:
    return STATUS_INFO[ContractStatus(status)].label


def progress_step(status) -> float:
    """Position of status along STATUS_ORDER as a percentage; 0 for side states."""
    status = ContractStatus(status)
    if status not in STATUS_ORDER:
        return 0.0
    return (STATUS_ORDER.index(status) + 1) / len(STATUS_ORDER) * 100
