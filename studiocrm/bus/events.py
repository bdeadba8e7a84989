"""
Event Bus - Notification Seam
The contract service emits events after a change is committed; notification
handlers (email, client portal messages, webhooks) subscribe here.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus.
    Services emit events, notification handlers register to listen.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {handler.__name__}")

    def off(self, event_name: str, handler: Callable):
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.
        A failing handler is logged and skipped; it never undoes the committed change.
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in self._handlers.get(event_name, []):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {handler.__name__} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Contract service
EVENT_CONTRACT_CREATED = 'contract_created'
EVENT_CONTRACT_UPDATED = 'contract_updated'
EVENT_CONTRACT_DELETED = 'contract_deleted'
EVENT_CONTRACT_STATUS_CHANGED = 'contract_status_changed'
EVENT_EVENT_COMPLETED = 'event_completed'
EVENT_CONTRACT_DELIVERED = 'contract_delivered'
EVENT_MILESTONE_RECORDED = 'milestone_recorded'

# Reminder run
EVENT_DELIVERY_OVERDUE = 'delivery_overdue'
EVENT_DELIVERY_ALMOST_DUE = 'delivery_almost_due'

# Signing deadline
EVENT_CONTRACT_EXPIRING = 'contract_expiring'
EVENT_CONTRACT_EXPIRED = 'contract_expired'
