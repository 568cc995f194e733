"""
Event System Module

Publish/subscribe dispatcher for loan lifecycle events. Collaborators that
are causally coupled to loans but live outside them (the capital ledger, for
one) subscribe here instead of being called from the loan service directly.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
from threading import RLock

from .logging_config import get_logger


class DomainEvent(Enum):
    """Domain events raised by the loan ledger"""
    LOAN_CREATED = "loan.created"
    LOAN_PAYMENT_RECEIVED = "loan.payment_received"
    LOAN_PAID_OFF = "loan.paid_off"
    LOAN_UPDATED = "loan.updated"
    LOAN_DELETED = "loan.deleted"
    LOAN_OVERDUE_ASSESSED = "loan.overdue_assessed"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._lock = RLock()
        self.logger = get_logger("loan_ledger.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {_handler_name(handler)}")

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload) -> None:
        """
        Publish event to all subscribers

        A failing handler is logged and skipped; it never fails the operation
        that raised the event.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        self.logger.debug(f"Publishing event {event.event_type.value} for {event.entity_type}:{event.entity_id}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(
                    f"Error in event handler {_handler_name(handler)} for {event.event_type.value}: {e}",
                    exc_info=True
                )

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


class EventPublisherMixin:
    """Mixin to add event publishing capabilities to domain classes"""

    _event_dispatcher: Optional[EventDispatcher] = None

    def set_event_dispatcher(self, event_dispatcher: EventDispatcher) -> None:
        """Set the event dispatcher for this instance"""
        self._event_dispatcher = event_dispatcher

    def publish_event(self, event_type: DomainEvent, entity_type: str, entity_id: str, data: Dict[str, Any]) -> None:
        """Publish a domain event if a dispatcher is attached"""
        if self._event_dispatcher is None:
            return
        self._event_dispatcher.publish(EventPayload(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            data=data
        ))
