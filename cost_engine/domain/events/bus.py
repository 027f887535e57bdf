"""
Domain Events and the event bus port.

The engine publishes fire-and-forget events (BudgetCreated, CostRecorded,
CostAlert, ...). It never awaits delivery: subscriber failures are logged
and do not reach the publisher.
"""
import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


# Event type names
BUDGET_CREATED = "BudgetCreated"
BUDGET_STATUS_CHANGED = "BudgetStatusChanged"
COST_RECORDED = "CostRecorded"
COST_REVERSED = "CostReversed"
COST_ALERT = "CostAlert"


@dataclass(frozen=True)
class DomainEvent:
    """An event raised by the engine."""
    event_type: str
    project_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            'type': self.event_type,
            'project_id': self.project_id,
            'payload': self.payload,
            'timestamp': self.occurred_at.isoformat(),
        }


class EventBus(Protocol):
    """Outbound event port."""

    def publish(self, event: DomainEvent) -> None:
        ...


EventHandler = Callable[[DomainEvent], None]


class InMemoryEventBus:
    """
    Synchronous in-process event bus.

    Keeps a bounded history of recent published events and dispatches
    them to handlers subscribed by event type (or '*' for all events).
    """

    def __init__(self, history_limit: int = 1000):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._published: Deque[DomainEvent] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self._published.append(event)
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._handlers.get('*', []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler failed for {event.event_type} (project {event.project_id})"
                )

    def published(self, event_type: Optional[str] = None) -> List[DomainEvent]:
        """Events published so far, optionally filtered by type."""
        with self._lock:
            events = list(self._published)
        if event_type is None:
            return events
        return [e for e in events if e.event_type == event_type]


class NullEventBus:
    """Event bus that drops every event."""

    def publish(self, event: DomainEvent) -> None:
        logger.debug(f"Dropping event {event.event_type} for project {event.project_id}")
