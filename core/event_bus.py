"""
Event bus for workflow domain events.

Synchronous in-process pub/sub. Services publish only after their transaction
has committed, so a failing handler cannot undo a transition: handler errors
are logged and swallowed here, and the remaining handlers still run.
"""

import logging
from collections import defaultdict
from typing import Callable, Iterable

from core.events import WorkflowEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus.

    Subscribe by event class name, publish by event instance. Handlers run in
    subscription order on the publishing thread.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Register a handler.

        Args:
            event_type: Event class name, e.g. 'HandoverRequested'
            callback: Called with the event instance
        """
        self._subscribers[event_type].append(callback)

    def publish(self, event: WorkflowEvent) -> None:
        """Deliver one event to every handler subscribed to its class name."""
        event_type = type(event).__name__

        for callback in self._subscribers.get(event_type, ()):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )

    def publish_all(self, events: Iterable[WorkflowEvent]) -> None:
        """Publish events in order, typically those collected during one transaction."""
        for event in events:
            self.publish(event)
