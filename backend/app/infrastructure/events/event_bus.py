"""
Event bus implementation for domain event publishing and subscription.

The event bus routes committed domain events to the handlers registered for
their type. Handler failures are logged and never reach the publisher.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from app.domain.shared.base import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Any]


class EventBusInterface(ABC):
    """
    Abstract interface for event bus implementations.

    Defines the contract for publishing events and subscribing to event types.
    """

    @abstractmethod
    async def publish_async(self, event: DomainEvent) -> None:
        """
        Publish a domain event to all registered handlers.

        Args:
            event: Domain event to publish
        """

    @abstractmethod
    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """
        Subscribe a handler (plain function or coroutine function) to an event type.

        Subscribing to :class:`DomainEvent` receives every event.
        """

    @abstractmethod
    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """Unsubscribe a handler from a specific event type."""

    @abstractmethod
    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        """
        Clear event handlers.

        Args:
            event_type: Optional event type to clear handlers for. If None, clears all.
        """


class InMemoryEventBus(EventBusInterface):
    """
    In-memory implementation of event bus.

    Events are processed in the order they are published and kept in a
    bounded history for inspection.
    """

    def __init__(self, max_history_size: int = 1000):
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)
        self._event_history: list[DomainEvent] = []
        self._max_history_size = max_history_size

    async def publish_async(self, event: DomainEvent) -> None:
        self._add_to_history(event)

        event_type = type(event)
        handlers = self._handlers.get(event_type, []) + self._handlers.get(
            DomainEvent, []
        )

        if not handlers:
            logger.debug(f"No handlers registered for event type: {event_type.__name__}")
            return

        logger.debug(
            f"Publishing event {event_type.__name__} to {len(handlers)} handlers"
        )
        await asyncio.gather(*(self._safe_handle(handler, event) for handler in handlers))

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)
            logger.debug(
                f"Subscribed handler {handler} to event type {event_type.__name__}"
            )
        else:
            logger.warning(
                f"Handler {handler} already subscribed to event type {event_type.__name__}"
            )

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)
        else:
            logger.warning(
                f"Handler {handler} not found for event type {event_type.__name__}"
            )

    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        if event_type:
            self._handlers.pop(event_type, None)
        else:
            self._handlers.clear()

    def get_handler_count(self, event_type: type[DomainEvent]) -> int:
        """Get the number of handlers registered for an event type."""
        return len(self._handlers.get(event_type, []))

    def get_event_history(
        self, event_type: type[DomainEvent] | None = None
    ) -> list[DomainEvent]:
        """
        Get history of published events.

        Args:
            event_type: Optional event type to filter by

        Returns:
            List of published events
        """
        if event_type:
            return [event for event in self._event_history if type(event) is event_type]
        return self._event_history.copy()

    def clear_event_history(self) -> None:
        """Clear the event history."""
        self._event_history.clear()

    def _add_to_history(self, event: DomainEvent) -> None:
        """Add event to history, maintaining size limit."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history_size:
            self._event_history.pop(0)  # Remove oldest event

    async def _safe_handle(self, handler: Handler, event: DomainEvent) -> None:
        """Run one handler, logging instead of raising."""
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(
                f"Error handling event {type(event).__name__} with {handler}: {str(e)}"
            )
