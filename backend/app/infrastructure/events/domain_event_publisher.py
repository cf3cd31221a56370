"""
Domain Event Publisher Implementation.

Bridges committed domain events from the execution aggregates to the
infrastructure event bus.
"""

import logging

from app.domain.execution.events import DomainEventHandler
from app.domain.shared.base import DomainEvent
from app.infrastructure.events.event_bus import EventBusInterface, InMemoryEventBus

logger = logging.getLogger(__name__)


class DomainEventPublisher:
    """
    Publisher for domain events that bridges domain and infrastructure.

    Events are published only after the unit of work that produced them has
    committed. A failing handler never fails the publisher.
    """

    def __init__(self, event_bus: EventBusInterface | None = None):
        """
        Initialize the domain event publisher.

        Args:
            event_bus: Infrastructure event bus for publishing events
        """
        self._event_bus = event_bus or InMemoryEventBus()

    @property
    def event_bus(self) -> EventBusInterface:
        return self._event_bus

    async def publish_domain_event_async(self, event: DomainEvent) -> None:
        """
        Publish a domain event asynchronously.

        Args:
            event: Domain event to publish
        """
        await self._event_bus.publish_async(event)
        logger.debug(f"Published domain event: {event.event_name}")

    async def publish_batch_async(self, events: list[DomainEvent]) -> None:
        """
        Publish multiple domain events in order.

        Args:
            events: List of domain events to publish
        """
        for event in events:
            try:
                await self.publish_domain_event_async(event)
            except Exception as e:
                logger.error(
                    f"Error publishing domain event {event.event_name}: {str(e)}"
                )
        if events:
            logger.debug(f"Published batch of {len(events)} domain events")

    def register_domain_handler(self, handler: DomainEventHandler) -> None:
        """
        Register a handler object that selects its events with ``can_handle``.

        Args:
            handler: Domain event handler to register
        """

        async def dispatch(event: DomainEvent) -> None:
            if handler.can_handle(event):
                await handler.handle(event)

        self._event_bus.subscribe(DomainEvent, dispatch)
