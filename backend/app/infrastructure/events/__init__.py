"""Infrastructure event bus and domain event publishing."""

from .domain_event_publisher import DomainEventPublisher
from .event_bus import EventBusInterface, InMemoryEventBus

__all__ = ["DomainEventPublisher", "EventBusInterface", "InMemoryEventBus"]
