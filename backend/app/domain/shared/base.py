"""Base classes for domain entities, value objects and events."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .exceptions import ValidationError


def utcnow() -> datetime:
    """Naive UTC timestamp; all execution timestamps are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ValueObject(BaseModel):
    """Base class for value objects (immutable, defined by their values)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __eq__(self, other: Any) -> bool:
        """Value objects are equal if all their attributes are equal."""
        if not isinstance(other, self.__class__):
            return False
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        """Value objects with same values have same hash."""
        return hash(tuple(sorted(self.model_dump().items())))


class Entity(BaseModel, ABC):
    """
    Base class for tenant-scoped entities (have identity, can change over time).

    ``tenant_id`` is set at creation and can never be reassigned. ``version`` is
    the optimistic concurrency counter the stores compare on commit.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(min_length=1, max_length=50, frozen=True)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    def __eq__(self, other: Any) -> bool:
        """Entities are equal if they have the same ID and type."""
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on entity ID."""
        return hash(self.id)

    def mark_updated(self, at: datetime | None = None) -> None:
        """Mark the entity as updated."""
        self.updated_at = at or utcnow()

    def belongs_to(self, tenant_id: str) -> bool:
        """Check tenant ownership."""
        return self.tenant_id == tenant_id

    @abstractmethod
    def is_valid(self) -> bool:
        """Validate business rules for this entity."""

    def ensure_valid(self) -> None:
        """Validate the entity and raise exception if invalid."""
        if not self.is_valid():
            raise ValidationError(
                self.__class__.__name__,
                str(self.id),
                f"Entity {self.__class__.__name__} with ID {self.id} is invalid",
            )


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base class for domain events."""

    aggregate_id: UUID
    tenant_id: str
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def event_name(self) -> str:
        return type(self).__name__


class AggregateRoot(Entity, ABC):
    """Base class for aggregate roots (entities that control consistency boundaries)."""

    _domain_events: list[DomainEvent] = PrivateAttr(default_factory=list)

    def add_domain_event(self, event: DomainEvent) -> None:
        """Add a domain event to be published."""
        self._domain_events.append(event)

    def clear_domain_events(self) -> None:
        """Clear all domain events (typically after publishing)."""
        self._domain_events.clear()

    def get_domain_events(self) -> list[DomainEvent]:
        """Get all pending domain events."""
        return self._domain_events.copy()

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return pending domain events and clear them."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events


EntityT = TypeVar("EntityT", bound=Entity)


class Repository(ABC, Generic[EntityT]):
    """Base repository interface for tenant-scoped persistence."""

    @abstractmethod
    async def get(self, tenant_id: str, entity_id: UUID) -> EntityT | None:
        """Find an entity by tenant and ID."""

    @abstractmethod
    def add(self, entity: EntityT) -> None:
        """Stage an entity for the next commit."""


class DomainService(ABC):
    """Base class for domain services (business logic that doesn't belong to a single entity)."""
