"""
Tracking Unit of Work base.

Keeps an identity map of the working copies loaded during one business
transaction, the subset staged for writing, and the domain events those
staged aggregates raised. Events are released only after a successful commit;
a rollback drops them together with the working copies.
"""

import logging
from abc import abstractmethod
from uuid import UUID

from app.domain.execution.repositories import ExecutionUnitOfWork
from app.domain.shared.base import AggregateRoot, DomainEvent

logger = logging.getLogger(__name__)

IdentityKey = tuple[type, UUID]


class TrackingUnitOfWork(ExecutionUnitOfWork):
    """
    Unit of Work base with identity map, staging and domain event collection.

    Subclasses implement :meth:`_write`, which must persist every staged
    aggregate at ``version + 1`` atomically, or nothing at all.
    """

    def __init__(self) -> None:
        self._identity: dict[IdentityKey, AggregateRoot] = {}
        self._staged: dict[IdentityKey, AggregateRoot] = {}
        self._domain_events: list[DomainEvent] = []
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def track(self, entity: AggregateRoot) -> AggregateRoot:
        """Return the tracked instance for this identity, tracking ``entity`` if new."""
        key = (type(entity), entity.id)
        existing = self._identity.get(key)
        if existing is not None:
            return existing
        self._identity[key] = entity
        return entity

    def tracked(self, entity_type: type, entity_id: UUID) -> AggregateRoot | None:
        return self._identity.get((entity_type, entity_id))

    def stage(self, entity: AggregateRoot) -> None:
        """Mark an entity for writing on commit."""
        if self._committed:
            raise RuntimeError("Unit of work has already been committed")
        key = (type(entity), entity.id)
        self._identity[key] = entity
        self._staged[key] = entity

    def get_pending(self) -> list[AggregateRoot]:
        return list(self._staged.values())

    async def commit(self) -> None:
        """
        Write all staged aggregates and release their domain events.

        Raises:
            ConflictError: If a staged aggregate was changed by someone else
        """
        if self._committed:
            raise RuntimeError("Unit of work has already been committed")

        staged = list(self._staged.values())
        if staged:
            await self._write(staged)

        for entity in staged:
            entity.version += 1
            self._domain_events.extend(entity.pull_domain_events())
        self._staged.clear()
        self._committed = True
        logger.debug(f"Committed {len(staged)} aggregates")

    async def rollback(self) -> None:
        """Discard working copies, staged changes and pending events."""
        if self._staged:
            logger.debug(f"Rolled back {len(self._staged)} staged aggregates")
        for entity in self._identity.values():
            entity.clear_domain_events()
        self._identity.clear()
        self._staged.clear()
        self._domain_events.clear()

    def collect_events(self) -> list[DomainEvent]:
        return self._domain_events.copy()

    @abstractmethod
    async def _write(self, staged: list[AggregateRoot]) -> None:
        """Persist staged aggregates atomically with a version check."""
