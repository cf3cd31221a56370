"""
Base application service providing common functionality.

This module provides a base class for all application services,
including context validation, cancellation and transaction management.
"""

import asyncio
import logging
from abc import ABC
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

from app.domain.execution.repositories import ExecutionStore, ExecutionUnitOfWork
from app.domain.shared.base import DomainEvent
from app.domain.shared.exceptions import (
    OperationCancelledError,
    PersistenceTimeoutError,
    ValidationError,
)
from app.infrastructure.persistence.locks import AggregateLockRegistry, LockKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

UnitOfWorkCallable = Callable[[ExecutionUnitOfWork], Awaitable[T]]
LockKeyResolver = Callable[[], Awaitable[tuple[LockKey, ...]]]


class ApplicationServiceBase(ABC):
    """
    Base class for application services.

    Provides common functionality for validation, cancellation and
    transaction coordination across all application services.
    """

    def __init__(
        self,
        store: ExecutionStore,
        locks: AggregateLockRegistry | None = None,
        timeout_seconds: float = 5.0,
    ):
        """
        Initialize the application service.

        Args:
            store: Store handing out units of work
            locks: Per-aggregate lock registry shared by all callers
            timeout_seconds: Default deadline for one operation
        """
        self._store = store
        self._locks = locks or AggregateLockRegistry()
        self._timeout_seconds = timeout_seconds

    @property
    def store(self) -> ExecutionStore:
        return self._store

    @property
    def locks(self) -> AggregateLockRegistry:
        return self._locks

    def validate_uuid(self, value: Any, field_name: str) -> UUID:
        """
        Validate and convert a value to UUID.

        Raises:
            ValidationError: If value is not a valid UUID
        """
        if isinstance(value, UUID):
            return value

        try:
            return UUID(str(value))
        except (ValueError, TypeError):
            raise ValidationError(
                field_name, value, "Must be a valid UUID", "INVALID_UUID"
            ) from None

    def check_cancelled(
        self, operation: str, cancel_event: asyncio.Event | None
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError(operation)

    async def run_in_transaction(
        self,
        operation: str,
        work: UnitOfWorkCallable[T],
        lock_keys: tuple[LockKey, ...] | LockKeyResolver = (),
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        commit: bool = True,
    ) -> tuple[T, list[DomainEvent]]:
        """
        Run ``work`` against a fresh unit of work under the aggregate locks.

        The whole call, lock waits included, is bounded by the deadline. The
        working copies become visible only when the commit succeeds; any
        failure before that leaves the store untouched.

        Args:
            operation: Name used in errors and logs
            work: Coroutine function receiving the unit of work
            lock_keys: Keys to hold, or a coroutine function resolving them
            timeout: Deadline in seconds, defaults to the service setting
            cancel_event: Set by the caller to abandon the operation
            commit: False for read-only work

        Returns:
            The value returned by ``work`` and the committed domain events

        Raises:
            PersistenceTimeoutError: If the deadline expires before commit
            OperationCancelledError: If cancelled before commit
        """
        timeout = timeout if timeout is not None else self._timeout_seconds

        async def guarded() -> tuple[T, list[DomainEvent]]:
            self.check_cancelled(operation, cancel_event)
            keys = lock_keys if isinstance(lock_keys, tuple) else await lock_keys()
            async with self._locks.hold(*keys):
                async with self._store.unit_of_work() as uow:
                    value = await work(uow)
                    if not commit:
                        return value, []
                    # Past this point the mutation stands
                    self.check_cancelled(operation, cancel_event)
                    await uow.commit()
                    return value, uow.collect_events()

        try:
            return await asyncio.wait_for(guarded(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{operation} exceeded its {timeout}s deadline")
            raise PersistenceTimeoutError(operation, timeout) from None
