"""
Repository interfaces for the execution domain.

Every lookup is keyed by ``(tenant_id, id)``; an entity that exists in another
tenant is indistinguishable from one that does not exist. Repositories return
working copies tracked by their unit of work: changes become visible to other
callers only after :meth:`ExecutionUnitOfWork.commit`.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from ...shared.base import Repository
from ..entities.downtime import DowntimeEvent
from ..entities.work_order import WorkOrder
from ..entities.work_result import WorkResult
from ..value_objects.enums import DowntimeType, WorkOrderStatus


class WorkOrderRepository(Repository[WorkOrder]):
    """Work order persistence."""

    @abstractmethod
    async def get_by_number(self, tenant_id: str, work_order_no: str) -> WorkOrder | None:
        """Find a work order by its tenant-unique number."""

    @abstractmethod
    async def list_orders(
        self,
        tenant_id: str,
        status: WorkOrderStatus | None = None,
        planned_from: datetime | None = None,
        planned_to: datetime | None = None,
        include_inactive: bool = False,
    ) -> list[WorkOrder]:
        """
        List work orders, optionally filtered.

        ``planned_from``/``planned_to`` select orders whose planned window
        overlaps the given range.
        """


class WorkResultRepository(Repository[WorkResult]):
    """Work result persistence."""

    @abstractmethod
    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> list[WorkResult]:
        """List results of a work order ordered by work start."""

    @abstractmethod
    async def list_by_worker(self, tenant_id: str, worker_id: UUID) -> list[WorkResult]:
        """List active results reported by a worker."""

    @abstractmethod
    async def list_by_date_range(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> list[WorkResult]:
        """List active results whose result date lies in ``[start, end]``."""

    @abstractmethod
    async def count_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> int:
        """Count results of a work order."""


class DowntimeRepository(Repository[DowntimeEvent]):
    """Downtime event persistence."""

    @abstractmethod
    async def find_unresolved_by_equipment(
        self, tenant_id: str, equipment_id: UUID
    ) -> DowntimeEvent | None:
        """Find the open downtime of an equipment, if any."""

    @abstractmethod
    async def list_by_equipment(
        self, tenant_id: str, equipment_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        """List downtime of an equipment, most recent first."""

    @abstractmethod
    async def list_by_type(
        self,
        tenant_id: str,
        downtime_type: DowntimeType,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        """List downtime of one type, most recent first."""

    @abstractmethod
    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        """List downtime linked to a work order."""

    @abstractmethod
    async def list_overlapping(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        """List downtime whose interval overlaps ``[start, end)``."""

    @abstractmethod
    async def list_unresolved(self, tenant_id: str) -> list[DowntimeEvent]:
        """List all open downtime of a tenant."""


class ExecutionUnitOfWork(ABC):
    """
    Transaction boundary across the execution repositories.

    Entities staged with ``add`` are written atomically by :meth:`commit`,
    which compares each entity's ``version`` with the stored one and raises
    :class:`~app.domain.shared.exceptions.ConflictError` on a mismatch.
    Leaving the context without committing discards all staged changes.
    """

    work_orders: WorkOrderRepository
    work_results: WorkResultRepository
    downtimes: DowntimeRepository

    async def __aenter__(self) -> "ExecutionUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self.committed:
            await self.rollback()

    @property
    @abstractmethod
    def committed(self) -> bool:
        """Whether commit has succeeded."""

    @abstractmethod
    async def commit(self) -> None:
        """Atomically write all staged entities."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all staged entities."""

    @abstractmethod
    def collect_events(self) -> list:
        """Domain events of the entities written by the last commit."""


class ExecutionStore(ABC):
    """Persistence collaborator handing out units of work."""

    @abstractmethod
    def unit_of_work(self) -> ExecutionUnitOfWork:
        """Start a new unit of work."""

    def dispose(self) -> None:
        """Release connections and worker threads."""
