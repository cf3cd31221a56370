"""
SQLModel execution store.

Durable counterpart of the in-memory store. Sessions are synchronous and run
on the store's worker threads, so the event loop never waits on the database.
Reads use short-lived sessions and hand out detached working copies; a commit
opens one transaction that checks the stored version of every staged
aggregate before inserting or updating it. Uniqueness of work order numbers
and of open downtime per equipment is enforced by the schema, and violations
surface as ``ConflictError``.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, func, or_, select

from app.core.config import settings
from app.core.db import build_engine, init_db
from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.execution.repositories import (
    DowntimeRepository,
    ExecutionStore,
    WorkOrderRepository,
    WorkResultRepository,
)
from app.domain.execution.value_objects import DowntimeType, WorkOrderStatus
from app.domain.shared.base import AggregateRoot
from app.domain.shared.exceptions import ConflictError
from app.infrastructure.persistence.unit_of_work import TrackingUnitOfWork

from .mappers import ExecutionMapper
from .sqlmodel_entities import DowntimeRow, WorkOrderRow, WorkResultRow

logger = logging.getLogger(__name__)

AggregateT = TypeVar("AggregateT", bound=AggregateRoot)
T = TypeVar("T")


def _log_late_commit(pending: "asyncio.Future[bool]") -> None:
    if pending.cancelled():
        return
    if pending.exception() is not None:
        logger.warning(f"Abandoned commit failed: {pending.exception()}")
    elif pending.result():
        logger.warning("Commit finished after its caller was cancelled")


class SqlRepository(Generic[AggregateT]):
    """Tenant-scoped reads over one table."""

    entity_type: type[AggregateT]
    row_type: type

    def __init__(self, uow: "SqlUnitOfWork") -> None:
        self._uow = uow

    async def get(self, tenant_id: str, entity_id: UUID) -> AggregateT | None:
        tracked = self._uow.tracked(self.entity_type, entity_id)
        if tracked is not None:
            return tracked if tracked.tenant_id == tenant_id else None
        entity = await self._uow.run(self._load, tenant_id, entity_id)
        return self._uow.track(entity) if entity is not None else None

    def add(self, entity: AggregateT) -> None:
        self._uow.stage(entity)

    def _load(self, tenant_id: str, entity_id: UUID) -> AggregateT | None:
        with self._uow.session() as session:
            row = session.get(self.row_type, entity_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            return ExecutionMapper.sql_to_domain(row, self.entity_type)

    def _fetch(self, statement) -> list[AggregateT]:
        with self._uow.session() as session:
            return [
                ExecutionMapper.sql_to_domain(row, self.entity_type)
                for row in session.exec(statement).all()
            ]

    async def _select(self, statement) -> list[AggregateT]:
        # Tracking stays on the loop; worker threads only map rows
        entities = await self._uow.run(self._fetch, statement)
        return [self._uow.track(entity) for entity in entities]


class SqlWorkOrderRepository(SqlRepository[WorkOrder], WorkOrderRepository):
    entity_type = WorkOrder
    row_type = WorkOrderRow

    async def get_by_number(self, tenant_id: str, work_order_no: str) -> WorkOrder | None:
        statement = select(WorkOrderRow).where(
            WorkOrderRow.tenant_id == tenant_id,
            WorkOrderRow.work_order_no == work_order_no,
        )
        matches = await self._select(statement)
        return matches[0] if matches else None

    async def list_orders(
        self,
        tenant_id: str,
        status: WorkOrderStatus | None = None,
        planned_from: datetime | None = None,
        planned_to: datetime | None = None,
        include_inactive: bool = False,
    ) -> list[WorkOrder]:
        statement = select(WorkOrderRow).where(WorkOrderRow.tenant_id == tenant_id)
        if status is not None:
            statement = statement.where(WorkOrderRow.status == status)
        if not include_inactive:
            statement = statement.where(col(WorkOrderRow.is_active).is_(True))
        if planned_to is not None:
            statement = statement.where(WorkOrderRow.planned_start_date < planned_to)
        if planned_from is not None:
            statement = statement.where(WorkOrderRow.planned_end_date > planned_from)
        statement = statement.order_by(
            col(WorkOrderRow.planned_start_date), col(WorkOrderRow.work_order_no)
        )
        return await self._select(statement)


class SqlWorkResultRepository(SqlRepository[WorkResult], WorkResultRepository):
    entity_type = WorkResult
    row_type = WorkResultRow

    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> list[WorkResult]:
        statement = select(WorkResultRow).where(
            WorkResultRow.tenant_id == tenant_id,
            WorkResultRow.work_order_id == work_order_id,
        )
        if not include_reversed:
            statement = statement.where(col(WorkResultRow.is_reversed).is_(False))
        return await self._select(statement.order_by(col(WorkResultRow.work_start_time)))

    async def list_by_worker(self, tenant_id: str, worker_id: UUID) -> list[WorkResult]:
        statement = (
            select(WorkResultRow)
            .where(
                WorkResultRow.tenant_id == tenant_id,
                WorkResultRow.worker_id == worker_id,
                col(WorkResultRow.is_reversed).is_(False),
            )
            .order_by(col(WorkResultRow.work_start_time).desc())
        )
        return await self._select(statement)

    async def list_by_date_range(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> list[WorkResult]:
        statement = (
            select(WorkResultRow)
            .where(
                WorkResultRow.tenant_id == tenant_id,
                WorkResultRow.result_date >= start,
                WorkResultRow.result_date <= end,
                col(WorkResultRow.is_reversed).is_(False),
            )
            .order_by(col(WorkResultRow.result_date))
        )
        return await self._select(statement)

    async def count_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> int:
        statement = select(func.count()).select_from(WorkResultRow).where(
            WorkResultRow.tenant_id == tenant_id,
            WorkResultRow.work_order_id == work_order_id,
        )
        if not include_reversed:
            statement = statement.where(col(WorkResultRow.is_reversed).is_(False))
        return await self._uow.run(self._count, statement)

    def _count(self, statement) -> int:
        with self._uow.session() as session:
            return session.exec(statement).one()


class SqlDowntimeRepository(SqlRepository[DowntimeEvent], DowntimeRepository):
    entity_type = DowntimeEvent
    row_type = DowntimeRow

    def _scoped(self, tenant_id: str, include_inactive: bool = True):
        statement = select(DowntimeRow).where(DowntimeRow.tenant_id == tenant_id)
        if not include_inactive:
            statement = statement.where(col(DowntimeRow.is_active).is_(True))
        return statement

    async def _latest_first(self, statement) -> list[DowntimeEvent]:
        return await self._select(statement.order_by(col(DowntimeRow.start_time).desc()))

    async def find_unresolved_by_equipment(
        self, tenant_id: str, equipment_id: UUID
    ) -> DowntimeEvent | None:
        statement = self._scoped(tenant_id).where(
            DowntimeRow.equipment_id == equipment_id,
            col(DowntimeRow.is_resolved).is_(False),
        )
        matches = await self._select(statement)
        return matches[0] if matches else None

    async def list_by_equipment(
        self, tenant_id: str, equipment_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        return await self._latest_first(
            self._scoped(tenant_id, include_inactive).where(
                DowntimeRow.equipment_id == equipment_id
            )
        )

    async def list_by_type(
        self,
        tenant_id: str,
        downtime_type: DowntimeType,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        return await self._latest_first(
            self._scoped(tenant_id, include_inactive).where(
                DowntimeRow.downtime_type == downtime_type
            )
        )

    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        return await self._latest_first(
            self._scoped(tenant_id, include_inactive).where(
                DowntimeRow.work_order_id == work_order_id
            )
        )

    async def list_overlapping(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        # Half-open intervals; an open downtime extends to infinity
        statement = self._scoped(tenant_id, include_inactive).where(
            DowntimeRow.start_time < end,
            or_(col(DowntimeRow.end_time).is_(None), DowntimeRow.end_time > start),
        )
        return await self._latest_first(statement)

    async def list_unresolved(self, tenant_id: str) -> list[DowntimeEvent]:
        return await self._latest_first(
            self._scoped(tenant_id).where(col(DowntimeRow.is_resolved).is_(False))
        )


class SqlUnitOfWork(TrackingUnitOfWork):
    """Unit of work over a :class:`SqlModelExecutionStore`."""

    def __init__(self, engine: Engine, executor: ThreadPoolExecutor) -> None:
        super().__init__()
        self._engine = engine
        self._executor = executor
        self.work_orders = SqlWorkOrderRepository(self)
        self.work_results = SqlWorkResultRepository(self)
        self.downtimes = SqlDowntimeRepository(self)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self._engine, expire_on_commit=False) as session:
            yield session

    async def run(self, work: Callable[..., T], *args: Any) -> T:
        """Run blocking database work on the store's worker threads."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, work, *args)

    async def _write(self, staged: list[AggregateRoot]) -> None:
        """
        Commit the batch on a worker thread.

        A caller cancelled before the transaction commits gets it rolled back
        by the worker; the cancellation is re-raised at once, even while the
        worker is still waiting on the database.
        """
        abandon = threading.Event()
        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(
            self._executor, self._write_blocking, staged, abandon
        )
        try:
            await asyncio.shield(pending)
        except asyncio.CancelledError:
            abandon.set()
            pending.add_done_callback(_log_late_commit)
            raise

    def _write_blocking(
        self, staged: list[AggregateRoot], abandon: threading.Event
    ) -> bool:
        with self.session() as session:
            try:
                for entity in staged:
                    self._upsert(session, entity)
                if abandon.is_set():
                    session.rollback()
                    return False
                session.commit()
                return True
            except IntegrityError as e:
                session.rollback()
                logger.warning(f"Uniqueness violation on commit: {e.orig}")
                raise ConflictError(
                    "Commit violates a uniqueness constraint",
                    type(staged[0]).__name__,
                    None,
                    {"constraint": str(e.orig)},
                ) from e
            except ConflictError:
                session.rollback()
                raise

    def _upsert(self, session: Session, entity: AggregateRoot) -> None:
        row_type = ExecutionMapper.row_type_for(type(entity))
        row = session.get(row_type, entity.id, with_for_update=True)
        found = row.version if row is not None else 0
        if (row is not None and row.tenant_id != entity.tenant_id) or (
            found != entity.version
        ):
            raise ConflictError(
                f"{type(entity).__name__} {entity.id} was modified concurrently "
                f"(expected version {entity.version}, found {found})",
                type(entity).__name__,
                entity.id,
                {"expected_version": entity.version, "found_version": found},
            )

        if row is None:
            row = ExecutionMapper.domain_to_sql(entity)
        else:
            for name, value in ExecutionMapper.domain_to_values(entity).items():
                setattr(row, name, value)
        session.add(row)
        # Flush per row so a partial index sees earlier rows of the batch
        session.flush()


class SqlModelExecutionStore(ExecutionStore):
    """
    Execution store backed by a SQL database through SQLModel.

    Args:
        engine: Existing engine; when omitted one is built from ``database_url``
        database_url: Connection URL, defaults to the configured ``DATABASE_URL``
        create_tables: Create the execution tables on startup
        workers: Threads running database calls, always one on SQLite
    """

    def __init__(
        self,
        engine: Engine | None = None,
        database_url: str | None = None,
        create_tables: bool = True,
        workers: int | None = None,
    ) -> None:
        self.engine = engine or build_engine(database_url)
        if self.engine.dialect.name == "sqlite":
            workers = 1
        self._executor = ThreadPoolExecutor(
            max_workers=workers or settings.DATABASE_WORKERS,
            thread_name_prefix="sql-store",
        )
        if create_tables:
            init_db(self.engine)

    def unit_of_work(self) -> SqlUnitOfWork:
        return SqlUnitOfWork(self.engine, self._executor)

    def dispose(self) -> None:
        self._executor.shutdown(wait=True)
        self.engine.dispose()
