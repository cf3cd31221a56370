"""
Mappers for converting between execution aggregates and SQL rows.

Rows and aggregates share field names, so mapping is a field copy. The row
always carries the version the aggregate will have once the write succeeds.
"""

from typing import TypeVar

from sqlmodel import SQLModel

from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.shared.base import AggregateRoot

from .sqlmodel_entities import DowntimeRow, WorkOrderRow, WorkResultRow

AggregateT = TypeVar("AggregateT", bound=AggregateRoot)

ROW_TYPES: dict[type[AggregateRoot], type[SQLModel]] = {
    WorkOrder: WorkOrderRow,
    WorkResult: WorkResultRow,
    DowntimeEvent: DowntimeRow,
}


class ExecutionMapper:
    """Translates work orders, work results and downtime events to and from rows."""

    @staticmethod
    def row_type_for(entity_type: type[AggregateRoot]) -> type[SQLModel]:
        return ROW_TYPES[entity_type]

    @staticmethod
    def domain_to_values(entity: AggregateRoot) -> dict:
        """
        Column values for persisting an aggregate.

        Args:
            entity: Working copy about to be written

        Returns:
            Column name to value mapping, with the post-commit version
        """
        values = entity.model_dump()
        values["version"] = entity.version + 1
        return values

    @staticmethod
    def domain_to_sql(entity: AggregateRoot) -> SQLModel:
        row_type = ExecutionMapper.row_type_for(type(entity))
        return row_type(**ExecutionMapper.domain_to_values(entity))

    @staticmethod
    def sql_to_domain(row: SQLModel, entity_type: type[AggregateT]) -> AggregateT:
        """
        Convert a row to a fresh domain working copy.

        Args:
            row: Loaded SQL row
            entity_type: Aggregate class to build

        Returns:
            Aggregate with no pending domain events
        """
        return entity_type.model_validate(row.model_dump())
