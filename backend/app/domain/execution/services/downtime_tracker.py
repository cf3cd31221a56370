"""
Downtime Tracking Service

Keeps the equipment downtime ledger: at most one open downtime per
equipment, intervals fixed at resolution, and details patchable only while
the downtime is open.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from ...shared.base import DomainService, utcnow
from ...shared.exceptions import ConflictError, NotFoundError
from ...shared.validation import BusinessRuleValidators, model_errors_as_validation
from ..entities.downtime import DowntimeEvent
from ..repositories import ExecutionUnitOfWork, ReferenceDataGateway
from ..value_objects.enums import DowntimeType

logger = logging.getLogger(__name__)


class DowntimeTrackingService(DomainService):
    """Service opening, resolving and maintaining equipment downtime."""

    def __init__(
        self,
        reference_data: ReferenceDataGateway,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._reference_data = reference_data
        self._clock = clock

    async def open(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        equipment_id: UUID,
        downtime_code: str,
        downtime_type: DowntimeType | str,
        start_time: datetime,
        downtime_category: str | None = None,
        work_order_id: UUID | None = None,
        operation_id: UUID | None = None,
        responsible_user_id: UUID | None = None,
        responsible_name: str | None = None,
        cause: str | None = None,
        remarks: str | None = None,
    ) -> DowntimeEvent:
        """
        Open a downtime for an equipment.

        Raises:
            ValidationError: If equipment, code, type or start is missing
            NotFoundError: If the equipment, work order, operation or
                responsible user does not exist
            ConflictError: If the equipment already has an open downtime
        """
        downtime = DowntimeEvent.create(
            tenant_id=tenant_id,
            equipment_id=equipment_id,
            downtime_code=downtime_code,
            downtime_type=downtime_type,
            start_time=start_time,
            downtime_category=downtime_category,
            work_order_id=work_order_id,
            operation_id=operation_id,
            responsible_user_id=responsible_user_id,
            responsible_name=responsible_name,
            cause=cause,
            remarks=remarks,
        )

        if not await self._reference_data.equipment_exists(tenant_id, equipment_id):
            raise NotFoundError("Equipment", equipment_id)
        await self._ensure_links_exist(
            uow, tenant_id, work_order_id, operation_id, responsible_user_id
        )
        await self._fill_responsible_name(tenant_id, downtime)

        existing = await uow.downtimes.find_unresolved_by_equipment(
            tenant_id, equipment_id
        )
        if existing is not None:
            raise ConflictError(
                f"Equipment {equipment_id} already has an open downtime",
                "DowntimeEvent",
                existing.id,
                {"equipment_id": str(equipment_id)},
            )

        uow.downtimes.add(downtime)
        logger.info(
            "Opened %s downtime %s for equipment %s",
            downtime.downtime_type.value,
            downtime.id,
            equipment_id,
        )
        return downtime

    async def resolve(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        downtime_id: UUID,
        end_time: datetime,
        countermeasure: str | None = None,
        preventive_action: str | None = None,
    ) -> DowntimeEvent:
        """
        Resolve an open downtime.

        Raises:
            NotFoundError: If the downtime is unknown or already resolved
            InvalidIntervalError: If ``end_time`` is not after the start
        """
        downtime = await self.get(uow, tenant_id, downtime_id)
        downtime.resolve(end_time, countermeasure, preventive_action, self._clock())
        uow.downtimes.add(downtime)
        logger.info(
            "Resolved downtime %s after %s minutes",
            downtime.id,
            downtime.duration_minutes,
        )
        return downtime

    async def update(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        downtime_id: UUID,
        patch: dict[str, Any],
    ) -> DowntimeEvent:
        """
        Patch the details of an open downtime.

        Raises:
            NotFoundError: If the downtime or a newly linked entity does not exist
            ConflictError: If the downtime is already resolved
            ValidationError: If the patch is malformed
        """
        downtime = await self.get(uow, tenant_id, downtime_id)
        changed = downtime.update(patch, self._clock())
        await self._ensure_links_exist(
            uow,
            tenant_id,
            downtime.work_order_id if "work_order_id" in changed else None,
            downtime.operation_id if "operation_id" in changed else None,
            downtime.responsible_user_id if "responsible_user_id" in changed else None,
        )
        if "responsible_user_id" in changed and "responsible_name" not in patch:
            await self._fill_responsible_name(tenant_id, downtime)
        if changed:
            uow.downtimes.add(downtime)
        return downtime

    async def annotate(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        downtime_id: UUID,
        patch: dict[str, str],
    ) -> DowntimeEvent:
        """Append text to cause, countermeasure, preventive action or remarks."""
        downtime = await self.get(uow, tenant_id, downtime_id)
        if downtime.annotate(patch, self._clock()):
            uow.downtimes.add(downtime)
        return downtime

    async def deactivate(
        self, uow: ExecutionUnitOfWork, tenant_id: str, downtime_id: UUID
    ) -> DowntimeEvent:
        downtime = await self.get(uow, tenant_id, downtime_id)
        downtime.deactivate(self._clock())
        uow.downtimes.add(downtime)
        return downtime

    async def activate(
        self, uow: ExecutionUnitOfWork, tenant_id: str, downtime_id: UUID
    ) -> DowntimeEvent:
        downtime = await self.get(uow, tenant_id, downtime_id)
        downtime.activate(self._clock())
        uow.downtimes.add(downtime)
        return downtime

    async def get(
        self, uow: ExecutionUnitOfWork, tenant_id: str, downtime_id: UUID
    ) -> DowntimeEvent:
        downtime = await uow.downtimes.get(tenant_id, downtime_id)
        if downtime is None:
            raise NotFoundError("DowntimeEvent", downtime_id)
        return downtime

    async def list_by_equipment(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        equipment_id: UUID,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        return await uow.downtimes.list_by_equipment(
            tenant_id, equipment_id, include_inactive
        )

    async def list_by_type(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        downtime_type: DowntimeType,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        return await uow.downtimes.list_by_type(
            tenant_id, downtime_type, include_inactive
        )

    async def list_by_work_order(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_order_id: UUID
    ) -> list[DowntimeEvent]:
        return await uow.downtimes.list_by_work_order(tenant_id, work_order_id)

    async def list_by_date_range(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        """Downtime whose interval overlaps ``[start, end)``; open ones never end."""
        BusinessRuleValidators.validate_required_field("start", start)
        BusinessRuleValidators.validate_required_field("end", end)
        BusinessRuleValidators.validate_date_range("start", start, "end", end)
        return await uow.downtimes.list_overlapping(
            tenant_id, start, end, include_inactive
        )

    async def list_unresolved(
        self, uow: ExecutionUnitOfWork, tenant_id: str
    ) -> list[DowntimeEvent]:
        return await uow.downtimes.list_unresolved(tenant_id)

    async def _ensure_links_exist(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID | None,
        operation_id: UUID | None,
        responsible_user_id: UUID | None,
    ) -> None:
        if work_order_id and await uow.work_orders.get(tenant_id, work_order_id) is None:
            raise NotFoundError("WorkOrder", work_order_id)
        if operation_id and not await self._reference_data.operation_exists(
            tenant_id, operation_id
        ):
            raise NotFoundError("EquipmentOperation", operation_id)
        if responsible_user_id and not await self._reference_data.operator_exists(
            tenant_id, responsible_user_id
        ):
            raise NotFoundError("User", responsible_user_id)

    async def _fill_responsible_name(
        self, tenant_id: str, downtime: DowntimeEvent
    ) -> None:
        """A known operator name replaces whatever name was supplied."""
        if downtime.responsible_user_id is None:
            return
        name = await self._reference_data.operator_name(
            tenant_id, downtime.responsible_user_id
        )
        if name:
            with model_errors_as_validation():
                downtime.responsible_name = name
