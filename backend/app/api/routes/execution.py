"""
Production Execution API Routes.

This module exposes the execution facade over HTTP: work order lifecycle,
work result recording and equipment downtime tracking. Facade failures are
rendered by :func:`execution_failure_handler`.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse

from app.api.deps import ContextDep, FacadeDep
from app.application.dtos import (
    AnnotateDowntimeRequest,
    CreateWorkOrderRequest,
    DowntimeResponse,
    OpenDowntimeRequest,
    RecordWorkResultRequest,
    ResolveDowntimeRequest,
    TransitionRequest,
    TransitionResponse,
    UpdateDowntimeRequest,
    UpdateWorkOrderRequest,
    UpdateWorkResultRequest,
    WorkOrderResponse,
    WorkOrderSnapshot,
    WorkResultResponse,
)
from app.application.services import ExecutionFailure
from app.core.observability import get_logger
from app.domain.execution.value_objects import DowntimeType, WorkOrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/execution", tags=["execution"])

FAILURE_STATUS_CODES = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "INVALID_INTERVAL": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "CANCELLED": status.HTTP_409_CONFLICT,
    "INVALID_STATE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
}


async def execution_failure_handler(
    request: Request, exc: ExecutionFailure
) -> JSONResponse:
    status_code = FAILURE_STATUS_CODES.get(
        exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    logger.info(
        "Execution request failed",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


# Work orders


@router.post(
    "/work-orders",
    summary="Plan a work order",
    status_code=status.HTTP_201_CREATED,
    response_model=WorkOrderResponse,
)
async def create_work_order(
    request: CreateWorkOrderRequest, context: ContextDep, facade: FacadeDep
) -> WorkOrderResponse:
    order = await facade.create_work_order(context, **request.model_dump())
    return WorkOrderResponse.from_entity(order)


@router.get(
    "/work-orders",
    summary="List work orders",
    description=(
        "All orders of the tenant, or filtered by status or by a planned "
        "window overlapping [start, end)."
    ),
    response_model=list[WorkOrderResponse],
)
async def list_work_orders(
    context: ContextDep,
    facade: FacadeDep,
    status_filter: WorkOrderStatus | None = Query(None, alias="status"),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    include_inactive: bool = Query(False),
) -> list[WorkOrderResponse]:
    if start is not None or end is not None:
        orders = await facade.list_work_orders_by_planned_range(
            context, start, end, include_inactive
        )
        if status_filter is not None:
            orders = [order for order in orders if order.status == status_filter]
    elif status_filter is not None:
        orders = await facade.list_work_orders_by_status(
            context, status_filter, include_inactive
        )
    else:
        orders = await facade.list_work_orders(context, include_inactive)
    return [WorkOrderResponse.from_entity(order) for order in orders]


@router.get(
    "/work-orders/by-number/{work_order_no}",
    summary="Get a work order by number",
    response_model=WorkOrderResponse,
)
async def get_work_order_by_number(
    work_order_no: str, context: ContextDep, facade: FacadeDep
) -> WorkOrderResponse:
    order = await facade.get_work_order_by_number(context, work_order_no)
    return WorkOrderResponse.from_entity(order)


@router.get(
    "/work-orders/{work_order_id}",
    summary="Get a work order",
    response_model=WorkOrderResponse,
)
async def get_work_order(
    work_order_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkOrderResponse:
    return WorkOrderResponse.from_entity(
        await facade.get_work_order(context, work_order_id)
    )


@router.get(
    "/work-orders/{work_order_id}/snapshot",
    summary="Work order with results, downtime and totals",
    response_model=WorkOrderSnapshot,
)
async def get_work_order_snapshot(
    work_order_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkOrderSnapshot:
    return await facade.get_work_order_snapshot(context, work_order_id)


@router.patch(
    "/work-orders/{work_order_id}",
    summary="Revise the plan of a work order",
    description="Only PLANNED orders can be revised; other states answer 422.",
    response_model=WorkOrderResponse,
)
async def update_work_order(
    work_order_id: UUID,
    request: UpdateWorkOrderRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> WorkOrderResponse:
    order = await facade.update_work_order(context, work_order_id, request.to_patch())
    return WorkOrderResponse.from_entity(order)


@router.post(
    "/work-orders/{work_order_id}/transitions",
    summary="Release, complete, close or cancel a work order",
    response_model=TransitionResponse,
)
async def transition_work_order(
    work_order_id: UUID,
    request: TransitionRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> TransitionResponse:
    outcome = await facade.transition(
        context, work_order_id, request.action, request.reason
    )
    warning = None
    if outcome.warning is not None:
        warning = (
            f"Completed with {outcome.warning.actual_quantity} of "
            f"{outcome.warning.planned_quantity} planned units"
        )
    return TransitionResponse(
        work_order=WorkOrderResponse.from_entity(outcome.work_order),
        changed=outcome.changed,
        warning=warning,
        reversed_result_ids=[result.id for result in outcome.reversed_results],
    )


@router.post(
    "/work-orders/{work_order_id}/deactivate",
    summary="Deactivate a terminal work order",
    response_model=WorkOrderResponse,
)
async def deactivate_work_order(
    work_order_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkOrderResponse:
    return WorkOrderResponse.from_entity(
        await facade.deactivate_work_order(context, work_order_id)
    )


@router.post(
    "/work-orders/{work_order_id}/activate",
    summary="Reactivate a work order",
    response_model=WorkOrderResponse,
)
async def activate_work_order(
    work_order_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkOrderResponse:
    return WorkOrderResponse.from_entity(
        await facade.activate_work_order(context, work_order_id)
    )


@router.get(
    "/work-orders/{work_order_id}/results",
    summary="Work results of a work order",
    response_model=list[WorkResultResponse],
)
async def list_work_order_results(
    work_order_id: UUID,
    context: ContextDep,
    facade: FacadeDep,
    include_reversed: bool = Query(False),
) -> list[WorkResultResponse]:
    results = await facade.list_results_by_work_order(
        context, work_order_id, include_reversed
    )
    return [WorkResultResponse.from_entity(result) for result in results]


# Work results


@router.post(
    "/work-results",
    summary="Record production against a work order",
    status_code=status.HTTP_201_CREATED,
    response_model=WorkResultResponse,
)
async def record_work_result(
    request: RecordWorkResultRequest, context: ContextDep, facade: FacadeDep
) -> WorkResultResponse:
    result = await facade.record_result(context, **request.model_dump())
    return WorkResultResponse.from_entity(result)


@router.get(
    "/work-results",
    summary="List work results by worker or result date",
    response_model=list[WorkResultResponse],
)
async def list_work_results(
    context: ContextDep,
    facade: FacadeDep,
    worker_id: UUID | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
) -> list[WorkResultResponse]:
    if worker_id is not None:
        results = await facade.list_results_by_worker(context, worker_id)
    else:
        results = await facade.list_results_by_date_range(context, start, end)
    return [WorkResultResponse.from_entity(result) for result in results]


@router.get(
    "/work-results/{work_result_id}",
    summary="Get a work result",
    response_model=WorkResultResponse,
)
async def get_work_result(
    work_result_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkResultResponse:
    return WorkResultResponse.from_entity(
        await facade.get_result(context, work_result_id)
    )


@router.patch(
    "/work-results/{work_result_id}",
    summary="Correct a work result",
    response_model=WorkResultResponse,
)
async def update_work_result(
    work_result_id: UUID,
    request: UpdateWorkResultRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> WorkResultResponse:
    result = await facade.update_result(context, work_result_id, request.to_patch())
    return WorkResultResponse.from_entity(result)


@router.post(
    "/work-results/{work_result_id}/reverse",
    summary="Reverse a work result",
    response_model=WorkResultResponse,
)
async def reverse_work_result(
    work_result_id: UUID, context: ContextDep, facade: FacadeDep
) -> WorkResultResponse:
    return WorkResultResponse.from_entity(
        await facade.reverse_result(context, work_result_id)
    )


# Downtime


@router.post(
    "/downtime",
    summary="Open a downtime on an equipment",
    status_code=status.HTTP_201_CREATED,
    response_model=DowntimeResponse,
)
async def open_downtime(
    request: OpenDowntimeRequest, context: ContextDep, facade: FacadeDep
) -> DowntimeResponse:
    downtime = await facade.open_downtime(context, **request.model_dump())
    return DowntimeResponse.from_entity(downtime)


@router.get(
    "/downtime/unresolved",
    summary="Open downtime across all equipment",
    response_model=list[DowntimeResponse],
)
async def list_unresolved_downtime(
    context: ContextDep, facade: FacadeDep
) -> list[DowntimeResponse]:
    downtimes = await facade.list_unresolved_downtime(context)
    return [DowntimeResponse.from_entity(downtime) for downtime in downtimes]


@router.get(
    "/downtime/by-equipment/{equipment_id}",
    summary="Downtime history of an equipment",
    response_model=list[DowntimeResponse],
)
async def list_equipment_downtime(
    equipment_id: UUID,
    context: ContextDep,
    facade: FacadeDep,
    include_inactive: bool = Query(False),
) -> list[DowntimeResponse]:
    downtimes = await facade.list_downtime_by_equipment(
        context, equipment_id, include_inactive
    )
    return [DowntimeResponse.from_entity(downtime) for downtime in downtimes]


@router.get(
    "/downtime/by-type/{downtime_type}",
    summary="Downtime of one type",
    response_model=list[DowntimeResponse],
)
async def list_downtime_by_type(
    downtime_type: DowntimeType,
    context: ContextDep,
    facade: FacadeDep,
    include_inactive: bool = Query(False),
) -> list[DowntimeResponse]:
    downtimes = await facade.list_downtime_by_type(
        context, downtime_type, include_inactive
    )
    return [DowntimeResponse.from_entity(downtime) for downtime in downtimes]


@router.get(
    "/downtime/by-range",
    summary="Downtime overlapping a window",
    description="Open downtime is treated as extending indefinitely.",
    response_model=list[DowntimeResponse],
)
async def list_downtime_by_range(
    context: ContextDep,
    facade: FacadeDep,
    start: datetime = Query(...),
    end: datetime = Query(...),
    include_inactive: bool = Query(False),
) -> list[DowntimeResponse]:
    downtimes = await facade.list_downtime_by_date_range(
        context, start, end, include_inactive
    )
    return [DowntimeResponse.from_entity(downtime) for downtime in downtimes]


@router.get(
    "/downtime/{downtime_id}",
    summary="Get a downtime",
    response_model=DowntimeResponse,
)
async def get_downtime(
    downtime_id: UUID, context: ContextDep, facade: FacadeDep
) -> DowntimeResponse:
    return DowntimeResponse.from_entity(await facade.get_downtime(context, downtime_id))


@router.post(
    "/downtime/{downtime_id}/resolve",
    summary="Resolve an open downtime",
    response_model=DowntimeResponse,
)
async def resolve_downtime(
    downtime_id: UUID,
    request: ResolveDowntimeRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> DowntimeResponse:
    downtime = await facade.resolve_downtime(
        context,
        downtime_id,
        request.end_time,
        request.countermeasure,
        request.preventive_action,
    )
    return DowntimeResponse.from_entity(downtime)


@router.patch(
    "/downtime/{downtime_id}",
    summary="Patch an open downtime",
    response_model=DowntimeResponse,
)
async def update_downtime(
    downtime_id: UUID,
    request: UpdateDowntimeRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> DowntimeResponse:
    downtime = await facade.update_downtime(context, downtime_id, request.to_patch())
    return DowntimeResponse.from_entity(downtime)


@router.post(
    "/downtime/{downtime_id}/annotations",
    summary="Append notes to a downtime",
    response_model=DowntimeResponse,
)
async def annotate_downtime(
    downtime_id: UUID,
    request: AnnotateDowntimeRequest,
    context: ContextDep,
    facade: FacadeDep,
) -> DowntimeResponse:
    downtime = await facade.annotate_downtime(context, downtime_id, request.to_patch())
    return DowntimeResponse.from_entity(downtime)


@router.post(
    "/downtime/{downtime_id}/deactivate",
    summary="Deactivate a resolved downtime",
    response_model=DowntimeResponse,
)
async def deactivate_downtime(
    downtime_id: UUID, context: ContextDep, facade: FacadeDep
) -> DowntimeResponse:
    return DowntimeResponse.from_entity(
        await facade.deactivate_downtime(context, downtime_id)
    )


@router.post(
    "/downtime/{downtime_id}/activate",
    summary="Reactivate a downtime",
    response_model=DowntimeResponse,
)
async def activate_downtime(
    downtime_id: UUID, context: ContextDep, facade: FacadeDep
) -> DowntimeResponse:
    return DowntimeResponse.from_entity(
        await facade.activate_downtime(context, downtime_id)
    )
