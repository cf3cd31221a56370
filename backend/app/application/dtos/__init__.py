"""Data Transfer Objects for the execution API."""

from .execution_dtos import (
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
    WorkOrderTotals,
    WorkResultResponse,
)

__all__ = [
    "AnnotateDowntimeRequest",
    "CreateWorkOrderRequest",
    "DowntimeResponse",
    "OpenDowntimeRequest",
    "RecordWorkResultRequest",
    "ResolveDowntimeRequest",
    "TransitionRequest",
    "TransitionResponse",
    "UpdateDowntimeRequest",
    "UpdateWorkOrderRequest",
    "UpdateWorkResultRequest",
    "WorkOrderResponse",
    "WorkOrderSnapshot",
    "WorkOrderTotals",
    "WorkResultResponse",
]
