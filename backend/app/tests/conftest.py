"""Shared fixtures for the production execution tests."""

from datetime import datetime

import pytest

from app.application.services import (
    ExecutionContext,
    ExecutionFacade,
    build_execution_facade,
)
from app.core.config import Settings
from app.domain.execution.services import (
    DowntimeTrackingService,
    WorkOrderLifecycleService,
    WorkResultService,
)
from app.infrastructure.audit import InMemoryAuditLog
from app.infrastructure.events import DomainEventPublisher, InMemoryEventBus
from app.infrastructure.persistence import InMemoryExecutionStore
from app.infrastructure.reference_data import InMemoryReferenceData

from .execution.factories import OTHER_TENANT, SHIFT_START, TENANT, MasterData


@pytest.fixture
def tenant_id() -> str:
    return TENANT


@pytest.fixture
def shift_start() -> datetime:
    return SHIFT_START


@pytest.fixture
def reference_data() -> InMemoryReferenceData:
    return InMemoryReferenceData()


@pytest.fixture
def master(reference_data: InMemoryReferenceData) -> MasterData:
    return MasterData(reference_data)


@pytest.fixture
def store() -> InMemoryExecutionStore:
    return InMemoryExecutionStore()


@pytest.fixture
def lifecycle(reference_data: InMemoryReferenceData) -> WorkOrderLifecycleService:
    return WorkOrderLifecycleService(reference_data)


@pytest.fixture
def recorder(
    lifecycle: WorkOrderLifecycleService, reference_data: InMemoryReferenceData
) -> WorkResultService:
    return WorkResultService(lifecycle, reference_data)


@pytest.fixture
def tracker(reference_data: InMemoryReferenceData) -> DowntimeTrackingService:
    return DowntimeTrackingService(reference_data)


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog(integrity_secret="test-secret")


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        OVER_PRODUCTION_TOLERANCE=0,
        CANCEL_REVERSES_RESULTS=False,
        PERSISTENCE_TIMEOUT_SECONDS=2.0,
        STORE_BACKEND="memory",
        ENABLE_METRICS=False,
    )


@pytest.fixture
def facade(
    test_settings: Settings,
    store: InMemoryExecutionStore,
    reference_data: InMemoryReferenceData,
    master: MasterData,
    audit_log: InMemoryAuditLog,
    event_bus: InMemoryEventBus,
) -> ExecutionFacade:
    return build_execution_facade(
        test_settings,
        store=store,
        reference_data=reference_data,
        audit_sink=audit_log,
        publisher=DomainEventPublisher(event_bus),
    )


@pytest.fixture
def context(master: MasterData) -> ExecutionContext:
    return ExecutionContext(tenant_id=TENANT, actor_user_id=str(master.operator_id))


@pytest.fixture
def other_context(master: MasterData) -> ExecutionContext:
    return ExecutionContext(tenant_id=OTHER_TENANT, actor_user_id=str(master.operator_id))

