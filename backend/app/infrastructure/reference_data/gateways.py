"""Reference data adapters for product, process, equipment, operation and operator checks."""

from collections import defaultdict
from uuid import UUID

from app.domain.execution.repositories import ReferenceDataGateway


class PermissiveReferenceData(ReferenceDataGateway):
    """Accepts every reference; for deployments where master data is checked upstream."""

    async def product_exists(self, tenant_id: str, product_id: UUID) -> bool:
        return True

    async def process_exists(self, tenant_id: str, process_id: UUID) -> bool:
        return True

    async def equipment_exists(self, tenant_id: str, equipment_id: UUID) -> bool:
        return True

    async def operation_exists(self, tenant_id: str, operation_id: UUID) -> bool:
        return True

    async def operator_exists(self, tenant_id: str, user_id: UUID) -> bool:
        return True

    async def operator_name(self, tenant_id: str, user_id: UUID) -> str | None:
        return None


class InMemoryReferenceData(ReferenceDataGateway):
    """Tenant-scoped master data registered in process."""

    def __init__(self) -> None:
        self._products: dict[str, set[UUID]] = defaultdict(set)
        self._processes: dict[str, set[UUID]] = defaultdict(set)
        self._equipment: dict[str, set[UUID]] = defaultdict(set)
        self._operations: dict[str, set[UUID]] = defaultdict(set)
        self._operators: dict[str, dict[UUID, str | None]] = defaultdict(dict)

    def add_product(self, tenant_id: str, product_id: UUID) -> UUID:
        self._products[tenant_id].add(product_id)
        return product_id

    def add_process(self, tenant_id: str, process_id: UUID) -> UUID:
        self._processes[tenant_id].add(process_id)
        return process_id

    def add_equipment(self, tenant_id: str, equipment_id: UUID) -> UUID:
        self._equipment[tenant_id].add(equipment_id)
        return equipment_id

    def add_operation(self, tenant_id: str, operation_id: UUID) -> UUID:
        self._operations[tenant_id].add(operation_id)
        return operation_id

    def add_operator(
        self, tenant_id: str, user_id: UUID, name: str | None = None
    ) -> UUID:
        self._operators[tenant_id][user_id] = name
        return user_id

    async def product_exists(self, tenant_id: str, product_id: UUID) -> bool:
        return product_id in self._products.get(tenant_id, ())

    async def process_exists(self, tenant_id: str, process_id: UUID) -> bool:
        return process_id in self._processes.get(tenant_id, ())

    async def equipment_exists(self, tenant_id: str, equipment_id: UUID) -> bool:
        return equipment_id in self._equipment.get(tenant_id, ())

    async def operation_exists(self, tenant_id: str, operation_id: UUID) -> bool:
        return operation_id in self._operations.get(tenant_id, ())

    async def operator_exists(self, tenant_id: str, user_id: UUID) -> bool:
        return user_id in self._operators.get(tenant_id, {})

    async def operator_name(self, tenant_id: str, user_id: UUID) -> str | None:
        return self._operators.get(tenant_id, {}).get(user_id)
