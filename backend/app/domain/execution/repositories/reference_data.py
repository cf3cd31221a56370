"""Reference data collaborator (product, process, equipment, operation, operator)."""

from abc import ABC, abstractmethod
from uuid import UUID


class ReferenceDataGateway(ABC):
    """
    Existence checks against master data owned by other modules.

    Called during validation, before anything is staged. A negative answer
    fails the operation with ``NotFoundError``.
    """

    @abstractmethod
    async def product_exists(self, tenant_id: str, product_id: UUID) -> bool:
        """Check that a product exists in the tenant."""

    @abstractmethod
    async def process_exists(self, tenant_id: str, process_id: UUID) -> bool:
        """Check that a process exists in the tenant."""

    @abstractmethod
    async def equipment_exists(self, tenant_id: str, equipment_id: UUID) -> bool:
        """Check that an equipment exists in the tenant."""

    @abstractmethod
    async def operation_exists(self, tenant_id: str, operation_id: UUID) -> bool:
        """Check that an equipment operation exists in the tenant."""

    @abstractmethod
    async def operator_exists(self, tenant_id: str, user_id: UUID) -> bool:
        """Check that an operator (worker or responsible user) exists."""

    @abstractmethod
    async def operator_name(self, tenant_id: str, user_id: UUID) -> str | None:
        """Display name of an operator, or ``None`` when none is known."""
