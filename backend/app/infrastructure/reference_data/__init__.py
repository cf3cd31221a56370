"""Reference data gateway adapters."""

from .gateways import InMemoryReferenceData, PermissiveReferenceData

__all__ = ["InMemoryReferenceData", "PermissiveReferenceData"]
