"""
Infrastructure Layer

This layer contains implementations of technical concerns and external
integrations. It provides concrete implementations of interfaces defined
in the domain layer.

Components:
- audit/: Audit sinks and best-effort delivery
- database/: SQLModel schema, mappers and the SQL execution store
- events/: Event bus and domain event publisher
- persistence/: Unit of work base, aggregate locks and the in-memory store
- reference_data/: Reference data gateway adapters
"""
