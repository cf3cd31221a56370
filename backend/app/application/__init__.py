"""
Application Layer

This layer contains application services that orchestrate domain operations
and coordinate between different layers. It implements use cases and handles
cross-cutting concerns like transactions, auditing and logging.

Components:
- dtos/: Request and response models for the execution API
- services/: The execution facade and its base service
"""
