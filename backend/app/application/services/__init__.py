"""
Application services for coordinating business use cases.

This module contains application services that orchestrate domain operations,
coordinate with the store and handle cross-cutting concerns like auditing,
timeouts and transaction management.
"""

from .base_service import ApplicationServiceBase
from .execution_facade import (
    ExecutionContext,
    ExecutionFacade,
    ExecutionFailure,
    build_execution_facade,
)

__all__ = [
    "ApplicationServiceBase",
    "ExecutionContext",
    "ExecutionFacade",
    "ExecutionFailure",
    "build_execution_facade",
]
