"""
API Dependencies

Resolves the execution facade wired at startup and the caller's execution
context from the request headers.
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from app.application.services import ExecutionContext, ExecutionFacade
from app.core.observability import set_user_id


def get_execution_facade(request: Request) -> ExecutionFacade:
    return request.app.state.execution_facade


def get_execution_context(
    x_tenant_id: Annotated[str, Header(min_length=1, max_length=50)],
    x_user_id: Annotated[str, Header(min_length=1)],
) -> ExecutionContext:
    """Caller identity; authentication happens upstream of this service."""
    set_user_id(x_user_id)
    return ExecutionContext(tenant_id=x_tenant_id, actor_user_id=x_user_id)


FacadeDep = Annotated[ExecutionFacade, Depends(get_execution_facade)]
ContextDep = Annotated[ExecutionContext, Depends(get_execution_context)]
