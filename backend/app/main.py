import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from app.api.main import api_router
from app.api.routes.execution import execution_failure_handler
from app.application.services import (
    ExecutionFacade,
    ExecutionFailure,
    build_execution_facade,
)
from app.core.config import settings
from app.core.observability import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    get_logger,
    initialize_observability,
    set_correlation_id,
)

# Initialize structured logger
logger = get_logger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Middleware for request observability and metrics collection."""

    async def dispatch(self, request: Request, call_next):
        # Generate correlation ID for request tracing
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        start_time = time.time()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            REQUEST_COUNT.labels(method=method, endpoint=path, status="500").inc()
            REQUEST_DURATION.labels(method=method, endpoint=path).observe(duration)
            logger.error(
                "Request failed",
                method=method,
                path=path,
                duration_seconds=duration,
                correlation_id=correlation_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        REQUEST_COUNT.labels(
            method=method, endpoint=path, status=str(response.status_code)
        ).inc()
        REQUEST_DURATION.labels(method=method, endpoint=path).observe(duration)

        # Add correlation ID to response headers
        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Request completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_seconds=duration,
            correlation_id=correlation_id,
        )
        return response


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


def create_app(facade: ExecutionFacade | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        facade: Pre-wired facade; built from settings at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        initialize_observability()
        if getattr(app.state, "execution_facade", None) is None:
            app.state.execution_facade = build_execution_facade(settings)
        logger.info(
            "Application started successfully",
            project_name=settings.PROJECT_NAME,
            environment=settings.ENVIRONMENT,
            store_backend=settings.STORE_BACKEND,
        )
        yield
        logger.info("Shutting down application")
        app.state.execution_facade.store.dispose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="""
        Production execution tracking API

        * **Work orders**: planning and the PLANNED to CLOSED lifecycle
        * **Work results**: production reporting, corrections and reversals
        * **Downtime**: equipment downtime ledger
        """,
        version="1.0.0",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )
    app.state.execution_facade = facade

    app.add_middleware(ObservabilityMiddleware)

    # Set all CORS enabled origins
    if settings.all_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.all_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ExecutionFailure, execution_failure_handler)
    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
