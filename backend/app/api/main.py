from fastapi import APIRouter

from app.api.routes import execution, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])

# Production execution routes
api_router.include_router(execution.router)
