"""
Sandboxer - API Router
Aggregates all API endpoints
"""

from fastapi import APIRouter

from sandboxer.interfaces.api.v1.containers import router as containers_router
from sandboxer.interfaces.api.v1.health import router as health_router

api_router = APIRouter()

# Health check endpoints
api_router.include_router(
    health_router,
    prefix="/health",
    tags=["Health"],
)

# Container provisioning endpoints
api_router.include_router(
    containers_router,
    prefix="/containers",
    tags=["Containers"],
)
