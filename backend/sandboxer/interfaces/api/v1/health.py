"""
Sandboxer - Health Check Endpoints
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.api_route(
    "",
    methods=["GET", "HEAD"],
    response_class=PlainTextResponse,
    summary="Health Check",
    description="Liveness probe for the orchestrator process",
)
async def health_check() -> str:
    return "OK"
