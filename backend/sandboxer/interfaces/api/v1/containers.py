"""
Sandboxer - Container API Endpoints

API for sandbox lifecycle management:
- GET /containers/images - List available images
- POST /containers - Start provisioning a sandbox
- GET /containers/{container_id}/status - Poll provisioning status
- POST /containers/{container_id}/kill - Kill a sandbox container
"""

from typing import Annotated, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from sandboxer.core.exceptions import InvalidImageID, KillFailure, RecordNotFound
from sandboxer.domain.containers.entities import RuntimeConfig
from sandboxer.infrastructure.orchestrator.services.provisioner import ProvisioningOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class VNCConfigBody(BaseModel):
    """Optional VNC session settings; omitted fields use server defaults."""
    password: str = Field(default="", description="VNC password (generated when empty)")
    resolution: str = Field(default="", description="Screen resolution, e.g. 1360x768")
    col_depth: int = Field(default=0, alias="colDepth", ge=0, le=32, description="Colour depth")
    view_only: bool = Field(default=False, alias="viewOnly", description="Disable input")
    display: str = Field(default="", description="X display, e.g. :1")

    model_config = {"populate_by_name": True}

    def to_runtime_config(self) -> RuntimeConfig:
        return RuntimeConfig(
            password=self.password,
            resolution=self.resolution,
            col_depth=self.col_depth,
            view_only=self.view_only,
            display=self.display,
        )


class CreateContainerRequest(BaseModel):
    """Request body for container creation."""
    image_id: str = Field(..., min_length=1, description="Catalog image ID, e.g. ubuntu-base")
    vnc_config: Optional[VNCConfigBody] = None


class CreateContainerResponse(BaseModel):
    """Response for an accepted provisioning request."""
    container_id: str
    status_url: str


class ImageResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    tags: List[str]


class EndpointsResponse(BaseModel):
    container_id: str
    chat_api_path: Optional[str] = None
    novnc_path: str
    vnc_path: str


class ContainerStatusResponse(BaseModel):
    """Current provisioning status of a sandbox."""
    container_id: str
    status: str
    message: str
    created_at: str
    docker_id: Optional[str] = None
    endpoints: Optional[EndpointsResponse] = None
    error: Optional[str] = None


class KillResponse(BaseModel):
    message: str


# ============================================================================
# Dependencies
# ============================================================================

async def get_orchestrator(request: Request) -> ProvisioningOrchestrator:
    """Get provisioning orchestrator from app state."""
    return request.app.state.orchestrator


Orchestrator = Annotated[ProvisioningOrchestrator, Depends(get_orchestrator)]


# ============================================================================
# API Endpoints
# ============================================================================

@router.get(
    "/images",
    response_model=List[ImageResponse],
    summary="List available images",
    description="Get a list of all available container images",
)
async def list_images(orchestrator: Orchestrator) -> List[ImageResponse]:
    return [ImageResponse(**image.to_dict()) for image in orchestrator.list_images()]


@router.post("/", response_model=CreateContainerResponse, include_in_schema=False)
@router.post(
    "",
    response_model=CreateContainerResponse,
    summary="Create a new container",
    description="Start provisioning a sandbox from a catalog image; poll status_url for the outcome",
)
async def create_container(
    body: CreateContainerRequest,
    orchestrator: Orchestrator,
) -> CreateContainerResponse:
    runtime_config = body.vnc_config.to_runtime_config() if body.vnc_config else None

    try:
        result = await orchestrator.submit(body.image_id, runtime_config)
    except InvalidImageID as e:
        logger.warning("Rejected container request", image_id=body.image_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return CreateContainerResponse(
        container_id=result.short_id,
        status_url=result.status_url,
    )


@router.get(
    "/{container_id}/status",
    response_model=ContainerStatusResponse,
    response_model_exclude_none=True,
    summary="Get container status",
    description="Get the current provisioning status of a container",
)
async def get_container_status(
    container_id: str,
    orchestrator: Orchestrator,
) -> ContainerStatusResponse:
    try:
        record = await orchestrator.get_status(container_id)
    except RecordNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Container not found")

    return ContainerStatusResponse(**record.to_dict())


@router.post(
    "/{container_id}/kill",
    response_model=KillResponse,
    summary="Kill a container",
    description="Send SIGKILL to a sandbox container; its status record is removed once the engine reports it gone",
)
async def kill_container(
    container_id: str,
    orchestrator: Orchestrator,
) -> KillResponse:
    try:
        await orchestrator.kill(container_id)
    except KillFailure as e:
        logger.error("Failed to kill container", container_id=container_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return KillResponse(message="Container killed successfully")
