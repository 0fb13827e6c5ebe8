"""
Sandboxer - FastAPI Application Factory
Wires the provisioning pipeline into the HTTP layer
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import make_asgi_app

from sandboxer.core.config import Settings, get_settings
from sandboxer.core.logging import setup_logging
from sandboxer.domain.containers.catalog import default_catalog
from sandboxer.infrastructure.orchestrator.services.docker_gateway import DockerGateway
from sandboxer.infrastructure.orchestrator.services.event_reconciler import EventReconciler
from sandboxer.infrastructure.orchestrator.services.provisioner import ProvisioningOrchestrator
from sandboxer.infrastructure.orchestrator.services.service_registry import ConsulServiceRegistry
from sandboxer.infrastructure.orchestrator.services.status_registry import InMemoryStatusRegistry
from sandboxer.interfaces.api.v1 import api_router
from sandboxer.interfaces.middleware.error_handler import ErrorHandlerMiddleware

logger = structlog.get_logger(__name__)


def build_orchestrator(
    settings: Settings,
    gateway: DockerGateway,
    service_registry: ConsulServiceRegistry,
    status_registry: InMemoryStatusRegistry,
) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(
        catalog=default_catalog(),
        gateway=gateway,
        service_registry=service_registry,
        status_registry=status_registry,
        default_config=settings.default_runtime_config,
        endpoint_profile=settings.endpoint_profile,
        health_check_interval=settings.health_check_interval,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    settings: Settings = app.state.settings
    
    # Setup structured logging
    setup_logging(settings.log_level, settings.log_format)
    
    logger.info("Starting the orchestrator service", version=settings.app_version)
    
    gateway = DockerGateway(settings.docker_url, network_name=settings.network_name)
    await gateway.ensure_network()
    
    service_registry = ConsulServiceRegistry(
        settings.consul_addr,
        timeout=settings.consul_timeout_seconds,
    )
    status_registry = InMemoryStatusRegistry()
    
    app.state.orchestrator = build_orchestrator(
        settings, gateway, service_registry, status_registry
    )
    
    reconciler = EventReconciler(
        gateway,
        status_registry,
        failed_record_ttl=settings.failed_record_ttl_seconds,
        sweep_interval=settings.failed_record_sweep_interval,
        retry_delay=settings.event_retry_delay_seconds,
    )
    await reconciler.start()
    app.state.reconciler = reconciler
    
    logger.info("Docker manager initialized", network=settings.network_name)
    
    yield
    
    # Cleanup; in-flight jobs are not cancelled, only waited for
    logger.info("Shutting down the orchestrator service")
    
    orchestrator: ProvisioningOrchestrator = app.state.orchestrator
    if not await orchestrator.drain(timeout=settings.shutdown_grace_seconds):
        logger.warning(
            "Closing clients with provisioning jobs still in flight",
            in_flight=orchestrator.in_flight,
            grace_seconds=settings.shutdown_grace_seconds,
        )
    
    await reconciler.stop()
    await service_registry.close()
    await gateway.close()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Application factory pattern for FastAPI.
    
    Args:
        settings: Optional settings override for testing
        
    Returns:
        Configured FastAPI application instance
    """
    if settings is None:
        settings = get_settings()
    
    app = FastAPI(
        title="Orchestrator API",
        description="A container orchestration service API",
        version=settings.app_version,
        docs_url="/swagger" if settings.debug else None,
        redoc_url=None,
        openapi_url="/swagger/doc.json" if settings.debug else None,
        root_path=settings.root_path,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    
    # Store settings in app state
    app.state.settings = settings
    
    # Error handler (outermost)
    app.add_middleware(ErrorHandlerMiddleware)
    
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "HEAD"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    
    # Mount Prometheus metrics
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)
    
    # Include API routes
    app.include_router(api_router)
    
    return app


# Create default application instance
app = create_app()
