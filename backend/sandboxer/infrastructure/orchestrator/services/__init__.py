"""Orchestrator services."""

from .docker_gateway import ContainerHandle, DockerGateway, RuntimeEvent
from .event_reconciler import EventReconciler
from .provisioner import ProvisioningOrchestrator, SubmitResult
from .service_registry import ConsulServiceRegistry
from .status_registry import InMemoryStatusRegistry, StatusRegistry

__all__ = [
    "ConsulServiceRegistry",
    "ContainerHandle",
    "DockerGateway",
    "EventReconciler",
    "InMemoryStatusRegistry",
    "ProvisioningOrchestrator",
    "RuntimeEvent",
    "StatusRegistry",
    "SubmitResult",
]
