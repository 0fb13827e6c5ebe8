"""
Sandboxer - Sandbox Orchestrator

Asynchronous provisioning pipeline for VNC desktop containers:
- Docker engine gateway (aiodocker)
- Consul service registration for fabio routing
- Concurrent status registry polled by clients
- Event-driven reconciliation of vanished containers
"""

from .services.docker_gateway import DockerGateway
from .services.event_reconciler import EventReconciler
from .services.provisioner import ProvisioningOrchestrator
from .services.service_registry import ConsulServiceRegistry
from .services.status_registry import InMemoryStatusRegistry, StatusRegistry

__all__ = [
    "ConsulServiceRegistry",
    "DockerGateway",
    "EventReconciler",
    "InMemoryStatusRegistry",
    "ProvisioningOrchestrator",
    "StatusRegistry",
]
