"""Container provisioning domain."""

from .catalog import ImageCatalog, default_catalog
from .endpoints import build_endpoint_paths, build_endpoint_set, exposed_ports
from .entities import (
    ContainerEndpoints,
    ContainerRecord,
    ContainerState,
    HealthCheck,
    HealthCheckKind,
    ImageDescriptor,
    RuntimeConfig,
    ServiceEndpoint,
)
from .runtime_config import build_runtime_env, generate_password

__all__ = [
    "ContainerEndpoints",
    "ContainerRecord",
    "ContainerState",
    "HealthCheck",
    "HealthCheckKind",
    "ImageCatalog",
    "ImageDescriptor",
    "RuntimeConfig",
    "ServiceEndpoint",
    "build_endpoint_paths",
    "build_endpoint_set",
    "build_runtime_env",
    "default_catalog",
    "exposed_ports",
    "generate_password",
]
