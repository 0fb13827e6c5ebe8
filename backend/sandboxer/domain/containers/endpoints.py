"""
Endpoint Sets - Service registrations and routing paths per deployment profile

Every sandbox exposes a noVNC web client and a raw VNC port. The "full"
profile adds the chat API sidecar listening on 8080.
"""

from dataclasses import dataclass
from typing import List, Tuple

from .entities import ContainerEndpoints, HealthCheck, HealthCheckKind, ServiceEndpoint


CHAT_API_PORT = 8080
NOVNC_PORT = 6901
VNC_PORT = 5901

JOB_TAG_PREFIX = "sandboxer-job-"


@dataclass(frozen=True)
class EndpointSpec:
    """Static description of one exposed sandbox port."""
    service: str
    route: str
    port: int
    check_kind: HealthCheckKind
    check_path: str = ""


CHAT_API = EndpointSpec("chat-api", "chat", CHAT_API_PORT, HealthCheckKind.HTTP, "/health")
NOVNC = EndpointSpec("novnc", "novnc", NOVNC_PORT, HealthCheckKind.TCP)
VNC = EndpointSpec("vnc", "vnc", VNC_PORT, HealthCheckKind.TCP)

PROFILES = {
    "full": (CHAT_API, NOVNC, VNC),
    "desktop": (NOVNC, VNC),
}


def profile_specs(profile: str) -> Tuple[EndpointSpec, ...]:
    try:
        return PROFILES[profile]
    except KeyError:
        raise ValueError(f"Unknown endpoint profile: {profile}") from None


def exposed_ports(profile: str) -> List[int]:
    """Container ports to publish for a profile."""
    return [spec.port for spec in profile_specs(profile)]


def job_tag(short_id: str) -> str:
    return f"{JOB_TAG_PREFIX}{short_id}"


def build_endpoint_set(
    short_id: str,
    address: str,
    profile: str = "full",
    interval: str = "10s",
) -> List[ServiceEndpoint]:
    """
    Build the service registrations for one sandbox.
    
    Names and IDs are prefixed by service and suffixed by the short ID;
    the fabio ``urlprefix-`` tag routes ``/<short_id>/<route>/`` to the
    container.
    """
    endpoints = []
    for spec in profile_specs(profile):
        if spec.check_kind is HealthCheckKind.HTTP:
            target = f"http://{address}:{spec.port}{spec.check_path}"
        else:
            target = f"{address}:{spec.port}"
        
        name = f"{spec.service}-{short_id}"
        endpoints.append(
            ServiceEndpoint(
                name=name,
                id=name,
                address=address,
                port=spec.port,
                tags=(f"urlprefix-/{short_id}/{spec.route}/", job_tag(short_id)),
                health_check=HealthCheck(kind=spec.check_kind, target=target, interval=interval),
            )
        )
    return endpoints


def build_endpoint_paths(short_id: str, password: str, profile: str = "full") -> ContainerEndpoints:
    """Client-facing paths for a ready sandbox."""
    specs = profile_specs(profile)
    return ContainerEndpoints(
        container_id=short_id,
        chat_api_path=f"/{short_id}/chat/" if CHAT_API in specs else None,
        novnc_path=f"/{short_id}/novnc/vnc_lite.html?password={password}",
        vnc_path=f"/{short_id}/novnc/vnc.html?password={password}",
    )
