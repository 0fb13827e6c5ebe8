"""
Container Domain Entities - Images, VNC session config, endpoints and job records
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sandboxer.core.exceptions import InvalidStateTransition


class ContainerState(str, Enum):
    """Provisioning job lifecycle states."""
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    
    @property
    def is_terminal(self) -> bool:
        return self is not ContainerState.INITIALIZING


class HealthCheckKind(str, Enum):
    """Service discovery health check types."""
    HTTP = "HTTP"
    TCP = "TCP"


@dataclass(frozen=True)
class ImageDescriptor:
    """A launchable desktop image."""
    id: str
    reference: str
    description: str
    category: str
    tags: tuple = ()
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.reference,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
        }


@dataclass
class RuntimeConfig:
    """
    VNC display-session configuration.
    
    Every field is optional; empty/zero values are filled from the
    process-wide defaults when the runtime environment is built.
    """
    password: str = ""
    resolution: str = ""
    col_depth: int = 0
    view_only: bool = False
    display: str = ""


@dataclass(frozen=True)
class HealthCheck:
    """Health check attached to a registered endpoint."""
    kind: HealthCheckKind
    target: str
    interval: str = "10s"
    
    def to_consul(self) -> Dict[str, str]:
        return {self.kind.value: self.target, "Interval": self.interval}


@dataclass(frozen=True)
class ServiceEndpoint:
    """One externally reachable port of a sandbox container."""
    name: str
    id: str
    address: str
    port: int
    tags: tuple
    health_check: HealthCheck
    
    def to_consul(self) -> Dict[str, Any]:
        """Consul agent service registration payload."""
        return {
            "Name": self.name,
            "ID": self.id,
            "Address": self.address,
            "Port": self.port,
            "Tags": list(self.tags),
            "Check": self.health_check.to_consul(),
        }


@dataclass
class ContainerEndpoints:
    """Routing paths for a ready sandbox, all namespaced by its short ID."""
    container_id: str
    novnc_path: str
    vnc_path: str
    chat_api_path: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        data = {
            "container_id": self.container_id,
            "novnc_path": self.novnc_path,
            "vnc_path": self.vnc_path,
        }
        if self.chat_api_path is not None:
            data["chat_api_path"] = self.chat_api_path
        return data
    
    def paths(self) -> List[str]:
        return [
            path
            for path in (self.chat_api_path, self.novnc_path, self.vnc_path)
            if path is not None
        ]


@dataclass
class ContainerRecord:
    """
    Status registry entry for one provisioning job.
    
    Transitions are monotonic: INITIALIZING -> READY | FAILED. Endpoints
    are present if and only if the state is READY. ``container_exited`` is
    set when the engine reports the container gone before the job finished.
    """
    short_id: str
    state: ContainerState = ContainerState.INITIALIZING
    message: str = "Starting container creation"
    error: Optional[str] = None
    endpoints: Optional[ContainerEndpoints] = None
    container_id: Optional[str] = None
    container_exited: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    
    def transition(
        self,
        state: ContainerState,
        message: str,
        error: Optional[str] = None,
        endpoints: Optional[ContainerEndpoints] = None,
    ) -> None:
        """Move to a terminal state."""
        if self.state.is_terminal:
            raise InvalidStateTransition(
                f"Record {self.short_id} is already {self.state.value}"
            )
        if state is ContainerState.INITIALIZING:
            raise InvalidStateTransition(
                f"Record {self.short_id} cannot re-enter {state.value}"
            )
        if (state is ContainerState.READY) != (endpoints is not None):
            raise InvalidStateTransition(
                "Endpoints must be set exactly when a record becomes ready"
            )
        
        self.state = state
        self.message = message
        self.error = error
        self.endpoints = endpoints
        self.updated_at = datetime.utcnow()
    
    def note_progress(self, message: str, container_id: Optional[str] = None) -> None:
        """Record intermediate progress while still initializing."""
        if self.state.is_terminal:
            raise InvalidStateTransition(
                f"Record {self.short_id} is already {self.state.value}"
            )
        self.message = message
        if container_id is not None:
            self.container_id = container_id
        self.updated_at = datetime.utcnow()
    
    def mark_container_exited(self) -> None:
        """Note that the container went away while still initializing."""
        if self.state.is_terminal:
            raise InvalidStateTransition(
                f"Record {self.short_id} is already {self.state.value}"
            )
        self.container_exited = True
        self.updated_at = datetime.utcnow()

    def copy(self) -> "ContainerRecord":
        return copy.deepcopy(self)
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "container_id": self.short_id,
            "status": self.state.value,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }
        if self.container_id is not None:
            data["docker_id"] = self.container_id
        if self.endpoints is not None:
            data["endpoints"] = self.endpoints.to_dict()
        if self.error:
            data["error"] = self.error
        return data
