"""
Docker Gateway - Container engine adapter for sandbox provisioning

Features:
- Image presence check with blocking pull on miss
- Create + start on the shared orchestration network with ephemeral host ports
- Job correlation via container label and name
- Best-effort removal, synchronous kill
- Container lifecycle event stream
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Tuple

import aiodocker
import structlog
from aiodocker.events import DockerEvents
from aiodocker.exceptions import DockerError

from sandboxer.core.exceptions import (
    ClientClosed,
    ContainerCreateFailure,
    ContainerStartFailure,
    ImagePullFailure,
    InspectFailure,
    KillFailure,
)

logger = structlog.get_logger(__name__)


JOB_LABEL = "sandboxer.job"
MANAGED_LABEL = "sandboxer.managed"


@dataclass(frozen=True)
class ContainerHandle:
    """Engine-side identity of a sandbox container."""
    id: str
    short_id: str
    name: str


@dataclass(frozen=True)
class RuntimeEvent:
    """A container lifecycle event from the engine."""
    type: str
    action: str
    actor_id: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def job_id(self) -> Optional[str]:
        """Short ID of the provisioning job that owns the container, if any."""
        return self.attributes.get(JOB_LABEL)

    @classmethod
    def from_docker(cls, event: Dict[str, Any]) -> "RuntimeEvent":
        actor = event.get("Actor") or {}
        return cls(
            type=event.get("Type", ""),
            # health events arrive as "health_status: healthy"
            action=(event.get("Action") or "").split(":", 1)[0],
            actor_id=actor.get("ID") or event.get("id", ""),
            attributes=dict(actor.get("Attributes") or {}),
        )


def split_reference(reference: str) -> Tuple[str, str]:
    """Split an image reference into repository and tag, defaulting to latest."""
    if "@" in reference:
        repository, digest = reference.split("@", 1)
        return repository, digest
    repository, _, tag = reference.rpartition(":")
    if not repository or "/" in tag:
        return reference, "latest"
    return repository, tag


class EventStreamError(Exception):
    """Raised when the engine event stream terminates abnormally."""
    pass


class DockerGateway:
    """
    aiodocker-backed adapter over the container engine.

    Translates DockerError into the provisioning error taxonomy so the
    orchestrator never handles engine exceptions directly.
    """

    NETWORK_NAME = "fabio_network"

    def __init__(
        self,
        docker_url: Optional[str] = None,
        network_name: str = NETWORK_NAME,
        docker: Optional[aiodocker.Docker] = None,
    ):
        self.docker_url = docker_url or os.getenv("DOCKER_HOST", "unix:///var/run/docker.sock")
        self.network_name = network_name
        self._docker: Optional[aiodocker.Docker] = docker
        self._closed = False

    async def _get_docker(self) -> aiodocker.Docker:
        """Get or create Docker client."""
        if self._closed:
            raise ClientClosed("Docker gateway is closed")
        if self._docker is None:
            self._docker = aiodocker.Docker(url=self.docker_url)
        return self._docker

    async def close(self) -> None:
        self._closed = True
        if self._docker is not None:
            await self._docker.close()
            self._docker = None

    async def ensure_network(self) -> None:
        """Create the shared orchestration network if it does not exist."""
        docker = await self._get_docker()
        try:
            await docker.networks.get(self.network_name)
        except DockerError as e:
            if e.status != 404:
                raise
            await docker.networks.create({"Name": self.network_name, "Driver": "bridge"})
            logger.info("Created Docker network", network=self.network_name)

    async def ensure_image_present(self, reference: str) -> None:
        """
        Make sure an image is available locally, pulling it if needed.

        Blocks until the pull stream is fully drained.

        Raises:
            ImagePullFailure: If the pull fails or reports an error
        """
        docker = await self._get_docker()
        try:
            await docker.images.inspect(reference)
            return
        except DockerError as e:
            logger.debug("Image not present locally", image=reference, status=e.status)

        from_image, tag = split_reference(reference)
        logger.info("Pulling image", image=from_image, tag=tag)
        try:
            async for progress in docker.images.pull(from_image, tag=tag, stream=True):
                if isinstance(progress, dict) and progress.get("error"):
                    raise ImagePullFailure(
                        f"error while pulling image {reference}",
                        cause=Exception(progress["error"]),
                    )
        except DockerError as e:
            raise ImagePullFailure(f"failed to pull image {reference}", cause=e) from e

        logger.info("Image pulled", image=reference)

    async def create_and_start(
        self,
        reference: str,
        env: Dict[str, str],
        ports: Iterable[int],
        short_id: str,
    ) -> ContainerHandle:
        """
        Create a sandbox container and start it.

        Every port is published to an ephemeral host port and the
        container joins the shared network. The job's short ID is stamped
        on the container as a label and in its name.

        Raises:
            ContainerCreateFailure: If the engine refuses to create it
            ContainerStartFailure: If start fails; carries the handle of
                the created container so the caller can remove it
        """
        docker = await self._get_docker()
        config = self._prepare_container_config(reference, env, ports, short_id)
        name = f"sandbox-{short_id}"

        logger.info(
            "Creating Docker container",
            short_id=short_id,
            image=reference,
        )

        try:
            container = await docker.containers.create(config=config, name=name)
        except DockerError as e:
            raise ContainerCreateFailure(f"failed to create container from {reference}", cause=e) from e

        handle = ContainerHandle(id=container.id, short_id=short_id, name=name)

        try:
            await container.start()
        except DockerError as e:
            raise ContainerStartFailure(
                f"failed to start container {container.id[:12]}",
                cause=e,
                handle=handle,
            ) from e

        logger.info(
            "Docker container started",
            short_id=short_id,
            container_id=container.id[:12],
        )
        return handle

    async def inspect(self, handle: ContainerHandle) -> str:
        """
        Read the container's IP address on the shared network.

        Raises:
            InspectFailure: If the container cannot be inspected or has no
                address on the network
        """
        docker = await self._get_docker()
        try:
            info = await docker.containers.container(handle.id).show()
        except DockerError as e:
            raise InspectFailure(f"failed to inspect container {handle.id[:12]}", cause=e) from e

        networks = info.get("NetworkSettings", {}).get("Networks") or {}
        address = (networks.get(self.network_name) or {}).get("IPAddress")
        if not address:
            raise InspectFailure(
                f"container {handle.id[:12]} has no address on network {self.network_name}"
            )
        return address

    async def remove(self, handle: ContainerHandle, force: bool = True) -> bool:
        """
        Remove a container. Best-effort: failures are logged, never raised.

        Returns:
            True if the container is gone
        """
        try:
            docker = await self._get_docker()
            await docker.containers.container(handle.id).delete(force=force)
            logger.info("Docker container removed", container_id=handle.id[:12])
            return True

        except DockerError as e:
            if e.status == 404:
                return True
            logger.error(
                "Docker error removing container",
                container_id=handle.id[:12],
                error=str(e),
            )
            return False

        except Exception as e:
            logger.exception(
                "Failed to remove Docker container",
                container_id=handle.id[:12],
                error=str(e),
            )
            return False

    async def kill(self, container_id: str, signal: str = "SIGKILL") -> None:
        """
        Send a signal to a container.

        Raises:
            KillFailure: If the engine rejects the kill
        """
        docker = await self._get_docker()
        try:
            await docker.containers.container(container_id).kill(signal=signal)
        except DockerError as e:
            raise KillFailure(f"failed to kill container {container_id}", cause=e) from e

        logger.info("Docker container killed", container_id=container_id[:12], signal=signal)

    async def events(self) -> AsyncIterator[RuntimeEvent]:
        """
        Stream container-scoped lifecycle events for managed sandboxes.

        Raises:
            EventStreamError: If the engine stream ends with an error
        """
        docker = await self._get_docker()
        stream = DockerEvents(docker)
        subscriber = stream.subscribe(
            filters=json.dumps({
                "type": ["container"],
                "label": [f"{MANAGED_LABEL}=true"],
            }),
        )

        try:
            while True:
                event = await subscriber.get()
                if event is None:
                    break
                yield RuntimeEvent.from_docker(event)

            task = stream.task
            if task is not None and task.done() and not task.cancelled() and task.exception():
                raise EventStreamError("Docker event stream failed") from task.exception()
        finally:
            if stream.task is not None and not stream.task.done():
                await stream.stop()

    def _prepare_container_config(
        self,
        reference: str,
        env: Dict[str, str],
        ports: Iterable[int],
        short_id: str,
    ) -> Dict[str, Any]:
        """Prepare Docker container configuration."""
        exposed_ports_config = {}
        port_bindings = {}
        for port in ports:
            exposed_ports_config[f"{port}/tcp"] = {}
            port_bindings[f"{port}/tcp"] = [{"HostPort": ""}]  # Ephemeral host port

        return {
            "Image": reference,
            "Env": [f"{k}={v}" for k, v in env.items()],
            "ExposedPorts": exposed_ports_config,
            "Labels": {
                JOB_LABEL: short_id,
                MANAGED_LABEL: "true",
            },
            "HostConfig": {
                "NetworkMode": self.network_name,
                "PortBindings": port_bindings,
            },
        }
