"""
Provisioning Orchestrator - Lifecycle of one sandbox from request to terminal state

Handles:
- Synchronous image validation and record creation
- Detached provisioning job per request (pull, create, inspect, register)
- Terminal state recording (ready with endpoints, or failed with error)
- Compensating rollback of registered services and created containers
- Synchronous kill of a sandbox container
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from typing import List, Optional, Set

import structlog

from sandboxer.core.exceptions import (
    ContainerStartFailure,
    RecordNotFound,
    SandboxerError,
)
from sandboxer.domain.containers.catalog import ImageCatalog
from sandboxer.domain.containers.endpoints import (
    build_endpoint_paths,
    build_endpoint_set,
    exposed_ports,
)
from sandboxer.domain.containers.entities import (
    ContainerEndpoints,
    ContainerRecord,
    ContainerState,
    ImageDescriptor,
    RuntimeConfig,
    ServiceEndpoint,
)
from sandboxer.domain.containers.runtime_config import build_runtime_env

from ..metrics import (
    jobs_completed_counter,
    jobs_in_flight_gauge,
    jobs_submitted_counter,
    rollback_failures_counter,
)
from .docker_gateway import ContainerHandle, DockerGateway
from .service_registry import ConsulServiceRegistry
from .status_registry import StatusRegistry

logger = structlog.get_logger(__name__)


SHORT_ID_LENGTH = 12

CONTAINER_EXITED_ERROR = "container exited during provisioning"


def generate_job_id() -> str:
    """Generate a random 32-character hex job identifier."""
    return secrets.token_hex(16)


@dataclass
class SubmitResult:
    """Handle returned to the caller of submit."""
    short_id: str
    status_url: str


@dataclass
class ProvisioningJob:
    """In-flight state of one provisioning job. Never persisted."""
    job_id: str
    image: ImageDescriptor
    requested: RuntimeConfig
    handle: Optional[ContainerHandle] = None
    attempted_services: List[ServiceEndpoint] = field(default_factory=list)

    @property
    def short_id(self) -> str:
        return self.job_id[:SHORT_ID_LENGTH]


class ProvisioningOrchestrator:
    """
    Drives provisioning jobs from acceptance to a terminal state.

    The only outcome channel of a job is its ContainerRecord; errors never
    propagate out of the background task.
    """

    def __init__(
        self,
        catalog: ImageCatalog,
        gateway: DockerGateway,
        service_registry: ConsulServiceRegistry,
        status_registry: StatusRegistry,
        default_config: Optional[RuntimeConfig] = None,
        endpoint_profile: str = "full",
        health_check_interval: str = "10s",
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.service_registry = service_registry
        self.status_registry = status_registry
        self.default_config = default_config or RuntimeConfig()
        self.endpoint_profile = endpoint_profile
        self.health_check_interval = health_check_interval

        # Strong references so detached jobs are not garbage collected
        self._jobs: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._jobs)

    def list_images(self) -> List[ImageDescriptor]:
        return self.catalog.list()

    async def submit(
        self,
        image_id: str,
        runtime_config: Optional[RuntimeConfig] = None,
    ) -> SubmitResult:
        """
        Accept a provisioning request.

        The image is resolved and the Initializing record is stored before
        this returns; the rest of the work runs in a detached task.

        Raises:
            InvalidImageID: If the image is not in the catalog
        """
        image = self.catalog.lookup(image_id)

        job = ProvisioningJob(
            job_id=generate_job_id(),
            image=image,
            requested=runtime_config or RuntimeConfig(),
        )
        await self.status_registry.put(job.short_id, ContainerRecord(short_id=job.short_id))

        task = asyncio.create_task(self._run_job(job), name=f"provision-{job.short_id}")
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)

        jobs_submitted_counter.labels(image=image.id).inc()
        jobs_in_flight_gauge.inc()

        logger.info(
            "Provisioning job accepted",
            short_id=job.short_id,
            image_id=image.id,
        )

        return SubmitResult(
            short_id=job.short_id,
            status_url=f"/containers/{job.short_id}/status",
        )

    async def get_status(self, short_id: str) -> ContainerRecord:
        """
        Current record of a job.

        Raises:
            RecordNotFound: If the ID was never issued or was reconciled away
        """
        return await self.status_registry.get(short_id)

    async def kill(self, container_id: str) -> None:
        """
        Kill a sandbox container. The reconciler evicts its record once
        the engine reports the container gone.

        Raises:
            KillFailure: If the engine rejects the kill
        """
        await self.gateway.kill(container_id, signal="SIGKILL")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight jobs to reach a terminal state. Jobs still
        running when ``timeout`` expires are left running, not cancelled.

        Returns:
            True if no job is left in flight
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._jobs:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(list(self._jobs), timeout=remaining)
        return True

    async def _run_job(self, job: ProvisioningJob) -> None:
        """Background body of one provisioning job."""
        log = logger.bind(short_id=job.short_id, image=job.image.reference)

        try:
            await self._progress(job, "Ensuring image is present")
            await self.gateway.ensure_image_present(job.image.reference)

            env, password = build_runtime_env(job.requested, self.default_config)

            await self._progress(job, "Creating container")
            try:
                job.handle = await self.gateway.create_and_start(
                    job.image.reference,
                    env,
                    exposed_ports(self.endpoint_profile),
                    job.short_id,
                )
            except ContainerStartFailure as e:
                job.handle = e.handle
                raise

            await self._progress(job, "Inspecting container", container_id=job.handle.id)
            address = await self.gateway.inspect(job.handle)

            await self._progress(job, "Registering services")
            await self._register_all(job, address)

            endpoints = build_endpoint_paths(job.short_id, password, self.endpoint_profile)

        except SandboxerError as e:
            log.warning("Provisioning job failed", error=str(e), error_code=e.code)
            await self._fail(job, e)

        except Exception as e:
            log.exception("Unexpected error in provisioning job", error=str(e))
            await self._fail(job, e)

        else:
            if await self._complete(job, endpoints):
                log.info("Provisioning job ready", container_id=job.handle.id[:12])
            else:
                log.warning("Container exited before the job finished", container_id=job.handle.id[:12])
                await self._rollback(job)

        finally:
            jobs_in_flight_gauge.dec()

    async def _register_all(self, job: ProvisioningJob, address: str) -> None:
        """Register the endpoint set; stops at the first failure."""
        services = build_endpoint_set(
            job.short_id,
            address,
            profile=self.endpoint_profile,
            interval=self.health_check_interval,
        )
        for service in services:
            # Tracked before the call: an upsert may land even if the reply fails
            job.attempted_services.append(service)
            await self.service_registry.register(service)

        logger.info(
            "Registered container services",
            short_id=job.short_id,
            services=[s.id for s in services],
        )

    async def _progress(
        self,
        job: ProvisioningJob,
        message: str,
        container_id: Optional[str] = None,
    ) -> None:
        await self.status_registry.update(
            job.short_id,
            lambda record: record.note_progress(message, container_id=container_id),
        )

    async def _complete(self, job: ProvisioningJob, endpoints: ContainerEndpoints) -> bool:
        """
        Record the job's outcome once every step succeeded.

        Returns:
            False if the container exited while the job was running, in
            which case the record is Failed and the caller must roll back
        """
        def finish(record: ContainerRecord) -> None:
            if record.container_exited:
                record.transition(
                    ContainerState.FAILED,
                    "Container creation failed",
                    error=CONTAINER_EXITED_ERROR,
                )
            else:
                record.transition(
                    ContainerState.READY,
                    "Container is ready",
                    endpoints=endpoints,
                )

        state = ContainerState.READY
        try:
            record = await self.status_registry.update(job.short_id, finish)
            state = record.state
        except SandboxerError as e:
            logger.warning("Could not record job completion", short_id=job.short_id, error=str(e))

        jobs_completed_counter.labels(image=job.image.id, state=state.value).inc()
        return state is ContainerState.READY

    async def _fail(self, job: ProvisioningJob, error: BaseException) -> None:
        """Record the failure, then compensate for anything already acquired."""
        try:
            await self.status_registry.update(
                job.short_id,
                lambda record: record.transition(
                    ContainerState.FAILED,
                    "Container creation failed",
                    error=str(error) or type(error).__name__,
                ),
            )
        except SandboxerError as e:
            logger.warning("Could not record job failure", short_id=job.short_id, error=str(e))

        jobs_completed_counter.labels(image=job.image.id, state=ContainerState.FAILED.value).inc()

        await self._rollback(job)

    async def _rollback(self, job: ProvisioningJob) -> None:
        """Best-effort compensation. Never raises and never touches the record."""
        for service in reversed(job.attempted_services):
            if not await self.service_registry.deregister(service.id):
                rollback_failures_counter.labels(action="deregister").inc()

        if job.handle is not None:
            if not await self.gateway.remove(job.handle, force=True):
                rollback_failures_counter.labels(action="remove").inc()
                logger.error(
                    "Container left behind after failed job",
                    short_id=job.short_id,
                    container_id=job.handle.id[:12],
                )
