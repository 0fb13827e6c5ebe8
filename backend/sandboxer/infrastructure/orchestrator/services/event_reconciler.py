"""
Event Reconciler - Keeps the status registry consistent with the engine

Handles:
- Eviction of ready records whose container died outside the pipeline
- Flagging of initializing records whose container died mid-provisioning
- Periodic expiry of failed records
- Resubscription after event stream transport errors
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import structlog

from sandboxer.core.exceptions import RecordNotFound
from sandboxer.domain.containers.entities import ContainerRecord, ContainerState

from ..metrics import records_evicted_counter
from .docker_gateway import DockerGateway, RuntimeEvent
from .status_registry import StatusRegistry

logger = structlog.get_logger(__name__)


TERMINATING_ACTIONS = frozenset({"die", "kill", "stop", "destroy"})


class EventReconciler:
    """
    Long-lived consumer of container lifecycle events.

    Only ready records are evicted by events. Initializing records still
    belong to their job, which fails them once it sees the exit flag. A
    failed job's container was removed by its own rollback; failed records
    instead expire after ``failed_record_ttl``.
    """

    def __init__(
        self,
        gateway: DockerGateway,
        status_registry: StatusRegistry,
        failed_record_ttl: int = 3600,
        sweep_interval: int = 60,
        retry_delay: float = 5.0,
    ):
        self.gateway = gateway
        self.status_registry = status_registry
        self.failed_record_ttl = timedelta(seconds=failed_record_ttl)
        self.sweep_interval = sweep_interval
        self.retry_delay = retry_delay

        self._shutdown = asyncio.Event()
        self._listener_task: Optional[asyncio.Task] = None
        self._sweeper_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._listener_task is not None and not self._listener_task.done()

    async def start(self) -> None:
        """Start the event listener and the failed record sweeper."""
        if self.running:
            return
        self._shutdown.clear()
        self._listener_task = asyncio.create_task(self._listen_loop(), name="event-reconciler")
        self._sweeper_task = asyncio.create_task(self._sweep_loop(), name="failed-record-sweeper")
        logger.info("Docker event listener started")

    async def stop(self) -> None:
        """Signal shutdown and wait for the background tasks to finish."""
        self._shutdown.set()

        for task in (self._listener_task, self._sweeper_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._listener_task = None
        self._sweeper_task = None
        logger.info("Docker event listener stopped")

    async def handle_event(self, event: RuntimeEvent) -> bool:
        """
        Apply one engine event to the registry.

        A ready record is evicted. An initializing record is flagged so its
        job fails instead of publishing endpoints for a dead container.

        Returns:
            True if a record was evicted or flagged
        """
        if event.type != "container" or event.action not in TERMINATING_ACTIONS:
            return False

        short_id = event.job_id
        if not short_id:
            return False

        # Flag before evicting: a job completing in between is still caught
        flagged = await self._flag_exited(short_id)
        evicted = await self.status_registry.delete(short_id, predicate=_is_ready)

        if flagged:
            logger.info(
                "Container exited during provisioning",
                short_id=short_id,
                container_id=event.actor_id[:12],
                action=event.action,
            )
        if evicted:
            records_evicted_counter.labels(reason=event.action).inc()
            logger.info(
                "Removed container from status tracking",
                short_id=short_id,
                container_id=event.actor_id[:12],
                action=event.action,
            )
        return flagged or evicted

    async def _flag_exited(self, short_id: str) -> bool:
        flagged = False

        def mark(record: ContainerRecord) -> None:
            nonlocal flagged
            if record.state is ContainerState.INITIALIZING and not record.container_exited:
                record.mark_container_exited()
                flagged = True

        try:
            await self.status_registry.update(short_id, mark)
        except RecordNotFound:
            return False
        return flagged

    async def sweep_failed(self, now: Optional[datetime] = None) -> int:
        """Drop failed records older than the retention window."""
        cutoff = (now or datetime.utcnow()) - self.failed_record_ttl
        removed = 0

        for record in await self.status_registry.snapshot():
            if record.state is not ContainerState.FAILED or record.updated_at > cutoff:
                continue
            if await self.status_registry.delete(
                record.short_id,
                predicate=lambda current: _is_expired_failure(current, cutoff),
            ):
                removed += 1

        if removed:
            records_evicted_counter.labels(reason="expired").inc(removed)
            logger.info("Expired failed records", count=removed)
        return removed

    async def _listen_loop(self) -> None:
        """Consume the event stream until shutdown, resubscribing on errors."""
        while not self._shutdown.is_set():
            try:
                async for event in self.gateway.events():
                    await self.handle_event(event)
                    if self._shutdown.is_set():
                        break

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error("Error receiving docker events", error=str(e))

            if not self._shutdown.is_set():
                await self._wait_for_shutdown(self.retry_delay)

    async def _sweep_loop(self) -> None:
        while not self._shutdown.is_set():
            await self._wait_for_shutdown(self.sweep_interval)
            if self._shutdown.is_set():
                break
            try:
                await self.sweep_failed()
            except Exception as e:
                logger.error("Error in failed record sweep", error=str(e))

    async def _wait_for_shutdown(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass


def _is_ready(record: ContainerRecord) -> bool:
    return record.state is ContainerState.READY


def _is_expired_failure(record: ContainerRecord, cutoff: datetime) -> bool:
    return record.state is ContainerState.FAILED and record.updated_at <= cutoff
