"""
Unit tests for the provisioning orchestrator.

Tests:
- Synchronous acceptance and Initializing record
- Successful pipeline to Ready
- Failure at each step with rollback of acquired resources
- Failure when the container exits mid-provisioning
- Bounded drain that never cancels jobs
- Kill delegation
"""

import asyncio
import re

import pytest

from sandboxer.core.exceptions import InvalidImageID, KillFailure
from sandboxer.domain.containers.entities import ContainerState, RuntimeConfig
from sandboxer.infrastructure.orchestrator.services.provisioner import (
    CONTAINER_EXITED_ERROR,
    ProvisioningOrchestrator,
    generate_job_id,
)
from tests.fixtures.container_fixtures import FakeGateway, FakeServiceRegistry


def _orchestrator(catalog, status_registry, gateway, service_registry, **kwargs):
    return ProvisioningOrchestrator(
        catalog=catalog,
        gateway=gateway,
        service_registry=service_registry,
        status_registry=status_registry,
        default_config=RuntimeConfig(resolution="1360x768", col_depth=24),
        **kwargs,
    )


class TestSubmit:
    """Test synchronous request acceptance."""

    def test_job_id_format(self):
        """Test job IDs are 32 hex characters."""
        assert re.fullmatch(r"[0-9a-f]{32}", generate_job_id())

    async def test_submit_returns_short_id_and_status_url(self, orchestrator):
        """Test the accepted handle."""
        result = await orchestrator.submit("ubuntu-base")

        assert re.fullmatch(r"[0-9a-f]{12}", result.short_id)
        assert result.status_url == f"/containers/{result.short_id}/status"
        await orchestrator.drain()

    async def test_record_initializing_before_job_runs(self, orchestrator, gateway):
        """Test status is readable immediately after submit."""
        gateway.hold.clear()

        result = await orchestrator.submit("ubuntu-base")
        record = await orchestrator.get_status(result.short_id)

        assert record.state is ContainerState.INITIALIZING
        assert orchestrator.in_flight == 1

        gateway.hold.set()
        await orchestrator.drain()
        assert orchestrator.in_flight == 0

    async def test_invalid_image_creates_no_record(self, orchestrator, status_registry):
        """Test unknown images are rejected without side effects."""
        with pytest.raises(InvalidImageID):
            await orchestrator.submit("not-an-image")

        assert len(status_registry) == 0
        assert orchestrator.in_flight == 0

    async def test_short_ids_are_unique(self, orchestrator):
        """Test concurrent submissions get distinct IDs."""
        results = [await orchestrator.submit("ubuntu-base") for _ in range(20)]
        await orchestrator.drain()

        assert len({r.short_id for r in results}) == 20


class TestProvisioningSuccess:
    """Test the happy path."""

    async def test_job_becomes_ready(self, orchestrator, gateway, service_registry):
        """Test a successful job records endpoints and registrations."""
        result = await orchestrator.submit("ubuntu-chromium")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)

        assert record.state is ContainerState.READY
        assert record.message == "Container is ready"
        assert record.error is None
        assert len(record.endpoints.paths()) == 3
        assert all(p.startswith(f"/{result.short_id}/") for p in record.endpoints.paths())
        assert record.container_id in gateway.containers
        assert len(service_registry.tagged(result.short_id)) == 3

    async def test_password_in_paths_matches_env(self, orchestrator, gateway):
        """Test the generated password reaches both container and client."""
        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        password = gateway.envs[result.short_id]["VNC_PW"]

        assert len(password) == 24
        assert record.endpoints.novnc_path.endswith(f"password={password}")

    async def test_requested_config_reaches_container(self, orchestrator, gateway):
        """Test request overrides are applied to the environment."""
        result = await orchestrator.submit(
            "ubuntu-base",
            RuntimeConfig(password="s3cret", resolution="1024x768", view_only=True),
        )
        await orchestrator.drain()

        env = gateway.envs[result.short_id]
        assert env["VNC_PW"] == "s3cret"
        assert env["VNC_RESOLUTION"] == "1024x768"
        assert env["VNC_COL_DEPTH"] == "24"
        assert env["VNC_VIEW_ONLY"] == "true"

    async def test_desktop_profile(self, catalog, status_registry, gateway, service_registry):
        """Test the desktop profile registers two services."""
        orchestrator = _orchestrator(
            catalog, status_registry, gateway, service_registry,
            endpoint_profile="desktop",
        )

        result = await orchestrator.submit("debian-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.endpoints.chat_api_path is None
        assert gateway.ports[result.short_id] == [6901, 5901]
        assert len(service_registry.tagged(result.short_id)) == 2


class TestProvisioningFailure:
    """Test failures at each pipeline step."""

    @pytest.mark.parametrize("step", ["pull", "create", "inspect", "start"])
    async def test_engine_failure_marks_failed(
        self, catalog, status_registry, service_registry, step
    ):
        """Test engine errors end in Failed with the error recorded."""
        gateway = FakeGateway(fail_at=step)
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)

        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.state is ContainerState.FAILED
        assert record.message == "Container creation failed"
        assert record.error
        assert record.endpoints is None
        assert service_registry.services == {}

    async def test_pull_failure_error_text(self, catalog, status_registry, service_registry):
        """Test the pull cause is kept in the error."""
        gateway = FakeGateway(fail_at="pull")
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)

        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert "failed to pull image accetto/ubuntu-vnc-xfce-g3" in record.error
        assert "manifest unknown" in record.error
        assert gateway.containers == {}

    async def test_start_failure_removes_container(self, catalog, status_registry, service_registry):
        """Test a created but unstarted container is removed."""
        gateway = FakeGateway(fail_at="start")
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)

        await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        assert len(gateway.removed) == 1
        assert gateway.containers == {}

    async def test_inspect_failure_removes_container(self, catalog, status_registry, service_registry):
        """Test a started container is removed when inspect fails."""
        gateway = FakeGateway(fail_at="inspect")
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)

        await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        assert len(gateway.removed) == 1
        assert service_registry.deregistered == []

    @pytest.mark.parametrize("fail_on", [1, 2, 3])
    async def test_registration_failure_rolls_back(self, catalog, status_registry, gateway, fail_on):
        """Test partial registration is undone in reverse order."""
        service_registry = FakeServiceRegistry(fail_on=fail_on)
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)

        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.state is ContainerState.FAILED
        assert "failed to register service" in record.error

        # Every attempted registration is withdrawn, including the failed one
        expected = ["chat-api", "novnc", "vnc"][:fail_on]
        assert service_registry.deregistered == [
            f"{name}-{result.short_id}" for name in reversed(expected)
        ]
        assert service_registry.tagged(result.short_id) == []
        assert len(gateway.removed) == 1
        assert gateway.containers == {}

    async def test_unexpected_error_marks_failed(self, orchestrator, gateway, monkeypatch):
        """Test non-domain exceptions still end in Failed."""
        async def explode(handle):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(gateway, "inspect", explode)

        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.state is ContainerState.FAILED
        assert record.error == "socket closed"
        assert len(gateway.removed) == 1

    async def test_failed_job_does_not_affect_others(self, catalog, status_registry, service_registry):
        """Test jobs are isolated from each other."""
        gateway = FakeGateway()
        orchestrator = _orchestrator(catalog, status_registry, gateway, service_registry)
        real_inspect = gateway.inspect
        failing = {}

        async def inspect(handle):
            if handle.short_id in failing:
                raise RuntimeError("boom")
            return await real_inspect(handle)

        gateway.inspect = inspect

        bad = await orchestrator.submit("ubuntu-base")
        failing[bad.short_id] = True
        good = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()

        assert (await orchestrator.get_status(bad.short_id)).state is ContainerState.FAILED
        assert (await orchestrator.get_status(good.short_id)).state is ContainerState.READY


    async def test_exited_container_never_ready(
        self, orchestrator, gateway, service_registry, status_registry
    ):
        """Test a job whose container exited ends failed and rolls back."""
        gateway.inspect_hold.clear()
        result = await orchestrator.submit("ubuntu-base")
        while not gateway.containers:
            await asyncio.sleep(0)

        await status_registry.update(result.short_id, lambda record: record.mark_container_exited())
        gateway.inspect_hold.set()
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.state is ContainerState.FAILED
        assert record.error == CONTAINER_EXITED_ERROR
        assert record.endpoints is None
        assert len(gateway.removed) == 1
        assert service_registry.deregistered == [
            f"{name}-{result.short_id}" for name in ("vnc", "novnc", "chat-api")
        ]
        assert service_registry.tagged(result.short_id) == []


class TestDrain:
    """Test waiting for in-flight jobs."""

    async def test_drain_without_jobs(self, orchestrator):
        """Test an idle orchestrator drains immediately."""
        assert await orchestrator.drain(timeout=0.01) is True

    async def test_drain_timeout_leaves_jobs_running(self, orchestrator, gateway):
        """Test jobs outliving the timeout are not cancelled."""
        gateway.hold.clear()
        result = await orchestrator.submit("ubuntu-base")

        assert await orchestrator.drain(timeout=0.05) is False
        assert orchestrator.in_flight == 1

        gateway.hold.set()
        assert await orchestrator.drain(timeout=1.0) is True
        assert (await orchestrator.get_status(result.short_id)).state is ContainerState.READY

    async def test_job_after_clients_closed_fails(self, orchestrator, gateway, service_registry):
        """Test a job still running at shutdown fails instead of reopening clients."""
        gateway.hold.clear()
        result = await orchestrator.submit("ubuntu-base")
        assert await orchestrator.drain(timeout=0.01) is False

        await service_registry.close()
        await gateway.close()
        gateway.hold.set()
        await orchestrator.drain()

        record = await orchestrator.get_status(result.short_id)
        assert record.state is ContainerState.FAILED
        assert record.error == "Docker gateway is closed"
        assert gateway.containers == {}

class TestKill:
    """Test synchronous kill."""

    async def test_kill_delegates_to_gateway(self, orchestrator, gateway):
        """Test kill sends SIGKILL to the container."""
        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()
        record = await orchestrator.get_status(result.short_id)

        await orchestrator.kill(record.container_id)

        assert gateway.killed == [record.container_id]

    async def test_kill_unknown_container(self, orchestrator):
        """Test engine rejections surface as KillFailure."""
        with pytest.raises(KillFailure):
            await orchestrator.kill("deadbeef")

    async def test_kill_does_not_touch_record(self, orchestrator):
        """Test the record stays until the engine reports the container gone."""
        result = await orchestrator.submit("ubuntu-base")
        await orchestrator.drain()
        record = await orchestrator.get_status(result.short_id)

        await orchestrator.kill(record.container_id)

        assert (await orchestrator.get_status(result.short_id)).state is ContainerState.READY
