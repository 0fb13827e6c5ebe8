"""
Service Registry Client - Consul agent registration for sandbox endpoints

Registered services carry fabio ``urlprefix-`` tags, so a successful
registration makes the sandbox reachable through the edge router.
"""

import os
from typing import Optional

import aiohttp
import structlog

from sandboxer.core.exceptions import ClientClosed, RegistrationFailure
from sandboxer.domain.containers.entities import ServiceEndpoint

logger = structlog.get_logger(__name__)


DEFAULT_CONSUL_ADDR = "consul:8500"


class ConsulServiceRegistry:
    """
    Thin client over the Consul agent service API.

    Registration is an upsert; deregistration is best-effort and never
    raises, since it only runs while compensating for a failed job.
    """

    def __init__(
        self,
        consul_addr: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.consul_addr = (
            consul_addr
            or os.getenv("FABIO_REGISTRY_CONSUL_ADDR")
            or DEFAULT_CONSUL_ADDR
        )
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._closed = False

    @property
    def base_url(self) -> str:
        return f"http://{self.consul_addr}/v1/agent/service"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise ClientClosed("Consul client is closed")
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        self._closed = True
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def register(self, endpoint: ServiceEndpoint) -> None:
        """
        Register one endpoint with its health check.

        Raises:
            RegistrationFailure: On transport errors or a non-200 reply
        """
        session = await self._get_session()
        try:
            async with session.put(
                f"{self.base_url}/register",
                json=endpoint.to_consul(),
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise RegistrationFailure(
                        f"failed to register service {endpoint.id}, status: {response.status}",
                        cause=Exception(body.strip()) if body else None,
                    )
        except aiohttp.ClientError as e:
            raise RegistrationFailure(f"failed to register service {endpoint.id}", cause=e) from e

        logger.debug(
            "Registered service",
            service_id=endpoint.id,
            address=endpoint.address,
            port=endpoint.port,
        )

    async def deregister(self, service_id: str) -> bool:
        """
        Remove a service from the local agent.

        Returns:
            True if the agent acknowledged the deregistration
        """
        try:
            session = await self._get_session()
            async with session.put(f"{self.base_url}/deregister/{service_id}") as response:
                if response.status == 200:
                    logger.debug("Deregistered service", service_id=service_id)
                    return True
                logger.warning(
                    "Service deregistration rejected",
                    service_id=service_id,
                    status=response.status,
                )
                return False

        except Exception as e:
            logger.error(
                "Failed to deregister service",
                service_id=service_id,
                error=str(e),
            )
            return False
