"""Slave dispatcher - pushes service assignments from the master to slaves."""
import logging
from typing import Optional

import httpx

from ..schemas import ServiceConfig, SlaveStatus

logger = logging.getLogger(__name__)


class SlaveDispatcher:
    """Calls a slave's /service endpoints. Failures are logged, not raised."""

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or ""
        self.timeout = timeout
        self._transport = transport

    def _base_url(self, slave: SlaveStatus) -> Optional[str]:
        if not slave.host or not slave.port:
            return None
        return f"http://{slave.host}:{slave.port}"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def assign(self, slave: SlaveStatus, config: ServiceConfig) -> bool:
        """Push a service config to a slave."""
        base_url = self._base_url(slave)
        if base_url is None:
            logger.warning(f"Cannot assign service {config.id}: slave {slave.id} has no address")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{base_url}/service",
                    headers=self._headers(),
                    json=config.model_dump(by_alias=True, exclude_none=True),
                )
        except httpx.HTTPError as e:
            logger.error(f"Failed to assign service {config.id} to slave {slave.id}: {e}")
            return False

        if response.is_success:
            logger.info(f"Assigned service {config.id} to slave {slave.id}")
            return True
        logger.error(
            f"Slave {slave.id} rejected service {config.id}: {response.status_code} - {response.text}"
        )
        return False

    async def unassign(self, slave: SlaveStatus, service_id: str) -> bool:
        """Tell a slave to stop checking a service."""
        base_url = self._base_url(slave)
        if base_url is None:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.delete(f"{base_url}/service/{service_id}", headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Failed to unassign service {service_id} from slave {slave.id}: {e}")
            return False

        # 404 means the slave already forgot it
        if response.is_success or response.status_code == 404:
            logger.info(f"Unassigned service {service_id} from slave {slave.id}")
            return True
        logger.error(f"Slave {slave.id} failed to drop service {service_id}: {response.status_code}")
        return False
