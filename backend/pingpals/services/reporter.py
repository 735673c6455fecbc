"""Reporter service - delivers heartbeats and check results to the master."""
import json
import logging
from typing import List, Optional

import httpx

from ..exceptions import TransportError
from ..schemas import MonitoringResult, ReportPayload, SlaveStats
from ..utils.retry import retry_transport

logger = logging.getLogger(__name__)


class Reporter:
    """Talks to the master on behalf of one slave.

    Transport failures are logged and never raised: a failed heartbeat is
    retried by the next beat, a failed report gets a short backoff and is
    then dropped.
    """

    def __init__(
        self,
        master_url: str,
        api_key: Optional[str],
        slave_id: str,
        slave_name: Optional[str] = None,
        advertise_host: Optional[str] = None,
        advertise_port: Optional[int] = None,
        timeout: float = 10.0,
        report_attempts: int = 3,
        report_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.master_url = master_url.rstrip("/")
        self.api_key = api_key or ""
        self.slave_id = slave_id
        self.slave_name = slave_name or "Unnamed Slave"
        self.advertise_host = advertise_host
        self.advertise_port = advertise_port
        self.timeout = timeout
        self.report_attempts = report_attempts
        self.report_backoff = report_backoff
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Slave-Id": self.slave_id,
        }

    async def send_heartbeat(self, service_ids: List[str], stats: Optional[SlaveStats] = None) -> bool:
        """Tell the master this slave is alive and which services it runs."""
        headers = self._headers()
        headers["X-Slave-Name"] = self.slave_name
        headers["X-Slave-Services"] = json.dumps(sorted(service_ids))
        if self.advertise_host:
            headers["X-Slave-Host"] = self.advertise_host
        if self.advertise_port:
            headers["X-Slave-Port"] = str(self.advertise_port)

        body = {"stats": stats.model_dump(by_alias=True, exclude_none=True)} if stats else {}

        try:
            async with self._client() as client:
                response = await client.post(f"{self.master_url}/heartbeat", headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send heartbeat for slave {self.slave_id}: {e}")
            return False

        if response.is_success:
            logger.debug(f"Heartbeat sent for slave {self.slave_id}")
            return True
        if response.status_code == 401:
            logger.error(f"Heartbeat rejected for slave {self.slave_id}: invalid API key")
        else:
            logger.error(f"Heartbeat failed for slave {self.slave_id}: {response.status_code}")
        return False

    async def send_report(self, result: MonitoringResult) -> bool:
        """Deliver one check result to the master."""
        payload = ReportPayload(**result.model_dump(), slave_id=self.slave_id)
        body = payload.model_dump(by_alias=True)

        try:
            async with self._client() as client:
                response = await retry_transport(
                    lambda: client.post(f"{self.master_url}/report", headers=self._headers(), json=body),
                    max_retries=self.report_attempts,
                    base_delay=self.report_backoff,
                    description=f"report for service {result.service_id}",
                )
        except TransportError as e:
            logger.error(f"Failed to report result for service {result.service_id}: {e}")
            return False

        if response.is_success:
            return True
        if response.status_code == 401:
            logger.error(f"Report rejected for service {result.service_id}: invalid API key")
        else:
            logger.error(f"Report failed for service {result.service_id}: {response.status_code}")
        return False
