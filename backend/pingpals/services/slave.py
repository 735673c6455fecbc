"""Slave node - runs assigned checks and reports to the master."""
import logging
import time
import uuid
from pathlib import Path
from typing import List, Optional

from ..config import Settings
from ..schemas import MonitoringResult, ServiceConfig, SlaveStats
from .checker import CheckExecutor
from .registry import ServiceRegistry
from .reporter import Reporter
from .scheduler import HEARTBEAT_JOB_ID, SchedulerService

logger = logging.getLogger(__name__)


def resolve_slave_id(settings: Settings) -> str:
    """SLAVE_ID if set, else an id generated once and kept in DATA_DIR."""
    if settings.slave_id:
        return settings.slave_id

    id_file = Path(settings.data_dir) / "slave_id"
    if id_file.exists():
        slave_id = id_file.read_text().strip()
        if slave_id:
            logger.info(f"Loaded existing slave id: {slave_id}")
            return slave_id

    slave_id = f"slave-{uuid.uuid4().hex[:7]}"
    id_file.parent.mkdir(parents=True, exist_ok=True)
    id_file.write_text(slave_id)
    logger.info(f"Generated new slave id: {slave_id}")
    return slave_id


class SlaveNode:
    """Owns the registry, scheduler and reporter of one slave process."""

    def __init__(
        self,
        settings: Settings,
        executor: Optional[CheckExecutor] = None,
        reporter: Optional[Reporter] = None,
        slave_id: Optional[str] = None,
    ):
        self.settings = settings
        self.slave_id = slave_id or resolve_slave_id(settings)
        self.registry = ServiceRegistry()
        self.executor = executor or CheckExecutor(
            retry_attempts=settings.retry_attempts,
            retry_delay_ms=settings.retry_delay,
            default_timeout_ms=settings.check_timeout,
        )
        self.reporter = reporter or Reporter(
            master_url=settings.master_url,
            api_key=settings.api_key,
            slave_id=self.slave_id,
            slave_name=settings.slave_name,
            advertise_host=settings.host,
            advertise_port=settings.port,
            timeout=settings.request_timeout,
        )
        self.scheduler = SchedulerService(
            registry=self.registry,
            executor=self.executor,
            on_result=self._handle_result,
            max_concurrent_checks=settings.max_concurrent_checks,
        )
        self._started_at = time.monotonic()

    def start(self):
        """Start checking registered services and sending heartbeats."""
        self.scheduler.start()
        self.scheduler.add_periodic(HEARTBEAT_JOB_ID, self.send_heartbeat, self.settings.heartbeat_interval)
        logger.info(
            f"Slave {self.slave_id} started: master={self.settings.master_url}, "
            f"heartbeat every {self.settings.heartbeat_interval}s"
        )

    def stop(self):
        self.scheduler.stop()
        logger.info(f"Slave {self.slave_id} stopped")

    def add_service(self, config: ServiceConfig):
        """Register a service; its first check fires immediately."""
        logger.info(f"Adding service {config.name} ({config.id}) on slave {self.slave_id}")
        self.scheduler.schedule(config)

    def remove_service(self, service_id: str) -> ServiceConfig:
        """Deregister a service. Raises ServiceNotFoundError if unknown."""
        config = self.scheduler.unschedule(service_id)
        logger.info(f"Removed service {config.name} ({service_id}) from slave {self.slave_id}")
        return config

    def list_services(self) -> List[ServiceConfig]:
        return self.registry.list()

    def stats(self) -> SlaveStats:
        return SlaveStats(uptime=round(time.monotonic() - self._started_at, 1))

    async def send_heartbeat(self):
        await self.reporter.send_heartbeat(self.registry.ids(), self.stats())

    async def _handle_result(self, result: MonitoringResult):
        await self.reporter.send_report(result)
