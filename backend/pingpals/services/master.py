"""Master node - owns uptime state, slave liveness and service assignment.

Assignment policy:
- Each service is assigned to one active slave, the least loaded one with
  a known address and spare capacity
- The master is authoritative: on every heartbeat, orphaned services the
  slave already runs are adopted, services assigned to the
  slave but missing from its report are pushed again, and services it
  reports without being assigned are dropped from it
- Services whose slaves have all gone inactive are moved to an active slave
  by a periodic sweep
"""
import asyncio
import logging
import uuid
from datetime import timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import Settings
from ..exceptions import DuplicateServiceError, ServiceNotFoundError
from ..schemas import (
    HeartbeatResponse,
    ReportPayload,
    ServiceConfig,
    ServiceCreate,
    ServiceStatus,
    SlaveStats,
    SlaveStatus,
    StorageSnapshot,
)
from ..utils.clock import DAY_MS, now_ms
from .dispatcher import SlaveDispatcher
from .slave_registry import SlaveRegistry
from .storage import DurableStore
from .uptime import UptimeStateEngine

logger = logging.getLogger(__name__)


class MasterNode:
    """Coordinates slaves and aggregates their results for one deployment."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[DurableStore] = None,
        dispatcher: Optional[SlaveDispatcher] = None,
    ):
        self.settings = settings
        self.engine = UptimeStateEngine()
        self.slaves = SlaveRegistry(heartbeat_timeout_ms=settings.heartbeat_timeout_ms)
        self.store = store or DurableStore(settings.data_dir, debounce_seconds=settings.save_debounce_seconds)
        self.dispatcher = dispatcher or SlaveDispatcher(settings.api_key, timeout=settings.request_timeout)
        self.configs: Dict[str, ServiceConfig] = {}
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._assign_lock = asyncio.Lock()

    # Lifecycle

    def load(self):
        """Restore state from the durable store."""
        snapshot = self.store.load()
        for config in snapshot.service_configs:
            self.configs[config.id] = config
        for status in snapshot.service_statuses:
            if status.id in self.configs:
                self.engine.restore(status)
            else:
                logger.warning(f"Dropping stored status for unknown service {status.id}")
        # Every config needs a status
        for config in self.configs.values():
            self.engine.register(config, created_at=snapshot.last_updated or now_ms())
        for slave in snapshot.slave_statuses:
            self.slaves.restore(slave)

    def start(self):
        """Load state and start the maintenance jobs."""
        self.load()
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.scheduler.add_job(
            self._prune_history,
            trigger=IntervalTrigger(hours=1),
            id="prune_history",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self.reassign_orphans,
            trigger=IntervalTrigger(seconds=self.settings.heartbeat_interval),
            id="reassign_orphans",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"Master started with {len(self.configs)} services and {len(self.slaves.list())} known slaves"
        )

    async def stop(self):
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        await self.store.flush()
        logger.info("Master stopped")

    # Persistence

    def snapshot(self) -> StorageSnapshot:
        return StorageSnapshot(
            service_configs=list(self.configs.values()),
            service_statuses=self.engine.list(),
            slave_statuses=self.slaves.list(),
        )

    def persist(self):
        self.store.save(self.snapshot())

    # Services

    def list_services(self) -> List[ServiceStatus]:
        self.engine.refresh(now_ms())
        return self.engine.list()

    def get_service(self, service_id: str) -> ServiceStatus:
        status = self.engine.get(service_id)
        if status is None:
            raise ServiceNotFoundError(service_id)
        self.engine.refresh(now_ms())
        return status

    async def create_service(self, data: ServiceCreate) -> ServiceStatus:
        """Register a new service and hand it to a slave.

        Raises ValueError for an invalid config and DuplicateServiceError
        if the id is taken.
        """
        config = ServiceConfig(
            id=data.id or str(uuid.uuid4()),
            name=data.name,
            type=data.type,
            interval=data.interval,
            timeout=data.timeout,
            url=data.url,
            host=data.host,
        )
        error = config.missing_target_error()
        if error:
            raise ValueError(error)
        if config.id in self.configs:
            raise DuplicateServiceError(f"Service {config.id} already exists")

        self.configs[config.id] = config
        status = self.engine.register(config)
        logger.info(f"Service created: {config.name} ({config.id}) -> {config.target}")

        async with self._assign_lock:
            await self._assign_to_best_slave(config, now_ms())
        self.persist()
        return status

    async def remove_service(self, service_id: str) -> ServiceStatus:
        """Remove a service everywhere. Raises ServiceNotFoundError."""
        async with self._assign_lock:
            if service_id not in self.configs:
                raise ServiceNotFoundError(service_id)
            del self.configs[service_id]
            status = self.engine.remove(service_id)

        for slave_id in status.assigned_slaves:
            slave = self.slaves.get(slave_id)
            if slave is not None:
                await self.dispatcher.unassign(slave, service_id)
        logger.info(f"Service removed: {status.name} ({service_id})")
        self.persist()
        return status

    # Slave protocol

    async def handle_heartbeat(
        self,
        slave_id: str,
        services: List[str],
        name: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        stats: Optional[SlaveStats] = None,
    ) -> HeartbeatResponse:
        """Record a heartbeat and reconcile the slave's services."""
        current_time = now_ms()
        slave = self.slaves.heartbeat(
            slave_id, services, name=name, host=host, port=port, stats=stats, current_time=current_time
        )
        reported = set(services)
        repushed = []

        async with self._assign_lock:
            # Orphaned services the slave is already running: adopt them
            for service_id in reported:
                status = self.engine.get(service_id)
                if status is not None and not status.assigned_slaves:
                    self.engine.assign(service_id, slave_id)

            assigned = [s.id for s in self.engine.list() if slave_id in s.assigned_slaves]

            # Assigned but not running there: push again
            for service_id in assigned:
                if service_id not in reported:
                    logger.info(f"Slave {slave_id} is missing assigned service {service_id}, re-pushing")
                    config = self.configs.get(service_id)
                    if config is not None and await self.dispatcher.assign(slave, config):
                        repushed.append(service_id)

            # Running there but not assigned to it: drop
            for service_id in reported - set(assigned):
                logger.warning(f"Slave {slave_id} reports unassigned service {service_id}, dropping it")
                await self.dispatcher.unassign(slave, service_id)

            # Hand out services nobody is checking
            for status in self.engine.list():
                config = self.configs.get(status.id)
                if config is None or status.assigned_slaves or not self._has_capacity(slave):
                    continue
                if await self._assign(slave, config):
                    assigned.append(status.id)

        self.persist()
        return HeartbeatResponse(assigned=sorted(assigned), repushed=repushed)

    async def handle_report(self, payload: ReportPayload) -> Optional[ServiceStatus]:
        """Apply a slave's result. Returns None for unregistered services."""
        if payload.service_id not in self.configs:
            logger.info(
                f"Ignoring result from slave {payload.slave_id} for unregistered service {payload.service_id}"
            )
            return None

        status = self.engine.get(payload.service_id)
        if status is not None and payload.slave_id not in status.assigned_slaves:
            logger.debug(f"Result for service {payload.service_id} from unassigned slave {payload.slave_id}")

        try:
            status = await self.engine.ingest(payload, slave_id=payload.slave_id)
        except ServiceNotFoundError:
            # Removed while waiting for the service lock
            return None
        self.persist()
        return status

    def list_slaves(self) -> List[SlaveStatus]:
        return self.slaves.list()

    async def reassign_orphans(self):
        """Move services off slaves that have stopped sending heartbeats."""
        current_time = now_ms()
        moved = False
        async with self._assign_lock:
            for status in self.engine.list():
                config = self.configs.get(status.id)
                if config is None:
                    continue
                assigned = [self.slaves.get(sid, current_time) for sid in status.assigned_slaves]
                if any(s is not None and s.is_active for s in assigned):
                    continue
                if status.assigned_slaves:
                    logger.warning(
                        f"Service {status.id} has no active slave ({', '.join(status.assigned_slaves)}), reassigning"
                    )
                    for slave_id in list(status.assigned_slaves):
                        self.engine.unassign(status.id, slave_id)
                    moved = True
                if await self._assign_to_best_slave(config, current_time):
                    moved = True
        if moved:
            self.persist()

    # Internals

    def _load(self, slave_id: str) -> int:
        return sum(1 for s in self.engine.list() if slave_id in s.assigned_slaves)

    def _has_capacity(self, slave: SlaveStatus) -> bool:
        limit = self.settings.max_services_per_slave
        return limit <= 0 or self._load(slave.id) < limit

    async def _assign(self, slave: SlaveStatus, config: ServiceConfig) -> bool:
        if not await self.dispatcher.assign(slave, config):
            return False
        self.engine.assign(config.id, slave.id)
        return True

    async def _assign_to_best_slave(self, config: ServiceConfig, current_time: int) -> bool:
        candidates = [
            s for s in self.slaves.active(current_time)
            if s.host and s.port and self._has_capacity(s)
        ]
        for slave in sorted(candidates, key=lambda s: self._load(s.id)):
            if await self._assign(slave, config):
                return True
        logger.warning(f"No active slave available for service {config.id}, will assign on next heartbeat")
        return False

    async def _prune_history(self):
        """Drop downtime periods older than the retention window."""
        try:
            cutoff = now_ms() - self.settings.retention_days * DAY_MS
            pruned = self.engine.prune(cutoff)
            if pruned:
                logger.info(f"Pruned {pruned} downtime periods older than {self.settings.retention_days} days")
                self.persist()
        except Exception as e:
            logger.error(f"Error pruning downtime history: {e}")
