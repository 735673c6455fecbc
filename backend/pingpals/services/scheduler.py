"""Scheduler service - runs each registered service's checks on its own interval.

Scheduling design:
- One APScheduler interval job per service, keyed by the service id
- The first run of a new job fires immediately
- max_instances=1 keeps a service's checks from overlapping; a tick that
  lands while a check is still retrying is skipped, not queued
- A semaphore caps how many checks run at once across all services
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..schemas import MonitoringResult, ServiceConfig
from .checker import CheckExecutor
from .registry import ServiceRegistry

logger = logging.getLogger(__name__)

ResultHandler = Callable[[MonitoringResult], Awaitable[None]]

HEARTBEAT_JOB_ID = "__heartbeat__"


class SchedulerService:
    """Owns the per-service check jobs of one slave."""

    def __init__(
        self,
        registry: ServiceRegistry,
        executor: CheckExecutor,
        on_result: ResultHandler,
        max_concurrent_checks: int = 50,
    ):
        self.registry = registry
        self.executor = executor
        self.on_result = on_result
        self.max_concurrent_checks = max_concurrent_checks
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler. Must be called from within the event loop."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._semaphore = asyncio.Semaphore(self.max_concurrent_checks)
        self.scheduler.start()
        self._running = True

        # Services registered before start get their jobs now
        for config in self.registry.list():
            self._add_job(config)

        logger.info(f"Scheduler started (max_concurrent={self.max_concurrent_checks})")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def schedule(self, config: ServiceConfig):
        """Register a service and start checking it right away."""
        replaced = self.registry.add(config)
        if replaced is not None:
            logger.info(f"Replacing schedule for service {config.id}")
        if self._running:
            self._add_job(config)

    def unschedule(self, service_id: str) -> ServiceConfig:
        """Deregister a service and cancel its job.

        A check already in flight finishes, but its result is dropped.
        """
        config = self.registry.remove(service_id)
        if self.scheduler is not None:
            try:
                self.scheduler.remove_job(service_id)
            except JobLookupError:
                pass
        return config

    def add_periodic(self, job_id: str, func: Callable[[], Awaitable[None]], seconds: float):
        """Run a coroutine function every `seconds`, starting now."""
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )

    def _add_job(self, config: ServiceConfig):
        self.scheduler.add_job(
            self._run_check,
            trigger=IntervalTrigger(seconds=config.interval),
            args=[config.id],
            id=config.id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=config.interval,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.debug(f"Scheduled service {config.id} every {config.interval}s")

    async def _run_check(self, service_id: str):
        """Check one service and forward the result if it is still registered."""
        config = self.registry.get(service_id)
        if config is None:
            return

        async with self._semaphore:
            result = await self.executor.execute(config)

        # The service may have been removed or replaced while the check ran
        current = self.registry.get(service_id)
        if current is None or current is not config:
            logger.debug(f"Dropping result for removed service {service_id}")
            return

        try:
            await self.on_result(result)
        except Exception as e:
            logger.error(f"Failed to forward result for service {service_id}: {e}")
