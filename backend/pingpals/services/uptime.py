"""Uptime state engine - turns check results into per-service uptime state.

The engine is the only writer of ServiceStatus. Results for one service are
applied one at a time, in arrival order, under a per-service lock; results
for different services never wait on each other.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..exceptions import ServiceNotFoundError
from ..schemas import DowntimePeriod, MonitoringResult, ServiceConfig, ServiceStatus
from ..utils.clock import DAY_MS, now_ms

logger = logging.getLogger(__name__)

WINDOW_30D_MS = 30 * DAY_MS


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def calculate_uptime(status: ServiceStatus, current_time: int) -> Tuple[float, float]:
    """Return (lifetime, last 30 days) uptime percentages.

    Open periods count as downtime up to current_time. For the 30-day
    figure each period is clipped to the window, and the denominator is
    the service's age when it is younger than 30 days.
    """
    total_elapsed = current_time - status.created_at
    window_start = current_time - WINDOW_30D_MS

    total_downtime = status.archived_downtime_ms
    window_downtime = 0
    for period in status.downtime_periods:
        end = current_time if period.end is None else min(period.end, current_time)
        if end > period.start:
            total_downtime += end - period.start
        clipped_start = max(period.start, window_start)
        if end > clipped_start:
            window_downtime += end - clipped_start

    if total_elapsed <= 0:
        return 100.0, 100.0

    lifetime = 100.0 * (total_elapsed - total_downtime) / total_elapsed
    window = min(total_elapsed, WINDOW_30D_MS)
    last_30d = 100.0 * (window - window_downtime) / window
    return _clamp(lifetime), _clamp(last_30d)


class UptimeStateEngine:
    """Per-service uptime status, downtime periods and percentages."""

    def __init__(self):
        self._statuses: Dict[str, ServiceStatus] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def register(self, config: ServiceConfig, created_at: Optional[int] = None) -> ServiceStatus:
        """Create the status for a new service (100% uptime, no downtime)."""
        existing = self._statuses.get(config.id)
        if existing is not None:
            return existing
        status = ServiceStatus.from_config(config, created_at if created_at is not None else now_ms())
        self._statuses[config.id] = status
        return status

    def restore(self, status: ServiceStatus):
        """Adopt a status loaded from storage."""
        self._statuses[status.id] = status

    def remove(self, service_id: str) -> ServiceStatus:
        self._locks.pop(service_id, None)
        try:
            return self._statuses.pop(service_id)
        except KeyError:
            raise ServiceNotFoundError(service_id) from None

    def get(self, service_id: str) -> Optional[ServiceStatus]:
        return self._statuses.get(service_id)

    def list(self) -> List[ServiceStatus]:
        return list(self._statuses.values())

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._statuses

    def refresh(self, current_time: int):
        """Recompute percentages for every service, e.g. before a read."""
        for status in self._statuses.values():
            status.uptime_percentage, status.uptime_percentage30d = calculate_uptime(status, current_time)

    async def ingest(
        self,
        result: MonitoringResult,
        current_time: Optional[int] = None,
        slave_id: Optional[str] = None,
    ) -> ServiceStatus:
        """Apply a result while holding the service's lock."""
        lock = self._locks.setdefault(result.service_id, asyncio.Lock())
        async with lock:
            return self.apply(result, current_time if current_time is not None else now_ms(), slave_id)

    def apply(self, result: MonitoringResult, current_time: int, slave_id: Optional[str] = None) -> ServiceStatus:
        """Fold one result into the service's status and return it.

        Timestamps are stamped by the reporting slave's clock, so a result is
        only treated as stale against an earlier one from the same slave.
        """
        status = self._statuses.get(result.service_id)
        if status is None:
            raise ServiceNotFoundError(result.service_id)

        if (
            status.last_result_at is not None
            and status.last_result_slave == slave_id
            and result.timestamp < status.last_result_at
        ):
            logger.debug(
                f"Ignoring stale result for service {status.id} "
                f"(timestamp {result.timestamp} < {status.last_result_at})"
            )
            return status

        was_up = status.last_status
        open_period = status.open_period()

        if was_up and not result.success and open_period is None:
            period = DowntimePeriod(start=self._next_start(status, current_time))
            status.downtime_periods.append(period)
            status.last_downtime = period
            logger.warning(f"Service {status.name} ({status.id}) went DOWN: {result.error}")
        elif not was_up and result.success and open_period is not None:
            open_period.end = max(current_time, open_period.start)
            status.last_downtime = open_period
            logger.info(
                f"Service {status.name} ({status.id}) recovered after "
                f"{(open_period.end - open_period.start) / 1000:.1f}s"
            )

        status.last_check = current_time
        status.last_status = result.success
        status.last_result_at = result.timestamp
        status.last_result_slave = slave_id
        status.uptime_percentage, status.uptime_percentage30d = calculate_uptime(status, current_time)
        return status

    @staticmethod
    def _next_start(status: ServiceStatus, current_time: int) -> int:
        """Never start a period before the previous one, even if the clock stepped back."""
        if not status.downtime_periods:
            return current_time
        last = status.downtime_periods[-1]
        return max(current_time, last.end if last.end is not None else last.start)

    def prune(self, cutoff: int) -> int:
        """Drop closed periods that ended before cutoff; returns how many.

        Their duration moves into archived_downtime_ms so lifetime uptime
        is unaffected.
        """
        pruned = 0
        for status in self._statuses.values():
            keep = []
            for period in status.downtime_periods:
                if period.end is not None and period.end < cutoff:
                    status.archived_downtime_ms += period.end - period.start
                    pruned += 1
                else:
                    keep.append(period)
            status.downtime_periods = keep
        return pruned

    def assign(self, service_id: str, slave_id: str):
        status = self._statuses.get(service_id)
        if status is not None and slave_id not in status.assigned_slaves:
            status.assigned_slaves.append(slave_id)

    def unassign(self, service_id: str, slave_id: str):
        status = self._statuses.get(service_id)
        if status is not None and slave_id in status.assigned_slaves:
            status.assigned_slaves.remove(slave_id)
