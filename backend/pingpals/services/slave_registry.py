"""Slave registry - heartbeat bookkeeping and liveness on the master."""
import logging
from typing import Dict, List, Optional

from ..schemas import SlaveStats, SlaveStatus
from ..utils.clock import now_ms

logger = logging.getLogger(__name__)


class SlaveRegistry:
    """Tracks every slave's last heartbeat and reported services.

    is_active is never trusted from storage; it is recomputed from
    last_heartbeat on every read.
    """

    def __init__(self, heartbeat_timeout_ms: int = 60000):
        self.heartbeat_timeout_ms = heartbeat_timeout_ms
        self._slaves: Dict[str, SlaveStatus] = {}

    def is_active(self, slave: SlaveStatus, current_time: int) -> bool:
        return (current_time - slave.last_heartbeat) < self.heartbeat_timeout_ms

    def heartbeat(
        self,
        slave_id: str,
        services: List[str],
        name: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        stats: Optional[SlaveStats] = None,
        current_time: Optional[int] = None,
    ) -> SlaveStatus:
        """Record a heartbeat, creating the slave on first contact."""
        current_time = current_time if current_time is not None else now_ms()
        slave = self._slaves.get(slave_id)

        if slave is None:
            slave = SlaveStatus(id=slave_id, last_heartbeat=current_time)
            self._slaves[slave_id] = slave
            logger.info(f"New slave registered: {name or slave_id} ({slave_id})")
        elif not self.is_active(slave, current_time):
            logger.info(f"Slave {slave_id} is back online")

        slave.last_heartbeat = current_time
        slave.services = list(services)
        if name:
            slave.name = name
        if host:
            slave.host = host
        if port:
            slave.port = port
        if stats is not None:
            slave.stats = stats
        slave.is_active = True
        return slave

    def restore(self, slave: SlaveStatus):
        self._slaves[slave.id] = slave

    def get(self, slave_id: str, current_time: Optional[int] = None) -> Optional[SlaveStatus]:
        slave = self._slaves.get(slave_id)
        if slave is not None:
            slave.is_active = self.is_active(slave, current_time if current_time is not None else now_ms())
        return slave

    def list(self, current_time: Optional[int] = None) -> List[SlaveStatus]:
        current_time = current_time if current_time is not None else now_ms()
        for slave in self._slaves.values():
            slave.is_active = self.is_active(slave, current_time)
        return list(self._slaves.values())

    def active(self, current_time: Optional[int] = None) -> List[SlaveStatus]:
        return [s for s in self.list(current_time) if s.is_active]
