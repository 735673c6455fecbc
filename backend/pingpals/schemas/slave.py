"""Slave schemas - liveness records kept by the master."""
from typing import List, Optional

from pydantic import Field

from .service import CamelModel


class SlaveStats(CamelModel):
    """Optional diagnostics a slave attaches to its heartbeat."""
    uptime: Optional[float] = None  # seconds since the slave process started
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None


class HeartbeatBody(CamelModel):
    """Optional JSON body of a heartbeat request."""
    stats: Optional[SlaveStats] = None


class SlaveStatus(CamelModel):
    """A slave as last seen by the master. is_active is derived on read."""
    id: str
    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    last_heartbeat: int
    is_active: bool = False
    services: List[str] = Field(default_factory=list)  # as reported by the slave
    stats: Optional[SlaveStats] = None


class HeartbeatResponse(CamelModel):
    """Master's answer to a heartbeat."""
    status: str = "ok"
    assigned: List[str] = Field(default_factory=list)
    repushed: List[str] = Field(default_factory=list)
