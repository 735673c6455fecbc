"""Service schemas - configs, check results and uptime status."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


ServiceType = Literal["http", "icmp"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire and on disk."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ServiceConfig(CamelModel):
    """A service to monitor. HTTP services carry a url, ICMP services a host."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    type: ServiceType
    interval: int = Field(..., gt=0)  # seconds
    timeout: int = Field(..., gt=0)  # ms
    url: Optional[str] = None
    host: Optional[str] = None

    @property
    def target(self) -> Optional[str]:
        return self.url if self.type == "http" else self.host

    def missing_target_error(self) -> Optional[str]:
        """Return a validation message if the type-specific target is absent."""
        if self.type == "http" and not self.url:
            return "URL is required for HTTP services"
        if self.type == "icmp" and not self.host:
            return "Host is required for ICMP services"
        return None


class ServiceCreate(CamelModel):
    """Schema for creating a service on the master; the id is optional."""
    id: Optional[str] = Field(None, min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    type: ServiceType
    interval: int = Field(default=60, gt=0)
    timeout: int = Field(default=30000, gt=0)
    url: Optional[str] = None
    host: Optional[str] = None


class MonitoringResult(CamelModel):
    """Outcome of one check (all of its attempts), produced by a slave."""
    service_id: str
    timestamp: int  # epoch ms
    success: bool
    duration: int = 0  # ms, deciding attempt only
    error: Optional[str] = None


class ReportPayload(MonitoringResult):
    """A MonitoringResult as posted to the master by a slave."""
    slave_id: str


class DowntimePeriod(CamelModel):
    """A contiguous outage. end is None while the outage is still open."""
    start: int
    end: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end is None


class ServiceStatus(CamelModel):
    """Aggregated uptime state for one service, owned by the master."""
    id: str
    name: str
    type: ServiceType
    url: Optional[str] = None
    host: Optional[str] = None
    interval: int
    timeout: int
    created_at: int
    last_check: Optional[int] = None
    last_status: bool = True
    uptime_percentage: float = 100.0
    uptime_percentage30d: float = Field(100.0, alias="uptimePercentage30d")
    assigned_slaves: List[str] = Field(default_factory=list)
    last_downtime: Optional[DowntimePeriod] = None
    downtime_periods: List[DowntimePeriod] = Field(default_factory=list)
    # Downtime of periods pruned by retention, still counted in lifetime uptime
    archived_downtime_ms: int = 0
    # Timestamp of the newest applied result and the slave that stamped it.
    # Only results from that same slave are compared against it.
    last_result_at: Optional[int] = None
    last_result_slave: Optional[str] = None

    @classmethod
    def from_config(cls, config: ServiceConfig, created_at: int) -> "ServiceStatus":
        return cls(
            id=config.id,
            name=config.name,
            type=config.type,
            url=config.url if config.type == "http" else None,
            host=config.host if config.type == "icmp" else None,
            interval=config.interval,
            timeout=config.timeout,
            created_at=created_at,
        )

    def open_period(self) -> Optional[DowntimePeriod]:
        if self.downtime_periods and self.downtime_periods[-1].is_open:
            return self.downtime_periods[-1]
        return None
