"""Pydantic schemas for API request/response models and persisted state."""
from .service import (
    ServiceConfig,
    ServiceCreate,
    MonitoringResult,
    ReportPayload,
    DowntimePeriod,
    ServiceStatus,
)
from .slave import (
    SlaveStats,
    SlaveStatus,
    HeartbeatBody,
    HeartbeatResponse,
)
from .storage import StorageSnapshot

__all__ = [
    "ServiceConfig",
    "ServiceCreate",
    "MonitoringResult",
    "ReportPayload",
    "DowntimePeriod",
    "ServiceStatus",
    "SlaveStats",
    "SlaveStatus",
    "HeartbeatBody",
    "HeartbeatResponse",
    "StorageSnapshot",
]
