"""Storage schema - the unit of durable persistence."""
from typing import List

from pydantic import Field

from .service import CamelModel, ServiceConfig, ServiceStatus
from .slave import SlaveStatus


class StorageSnapshot(CamelModel):
    """Everything the master persists. Absent fields load as empty defaults."""
    service_configs: List[ServiceConfig] = Field(default_factory=list)
    service_statuses: List[ServiceStatus] = Field(default_factory=list)
    slave_statuses: List[SlaveStatus] = Field(default_factory=list)
    last_updated: int = 0
