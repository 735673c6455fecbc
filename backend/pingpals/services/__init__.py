"""Services for checking, scheduling, reporting and uptime aggregation."""
from .checker import CheckExecutor
from .scheduler import SchedulerService
from .uptime import UptimeStateEngine
from .storage import DurableStore
from .slave_registry import SlaveRegistry

__all__ = ["CheckExecutor", "SchedulerService", "UptimeStateEngine", "DurableStore", "SlaveRegistry"]
