"""Application configuration from environment variables."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application mode: 'master' or 'slave'
    mode: str = "master"

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = 3000

    # Shared bearer token for master <-> slave calls
    api_key: Optional[str] = None

    # Slave mode: coordinator base URL and identity
    master_url: str = "http://localhost:3000"
    slave_id: Optional[str] = None
    slave_name: Optional[str] = None

    # Check execution
    max_concurrent_checks: int = 50
    check_timeout: int = 30000  # ms
    retry_attempts: int = 3
    retry_delay: int = 1000  # ms

    # Liveness
    heartbeat_interval: int = 30  # seconds
    heartbeat_timeout: Optional[int] = None  # seconds, defaults to 2x interval

    # Persistence
    data_dir: str = "./data"
    state_retention_days: int = 30
    save_debounce_seconds: float = 5.0

    # Master: assignment capacity per slave (0 = unlimited)
    max_services_per_slave: int = 0

    # Timeout for heartbeat/report/dispatch calls, seconds
    request_timeout: float = 10.0

    log_level: str = "INFO"

    class Config:
        env_prefix = ""
        case_sensitive = False

    @property
    def heartbeat_timeout_ms(self) -> int:
        """Liveness timeout; tolerates one missed heartbeat by default."""
        seconds = self.heartbeat_timeout or self.heartbeat_interval * 2
        return seconds * 1000

    @property
    def retention_days(self) -> int:
        """Retention never drops below the 30-day uptime window."""
        return max(self.state_retention_days, 30)


settings = Settings()
