"""Service registry - the services a slave is currently responsible for."""
from typing import Dict, List, Optional

from ..exceptions import ServiceNotFoundError
from ..schemas import ServiceConfig


class ServiceRegistry:
    """In-memory mapping of service id to config, owned by one slave."""

    def __init__(self):
        self._services: Dict[str, ServiceConfig] = {}

    def add(self, config: ServiceConfig) -> Optional[ServiceConfig]:
        """Register or replace a service; returns the replaced config, if any."""
        previous = self._services.get(config.id)
        self._services[config.id] = config
        return previous

    def remove(self, service_id: str) -> ServiceConfig:
        try:
            return self._services.pop(service_id)
        except KeyError:
            raise ServiceNotFoundError(service_id) from None

    def get(self, service_id: str) -> Optional[ServiceConfig]:
        return self._services.get(service_id)

    def list(self) -> List[ServiceConfig]:
        return list(self._services.values())

    def ids(self) -> List[str]:
        return list(self._services)

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._services

    def __len__(self) -> int:
        return len(self._services)
