"""Exception types shared across master and slave modes."""


class PingPalsError(Exception):
    """Base class for application errors."""


class ServiceTypeError(PingPalsError, ValueError):
    """A service config was handed to a probe of a different type."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid service type: expected {expected} service, got {actual}")


class ServiceNotFoundError(PingPalsError, KeyError):
    """No service is registered under the given id."""

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(service_id)

    def __str__(self) -> str:
        return f"Service not found: {self.service_id}"


class TransportError(PingPalsError):
    """A call to a peer node failed after its retry budget."""


class DuplicateServiceError(PingPalsError, ValueError):
    """A service with this id already exists."""
