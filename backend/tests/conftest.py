import asyncio
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio

from pingpals.config import Settings
from pingpals.schemas import MonitoringResult, ServiceConfig
from pingpals.services.probe import ProbeResult

API_KEY = "test-key"
AUTH = {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        mode="master",
        api_key=API_KEY,
        data_dir=str(tmp_path),
        slave_id="slave-test",
        slave_name="Test Slave",
        save_debounce_seconds=0.01,
        heartbeat_interval=30,
        retry_delay=10,
    )


@pytest.fixture
def http_config():
    return ServiceConfig(id="svc-http", name="Example", type="http", interval=60, timeout=1000, url="http://example.test/")


@pytest.fixture
def icmp_config():
    return ServiceConfig(id="svc-icmp", name="Gateway", type="icmp", interval=60, timeout=1000, host="10.0.0.1")


class ScriptedProbe:
    """Probe returning queued outcomes; records every call."""

    def __init__(self, outcomes: List[ProbeResult], delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = 0

    async def probe(self, config, timeout_ms):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


class FakeExecutor:
    """CheckExecutor stand-in that records checks and can be slowed down."""

    def __init__(self, delay: float = 0.0, success: bool = True):
        self.delay = delay
        self.success = success
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, config):
        self.calls.append(config.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return MonitoringResult(
            service_id=config.id,
            timestamp=1,
            success=self.success,
            duration=5,
            error=None if self.success else "down",
        )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, status_code: int = 200, json_body: Optional[dict] = None):
        self.requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, json=json_body if json_body is not None else {"status": "ok"})

        super().__init__(handler)


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest_asyncio.fixture
async def asgi_client():
    """Factory for an AsyncClient talking to an app in-process."""
    clients = []

    def make(app):
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        return client

    yield make
    for client in clients:
        await client.aclose()
