"""Tests for per-service scheduling on a slave."""
import asyncio

import pytest_asyncio

from pingpals.services.registry import ServiceRegistry
from pingpals.services.scheduler import SchedulerService

from conftest import FakeExecutor


@pytest_asyncio.fixture
async def make_scheduler():
    schedulers = []

    def make(executor, **kwargs):
        received = []

        async def on_result(result):
            received.append(result)

        scheduler = SchedulerService(ServiceRegistry(), executor, on_result, **kwargs)
        scheduler.start()
        schedulers.append(scheduler)
        return scheduler, received

    yield make
    for scheduler in schedulers:
        scheduler.stop()


async def test_first_check_runs_immediately(make_scheduler, http_config):
    executor = FakeExecutor()
    scheduler, received = make_scheduler(executor)

    scheduler.schedule(http_config)  # interval is 60s
    await asyncio.sleep(0.2)

    assert executor.calls == ["svc-http"]
    assert [r.service_id for r in received] == ["svc-http"]


async def test_services_run_independently(make_scheduler, http_config, icmp_config):
    executor = FakeExecutor(delay=0.1)
    scheduler, received = make_scheduler(executor)

    scheduler.schedule(http_config)
    scheduler.schedule(icmp_config)
    await asyncio.sleep(0.3)

    assert sorted(r.service_id for r in received) == ["svc-http", "svc-icmp"]
    assert executor.max_in_flight == 2


async def test_checks_of_one_service_never_overlap(make_scheduler, http_config):
    executor = FakeExecutor(delay=1.5)
    scheduler, received = make_scheduler(executor)

    scheduler.schedule(http_config.model_copy(update={"interval": 1}))
    await asyncio.sleep(1.2)

    # The tick at 1s lands while the first check is still running
    assert executor.calls == ["svc-http"]
    assert executor.max_in_flight == 1


async def test_removal_drops_in_flight_result(make_scheduler, http_config):
    executor = FakeExecutor(delay=0.2)
    scheduler, received = make_scheduler(executor)

    scheduler.schedule(http_config)
    await asyncio.sleep(0.05)
    assert executor.in_flight == 1

    scheduler.unschedule("svc-http")
    await asyncio.sleep(0.4)

    assert received == []
    assert scheduler.scheduler.get_job("svc-http") is None
    assert "svc-http" not in scheduler.registry


async def test_concurrency_limit(make_scheduler, http_config):
    executor = FakeExecutor(delay=0.1)
    scheduler, received = make_scheduler(executor, max_concurrent_checks=1)

    for i in range(3):
        scheduler.schedule(http_config.model_copy(update={"id": f"svc-{i}"}))
    await asyncio.sleep(0.6)

    assert executor.max_in_flight == 1
    assert len(received) == 3


async def test_services_added_before_start_are_scheduled(http_config):
    executor = FakeExecutor()
    received = []

    async def on_result(result):
        received.append(result)

    scheduler = SchedulerService(ServiceRegistry(), executor, on_result)
    scheduler.schedule(http_config)
    scheduler.start()
    try:
        await asyncio.sleep(0.2)
    finally:
        scheduler.stop()

    assert len(received) == 1
