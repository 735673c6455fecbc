"""Unit tests for the debounced durable store."""
import asyncio
import json
import logging
from unittest.mock import patch

import pytest

from pingpals.schemas import DowntimePeriod, ServiceStatus, SlaveStatus, StorageSnapshot
from pingpals.services.storage import DurableStore


def _snapshot(http_config, label: str = "Example") -> StorageSnapshot:
    config = http_config.model_copy(update={"name": label})
    status = ServiceStatus.from_config(config, created_at=1_000)
    status.downtime_periods = [DowntimePeriod(start=2_000, end=3_000), DowntimePeriod(start=5_000)]
    status.last_downtime = status.downtime_periods[-1]
    status.assigned_slaves = ["slave-1"]
    return StorageSnapshot(
        service_configs=[config],
        service_statuses=[status],
        slave_statuses=[SlaveStatus(id="slave-1", name="One", host="10.0.0.5", port=3001, last_heartbeat=4_000)],
    )


class TestLoad:
    def test_missing_file_gives_empty_snapshot(self, tmp_path):
        store = DurableStore(str(tmp_path / "fresh"))
        snapshot = store.load()
        assert snapshot.service_configs == []
        assert snapshot.service_statuses == []
        assert snapshot.slave_statuses == []

    def test_corrupt_file_gives_empty_snapshot(self, tmp_path, caplog):
        (tmp_path / "monitor-state.json").write_text("{not json")
        store = DurableStore(str(tmp_path))

        with caplog.at_level(logging.WARNING):
            snapshot = store.load()

        assert snapshot.service_configs == []
        assert "Failed to load state file" in caplog.text

    def test_wrong_shape_gives_empty_snapshot(self, tmp_path):
        (tmp_path / "monitor-state.json").write_text("[1, 2, 3]")
        assert DurableStore(str(tmp_path)).load().service_statuses == []

    def test_partial_file_fills_defaults(self, tmp_path):
        (tmp_path / "monitor-state.json").write_text(json.dumps({
            "serviceStatuses": [{
                "id": "svc-http",
                "name": "Example",
                "type": "http",
                "url": "http://example.test/",
                "interval": 60,
                "timeout": 1000,
                "createdAt": 1000,
            }],
        }))
        snapshot = DurableStore(str(tmp_path)).load()

        status = snapshot.service_statuses[0]
        assert status.downtime_periods == []
        assert status.uptime_percentage30d == 100
        assert status.assigned_slaves == []
        assert snapshot.service_configs == []
        assert snapshot.slave_statuses == []


class TestSave:
    async def test_round_trip(self, tmp_path, http_config):
        store = DurableStore(str(tmp_path))
        snapshot = _snapshot(http_config)

        assert await store.save_now(snapshot) is True

        assert store.load() == snapshot
        assert snapshot.last_updated > 0

    async def test_file_uses_camel_case_keys(self, tmp_path, http_config):
        store = DurableStore(str(tmp_path))
        await store.save_now(_snapshot(http_config))

        data = json.loads(store.file_path.read_text())
        assert set(data) == {"serviceConfigs", "serviceStatuses", "slaveStatuses", "lastUpdated"}
        status = data["serviceStatuses"][0]
        assert "uptimePercentage30d" in status
        assert status["downtimePeriods"][1] == {"start": 5000, "end": None}

    async def test_burst_of_saves_is_one_write(self, tmp_path, http_config):
        store = DurableStore(str(tmp_path), debounce_seconds=0.05)

        with patch.object(store, "_write_file", wraps=store._write_file) as write:
            for i in range(10):
                store.save(_snapshot(http_config, label=f"Example {i}"))
                await asyncio.sleep(0.005)
            await asyncio.sleep(0.2)

        assert write.call_count == 1
        assert store.load().service_configs[0].name == "Example 9"

    async def test_each_request_restarts_the_timer(self, tmp_path, http_config):
        store = DurableStore(str(tmp_path), debounce_seconds=0.1)

        store.save(_snapshot(http_config))
        await asyncio.sleep(0.06)
        store.save(_snapshot(http_config, label="Later"))
        await asyncio.sleep(0.06)
        # 0.12s after the first request, but only 0.06s after the last one
        assert not store.file_path.exists()

        await asyncio.sleep(0.15)
        assert store.load().service_configs[0].name == "Later"

    async def test_write_failure_is_logged_not_raised(self, tmp_path, http_config, caplog):
        store = DurableStore(str(tmp_path), debounce_seconds=0.01)
        snapshot = _snapshot(http_config)

        with patch.object(store, "_write_file", side_effect=OSError("disk full")):
            with caplog.at_level(logging.ERROR):
                store.save(snapshot)
                await asyncio.sleep(0.1)

        assert "Failed to save monitor state" in caplog.text
        # In-memory snapshot untouched and the next request succeeds
        assert snapshot.service_statuses[0].downtime_periods[0].end == 3_000
        assert await store.save_now(snapshot) is True

    async def test_flush_writes_pending_now(self, tmp_path, http_config):
        store = DurableStore(str(tmp_path), debounce_seconds=60)
        store.save(_snapshot(http_config))
        assert store.has_pending

        assert await store.flush() is True

        assert not store.has_pending
        assert store.load().service_configs[0].id == "svc-http"

    async def test_flush_without_pending_is_noop(self, tmp_path):
        store = DurableStore(str(tmp_path))
        assert await store.flush() is True
        assert not store.file_path.exists()

    async def test_unexpected_write_error_is_logged(self, tmp_path, http_config, caplog):
        store = DurableStore(str(tmp_path))

        with patch.object(store, "_write_file", side_effect=RuntimeError("encoder broke")):
            with caplog.at_level(logging.ERROR):
                assert await store.save_now(_snapshot(http_config)) is False

        assert "Unexpected error saving monitor state" in caplog.text
        assert "encoder broke" in caplog.text

    async def test_unexpected_error_in_debounced_write_is_logged(self, tmp_path, http_config, caplog):
        store = DurableStore(str(tmp_path), debounce_seconds=0.01)

        with patch.object(store, "_write_file", side_effect=RuntimeError("encoder broke")):
            with caplog.at_level(logging.ERROR):
                store.save(_snapshot(http_config))
                await asyncio.sleep(0.1)

        assert "Unexpected error saving monitor state" in caplog.text
        assert not store.has_pending
