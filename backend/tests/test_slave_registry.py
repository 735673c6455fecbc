"""Unit tests for slave liveness bookkeeping."""
from pingpals.schemas import SlaveStats, SlaveStatus
from pingpals.services.slave_registry import SlaveRegistry

T0 = 1_700_000_000_000


def test_first_heartbeat_creates_slave():
    registry = SlaveRegistry(heartbeat_timeout_ms=60_000)
    slave = registry.heartbeat(
        "slave-1", ["a", "b"], name="One", host="10.0.0.5", port=3001,
        stats=SlaveStats(uptime=12.5), current_time=T0,
    )

    assert slave.id == "slave-1"
    assert slave.name == "One"
    assert slave.services == ["a", "b"]
    assert slave.stats.uptime == 12.5
    assert slave.last_heartbeat == T0
    assert slave.is_active is True


def test_recent_heartbeat_is_active():
    registry = SlaveRegistry(heartbeat_timeout_ms=60_000)
    registry.heartbeat("slave-1", [], current_time=T0)
    assert registry.get("slave-1", current_time=T0 + 59_999).is_active is True


def test_stale_heartbeat_is_inactive():
    registry = SlaveRegistry(heartbeat_timeout_ms=60_000)
    registry.heartbeat("slave-1", [], current_time=T0)
    assert registry.get("slave-1", current_time=T0 + 60_000).is_active is False
    assert registry.active(current_time=T0 + 60_000) == []


def test_activity_is_recomputed_not_trusted():
    registry = SlaveRegistry(heartbeat_timeout_ms=60_000)
    registry.restore(SlaveStatus(id="old", last_heartbeat=T0, is_active=True))
    assert registry.list(current_time=T0 + 10 * 60_000)[0].is_active is False


def test_heartbeat_keeps_known_details():
    registry = SlaveRegistry(heartbeat_timeout_ms=60_000)
    registry.heartbeat("slave-1", ["a"], name="One", host="10.0.0.5", port=3001, current_time=T0)
    slave = registry.heartbeat("slave-1", [], current_time=T0 + 30_000)

    assert slave.name == "One"
    assert slave.host == "10.0.0.5"
    assert slave.port == 3001
    assert slave.services == []
    assert slave.last_heartbeat == T0 + 30_000


def test_unknown_slave():
    assert SlaveRegistry().get("missing") is None
