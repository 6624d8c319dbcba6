"""
Tests for the heartbeat scheduler.
"""

import asyncio

import pytest

from conftest import SECRET_KEY
from nexus_agent.modules.client import INSTALLATIONS
from nexus_agent.modules.heartbeat import HeartbeatScheduler


@pytest.fixture
def heartbeat(client, agent_config):
    return HeartbeatScheduler(client, agent_config, interval=0.02, hostname="host-a")


@pytest.mark.asyncio
async def test_heartbeat_payload(heartbeat, control_plane):
    assert await heartbeat.run_once() is True

    patch = control_plane.calls("PATCH", INSTALLATIONS)[0]
    assert patch.params == {"agent_key": f"eq.{SECRET_KEY}"}
    assert set(patch.body) == {"last_heartbeat", "status", "hostname"}
    assert patch.body["status"] == "connected"
    assert patch.body["hostname"] == "host-a"


@pytest.mark.asyncio
async def test_failed_heartbeat_is_logged_and_next_tick_fires(heartbeat, control_plane, caplog):
    control_plane.fail_next("PATCH", INSTALLATIONS, status=500)

    runner = asyncio.create_task(heartbeat.run())
    await asyncio.sleep(0.1)
    heartbeat.stop()
    await asyncio.wait_for(runner, timeout=1)

    assert heartbeat.failures == 1
    assert control_plane.count("PATCH", INSTALLATIONS) >= 2
    assert "heartbeat failed" in caplog.text
    assert control_plane.tables[INSTALLATIONS][0]["status"] == "connected"


@pytest.mark.asyncio
async def test_slow_control_plane_does_not_stack_heartbeats(heartbeat, control_plane):
    control_plane.set_delay("PATCH", INSTALLATIONS, 0.06)

    runner = asyncio.create_task(heartbeat.run())
    await asyncio.sleep(0.25)
    heartbeat.stop()
    await asyncio.wait_for(runner, timeout=1)

    assert control_plane.count("PATCH", INSTALLATIONS) >= 2
    assert control_plane.max_concurrent[("PATCH", INSTALLATIONS)] == 1
