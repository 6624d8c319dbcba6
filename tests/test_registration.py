"""
Tests for identity resolution at startup.
"""

import pytest

from conftest import AGENT_ID, SECRET_KEY
from nexus_agent.errors import AgentStartupError
from nexus_agent.modules.client import INSTALLATIONS
from nexus_agent.modules.registration import RegistrationError, RegistrationManager


@pytest.fixture
def manager(client, agent_config):
    return RegistrationManager(client, agent_config, hostname="host-a", agent_version="9.9.9")


@pytest.mark.asyncio
async def test_resolves_existing_identity(manager, control_plane):
    agent_id = await manager.resolve_identity()

    assert agent_id == AGENT_ID
    assert control_plane.count("GET", INSTALLATIONS) == 1
    assert control_plane.count("PATCH", INSTALLATIONS) == 1


@pytest.mark.asyncio
async def test_updates_record_in_one_patch(manager, control_plane):
    await manager.resolve_identity()

    patch = control_plane.calls("PATCH", INSTALLATIONS)[0]
    assert patch.params == {"agent_key": f"eq.{SECRET_KEY}"}
    assert patch.body["hostname"] == "host-a"
    assert patch.body["status"] == "connected"
    assert patch.body["agent_version"] == "9.9.9"
    assert patch.body["is_active"] is True
    assert patch.body["last_heartbeat"]

    row = control_plane.tables[INSTALLATIONS][0]
    assert row["status"] == "connected"


@pytest.mark.asyncio
async def test_missing_identity_is_fatal(manager, control_plane):
    control_plane.tables[INSTALLATIONS].clear()

    with pytest.raises(RegistrationError, match="No existing agent registration"):
        await manager.resolve_identity()

    # Never self-provisions
    assert control_plane.count("PATCH", INSTALLATIONS) == 0
    assert control_plane.tables[INSTALLATIONS] == []


@pytest.mark.asyncio
async def test_lookup_failure_is_fatal(manager, control_plane):
    control_plane.fail_next("GET", INSTALLATIONS, status=401)

    with pytest.raises(RegistrationError) as exc_info:
        await manager.resolve_identity()

    assert isinstance(exc_info.value, AgentStartupError)


@pytest.mark.asyncio
async def test_update_failure_still_returns_identity(manager, control_plane):
    control_plane.fail_next("PATCH", INSTALLATIONS, status=500)

    assert await manager.resolve_identity() == AGENT_ID
