"""
Shared pytest fixtures for NEXUS Agent tests.

This module provides common fixtures including:
- FakeControlPlane: In-memory PostgREST-style backend behind httpx.MockTransport
- Agent configuration and control plane client fixtures
- Binary image builders for configuration extraction tests
"""

import asyncio
import json
import os
import sys
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nexus_agent.modules.api.models import AgentConfig
from nexus_agent.modules.client import ControlPlaneClient

SECRET_KEY = "secret-abc-123"
API_KEY = "anon-key-xyz-789"
AGENT_ID = "agent-0001"


# =============================================================================
# Control Plane Mocking Infrastructure
# =============================================================================

@dataclass
class RecordedRequest:
    """Record of a request received by the fake control plane."""
    method: str
    resource: str
    params: Dict[str, str]
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)


class FakeControlPlane:
    """
    In-memory stand-in for the control plane REST surface.

    Supports the subset of PostgREST the agent uses: ``eq.`` filters,
    ``order=<col>.asc``, ``limit`` and ``select`` on GET, and filtered
    PATCH. Failures and latency can be injected per (method, table).

    Usage:
        async def test_something(control_plane, client):
            control_plane.add_command("cmd-1", "shell", "echo hi")
            rows = await client.list_pending("agent_commands", {"agent_id": AGENT_ID}, 10)
            assert control_plane.count("GET", "agent_commands") == 1
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.requests: List[RecordedRequest] = []
        self._failures: Dict[Tuple[str, str], Deque[int]] = defaultdict(deque)
        self._delays: Dict[Tuple[str, str], float] = {}
        self._active: Dict[Tuple[str, str], int] = defaultdict(int)
        self.max_concurrent: Dict[Tuple[str, str], int] = defaultdict(int)
        self.raw_responses: Dict[Tuple[str, str], Tuple[int, bytes]] = {}

    # -- setup ---------------------------------------------------------------

    def add_installation(self, agent_id: str = AGENT_ID, agent_key: str = SECRET_KEY, **extra) -> dict:
        row = {"id": agent_id, "agent_key": agent_key, "hostname": None, "status": "offline", **extra}
        self.tables["agent_installations"].append(row)
        return row

    def add_command(
        self,
        command_id: str,
        command_type: str,
        script: Optional[str] = None,
        agent_id: str = AGENT_ID,
        status: str = "pending",
        created_at: Optional[str] = None,
    ) -> dict:
        n = len(self.tables["agent_commands"])
        row = {
            "id": command_id,
            "agent_id": agent_id,
            "command_type": command_type,
            "script": script,
            "status": status,
            "output": None,
            "error": None,
            "created_at": created_at or f"2026-01-01T00:00:{n:02d}+00:00",
        }
        self.tables["agent_commands"].append(row)
        return row

    def fail_next(self, method: str, resource: str, status: int = 500, times: int = 1) -> "FakeControlPlane":
        for _ in range(times):
            self._failures[(method, resource)].append(status)
        return self

    def set_delay(self, method: str, resource: str, seconds: float) -> "FakeControlPlane":
        self._delays[(method, resource)] = seconds
        return self

    # -- inspection ----------------------------------------------------------

    def row(self, resource: str, row_id: str) -> Optional[dict]:
        return next((r for r in self.tables[resource] if str(r.get("id")) == row_id), None)

    def calls(self, method: str, resource: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.resource == resource]

    def count(self, method: str, resource: str) -> int:
        return len(self.calls(method, resource))

    # -- transport -----------------------------------------------------------

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @staticmethod
    def _matches(row: dict, params: Dict[str, str]) -> bool:
        for column, expr in params.items():
            if not expr.startswith("eq."):
                continue
            value = row.get(column)
            if isinstance(value, bool):
                value = "true" if value else "false"
            if str(value) != expr[3:]:
                return False
        return True

    async def handle(self, request: httpx.Request) -> httpx.Response:
        resource = request.url.path.rstrip("/").rsplit("/", 1)[-1]
        params = dict(request.url.params)
        body = json.loads(request.content) if request.content else None
        self.requests.append(
            RecordedRequest(request.method, resource, params, body, dict(request.headers))
        )

        key = (request.method, resource)
        self._active[key] += 1
        self.max_concurrent[key] = max(self.max_concurrent[key], self._active[key])
        try:
            if key in self._delays:
                await asyncio.sleep(self._delays[key])

            if self._failures[key]:
                status = self._failures[key].popleft()
                return httpx.Response(status, json={"message": "injected failure"})

            if key in self.raw_responses:
                status, content = self.raw_responses[key]
                return httpx.Response(status, content=content)

            rows = [r for r in self.tables[resource] if self._matches(r, params)]

            if request.method == "GET":
                order = params.get("order")
                if order:
                    column, _, direction = order.partition(".")
                    rows.sort(key=lambda r: r.get(column) or "", reverse=(direction == "desc"))
                if "limit" in params:
                    rows = rows[: int(params["limit"])]
                select = params.get("select", "*")
                if select != "*":
                    cols = select.split(",")
                    rows = [{c: r.get(c) for c in cols} for r in rows]
                return httpx.Response(200, json=rows)

            if request.method == "PATCH":
                for r in rows:
                    r.update(body or {})
                return httpx.Response(204)

            return httpx.Response(405, json={"message": "method not allowed"})
        finally:
            self._active[key] -= 1


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(
        control_plane_url="https://cp.example.test/",
        api_key=API_KEY,
        deployment_id="deploy-42",
        secret_key=SECRET_KEY,
    )


@pytest.fixture
def control_plane() -> FakeControlPlane:
    """Fake control plane pre-seeded with this agent's identity record."""
    plane = FakeControlPlane()
    plane.add_installation()
    return plane


@pytest_asyncio.fixture
async def client(agent_config, control_plane):
    """ControlPlaneClient wired to the fake control plane."""
    cp_client = ControlPlaneClient(agent_config, timeout=5, transport=control_plane.transport)
    yield cp_client
    await cp_client.aclose()


@pytest.fixture
def restore_logging():
    """Undo dictConfig changes made by a test."""
    import logging

    from nexus_agent import logging_config

    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    names = ("nexus_agent", "httpx", "httpcore")
    saved_levels = {name: logging.getLogger(name).level for name in names}
    saved_secrets = set(logging_config._SECRETS)
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    for name, level in saved_levels.items():
        logging.getLogger(name).setLevel(level)
    logging_config._SECRETS.clear()
    logging_config._SECRETS.update(saved_secrets)
    logging.raiseExceptions = True


def config_json(**overrides) -> bytes:
    """Serialized embedded configuration in provisioning key order."""
    data = {
        "supabase_url": "https://cp.example.test",
        "supabase_key": API_KEY,
        "deployment_id": "deploy-42",
        "secret_key": SECRET_KEY,
    }
    data.update(overrides)
    return json.dumps(data).encode("utf-8")


def build_image(blob: bytes, prefix: bytes = b"", suffix: bytes = b"") -> bytes:
    """Surround a blob with binary-looking bytes."""
    head = b"MZ\x90\x00\x03\x00\x00\x00{\x01}\x00\xff\xfe" + prefix
    tail = suffix + b"\x00\x00PE\x00\x00{{}\x7f"
    return head + blob + tail


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "subprocess: Tests that spawn a real /bin/sh process"
    )
