import asyncio
import logging
import socket
from typing import Optional

from nexus_agent.modules.api.models import AgentConfig, AgentStatus, utc_now_iso
from nexus_agent.modules.client import INSTALLATIONS, ControlPlaneClient
from nexus_agent.modules.scheduling import PeriodicTask

logger = logging.getLogger(__name__)


class HeartbeatScheduler(PeriodicTask):
    """Reports liveness on its own schedule, independent of command polling."""

    name = "heartbeat"

    def __init__(
        self,
        client: ControlPlaneClient,
        config: AgentConfig,
        interval: float = 30.0,
        hostname: Optional[str] = None,
        stop_event: Optional[asyncio.Event] = None,
    ):
        super().__init__(interval, stop_event)
        self.client = client
        self.config = config
        self.hostname = hostname or socket.gethostname()

    async def tick(self) -> None:
        """Send one heartbeat patch. Errors propagate to the scheduler."""
        await self.client.patch(
            INSTALLATIONS,
            {"agent_key": self.config.secret_key},
            {
                "last_heartbeat": utc_now_iso(),
                "status": AgentStatus.CONNECTED.value,
                "hostname": self.hostname,
            },
        )
        logger.debug("Heartbeat sent successfully")
