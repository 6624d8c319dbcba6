"""
Lifecycle supervisor.

Owns startup (configuration, client, registration), the two periodic
schedules, and shutdown. Startup failures are fatal and surface as
``AgentStartupError``; everything after startup is contained by the
component that produced it.
"""

import asyncio
import logging
import socket
from typing import Callable, List, Optional

import httpx

from nexus_agent import __version__
from nexus_agent.config.provider import AgentSettings
from nexus_agent.logging_config import mask_secrets
from nexus_agent.modules.api.models import AgentConfig
from nexus_agent.modules.client import ControlPlaneClient
from nexus_agent.modules.config import load_agent_config
from nexus_agent.modules.executor import CommandExecutor, ShellRunner
from nexus_agent.modules.heartbeat import HeartbeatScheduler
from nexus_agent.modules.poller import CommandPoller
from nexus_agent.modules.registration import RegistrationManager

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[], AgentConfig]


class AgentSupervisor:
    """Starts, runs and stops the agent control loop."""

    def __init__(
        self,
        settings: Optional[AgentSettings] = None,
        config_loader: Optional[ConfigLoader] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        hostname: Optional[str] = None,
    ):
        """
        Initialize the supervisor.

        Args:
            settings: Runtime tunables
            config_loader: Returns the AgentConfig; defaults to reading the own binary
            transport: Optional HTTP transport override (tests)
            hostname: Reported hostname; defaults to the machine name
        """
        self.settings = settings or AgentSettings()
        self._config_loader = config_loader or (lambda: load_agent_config(self.settings.agent_binary))
        self._transport = transport
        self.hostname = hostname or socket.gethostname()

        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.config: Optional[AgentConfig] = None
        self.client: Optional[ControlPlaneClient] = None
        self.agent_id: Optional[str] = None
        self.heartbeat: Optional[HeartbeatScheduler] = None
        self.poller: Optional[CommandPoller] = None

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stop.is_set()

    def stop(self) -> None:
        """Raise the stop signal. Safe to call more than once."""
        if not self._stop.is_set():
            logger.info("Agent stopping...")
            self._stop.set()

    async def start(self) -> None:
        """
        Load configuration, register, and build the schedules.

        Raises:
            AgentStartupError: On missing/malformed configuration or no identity
        """
        logger.info(f"NEXUS Agent {__version__} starting...")

        self.config = self._config_loader()
        mask_secrets(self.config.api_key, self.config.secret_key)

        self.client = ControlPlaneClient(
            self.config, timeout=self.settings.http_timeout, transport=self._transport
        )
        try:
            registration = RegistrationManager(self.client, self.config, hostname=self.hostname)
            self.agent_id = await registration.resolve_identity()
        except BaseException:
            await self.client.aclose()
            self.client = None
            raise

        logger.info(f"Agent registered with ID: {self.agent_id}")

        runner = ShellRunner(shell=self.settings.shell, timeout=self.settings.command_timeout)
        executor = CommandExecutor(self.client, self.config, runner=runner)
        self.heartbeat = HeartbeatScheduler(
            self.client,
            self.config,
            interval=self.settings.heartbeat_interval,
            hostname=self.hostname,
            stop_event=self._stop,
        )
        self.poller = CommandPoller(
            self.client,
            executor,
            self.agent_id,
            interval=self.settings.poll_interval,
            page_size=self.settings.poll_page_size,
            stop_event=self._stop,
        )

    async def run(self) -> None:
        """
        Run until ``stop()`` is called.

        Startup errors propagate before any schedule starts.
        """
        await self.start()

        self._tasks = [
            asyncio.create_task(self.heartbeat.run(), name="nexus-heartbeat"),
            asyncio.create_task(self.poller.run(), name="nexus-command-poll"),
        ]
        try:
            await self._stop.wait()
        finally:
            self._stop.set()
            await self._shutdown()

    async def _shutdown(self) -> None:
        """Give in-flight work the grace period, then cancel what is left."""
        grace = self.settings.shutdown_grace
        if self._tasks:
            if self.poller is not None and self.poller.in_flight:
                logger.info(f"Waiting up to {grace:g}s for the in-flight command poll to finish")
            done, pending = await asyncio.wait(self._tasks, timeout=grace)
            for task in pending:
                logger.warning(f"{task.get_name()} did not finish within {grace:g}s, cancelling")
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks = []

        if self.client is not None:
            await self.client.aclose()
        logger.info("Agent stopped")
