import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError

from nexus_agent.modules.api.models import CommandRecord, CommandStatus, ExecutionResult
from nexus_agent.modules.client import COMMANDS, ControlPlaneClient, ControlPlaneDecodeError
from nexus_agent.modules.executor import CommandExecutor
from nexus_agent.modules.scheduling import PeriodicTask

logger = logging.getLogger(__name__)


class CommandPoller(PeriodicTask):
    """
    Retrieves this agent's pending commands and executes them in order.

    Commands of one page run strictly one after another in the order the
    control plane returned them (oldest first).
    """

    name = "command-poll"

    def __init__(
        self,
        client: ControlPlaneClient,
        executor: CommandExecutor,
        agent_id: str,
        interval: float = 10.0,
        page_size: int = 10,
        stop_event: Optional[asyncio.Event] = None,
    ):
        super().__init__(interval, stop_event)
        if not agent_id:
            raise ValueError("agent_id is required")
        self.client = client
        self.executor = executor
        self.agent_id = agent_id
        self.page_size = page_size

    async def fetch_pending(self) -> List[CommandRecord]:
        """
        Fetch one page of pending commands for this agent.

        The whole page is rejected if any record fails to parse.

        Raises:
            ControlPlaneError: On transport, status or decode failure
        """
        rows = await self.client.list_pending(
            COMMANDS, {"agent_id": self.agent_id}, limit=self.page_size
        )
        try:
            return [CommandRecord(**row) for row in rows]
        except ValidationError as e:
            raise ControlPlaneDecodeError(f"Invalid command record in pending page: {e}") from e

    async def poll_once(self) -> List[ExecutionResult]:
        """
        Run one poll cycle.

        Returns:
            Results of the commands executed this cycle, in order

        Raises:
            ControlPlaneError: If listing fails or a command cannot be claimed;
                commands after an unclaimable one are left for the next cycle
        """
        commands = await self.fetch_pending()
        if not commands:
            return []

        logger.info(f"Found {len(commands)} pending command(s)")
        results = []
        for command in commands:
            if command.status != CommandStatus.PENDING.value:
                logger.debug(f"Skipping command {command.id} with status {command.status}")
                continue
            results.append(await self.executor.execute(command))
        return results

    async def tick(self) -> None:
        await self.poll_once()
