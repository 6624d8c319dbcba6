"""
Command executor - drives one command record through its state machine.

    pending -> running -> completed | failed

``running`` is claimed before anything is dispatched so another poller sees
the record as taken. Exactly one terminal status is reported for every
dispatched command. Nothing here retries: a failed command is resubmitted
by the control plane as a new record.
"""

import logging
from typing import Optional

from nexus_agent.modules.api.models import (
    AgentConfig,
    CommandRecord,
    CommandStatus,
    CommandType,
    ExecutionResult,
    utc_now_iso,
)
from nexus_agent.modules.client import COMMANDS, ControlPlaneClient, ControlPlaneError
from nexus_agent.modules.executor import diagnostics
from nexus_agent.modules.executor.shell import ShellResult, ShellRunner

logger = logging.getLogger(__name__)

SCRIPT_TYPES = (CommandType.SHELL, CommandType.POWERSHELL)


class CommandClaimError(ControlPlaneError):
    """The pending -> running transition could not be recorded."""

    def __init__(self, command_id: str, cause: ControlPlaneError):
        self.command_id = command_id
        super().__init__(f"Could not claim command {command_id}: {cause}")


def shell_to_execution_result(result: ShellResult) -> ExecutionResult:
    """
    Map a subprocess result onto output/error text.

    On success stderr is kept as part of the output; on failure it becomes
    the error, or ``exit code N`` when the process wrote nothing to stderr.
    """
    if result.timed_out:
        return ExecutionResult(output=result.stdout, error=result.stderr)

    if result.success:
        output = result.stdout
        if result.stderr:
            output = f"{output}\n{result.stderr}" if output else result.stderr
        return ExecutionResult(output=output, error="")

    error = result.stderr.strip() or f"exit code {result.returncode}"
    return ExecutionResult(output=result.stdout, error=error)


class CommandExecutor:
    """Claims, runs and reports command records."""

    def __init__(
        self,
        client: ControlPlaneClient,
        config: AgentConfig,
        runner: Optional[ShellRunner] = None,
    ):
        """
        Initialize the executor.

        Args:
            client: Control plane client used for status transitions
            config: Agent configuration (reported by ``info``)
            runner: Shell host for script commands
        """
        self.client = client
        self.config = config
        self.runner = runner or ShellRunner()

    async def execute(self, command: CommandRecord) -> ExecutionResult:
        """
        Execute a pending command end to end.

        Returns:
            The execution result that was reported

        Raises:
            CommandClaimError: If the record could not be marked running;
                nothing is dispatched in that case
        """
        logger.info(f"Executing command {command.id} ({command.command_type or 'untyped'})")

        await self._claim(command)
        result = await self.dispatch(command)
        await self._report(command, result)

        if result.status == CommandStatus.COMPLETED:
            logger.info(f"Command completed: {command.id}")
        else:
            logger.warning(f"Command failed: {command.id}: {result.error[:200]}")
        return result

    async def dispatch(self, command: CommandRecord) -> ExecutionResult:
        """Run the command payload. Never raises; failures become error text."""
        kind = command.known_type
        if kind is None:
            return ExecutionResult(error=f"Unsupported command type: {command.command_type!r}")

        try:
            if kind in SCRIPT_TYPES:
                if not command.payload.strip():
                    return ExecutionResult(error="Command script is empty")
                shell_result = await self.runner.run_script(kind, command.payload)
                return shell_to_execution_result(shell_result)

            if kind == CommandType.PING:
                return ExecutionResult(output=diagnostics.ping())

            if kind == CommandType.INFO:
                return ExecutionResult(output=diagnostics.host_info_text(self.config))
        except Exception as e:
            logger.exception(f"Command {command.id} raised during execution")
            return ExecutionResult(error=f"{type(e).__name__}: {e}")

        return ExecutionResult(error=f"Unsupported command type: {command.command_type!r}")

    async def _claim(self, command: CommandRecord) -> None:
        try:
            await self.client.patch(
                COMMANDS,
                {"id": command.id},
                {
                    "status": CommandStatus.RUNNING.value,
                    "started_at": utc_now_iso(),
                    "output": "",
                    "error": "",
                },
            )
        except ControlPlaneError as e:
            raise CommandClaimError(command.id, e) from e

    async def _report(self, command: CommandRecord, result: ExecutionResult) -> None:
        try:
            await self.client.patch(
                COMMANDS,
                {"id": command.id},
                {
                    "status": result.status.value,
                    "completed_at": utc_now_iso(),
                    "output": result.output,
                    "error": result.error,
                },
            )
        except ControlPlaneError as e:
            logger.error(f"Error updating command status for {command.id}: {e}")
