"""
Shell host for script commands.

Runs a payload under an external interpreter, drains stdout and stderr
concurrently and enforces a hard timeout.
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import List, Optional, Sequence

from nexus_agent.modules.api.models import CommandType

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 1024 * 1024
TRUNCATION_MARKER = "\n... [output truncated]"
READ_CHUNK = 64 * 1024


@dataclass
class ShellResult:
    """Captured result of one subprocess run."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def _truncate(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _decode(data: bytes) -> str:
    return _truncate(data.decode(errors="replace")) if data else ""


async def _drain(stream: asyncio.StreamReader, sink: bytearray) -> None:
    """Copy a pipe into ``sink`` until EOF. Whatever was read survives cancellation."""
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


class ShellRunner:
    """Executes scripts in an external shell with a bounded runtime."""

    def __init__(
        self,
        shell: str = "/bin/sh",
        powershell: str = "pwsh",
        timeout: float = 300.0,
        kill_grace: float = 5.0,
    ):
        """
        Initialize the runner.

        Args:
            shell: POSIX shell used for ``shell`` commands
            powershell: PowerShell executable used for ``powershell`` commands
            timeout: Seconds before a running script is killed
            kill_grace: Seconds to wait for a killed script to be reaped
        """
        self.shell = shell
        self.powershell = powershell
        self.timeout = timeout
        self.kill_grace = kill_grace

    def argv_for(self, command_type: CommandType, script: str) -> List[str]:
        """Build the interpreter command line for a script."""
        if command_type == CommandType.POWERSHELL:
            return [self.powershell, "-NoProfile", "-NonInteractive", "-Command", script]
        if command_type == CommandType.SHELL:
            return [self.shell, "-c", script]
        raise ValueError(f"{command_type.value} is not a script command type")

    async def run_script(self, command_type: CommandType, script: str) -> ShellResult:
        return await self.run(self.argv_for(command_type, script))

    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> ShellResult:
        """
        Run ``argv`` and capture its output.

        Args:
            argv: Program and arguments
            timeout: Override for the runner timeout

        Returns:
            ShellResult; spawn failures are reported as return code 127

        Raises:
            asyncio.CancelledError: After the process group has been killed
        """
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"Running: {argv[0]} ({len(argv) - 1} args)")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            logger.error(f"Failed to start {argv[0]}: {e}")
            return ShellResult(returncode=127, stderr=f"Failed to start {argv[0]}: {e}")

        stdout, stderr = bytearray(), bytearray()
        reading = asyncio.gather(
            _drain(proc.stdout, stdout),
            _drain(proc.stderr, stderr),
            proc.wait(),
        )
        try:
            await asyncio.wait_for(reading, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Command timed out after {timeout:g}s, killing pid {proc.pid}")
            await self._terminate(proc)
            return ShellResult(
                returncode=proc.returncode if proc.returncode is not None else -1,
                stdout=_decode(stdout),
                stderr=f"Command timed out after {timeout:g} seconds",
                timed_out=True,
            )
        except asyncio.CancelledError:
            logger.warning(f"Command cancelled, killing pid {proc.pid}")
            await self._terminate(proc)
            raise

        return ShellResult(
            returncode=proc.returncode or 0,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Kill the process group and reap it, waiting at most ``kill_grace`` seconds."""
        self._kill(proc)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            logger.warning(f"pid {proc.pid} still holds its pipes after kill, abandoning them")
        # Descendants outside the process group may keep the pipes open
        transport = getattr(proc, "_transport", None)
        if transport is not None:
            transport.close()

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        """Kill the process and, on POSIX, every process in its session."""
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
