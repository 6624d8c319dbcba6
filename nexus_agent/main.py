#!/usr/bin/env python3
"""
NEXUS Agent - Main Entry Point

This is the thin orchestration layer that:
1. Loads runtime settings
2. Configures logging
3. Runs the lifecycle supervisor until a stop signal

All business logic is in the modules, following black box principles.
"""

import asyncio
import logging
import signal
import sys
from dataclasses import replace
from typing import Optional

import click

from nexus_agent import __version__
from nexus_agent.config.provider import EnvConfigProvider, SettingsProvider
from nexus_agent.errors import AgentStartupError
from nexus_agent.logging_config import configure_logging
from nexus_agent.supervisor import AgentSupervisor

logger = logging.getLogger(__name__)


async def run_agent(supervisor: AgentSupervisor) -> None:
    """Run the supervisor with SIGINT/SIGTERM wired to a clean stop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, supervisor.stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; KeyboardInterrupt still applies
            pass
    await supervisor.run()


@click.command()
@click.option("--binary", "binary", type=click.Path(dir_okay=False), default=None,
              help="Read the embedded configuration from this file instead of the running executable.")
@click.option("--log-file", "log_file", default=None, help="Log file path.")
@click.option("--log-level", "log_level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--console/--no-console", "console", default=None,
              help="Echo log output to stdout (default: when interactive).")
@click.version_option(__version__, prog_name="nexus-agent")
def main(binary: Optional[str], log_file: Optional[str], log_level: Optional[str], console: Optional[bool]):
    """Run the NEXUS host agent in the foreground."""
    try:
        settings_provider: SettingsProvider = EnvConfigProvider()
        settings = settings_provider.get_agent_settings()
    except (ValueError, OSError) as e:
        click.echo(f"ERROR: Invalid agent settings: {e}", err=True)
        sys.exit(2)

    overrides = {}
    if binary:
        overrides["agent_binary"] = binary
    if log_file:
        overrides["log_file"] = log_file
    if log_level:
        overrides["log_level"] = log_level.upper()
    settings = replace(settings, **overrides)

    configure_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        max_bytes=settings.log_max_bytes,
        console=console,
    )

    supervisor = AgentSupervisor(settings)
    try:
        asyncio.run(run_agent(supervisor))
    except AgentStartupError as e:
        logger.error(f"Agent cannot start: {e}")
        click.echo(f"ERROR: {e}. Agent cannot start.", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Agent stopped by user")


if __name__ == "__main__":
    main()
