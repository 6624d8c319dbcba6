"""
Executor Module - Black Box Interface

Purpose: Run dispatched commands and report their outcome
Interface: CommandExecutor.execute(command) -> ExecutionResult
Hidden: Status transitions, shell invocation, timeouts, diagnostics

Can be replaced with different execution mechanisms (containers, remote runners).
"""

from .executor import CommandClaimError, CommandExecutor, shell_to_execution_result
from .shell import ShellResult, ShellRunner

__all__ = [
    "CommandClaimError",
    "CommandExecutor",
    "ShellResult",
    "ShellRunner",
    "shell_to_execution_result",
]
