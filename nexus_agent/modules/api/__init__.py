"""
API Module - Black Box Interface

Purpose: Shared data models for the agent and the control plane records
Interface: AgentConfig, IdentityRecord, CommandRecord, ExecutionResult
Hidden: Field coercion and validation rules

Every other module exchanges data through these models only.
"""

from .models import (
    AgentConfig,
    AgentStatus,
    CommandRecord,
    CommandStatus,
    CommandType,
    ExecutionResult,
    IdentityRecord,
    utc_now_iso,
)

__all__ = [
    "AgentConfig",
    "AgentStatus",
    "CommandRecord",
    "CommandStatus",
    "CommandType",
    "ExecutionResult",
    "IdentityRecord",
    "utc_now_iso",
]
