"""
NEXUS Agent shared data models.

These models define the structure of all data passed between
the agent components and the control plane.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Enums


class CommandStatus(str, Enum):
    """Lifecycle status of a command record."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.COMPLETED, CommandStatus.FAILED)


class CommandType(str, Enum):
    """Command types this agent knows how to dispatch."""

    SHELL = "shell"
    POWERSHELL = "powershell"
    PING = "ping"
    INFO = "info"


class AgentStatus(str, Enum):
    """Liveness markers the agent writes to its identity record."""

    CONNECTED = "connected"


# Configuration


class AgentConfig(BaseModel):
    """Configuration recovered from the agent binary. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    control_plane_url: str = Field(..., min_length=1, description="Control plane base URL")
    api_key: str = Field(..., min_length=1, description="Bearer credential for the REST surface")
    deployment_id: str = Field(..., min_length=1, description="Opaque deployment grouping id")
    secret_key: str = Field(..., min_length=1, description="Per-install secret for identity lookup")

    @field_validator("control_plane_url", "api_key", "deployment_id", "secret_key")
    @classmethod
    def strip_and_require(cls, v: str) -> str:
        """Reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError("value must not be empty")
        return v

    @field_validator("control_plane_url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        """Drop trailing slashes so paths can be joined safely."""
        v = v.rstrip("/")
        if not v:
            raise ValueError("control plane URL must not be empty")
        return v


# Remote records


class IdentityRecord(BaseModel):
    """Identity record of this installation, owned by the control plane."""

    model_config = ConfigDict(extra="ignore")

    id: str
    hostname: Optional[str] = None
    status: Optional[str] = None
    last_heartbeat: Optional[str] = None
    agent_version: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v


class CommandRecord(BaseModel):
    """Unit of remote-dispatched work."""

    model_config = ConfigDict(extra="ignore")

    id: str
    agent_id: Optional[str] = None
    command_type: str = ""
    script: Optional[str] = Field(None, description="Opaque payload handed to the executor")
    status: str = CommandStatus.PENDING.value
    output: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @field_validator("id", "agent_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("command_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return (v or "").strip()

    @property
    def known_type(self) -> Optional[CommandType]:
        """The recognized command type, or None for unrecognized values."""
        try:
            return CommandType(self.command_type.lower())
        except ValueError:
            return None

    @property
    def payload(self) -> str:
        return self.script or ""


class ExecutionResult(BaseModel):
    """Outcome of one dispatched command."""

    output: str = ""
    error: str = ""

    @property
    def status(self) -> CommandStatus:
        """Completed when no error text was produced, failed otherwise."""
        return CommandStatus.FAILED if self.error else CommandStatus.COMPLETED


def utc_now_iso() -> str:
    """Current UTC time in ISO-8601, as written to remote records."""
    return datetime.now(UTC).isoformat()
