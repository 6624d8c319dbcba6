"""Runtime settings provider following Black Box Design principles."""
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import yaml
from dotenv import load_dotenv

DEFAULT_LOG_FILE = "/var/log/nexus-agent/agent.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024

ENV_PREFIX = "NEXUS_"


@dataclass(frozen=True)
class AgentSettings:
    """Tunables for the control loop. Credentials never live here."""
    heartbeat_interval: float = 30.0
    poll_interval: float = 10.0
    poll_page_size: int = 10
    command_timeout: float = 300.0
    http_timeout: float = 30.0
    shutdown_grace: float = 30.0
    shell: str = "/bin/sh"
    log_file: Optional[str] = DEFAULT_LOG_FILE
    log_max_bytes: int = DEFAULT_LOG_MAX_BYTES
    log_level: str = "INFO"
    agent_binary: Optional[str] = None

    def __post_init__(self):
        for name in ("heartbeat_interval", "poll_interval", "command_timeout", "http_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.poll_page_size < 1:
            raise ValueError("poll_page_size must be at least 1")
        if self.shutdown_grace < 0:
            raise ValueError("shutdown_grace must not be negative")


class SettingsProvider(Protocol):
    """Protocol for settings providers."""

    def get_agent_settings(self) -> AgentSettings:
        """Get agent runtime settings."""
        ...


def _coerce(name: str, raw: Any, default: Any) -> Any:
    """Convert a raw env/YAML value to the type of the field default."""
    if raw is None:
        return None
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be an integer, got {raw!r}")
    if isinstance(default, float):
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be a number, got {raw!r}")
    return str(raw)


class EnvConfigProvider:
    """Environment-based settings provider with an optional YAML overlay."""

    def __init__(self, env_file: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        if environ is None:
            load_dotenv(env_file)
            environ = dict(os.environ)
        self._environ = environ

    def _load_settings_file(self) -> Dict[str, Any]:
        """Read the YAML file named by NEXUS_SETTINGS_FILE, if any."""
        path = self._environ.get(f"{ENV_PREFIX}SETTINGS_FILE")
        if not path:
            return {}
        with open(Path(path), "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        return data

    def get_agent_settings(self) -> AgentSettings:
        """Get agent settings: defaults, then the YAML file, then environment."""
        file_values = self._load_settings_file()
        values: Dict[str, Any] = {}

        for f in fields(AgentSettings):
            default = f.default
            # `None` defaults are plain strings when set
            sample = default if default is not None else ""
            if f.name in file_values:
                values[f.name] = _coerce(f.name, file_values[f.name], sample)
            env_value = self._environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if env_value not in (None, ""):
                values[f.name] = _coerce(f.name, env_value, sample)

        return AgentSettings(**values)
