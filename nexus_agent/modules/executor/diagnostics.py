"""In-process diagnostic commands (no subprocess)."""

import json
import os
import platform
import socket
from typing import Any, Dict

from nexus_agent import __version__
from nexus_agent.modules.api.models import AgentConfig, utc_now_iso


def ping() -> str:
    """Liveness echo."""
    return f"pong {utc_now_iso()}"


def _uptime() -> str:
    try:
        with open("/proc/uptime") as f:
            secs = int(float(f.read().split()[0]))
    except (OSError, ValueError, IndexError):
        return ""
    h, rem = divmod(secs, 3600)
    m, _ = divmod(rem, 60)
    return f"{h}h{m}m"


def host_info(config: AgentConfig) -> Dict[str, Any]:
    """Collect basic host facts."""
    info: Dict[str, Any] = {
        "hostname": socket.gethostname(),
        "os": platform.system(),
        "os_release": platform.release(),
        "platform": platform.platform(),
        "machine": platform.machine(),
        "python": platform.python_version(),
        "cpu_count": os.cpu_count(),
        "agent_version": __version__,
        "deployment_id": config.deployment_id,
        "timestamp": utc_now_iso(),
    }

    uptime = _uptime()
    if uptime:
        info["uptime"] = uptime

    if hasattr(os, "getloadavg"):
        try:
            info["load_avg"] = round(os.getloadavg()[0], 2)
        except OSError:
            pass

    return info


def host_info_text(config: AgentConfig) -> str:
    return json.dumps(host_info(config), indent=2)
