"""
Client Module - Black Box Interface

Purpose: Typed access to the control plane's REST resources
Interface: find_by_secret(), patch(), list_pending()
Hidden: URL layout, filter syntax, credential headers, response decoding

Can be replaced with a different backend (gRPC, message bus) keeping the same verbs.
"""

from .client import (
    ControlPlaneClient,
    ControlPlaneDecodeError,
    ControlPlaneError,
    ControlPlaneHTTPError,
    ControlPlaneTransportError,
)

# Remote tables
INSTALLATIONS = "agent_installations"
COMMANDS = "agent_commands"

__all__ = [
    "COMMANDS",
    "INSTALLATIONS",
    "ControlPlaneClient",
    "ControlPlaneDecodeError",
    "ControlPlaneError",
    "ControlPlaneHTTPError",
    "ControlPlaneTransportError",
]
