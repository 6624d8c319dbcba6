"""
Poller Module - Black Box Interface

Purpose: Retrieve pending commands for this agent and hand them to the executor
Interface: CommandPoller.run(), poll_once()
Hidden: Query filters, page parsing, ordering guarantees
"""

from .poller import CommandPoller

__all__ = ["CommandPoller"]
