"""
Heartbeat Module - Black Box Interface

Purpose: Periodic liveness reporting to the control plane
Interface: HeartbeatScheduler.run(), run_once()
Hidden: Heartbeat payload, schedule handling

A failed heartbeat is logged and the next one still fires.
"""

from .heartbeat import HeartbeatScheduler

__all__ = ["HeartbeatScheduler"]
