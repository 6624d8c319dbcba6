"""
NEXUS Agent - Host agent for the NEXUS control plane

A long-lived agent that recovers its configuration from its own binary,
registers with the control plane and executes dispatched commands.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- config: Embedded configuration recovery
- api: Shared data models
- client: Control-plane REST client
- registration: Identity resolution at startup
- scheduling: Single-flight periodic tasks
- heartbeat: Liveness reporting
- poller: Pending command retrieval
- executor: Command execution state machine
"""

__version__ = "1.0.0"
