"""
NEXUS Agent Modules

- api: CommandRecord, IdentityRecord, AgentConfig and status enums
- config: Recovers AgentConfig from the agent binary
- client: PostgREST calls (find_by_secret, patch, list_pending)
- registration: Claims the pre-provisioned identity record at startup
- scheduling: PeriodicTask base for the heartbeat and poll loops
- heartbeat: HeartbeatScheduler
- poller: CommandPoller
- executor: CommandExecutor and the ShellRunner subprocess host

Startup failures in config and registration are AgentStartupError; the rest
raise ControlPlaneError subclasses that PeriodicTask contains.
"""
