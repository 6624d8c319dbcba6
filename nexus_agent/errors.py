"""Exception hierarchy shared across NEXUS Agent modules."""


class AgentError(Exception):
    """Base class for all agent errors."""


class AgentStartupError(AgentError):
    """Failure that prevents the agent from entering its control loop."""
