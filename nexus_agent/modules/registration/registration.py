import logging
import socket
from typing import Optional

from pydantic import ValidationError

from nexus_agent import __version__
from nexus_agent.errors import AgentStartupError
from nexus_agent.modules.api.models import AgentConfig, AgentStatus, IdentityRecord, utc_now_iso
from nexus_agent.modules.client import INSTALLATIONS, ControlPlaneClient, ControlPlaneError

logger = logging.getLogger(__name__)


class RegistrationError(AgentStartupError):
    """No usable identity record for this installation."""


class RegistrationManager:
    """
    Resolves this installation's identity at startup.

    Identity records are issued by the operator through the control plane.
    The agent only claims an existing record; it never creates one.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        config: AgentConfig,
        hostname: Optional[str] = None,
        agent_version: str = __version__,
    ):
        self.client = client
        self.config = config
        self.hostname = hostname or socket.gethostname()
        self.agent_version = agent_version

    async def resolve_identity(self) -> str:
        """
        Find the identity record by secret key and mark it connected.

        Returns:
            The identity record id

        Raises:
            RegistrationError: If the lookup fails or finds no record
        """
        try:
            row = await self.client.find_by_secret(INSTALLATIONS, self.config.secret_key)
        except ControlPlaneError as e:
            raise RegistrationError(f"Identity lookup failed: {e}") from e

        if row is None:
            raise RegistrationError("No existing agent registration found for this secret key")

        try:
            record = IdentityRecord(**row)
        except ValidationError as e:
            raise RegistrationError(f"Identity record is malformed: {e}") from e

        update = {
            "hostname": self.hostname,
            "status": AgentStatus.CONNECTED.value,
            "last_heartbeat": utc_now_iso(),
            "agent_version": self.agent_version,
            "is_active": True,
        }
        try:
            await self.client.patch(INSTALLATIONS, {"agent_key": self.config.secret_key}, update)
        except ControlPlaneError as e:
            # Identity is known; the first heartbeat will refresh the record.
            logger.warning(f"Registration update failed for {self.hostname}: {e}")
        else:
            logger.info(f"Updated existing agent registration for {self.hostname}")

        return record.id
