import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from nexus_agent.errors import AgentError
from nexus_agent.modules.api.models import AgentConfig

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


class ControlPlaneError(AgentError):
    """Any failure talking to the control plane."""


class ControlPlaneTransportError(ControlPlaneError):
    """The request never produced a response (connect, timeout, protocol)."""


class ControlPlaneHTTPError(ControlPlaneError):
    """The control plane answered with a non-2xx status."""

    def __init__(self, method: str, path: str, status_code: int, body: str = ""):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {path} returned {status_code}: {body[:200]}")


class ControlPlaneDecodeError(ControlPlaneError):
    """The response body was not the JSON shape expected."""


def eq_filters(filters: Dict[str, Any]) -> Dict[str, str]:
    """Render equality filters as PostgREST query parameters."""
    params = {}
    for column, value in filters.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        params[column] = f"eq.{value}"
    return params


class ControlPlaneClient:
    """
    Typed verbs over the control plane's REST resources.

    One HTTP client is built at construction with the credential headers;
    it is read-only for the lifetime of the agent. No verb retries: callers
    own retry and backoff policy.
    """

    def __init__(
        self,
        config: AgentConfig,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Agent configuration with URL and credentials
            timeout: Per-request timeout in seconds
            transport: Optional transport override (tests)
        """
        self.config = config
        headers = {
            "apikey": config.api_key,
            "Authorization": f"Bearer {config.api_key}",
            "x-agent-key": config.secret_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._http = httpx.AsyncClient(
            base_url=f"{config.control_plane_url}{REST_PREFIX}",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ControlPlaneClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        resource: str,
        params: Dict[str, Any],
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        path = f"/{resource}"
        try:
            response = await self._http.request(
                method, path, params=params, json=json_body, headers=headers
            )
        except httpx.HTTPError as e:
            raise ControlPlaneTransportError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise ControlPlaneHTTPError(method, path, response.status_code, response.text)
        return response

    @staticmethod
    def _decode_rows(response: httpx.Response) -> List[Dict[str, Any]]:
        try:
            rows = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ControlPlaneDecodeError(f"Response is not valid JSON: {e}") from e
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ControlPlaneDecodeError(f"Expected a JSON array of objects, got {type(rows).__name__}")
        return rows

    async def find_by_secret(
        self, resource: str, secret_key: str, select: str = "id"
    ) -> Optional[Dict[str, Any]]:
        """
        Look up the single record owning ``secret_key``.

        Args:
            resource: Table name
            secret_key: Per-install secret
            select: Columns to return

        Returns:
            The record, or None when the result is empty
        """
        params = {**eq_filters({"agent_key": secret_key}), "select": select, "limit": "1"}
        response = await self._request("GET", resource, params)
        rows = self._decode_rows(response)
        return rows[0] if rows else None

    async def patch(self, resource: str, filters: Dict[str, Any], fields: Dict[str, Any]) -> None:
        """
        Partially update the records matching ``filters``.

        Only the columns in ``fields`` are sent; everything else is left untouched.

        Raises:
            ControlPlaneError: On transport failure or non-2xx status
        """
        if not filters:
            raise ValueError("patch requires at least one filter")
        await self._request(
            "PATCH",
            resource,
            eq_filters(filters),
            json_body=fields,
            headers={"Prefer": "return=minimal"},
        )

    async def list_pending(
        self, resource: str, identity_filter: Dict[str, Any], limit: int
    ) -> List[Dict[str, Any]]:
        """
        List pending records for an identity, oldest first.

        Args:
            resource: Table name
            identity_filter: Equality filters scoping the records to one agent
            limit: Page size

        Returns:
            Records ordered by creation time ascending
        """
        params = {
            **eq_filters(identity_filter),
            "status": "eq.pending",
            "order": "created_at.asc",
            "limit": str(limit),
            "select": "*",
        }
        response = await self._request("GET", resource, params)
        return self._decode_rows(response)
