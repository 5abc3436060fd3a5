"""Agent service client.

The agent service stores named prompt agents. Each agent has numbered
versions and an active alias pointing at one of them. Writes are
conditional:

- create uses If-None-Match: * (fails with 409 if the name exists)
- publishing a version and repointing the active alias both use
  If-Match: <etag> (fails with 412 if someone else moved it first)

A body that is not the expected JSON object raises AgentServiceError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from repair_planner.clients.base import BaseServiceClient
from repair_planner.exceptions import (
    AgentConflictError,
    AgentServiceError,
    AgentServiceUnavailableError,
)
from repair_planner.models import AgentDefinition, AgentVersionSpec

logger = logging.getLogger(__name__)


class AgentService(ABC):
    """Contract of the remote agent definition registry"""

    @abstractmethod
    async def get_agent(self, name: str) -> Optional[AgentDefinition]:
        """Return the active definition, or None if no agent has that name."""
        pass

    @abstractmethod
    async def create_agent(self, spec: AgentVersionSpec) -> AgentDefinition:
        """Create the agent if absent.

        Raises:
            AgentConflictError: If an agent with that name already exists
        """
        pass

    @abstractmethod
    async def publish_version(self, spec: AgentVersionSpec, if_match: str) -> AgentDefinition:
        """Publish a new version and point the active alias at it.

        Raises:
            AgentConflictError: If the agent's etag no longer equals if_match
        """
        pass


def _definition_body(spec: AgentVersionSpec) -> Dict[str, Any]:
    return {
        "definition": {
            "kind": "prompt",
            "model": spec.model_deployment_name,
            "instructions": spec.instructions,
        },
        "metadata": {"definitionHash": spec.prompt_template_hash},
    }


def _json_object(response: httpx.Response, operation: str) -> Dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    try:
        payload = response.json()
    except ValueError as e:
        raise AgentServiceError(f"{operation}: response body is not JSON: {e}")
    if not isinstance(payload, dict):
        raise AgentServiceError(f"{operation}: expected a JSON object, got {type(payload).__name__}")
    return payload


def _parse_version(payload: Dict[str, Any], operation: str) -> int:
    try:
        version = int(payload["version"])
    except (KeyError, TypeError, ValueError) as e:
        raise AgentServiceError(f"{operation}: response has no usable version number: {e}")
    if version < 1:
        raise AgentServiceError(f"{operation}: invalid version number {version}")
    return version


def _parse_agent(response: httpx.Response, operation: str) -> AgentDefinition:
    payload = _json_object(response, operation)
    definition = payload.get("definition") or {}
    metadata = payload.get("metadata") or {}
    try:
        return AgentDefinition(
            name=payload["name"],
            version=int(payload.get("activeVersion") or payload.get("version") or 1),
            etag=response.headers.get("ETag") or payload.get("etag"),
            definition_hash=metadata.get("definitionHash", ""),
            model_deployment_name=definition.get("model", ""),
            instructions=definition.get("instructions", ""),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise AgentServiceError(f"{operation}: malformed agent definition: {e}")


class AgentServiceClient(BaseServiceClient, AgentService):
    """Async HTTP client for the agent definition registry.

    Usage:
        client = AgentServiceClient(base_url="https://factory.services.ai.azure.com/api/projects/p1")
        agent = await client.get_agent("RepairPlannerAgent")
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        api_version: str = "2025-05-01",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, api_key=api_key, timeout=timeout, transport=transport)
        self.api_version = api_version

    def _params(self) -> Dict[str, str]:
        return {"api-version": self.api_version}

    def _check_response(self, response: httpx.Response, operation: str) -> None:
        if response.status_code in (409, 412):
            raise AgentConflictError(f"{operation}: precondition failed ({response.status_code})")
        if response.status_code == 429 or response.status_code >= 500:
            raise AgentServiceUnavailableError(
                f"{operation}: agent service returned {response.status_code}"
            )
        if response.status_code >= 400:
            raise AgentServiceError(
                f"{operation}: agent service returned {response.status_code}: {response.text}"
            )

    async def get_agent(self, name: str) -> Optional[AgentDefinition]:
        try:
            async with self._get_client() as client:
                response = await client.get(
                    f"{self.base_url}/agents/{name}",
                    params=self._params(),
                    headers=self._headers(),
                )
        except httpx.TransportError as e:
            raise AgentServiceUnavailableError(f"get_agent({name}): {e}")

        if response.status_code == 404:
            return None
        self._check_response(response, f"get_agent({name})")
        return _parse_agent(response, f"get_agent({name})")

    async def create_agent(self, spec: AgentVersionSpec) -> AgentDefinition:
        body = {"name": spec.name, **_definition_body(spec)}
        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/agents",
                    params=self._params(),
                    json=body,
                    headers=self._headers(if_none_match="*"),
                )
        except httpx.TransportError as e:
            raise AgentServiceUnavailableError(f"create_agent({spec.name}): {e}")

        self._check_response(response, f"create_agent({spec.name})")
        logger.info(f"Created agent {spec.name}")
        return _parse_agent(response, f"create_agent({spec.name})")

    async def publish_version(self, spec: AgentVersionSpec, if_match: str) -> AgentDefinition:
        try:
            async with self._get_client() as client:
                # The same etag guards the version and the alias write, so a
                # caller that lost the race leaves no orphan version behind
                version_response = await client.post(
                    f"{self.base_url}/agents/{spec.name}/versions",
                    params=self._params(),
                    json=_definition_body(spec),
                    headers=self._headers(if_match=if_match),
                )
                self._check_response(version_response, f"publish_version({spec.name})")
                new_version = _parse_version(
                    _json_object(version_response, f"publish_version({spec.name})"),
                    f"publish_version({spec.name})",
                )

                alias_response = await client.patch(
                    f"{self.base_url}/agents/{spec.name}",
                    params=self._params(),
                    json={"activeVersion": new_version},
                    headers=self._headers(if_match=if_match),
                )
        except httpx.TransportError as e:
            raise AgentServiceUnavailableError(f"publish_version({spec.name}): {e}")

        self._check_response(alias_response, f"activate_version({spec.name}, {new_version})")
        logger.info(f"Published agent {spec.name} version {new_version}")
        return _parse_agent(alias_response, f"activate_version({spec.name}, {new_version})")
