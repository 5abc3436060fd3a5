"""Base HTTP client for the remote services the planner talks to."""

import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class BaseServiceClient:
    """Base class for async HTTP clients of the agent service and document gateway.

    Credentials are passed in ready to use; acquiring them is the caller's job.

    Usage:
        class AgentServiceClient(BaseServiceClient):
            async def get_agent(self, name: str) -> Optional[AgentDefinition]:
                async with self._get_client() as client:
                    response = await client.get(
                        f"{self.base_url}/agents/{name}",
                        headers=self._headers(),
                    )
                    ...
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service client.

        Args:
            base_url: Service base URL (e.g., https://my-project.services.ai.azure.com/api/projects/factory)
            api_key: Optional key sent as a bearer token
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={base_url}")

    def _headers(
        self,
        if_match: Optional[str] = None,
        if_none_match: Optional[str] = None,
        correlation_id: Optional[str] = None,
        extra: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Generate request headers.

        Args:
            if_match: ETag for conditional updates
            if_none_match: "*" for create-if-absent
            correlation_id: Optional correlation ID for request tracing
            extra: Additional headers

        Returns:
            Headers dict
        """
        headers = {
            "Content-Type": "application/json",
        }

        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        # Conditional request headers
        if if_match:
            headers["If-Match"] = if_match

        if if_none_match:
            headers["If-None-Match"] = if_none_match

        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        if extra:
            headers.update(extra)

        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client instance with configured timeout.

        Returns:
            Configured AsyncClient ready for use with async context manager
        """
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return httpx.AsyncClient(timeout=self.timeout)

    async def close(self):
        """Close any persistent connections.

        Override this if your client maintains a persistent httpx.AsyncClient.
        """
        pass
