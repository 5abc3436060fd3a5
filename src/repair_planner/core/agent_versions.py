"""Agent Version Manager

Keeps the planning agent registered with the agent service in line with the
locally declared AgentVersionSpec:

- absent            -> create (create-if-absent)
- present, matching -> no-op
- present, stale    -> publish a new version, repoint the alias (If-Match)

Several processes may run this at the same time. The service's conditional
writes guarantee that at most one of them mutates the definition; a caller
that loses the race re-reads and confirms the winner left the expected
state behind.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from repair_planner.clients.agent_service_client import AgentService
from repair_planner.exceptions import (
    AgentConflictError,
    AgentProvisioningError,
    AgentServiceError,
    AgentServiceUnavailableError,
)
from repair_planner.models import AgentDefinition, AgentVersionSpec, EnsureOutcome
from repair_planner.utils import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AgentVersionManager:
    """Idempotent, race-safe synchronization of the remote agent definition"""

    def __init__(
        self,
        agent_service: AgentService,
        max_attempts: int = 3,
        call_timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Args:
            agent_service: Remote agent registry
            max_attempts: Read/compare/write rounds before giving up on a mismatch
            call_timeout: Timeout for each remote call (seconds)
            retry_policy: Backoff for an unavailable agent service
        """
        self.agent_service = agent_service
        self.max_attempts = max_attempts
        self.call_timeout = call_timeout
        self.retry_policy = retry_policy or RetryPolicy()

    async def _call(self, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one remote call with timeout and unavailability retries."""
        async for attempt in self.retry_policy.async_retrying((AgentServiceUnavailableError,)):
            with attempt:
                try:
                    return await asyncio.wait_for(operation(*args), timeout=self.call_timeout)
                except asyncio.TimeoutError:
                    raise AgentServiceUnavailableError(
                        f"{operation.__name__} timed out after {self.call_timeout}s"
                    )
        raise AssertionError("unreachable")  # pragma: no cover

    async def ensure_agent_version(self, spec: AgentVersionSpec) -> EnsureOutcome:
        """
        Make the remote agent definition match the given AgentVersionSpec.

        Returns:
            EnsureOutcome.CREATED / UPDATED if this call performed the write,
            UNCHANGED if the remote definition already matched (including the
            case where a concurrent caller performed the write)

        Raises:
            AgentProvisioningError: If the service stays unavailable or the
                definition still does not match after max_attempts rounds
        """
        try:
            return await self._reconcile(spec)
        except AgentProvisioningError:
            raise
        except AgentServiceUnavailableError as e:
            raise AgentProvisioningError(
                f"Agent service unavailable while ensuring {spec.name}: {e}",
                context={"agent_name": spec.name},
            )
        except AgentServiceError as e:
            raise AgentProvisioningError(
                f"Agent service rejected definition for {spec.name}: {e}",
                context={"agent_name": spec.name},
            )

    async def _reconcile(self, spec: AgentVersionSpec) -> EnsureOutcome:
        last_seen: Optional[AgentDefinition] = None

        for attempt in range(1, self.max_attempts + 1):
            current = await self._call(self.agent_service.get_agent, spec.name)
            last_seen = current

            if current is not None and current.matches(spec):
                logger.info(
                    f"Agent {spec.name} already at version {current.version} "
                    f"(hash={spec.prompt_template_hash[:12]})"
                )
                return EnsureOutcome.UNCHANGED

            try:
                if current is None:
                    logger.info(f"Agent {spec.name} not found; creating")
                    written = await self._call(self.agent_service.create_agent, spec)
                    outcome = EnsureOutcome.CREATED
                else:
                    if not current.etag:
                        raise AgentProvisioningError(
                            f"Agent service returned no etag for {spec.name}; "
                            f"refusing unconditional update",
                            context={"agent_name": spec.name},
                        )
                    logger.info(
                        f"Agent {spec.name} version {current.version} is stale "
                        f"(hash={current.definition_hash[:12]}); publishing new version"
                    )
                    written = await self._call(
                        self.agent_service.publish_version, spec, current.etag
                    )
                    outcome = EnsureOutcome.UPDATED
            except AgentConflictError:
                logger.info(
                    f"Concurrent write to agent {spec.name} detected "
                    f"(attempt {attempt}/{self.max_attempts}); re-reading"
                )
                continue

            if written.matches(spec):
                logger.info(f"Agent {spec.name} {outcome.value} at version {written.version}")
                return outcome

        raise AgentProvisioningError(
            f"Agent {spec.name} does not match the declared definition after "
            f"{self.max_attempts} attempts",
            context={
                "agent_name": spec.name,
                "expected_hash": spec.prompt_template_hash,
                "remote_hash": last_seen.definition_hash if last_seen else None,
            },
        )
