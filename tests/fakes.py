"""In-memory test doubles for the remote collaborators."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from repair_planner.clients.agent_service_client import AgentService
from repair_planner.exceptions import AgentConflictError, AgentServiceUnavailableError
from repair_planner.infrastructure.llm.providers import (
    BasePlanningProvider,
    PlanningRequest,
    PlanningResponse,
    ProviderConfig,
)
from repair_planner.models import AgentDefinition, AgentVersionSpec


class FakeAgentService(AgentService):
    """Agent registry with etag compare-and-swap semantics.

    Every call yields to the event loop so concurrent callers interleave
    between their read and their write.
    """

    def __init__(self, unavailable_failures: int = 0):
        self.agents: Dict[str, AgentDefinition] = {}
        self.mutations: List[str] = []
        self.unavailable_failures = unavailable_failures
        self.get_calls = 0
        self.after_get: Optional[Callable[[str], None]] = None
        self._etag_counter = 0

    def _next_etag(self) -> str:
        self._etag_counter += 1
        return f'"etag-{self._etag_counter}"'

    async def _maybe_fail(self):
        await asyncio.sleep(0)
        if self.unavailable_failures > 0:
            self.unavailable_failures -= 1
            raise AgentServiceUnavailableError("agent service is down")

    def seed(self, spec: AgentVersionSpec, version: int = 1) -> AgentDefinition:
        definition = AgentDefinition(
            name=spec.name,
            version=version,
            etag=self._next_etag(),
            definition_hash=spec.prompt_template_hash,
            model_deployment_name=spec.model_deployment_name,
            instructions=spec.instructions,
        )
        self.agents[spec.name] = definition
        return definition

    async def get_agent(self, name: str) -> Optional[AgentDefinition]:
        await self._maybe_fail()
        self.get_calls += 1
        current = self.agents.get(name)
        if self.after_get is not None:
            self.after_get(name)
        await asyncio.sleep(0)
        return current

    async def create_agent(self, spec: AgentVersionSpec) -> AgentDefinition:
        await self._maybe_fail()
        if spec.name in self.agents:
            raise AgentConflictError(f"{spec.name} exists")
        self.mutations.append(f"create:{spec.name}")
        return self.seed(spec)

    async def publish_version(self, spec: AgentVersionSpec, if_match: str) -> AgentDefinition:
        await self._maybe_fail()
        current = self.agents.get(spec.name)
        if current is None or current.etag != if_match:
            raise AgentConflictError(f"{spec.name} etag mismatch")
        self.mutations.append(f"update:{spec.name}")
        return self.seed(spec, version=current.version + 1)


Scripted = Union[str, Exception, Callable[[PlanningRequest], str]]


class ScriptedPlanningProvider(BasePlanningProvider):
    """Planning provider returning scripted responses in order.

    Each entry is response text, an exception to raise, or a callable that
    receives the request. The last entry repeats once the script runs out.
    """

    def __init__(self, script: Sequence[Scripted], delay: float = 0.0):
        super().__init__(ProviderConfig(name="scripted", base_url="http://planner.test"))
        self.script = list(script)
        self.delay = delay
        self.requests: List[PlanningRequest] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def is_available(self) -> bool:
        return True

    async def invoke(self, request: PlanningRequest) -> PlanningResponse:
        index = min(len(self.requests), len(self.script) - 1)
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        content = entry(request) if callable(entry) else entry
        return PlanningResponse(content=content, provider="scripted", model=request.model_deployment)


def plan_json(
    steps: Optional[List[Dict[str, Any]]] = None, confidence: float = 0.85, **extra: Any
) -> str:
    """Serialize a planner answer in the agent's camelCase output format."""
    if steps is None:
        steps = [
            {"description": "Lock out and tag out the curing press", "estimatedMinutes": 10},
            {"description": "inspect heater elements for drift", "estimatedMinutes": 30},
            {
                "description": "replace thermocouple in platen zone 2",
                "estimatedMinutes": 45,
                "requiredParts": ["GEN-TS-K400"],
            },
        ]
    return json.dumps({"steps": steps, "confidence": confidence, **extra})


def plan_from_context(request: PlanningRequest) -> str:
    """Answer built from the candidate procedures in the request context."""
    procedures = request.input["context"]["candidateProcedures"] or ["diagnose root cause"]
    steps = [{"description": procedure, "estimatedMinutes": 20} for procedure in procedures]
    return plan_json(steps=steps, confidence=0.8)
