"""Plan Generator

Asks the planning agent for a repair plan and turns its answer into a
validated RepairPlan. Generative output is untrusted:

- transport failures and timeouts are retried with backoff, then surface as
  PlanGenerationError
- output that does not parse or validate gets one corrective re-prompt; a
  second failure surfaces as PlanValidationError

Nothing returned from here has skipped RepairPlan validation.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from repair_planner.core.prompts import build_corrective_prompt
from repair_planner.exceptions import (
    PlanGenerationError,
    PlanningTransportError,
    PlanValidationError,
)
from repair_planner.infrastructure.llm.providers import (
    BasePlanningProvider,
    PlanningRequest,
    PlanningResponse,
)
from repair_planner.models import DiagnosedFault, RepairContext, RepairPlan
from repair_planner.utils import RetryPolicy

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def build_planning_request(
    agent_name: str,
    model_deployment: str,
    fault: DiagnosedFault,
    context: RepairContext,
    feedback: Optional[Sequence[str]] = None,
) -> PlanningRequest:
    """Embed the fault and its repair context in the agent's input schema."""
    return PlanningRequest(
        agent_name=agent_name,
        model_deployment=model_deployment,
        input={
            "fault": fault.model_dump(mode="json", by_alias=True, exclude_none=True),
            "context": context.model_dump(mode="json", by_alias=True),
        },
        response_schema=RepairPlan.response_schema(),
        feedback=list(feedback or []),
    )


def _describe_validation_error(error: ValidationError) -> List[str]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "plan"
        problems.append(f"{location}: {item.get('msg')}")
    return problems


def _load_json_object(content: str) -> Optional[Dict[str, Any]]:
    """Find the first JSON object in free text (bare, fenced or embedded)."""
    text = content.strip()
    candidates = [text]
    candidates.extend(match.strip() for match in _FENCED_JSON.findall(text))
    embedded = _JSON_OBJECT.search(text)
    if embedded:
        candidates.append(embedded.group())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_plan_response(content: str) -> RepairPlan:
    """
    Parse and validate raw planner output.

    Args:
        content: Raw text returned by the planning service

    Returns:
        Validated RepairPlan

    Raises:
        PlanValidationError: If no JSON object is found or it is not a valid plan
    """
    data = _load_json_object(content or "")
    if data is None:
        raise PlanValidationError(
            "Planner response is not a JSON object",
            context={"errors": ["response: not a JSON object"]},
            raw_response=content,
        )

    # Some agents wrap the plan: {"plan": {...}}
    if "steps" not in data and isinstance(data.get("plan"), dict):
        data = data["plan"]

    try:
        return RepairPlan.model_validate(data)
    except ValidationError as e:
        problems = _describe_validation_error(e)
        raise PlanValidationError(
            f"Planner response failed validation: {'; '.join(problems)}",
            context={"errors": problems},
            raw_response=content,
        )


class PlanGenerator:
    """Generates validated repair plans through the planning agent"""

    def __init__(
        self,
        provider: BasePlanningProvider,
        agent_name: str,
        model_deployment: str,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        corrective_retries: int = 1,
    ):
        """
        Args:
            provider: Planning service transport
            agent_name: Name of the ensured planning agent
            model_deployment: Model deployment the agent runs on
            timeout: Per-invocation timeout (seconds)
            retry_policy: Backoff for transport failures
            corrective_retries: Re-prompts allowed after invalid output
        """
        self.provider = provider
        self.agent_name = agent_name
        self.model_deployment = model_deployment
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.corrective_retries = corrective_retries

    async def _invoke(self, request: PlanningRequest) -> PlanningResponse:
        async for attempt in self.retry_policy.async_retrying((PlanGenerationError,)):
            with attempt:
                try:
                    return await asyncio.wait_for(
                        self.provider.invoke(request), timeout=self.timeout
                    )
                except asyncio.TimeoutError:
                    raise PlanGenerationError(
                        f"Planning service timed out after {self.timeout}s",
                        context={"agent_name": request.agent_name},
                    )
                except PlanningTransportError as e:
                    raise PlanGenerationError(
                        f"Planning service call failed: {e}",
                        context={"agent_name": request.agent_name},
                    )
        raise AssertionError("unreachable")  # pragma: no cover

    async def generate_plan(self, fault: DiagnosedFault, context: RepairContext) -> RepairPlan:
        """
        Produce a validated repair plan for a fault.

        Raises:
            PlanGenerationError: Transport failures after bounded retries
            PlanValidationError: Invalid output after the corrective re-prompt
        """
        feedback: List[str] = []
        last_error: Optional[PlanValidationError] = None
        total_rounds = self.corrective_retries + 1

        for round_number in range(1, total_rounds + 1):
            request = build_planning_request(
                self.agent_name, self.model_deployment, fault, context, feedback
            )
            response = await self._invoke(request)

            try:
                plan = parse_plan_response(response.content)
            except PlanValidationError as e:
                last_error = e
                logger.warning(
                    f"Invalid plan for machine {fault.machine_id} "
                    f"(round {round_number}/{total_rounds}): {e.message}"
                )
                feedback = [build_corrective_prompt("\n".join(e.context.get("errors", [e.message])))]
                continue

            if context.candidate_procedures and not plan.mentions_any(context.candidate_procedures):
                logger.warning(
                    f"Plan for {fault.fault_type} on {fault.machine_id} references none of the "
                    f"candidate procedures {context.candidate_procedures}"
                )

            logger.info(
                f"Generated plan for {fault.machine_id}: {len(plan.steps)} steps, "
                f"{plan.total_estimated_minutes} min, confidence={plan.confidence:.2f} "
                f"({response.tokens_used} tokens, {response.response_time_ms}ms)"
            )
            return plan

        raise PlanValidationError(
            f"Planner returned invalid output {total_rounds} times for machine {fault.machine_id}",
            context={
                "machine_id": fault.machine_id,
                "fault_type": fault.fault_type,
                "errors": last_error.context.get("errors", []) if last_error else [],
            },
            raw_response=last_error.raw_response if last_error else None,
        )
