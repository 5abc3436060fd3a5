"""Tests for plan generation and validation of generative output."""

import asyncio
import json

import pytest

from repair_planner.core.fault_mapping import TableLookupMapper
from repair_planner.core.plan_generator import (
    PlanGenerator,
    build_planning_request,
    parse_plan_response,
)
from repair_planner.exceptions import (
    PlanGenerationError,
    PlanningTransportError,
    PlanValidationError,
)
from repair_planner.models import RepairPlan
from repair_planner.utils import RetryPolicy

from tests.fakes import ScriptedPlanningProvider, plan_from_context, plan_json

EMPTY_STEPS = plan_json(steps=[])
NEGATIVE_MINUTES = plan_json(steps=[{"description": "inspect heater", "estimatedMinutes": -5}])


def _generator(provider, no_wait, timeout=5.0):
    return PlanGenerator(
        provider,
        agent_name="RepairPlannerAgent",
        model_deployment="gpt-4o",
        timeout=timeout,
        retry_policy=no_wait,
    )


@pytest.fixture
def context(sample_fault):
    return TableLookupMapper().map(sample_fault)


# ---------------------------------------------------------------------------
# parse_plan_response
# ---------------------------------------------------------------------------


def test_parse_valid_camel_case_plan():
    plan = parse_plan_response(plan_json())

    assert isinstance(plan, RepairPlan)
    assert len(plan.steps) == 3
    assert plan.steps[2].required_parts == {"GEN-TS-K400"}
    assert plan.total_estimated_minutes == 85


def test_parse_snake_case_plan():
    raw = json.dumps(
        {"steps": [{"description": "inspect heater", "estimated_minutes": 20}], "confidence": 0.5}
    )

    assert parse_plan_response(raw).steps[0].estimated_minutes == 20


def test_parse_fenced_json_with_prose():
    raw = "Here is the plan:\n```json\n" + plan_json() + "\n```\nGood luck!"

    assert len(parse_plan_response(raw).steps) == 3


def test_parse_wrapped_plan():
    raw = json.dumps({"plan": json.loads(plan_json())})

    assert len(parse_plan_response(raw).steps) == 3


@pytest.mark.parametrize(
    "raw",
    [
        EMPTY_STEPS,
        NEGATIVE_MINUTES,
        plan_json(confidence=1.5),
        plan_json(confidence=-0.1),
        plan_json(steps=[{"description": "   ", "estimatedMinutes": 5}]),
        json.dumps({"confidence": 0.9}),
        "I could not come up with a plan.",
        "[1, 2, 3]",
        "",
    ],
)
def test_parse_rejects_malformed_plans(raw):
    with pytest.raises(PlanValidationError) as exc_info:
        parse_plan_response(raw)

    assert exc_info.value.raw_response == raw
    assert exc_info.value.context["errors"]


# ---------------------------------------------------------------------------
# build_planning_request
# ---------------------------------------------------------------------------


def test_request_embeds_fault_and_context(sample_fault, context):
    request = build_planning_request("RepairPlannerAgent", "gpt-4o", sample_fault, context)

    assert request.agent_name == "RepairPlannerAgent"
    assert request.model_deployment == "gpt-4o"
    assert request.input["fault"]["machineId"] == "M-123"
    assert request.input["fault"]["severity"] == "high"
    assert request.input["context"]["candidateProcedures"] == [
        "inspect heater",
        "replace thermocouple",
    ]
    assert "steps" in request.response_schema["properties"]
    assert not request.is_corrective


# ---------------------------------------------------------------------------
# PlanGenerator
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generates_plan_from_valid_response(sample_fault, context, no_wait):
    provider = ScriptedPlanningProvider([plan_from_context])

    plan = await _generator(provider, no_wait).generate_plan(sample_fault, context)

    assert [s.description for s in plan.steps] == ["inspect heater", "replace thermocouple"]
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_corrective_reprompt_recovers(sample_fault, context, no_wait):
    provider = ScriptedPlanningProvider([NEGATIVE_MINUTES, plan_json()])

    plan = await _generator(provider, no_wait).generate_plan(sample_fault, context)

    assert len(plan.steps) == 3
    assert len(provider.requests) == 2
    assert not provider.requests[0].is_corrective
    assert provider.requests[1].is_corrective
    assert "steps.0" in provider.requests[1].feedback[0]


@pytest.mark.parametrize("bad_response", [EMPTY_STEPS, NEGATIVE_MINUTES])
@pytest.mark.asyncio
async def test_invalid_output_twice_raises_validation_error(
    sample_fault, context, no_wait, bad_response
):
    provider = ScriptedPlanningProvider([bad_response, bad_response])

    with pytest.raises(PlanValidationError) as exc_info:
        await _generator(provider, no_wait).generate_plan(sample_fault, context)

    assert len(provider.requests) == 2
    assert exc_info.value.context["machine_id"] == "M-123"


@pytest.mark.asyncio
async def test_transport_errors_are_retried(sample_fault, context, no_wait):
    provider = ScriptedPlanningProvider(
        [PlanningTransportError("502"), PlanningTransportError("502"), plan_json()]
    )

    plan = await _generator(provider, no_wait).generate_plan(sample_fault, context)

    assert len(plan.steps) == 3
    assert len(provider.requests) == 3


@pytest.mark.asyncio
async def test_transport_errors_exhaust_into_generation_error(sample_fault, context):
    provider = ScriptedPlanningProvider([PlanningTransportError("service down")])
    generator = _generator(provider, RetryPolicy.no_wait(max_attempts=2))

    with pytest.raises(PlanGenerationError):
        await generator.generate_plan(sample_fault, context)

    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_timeout_becomes_generation_error(sample_fault, context):
    provider = ScriptedPlanningProvider([plan_json()], delay=1.0)
    generator = _generator(provider, RetryPolicy.no_wait(max_attempts=1), timeout=0.01)

    with pytest.raises(PlanGenerationError) as exc_info:
        await generator.generate_plan(sample_fault, context)

    assert "timed out" in exc_info.value.message


@pytest.mark.asyncio
async def test_plan_ignoring_candidates_is_accepted_with_warning(
    sample_fault, context, no_wait, caplog
):
    provider = ScriptedPlanningProvider(
        [plan_json(steps=[{"description": "recalibrate controller", "estimatedMinutes": 15}])]
    )

    plan = await _generator(provider, no_wait).generate_plan(sample_fault, context)

    assert len(plan.steps) == 1
    assert "references none of the candidate procedures" in caplog.text


@pytest.mark.asyncio
async def test_cancellation_propagates(sample_fault, context, no_wait):
    provider = ScriptedPlanningProvider([plan_json()], delay=1.0)
    task = asyncio.create_task(_generator(provider, no_wait).generate_plan(sample_fault, context))
    await asyncio.sleep(0.01)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
