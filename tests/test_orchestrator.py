"""End-to-end tests for the repair planner pipeline."""

import asyncio

import pytest

from repair_planner.core.work_orders import WorkOrderStore
from repair_planner.exceptions import (
    AgentProvisioningError,
    DocumentThrottledError,
    PersistenceError,
    PlanningTransportError,
)
from repair_planner.models import DiagnosedFault, Severity, WorkOrderStatus
from repair_planner.orchestrator import PipelineStage

from tests.conftest import CONTAINER
from tests.fakes import ScriptedPlanningProvider, plan_from_context, plan_json


def _fault(machine_id, fault_type="curing_temperature_excessive", severity=Severity.HIGH):
    return DiagnosedFault(
        machine_id=machine_id,
        fault_type=fault_type,
        root_cause="Heater element drift",
        severity=severity,
    )


def malformed_for(machine_id):
    """Script answering garbage for one machine and a valid plan for the rest."""

    def answer(request):
        if request.input["fault"]["machineId"] == machine_id:
            return '{"steps": [], "confidence": 0.4}'
        return plan_from_context(request)

    return answer


class ThrottledStore:
    async def create_item(self, container, document, partition_key):
        raise DocumentThrottledError("429", status_code=429)

    async def read_item(self, container, item_id, partition_key):
        return None


@pytest.mark.asyncio
async def test_plans_and_persists_curing_fault(make_orchestrator, sample_fault, document_store):
    provider = ScriptedPlanningProvider([plan_from_context])
    orchestrator = make_orchestrator(provider)

    order = await orchestrator.plan_and_create_work_order(sample_fault)

    assert order.status == WorkOrderStatus.CREATED
    assert order.machine_id == "M-123"
    assert order.plan.steps
    assert order.plan.mentions_any(["inspect heater", "replace thermocouple"])
    stored = document_store.list_items(CONTAINER)
    assert [doc["id"] for doc in stored] == [order.id]
    assert provider.requests[0].agent_name == "RepairPlannerAgent"


@pytest.mark.asyncio
async def test_unknown_fault_type_still_gets_a_plan(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPlanningProvider([plan_from_context]))

    order = await orchestrator.plan_and_create_work_order(_fault("M-7", "mystery_noise"))

    assert [step.description for step in order.plan.steps] == ["diagnose root cause"]


@pytest.mark.asyncio
async def test_batch_isolates_invalid_plan(make_orchestrator, document_store):
    provider = ScriptedPlanningProvider([malformed_for("M-BAD")])
    orchestrator = make_orchestrator(provider)
    faults = [_fault("M-1"), _fault("M-BAD"), _fault("M-3")]

    report = await orchestrator.run_batch(faults, max_concurrency=3)

    assert [o.fault.machine_id for o in report.outcomes] == ["M-1", "M-BAD", "M-3"]
    assert [o.fault.machine_id for o in report.succeeded] == ["M-1", "M-3"]
    failed = report.failed[0]
    assert failed.stage == PipelineStage.FAILED
    assert failed.failed_stage == PipelineStage.PLANNED
    assert failed.error.error_code == "PLAN_VALIDATION_FAILED"
    assert not report.all_succeeded

    bad_requests = [r for r in provider.requests if r.input["fault"]["machineId"] == "M-BAD"]
    assert len(bad_requests) == 2
    assert sorted(doc["machineId"] for doc in document_store.list_items(CONTAINER)) == [
        "M-1",
        "M-3",
    ]


@pytest.mark.asyncio
async def test_blank_fault_type_fails_at_mapping(make_orchestrator, document_store):
    orchestrator = make_orchestrator()

    outcome = await orchestrator.process_fault(_fault("M-1", fault_type="   "))

    assert outcome.failed_stage == PipelineStage.MAPPED
    assert outcome.error.error_code == "INVALID_FAULT"
    assert document_store.list_items(CONTAINER) == []


@pytest.mark.asyncio
async def test_agent_is_ensured_once_for_concurrent_faults(make_orchestrator, agent_service):
    orchestrator = make_orchestrator()
    faults = [_fault(f"M-{i}") for i in range(5)]

    orders = await asyncio.gather(
        *(orchestrator.plan_and_create_work_order(fault) for fault in faults)
    )

    assert len({order.id for order in orders}) == 5
    assert agent_service.get_calls == 1
    assert agent_service.mutations == ["create:RepairPlannerAgent"]
    assert orchestrator.agent_ready


@pytest.mark.asyncio
async def test_agent_provisioning_failure_aborts_batch(
    make_orchestrator, agent_service, document_store
):
    agent_service.unavailable_failures = 100
    provider = ScriptedPlanningProvider([plan_json()])
    orchestrator = make_orchestrator(provider)

    with pytest.raises(AgentProvisioningError):
        await orchestrator.run_batch([_fault("M-1"), _fault("M-2")])

    assert provider.requests == []
    assert document_store.list_items(CONTAINER) == []

    # The failure is remembered rather than retried per fault
    with pytest.raises(AgentProvisioningError):
        await orchestrator.plan_and_create_work_order(_fault("M-3"))
    assert provider.requests == []


@pytest.mark.asyncio
async def test_persistence_failure_aborts_batch(make_orchestrator, no_wait):
    orchestrator = make_orchestrator()
    orchestrator.work_order_store = WorkOrderStore(
        ThrottledStore(), container=CONTAINER, retry_policy=no_wait
    )

    with pytest.raises(PersistenceError):
        await orchestrator.run_batch([_fault("M-1"), _fault("M-2")], max_concurrency=1)


@pytest.mark.asyncio
async def test_resync_reensures_agent(make_orchestrator, agent_service):
    orchestrator = make_orchestrator()
    await orchestrator.ensure_agent_ready()

    outcome = await orchestrator.resync_agent()

    assert outcome.value == "unchanged"
    assert agent_service.get_calls == 2


@pytest.mark.asyncio
async def test_outcome_serialization(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPlanningProvider([malformed_for("M-BAD")]))
    report = await orchestrator.run_batch([_fault("M-1"), _fault("M-BAD")])

    ok, bad = [outcome.to_dict() for outcome in report.outcomes]

    assert ok["stage"] == "Persisted"
    assert ok["workOrder"]["status"] == "Created"
    assert "error" not in ok
    assert bad["stage"] == "Failed"
    assert bad["failedStage"] == "Planned"
    assert bad["error"]["error_code"] == "PLAN_VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_unexpected_error_is_confined_to_its_fault(make_orchestrator, document_store):
    def answer(request):
        if request.input["fault"]["machineId"] == "M-BAD":
            raise KeyError("output")
        return plan_from_context(request)

    orchestrator = make_orchestrator(ScriptedPlanningProvider([answer]))
    faults = [_fault("M-1"), _fault("M-BAD"), _fault("M-3")]

    report = await orchestrator.run_batch(faults, max_concurrency=1)

    assert [o.fault.machine_id for o in report.succeeded] == ["M-1", "M-3"]
    failed = report.failed[0]
    assert failed.fault.machine_id == "M-BAD"
    assert failed.failed_stage == PipelineStage.PLANNED
    assert failed.error.error_code == "UNEXPECTED_ERROR"
    assert failed.error.context["exception"] == "KeyError"
    assert failed.to_dict()["error"]["error_code"] == "UNEXPECTED_ERROR"
    assert sorted(doc["machineId"] for doc in document_store.list_items(CONTAINER)) == [
        "M-1",
        "M-3",
    ]


@pytest.mark.asyncio
async def test_undecodable_planning_response_fails_only_that_fault(make_orchestrator):
    orchestrator = make_orchestrator(
        ScriptedPlanningProvider([PlanningTransportError("undecodable body")])
    )

    outcome = await orchestrator.process_fault(_fault("M-1"))

    assert outcome.stage == PipelineStage.FAILED
    assert outcome.failed_stage == PipelineStage.PLANNED
    assert outcome.error.error_code == "PLAN_GENERATION_FAILED"


class ClosingStore:
    def __init__(self):
        self.closed = 0

    async def aclose(self):
        self.closed += 1


@pytest.mark.asyncio
async def test_aclose_releases_the_work_order_store(make_orchestrator):
    orchestrator = make_orchestrator()
    orchestrator.work_order_store = ClosingStore()

    await orchestrator.aclose()

    assert orchestrator.work_order_store.closed == 1
