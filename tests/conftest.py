"""Shared fixtures for repair planner tests."""

import pytest

from repair_planner.clients.document_store import InMemoryDocumentStore
from repair_planner.config import reset_settings
from repair_planner.core.agent_versions import AgentVersionManager
from repair_planner.core.fault_mapping import TableLookupMapper
from repair_planner.core.plan_generator import PlanGenerator
from repair_planner.core.work_orders import WorkOrderStore
from repair_planner.models import AgentVersionSpec, DiagnosedFault, Severity
from repair_planner.orchestrator import RepairPlannerOrchestrator
from repair_planner.utils import RetryPolicy

from tests.fakes import FakeAgentService, ScriptedPlanningProvider, plan_json

CONTAINER = "WorkOrders"


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Keep cached settings and a developer's .env out of tests."""
    monkeypatch.setattr("repair_planner.config.load_dotenv", lambda *a, **kw: False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def no_wait():
    return RetryPolicy.no_wait(max_attempts=3)


@pytest.fixture
def sample_fault():
    return DiagnosedFault(
        machine_id="M-123",
        fault_type="curing_temperature_excessive",
        root_cause="Heater element drift",
        severity=Severity.HIGH,
    )


@pytest.fixture
def agent_spec():
    return AgentVersionSpec.from_template(
        name="RepairPlannerAgent",
        template="You plan repairs. v1",
        model_deployment_name="gpt-4o",
    )


@pytest.fixture
def agent_service():
    return FakeAgentService()


@pytest.fixture
def document_store():
    return InMemoryDocumentStore(unique_keys={CONTAINER: ["workOrderNumber"]})


@pytest.fixture
def make_orchestrator(agent_service, agent_spec, document_store, no_wait):
    """Factory building an orchestrator around a scripted planning provider."""

    def _make(provider=None):
        provider = provider or ScriptedPlanningProvider([plan_json()])
        return RepairPlannerOrchestrator(
            agent_manager=AgentVersionManager(agent_service, retry_policy=no_wait),
            agent_spec=agent_spec,
            fault_mapper=TableLookupMapper(),
            plan_generator=PlanGenerator(
                provider,
                agent_name=agent_spec.name,
                model_deployment=agent_spec.model_deployment_name,
                timeout=5.0,
                retry_policy=no_wait,
            ),
            work_order_store=WorkOrderStore(
                document_store, container=CONTAINER, retry_policy=no_wait
            ),
        )

    return _make
