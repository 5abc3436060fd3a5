"""Tests for agent definition reconciliation."""

import asyncio

import pytest

from repair_planner.core.agent_versions import AgentVersionManager
from repair_planner.exceptions import AgentProvisioningError
from repair_planner.models import AgentVersionSpec, EnsureOutcome, hash_prompt_template
from repair_planner.utils import RetryPolicy

from tests.fakes import FakeAgentService


@pytest.mark.asyncio
async def test_creates_missing_agent(agent_service, agent_spec, no_wait):
    manager = AgentVersionManager(agent_service, retry_policy=no_wait)

    outcome = await manager.ensure_agent_version(agent_spec)

    assert outcome == EnsureOutcome.CREATED
    assert agent_service.mutations == ["create:RepairPlannerAgent"]
    assert agent_service.agents[agent_spec.name].definition_hash == agent_spec.prompt_template_hash


@pytest.mark.asyncio
async def test_ensure_is_idempotent(agent_service, agent_spec, no_wait):
    manager = AgentVersionManager(agent_service, retry_policy=no_wait)

    first = await manager.ensure_agent_version(agent_spec)
    second = await manager.ensure_agent_version(agent_spec)

    assert first == EnsureOutcome.CREATED
    assert second == EnsureOutcome.UNCHANGED
    assert len(agent_service.mutations) == 1
    assert agent_service.agents[agent_spec.name].definition_hash == agent_spec.prompt_template_hash


@pytest.mark.asyncio
async def test_publishes_new_version_when_template_changes(agent_service, agent_spec, no_wait):
    agent_service.seed(agent_spec)
    new_spec = AgentVersionSpec.from_template(
        name=agent_spec.name, template="You plan repairs. v2", model_deployment_name="gpt-4o"
    )
    manager = AgentVersionManager(agent_service, retry_policy=no_wait)

    outcome = await manager.ensure_agent_version(new_spec)

    current = agent_service.agents[agent_spec.name]
    assert outcome == EnsureOutcome.UPDATED
    assert current.version == 2
    assert current.definition_hash == new_spec.prompt_template_hash
    assert agent_service.mutations == ["update:RepairPlannerAgent"]


@pytest.mark.asyncio
async def test_publishes_new_version_when_deployment_changes(agent_service, agent_spec, no_wait):
    agent_service.seed(agent_spec)
    moved = agent_spec.model_copy(update={"model_deployment_name": "gpt-4.1"})
    manager = AgentVersionManager(agent_service, retry_policy=no_wait)

    outcome = await manager.ensure_agent_version(moved)

    assert outcome == EnsureOutcome.UPDATED
    assert agent_service.agents[agent_spec.name].model_deployment_name == "gpt-4.1"


@pytest.mark.asyncio
async def test_concurrent_creates_have_a_single_writer(agent_service, agent_spec, no_wait):
    manager_a = AgentVersionManager(agent_service, retry_policy=no_wait)
    manager_b = AgentVersionManager(agent_service, retry_policy=no_wait)

    outcomes = await asyncio.gather(
        manager_a.ensure_agent_version(agent_spec),
        manager_b.ensure_agent_version(agent_spec),
    )

    assert sorted(o.value for o in outcomes) == ["created", "unchanged"]
    assert len(agent_service.mutations) == 1
    assert agent_service.agents[agent_spec.name].definition_hash == agent_spec.prompt_template_hash


@pytest.mark.asyncio
async def test_concurrent_updates_have_a_single_writer(agent_service, agent_spec, no_wait):
    agent_service.seed(agent_spec)
    new_spec = AgentVersionSpec.from_template(
        name=agent_spec.name, template="You plan repairs. v2", model_deployment_name="gpt-4o"
    )
    managers = [AgentVersionManager(agent_service, retry_policy=no_wait) for _ in range(3)]

    outcomes = await asyncio.gather(*(m.ensure_agent_version(new_spec) for m in managers))

    assert [o for o in outcomes if o.mutated] == [EnsureOutcome.UPDATED]
    assert agent_service.mutations == ["update:RepairPlannerAgent"]
    assert agent_service.agents[agent_spec.name].version == 2


@pytest.mark.asyncio
async def test_retries_while_service_unavailable(agent_spec):
    service = FakeAgentService(unavailable_failures=2)
    manager = AgentVersionManager(service, retry_policy=RetryPolicy.no_wait(max_attempts=3))

    outcome = await manager.ensure_agent_version(agent_spec)

    assert outcome == EnsureOutcome.CREATED


@pytest.mark.asyncio
async def test_unavailable_service_surfaces_provisioning_error(agent_spec):
    service = FakeAgentService(unavailable_failures=10)
    manager = AgentVersionManager(service, retry_policy=RetryPolicy.no_wait(max_attempts=2))

    with pytest.raises(AgentProvisioningError) as exc_info:
        await manager.ensure_agent_version(agent_spec)

    assert exc_info.value.error_code == "AGENT_PROVISIONING_FAILED"
    assert service.mutations == []


@pytest.mark.asyncio
async def test_persistent_mismatch_is_fatal(agent_service, agent_spec, no_wait):
    """Another writer keeps installing a different definition."""
    rival = AgentVersionSpec.from_template(
        name=agent_spec.name, template="rival template", model_deployment_name="gpt-4o"
    )
    agent_service.seed(rival)

    def rival_overwrites(name):
        agent_service.seed(rival, version=agent_service.agents[name].version + 1)

    agent_service.after_get = rival_overwrites
    manager = AgentVersionManager(agent_service, max_attempts=3, retry_policy=no_wait)

    with pytest.raises(AgentProvisioningError) as exc_info:
        await manager.ensure_agent_version(agent_spec)

    assert agent_service.mutations == []
    assert agent_service.get_calls == 3
    assert exc_info.value.context["expected_hash"] == agent_spec.prompt_template_hash


@pytest.mark.asyncio
async def test_slow_service_times_out(agent_spec):
    class HangingService(FakeAgentService):
        async def get_agent(self, name):
            await asyncio.sleep(10)

    manager = AgentVersionManager(
        HangingService(), call_timeout=0.01, retry_policy=RetryPolicy.no_wait(max_attempts=2)
    )

    with pytest.raises(AgentProvisioningError):
        await manager.ensure_agent_version(agent_spec)


def test_spec_hash_is_sha256_of_template():
    spec = AgentVersionSpec.from_template("A", "template text", "gpt-4o")

    assert spec.prompt_template_hash == hash_prompt_template("template text")
    assert len(spec.prompt_template_hash) == 64
    assert spec.instructions == "template text"
