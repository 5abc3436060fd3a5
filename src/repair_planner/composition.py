"""Explicit construction of the planner's component graph.

Every dependency is passed in as an argument; callers (the CLI, tests) can
substitute any collaborator.
"""

import logging
from typing import Optional

from repair_planner.clients.agent_service_client import AgentService, AgentServiceClient
from repair_planner.clients.document_store import (
    DocumentStore,
    HttpDocumentStore,
    InMemoryDocumentStore,
)
from repair_planner.config import Settings
from repair_planner.core.agent_versions import AgentVersionManager
from repair_planner.core.fault_mapping import FaultMapper, TableLookupMapper, load_fault_taxonomy
from repair_planner.core.plan_generator import PlanGenerator
from repair_planner.core.prompts import PLANNER_INSTRUCTIONS
from repair_planner.core.work_orders import (
    RandomWorkOrderNumberAllocator,
    RedisWorkOrderNumberAllocator,
    WorkOrderNumberAllocator,
    WorkOrderStore,
)
from repair_planner.infrastructure.llm.providers import (
    BasePlanningProvider,
    FoundryPlanningProvider,
    ProviderConfig,
)
from repair_planner.infrastructure.redis_setup import get_redis_client
from repair_planner.models import AgentVersionSpec
from repair_planner.orchestrator import RepairPlannerOrchestrator

logger = logging.getLogger(__name__)


def build_agent_spec(settings: Settings) -> AgentVersionSpec:
    return AgentVersionSpec.from_template(
        name=settings.planning.agent_name,
        template=PLANNER_INSTRUCTIONS,
        model_deployment_name=settings.planning.model_deployment_name,
    )


def build_document_store(settings: Settings) -> DocumentStore:
    store_config = settings.document_store
    if store_config.is_remote:
        return HttpDocumentStore(
            base_url=store_config.endpoint,
            database=store_config.database_name,
            master_key=store_config.key or None,
            timeout=store_config.timeout_seconds,
        )

    logger.warning(
        "COSMOS_ENDPOINT not set; work orders are kept in process memory and will not survive exit"
    )
    return InMemoryDocumentStore(unique_keys={store_config.container_name: ["workOrderNumber"]})


async def build_number_allocator(settings: Settings) -> WorkOrderNumberAllocator:
    if settings.work_order_number_mode == "redis":
        return RedisWorkOrderNumberAllocator(await get_redis_client())
    return RandomWorkOrderNumberAllocator()


async def build_orchestrator(
    settings: Settings,
    agent_service: Optional[AgentService] = None,
    provider: Optional[BasePlanningProvider] = None,
    document_store: Optional[DocumentStore] = None,
    fault_mapper: Optional[FaultMapper] = None,
    number_allocator: Optional[WorkOrderNumberAllocator] = None,
) -> RepairPlannerOrchestrator:
    """
    Build the orchestrator and all of its collaborators.

    Args:
        settings: Loaded settings
        agent_service: Override for the agent registry client
        provider: Override for the planning provider
        document_store: Override for the work order store backend
        fault_mapper: Override for the fault mapping strategy
        number_allocator: Override for the work order number source
    """
    planning = settings.planning

    agent_service = agent_service or AgentServiceClient(
        base_url=planning.endpoint, api_key=planning.api_key
    )
    provider = provider or FoundryPlanningProvider(
        ProviderConfig(
            name="foundry",
            base_url=planning.endpoint,
            api_key=planning.api_key,
            timeout=planning.timeout_seconds,
        )
    )
    fault_mapper = fault_mapper or TableLookupMapper(
        load_fault_taxonomy(settings.fault_taxonomy_path)
    )
    document_store = document_store or build_document_store(settings)
    number_allocator = number_allocator or await build_number_allocator(settings)

    return RepairPlannerOrchestrator(
        agent_manager=AgentVersionManager(agent_service),
        agent_spec=build_agent_spec(settings),
        fault_mapper=fault_mapper,
        plan_generator=PlanGenerator(
            provider,
            agent_name=planning.agent_name,
            model_deployment=planning.model_deployment_name,
            timeout=planning.timeout_seconds,
        ),
        work_order_store=WorkOrderStore(
            document_store,
            container=settings.document_store.container_name,
            number_allocator=number_allocator,
        ),
    )
