"""Core planning components.

Fault mapping, agent version reconciliation, plan generation and work order
persistence. Each component owns its own retry budget.
"""

from .fault_mapping import FaultMapper, TableLookupMapper, load_fault_taxonomy
from .agent_versions import AgentVersionManager
from .plan_generator import PlanGenerator, build_planning_request, parse_plan_response
from .work_orders import (
    RandomWorkOrderNumberAllocator,
    RedisWorkOrderNumberAllocator,
    WorkOrderNumberAllocator,
    WorkOrderStore,
    build_work_order,
)

__all__ = [
    "FaultMapper",
    "TableLookupMapper",
    "load_fault_taxonomy",
    "AgentVersionManager",
    "PlanGenerator",
    "build_planning_request",
    "parse_plan_response",
    "RandomWorkOrderNumberAllocator",
    "RedisWorkOrderNumberAllocator",
    "WorkOrderNumberAllocator",
    "WorkOrderStore",
    "build_work_order",
]
