"""
Data models for the repair planner.

Pydantic models shared by the fault mapper, plan generator and work order
store. All models serialize with camelCase aliases so stored documents match
what downstream maintenance systems read.
"""

from repair_planner.models.fault import (
    DiagnosedFault,
    FaultTaxonomyEntry,
    PriorityLevel,
    RepairContext,
    Severity,
    priority_for_severity,
)
from repair_planner.models.plan import RepairPlan, RepairStep
from repair_planner.models.work_order import WorkOrder, WorkOrderStatus
from repair_planner.models.agent import (
    AgentDefinition,
    AgentVersionSpec,
    EnsureOutcome,
    hash_prompt_template,
)

__all__ = [
    # Faults
    "DiagnosedFault", "FaultTaxonomyEntry", "PriorityLevel", "RepairContext",
    "Severity", "priority_for_severity",
    # Plans
    "RepairPlan", "RepairStep",
    # Work orders
    "WorkOrder", "WorkOrderStatus",
    # Agent definitions
    "AgentDefinition", "AgentVersionSpec", "EnsureOutcome", "hash_prompt_template",
]
