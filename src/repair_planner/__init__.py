"""Repair Planner

Turns diagnosed equipment faults into validated repair plans and persisted
work orders, using a generative planning agent kept in sync with a versioned
definition.
"""

__version__ = "0.1.0"

# Export models and errors first (no service dependencies)
from repair_planner.models import (
    DiagnosedFault, RepairContext, RepairPlan, RepairStep,
    WorkOrder, WorkOrderStatus, AgentVersionSpec, Severity, PriorityLevel,
)
from repair_planner.exceptions import (
    RepairPlannerError,
    ConfigurationError,
    InvalidFaultError,
    AgentProvisioningError,
    PlanGenerationError,
    PlanValidationError,
    PersistenceError,
)


# Lazy import for the orchestrator and composition to keep `import repair_planner`
# free of network client imports
def __getattr__(name):
    """Lazy import for orchestrator-level names."""
    if name == "RepairPlannerOrchestrator":
        from repair_planner.orchestrator import RepairPlannerOrchestrator
        return RepairPlannerOrchestrator
    if name == "build_orchestrator":
        from repair_planner.composition import build_orchestrator
        return build_orchestrator
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "DiagnosedFault", "RepairContext", "RepairPlan", "RepairStep",
    "WorkOrder", "WorkOrderStatus", "AgentVersionSpec", "Severity", "PriorityLevel",
    # Errors
    "RepairPlannerError", "ConfigurationError", "InvalidFaultError",
    "AgentProvisioningError", "PlanGenerationError", "PlanValidationError",
    "PersistenceError",
    # Orchestration (lazy loaded)
    "RepairPlannerOrchestrator",
    "build_orchestrator",
]
