"""Repair Planner Orchestrator

Composes the components into the per-fault pipeline:

    NotStarted -> AgentEnsured -> Mapped -> Planned -> Persisted
    any stage  -> Failed(stage, error)

The agent definition is ensured once, behind a barrier, before the first
plan is generated. Each fault then runs independently; a fault-level failure
(invalid fault, planning transport, invalid plan) is recorded and the batch
carries on, and so does an unclassified exception, recorded as
UNEXPECTED_ERROR. AgentProvisioningError and PersistenceError abort the run.

The orchestrator never retries a stage itself: components own their retry
budgets, and retrying the whole pipeline could create duplicate work orders.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from repair_planner.core.agent_versions import AgentVersionManager
from repair_planner.core.fault_mapping import FaultMapper
from repair_planner.core.plan_generator import PlanGenerator
from repair_planner.core.work_orders import WorkOrderStore
from repair_planner.exceptions import (
    AgentProvisioningError,
    InvalidFaultError,
    PersistenceError,
    PlanGenerationError,
    PlanValidationError,
    RepairPlannerError,
)
from repair_planner.models import AgentVersionSpec, DiagnosedFault, EnsureOutcome, WorkOrder

logger = logging.getLogger(__name__)

# Failures that only affect the fault being processed
FAULT_LEVEL_ERRORS = (InvalidFaultError, PlanGenerationError, PlanValidationError)

# Failures that stop the whole run
RUN_FATAL_ERRORS = (AgentProvisioningError, PersistenceError)


class PipelineStage(str, Enum):
    """Per-fault pipeline state"""

    NOT_STARTED = "NotStarted"
    AGENT_ENSURED = "AgentEnsured"
    MAPPED = "Mapped"
    PLANNED = "Planned"
    PERSISTED = "Persisted"
    FAILED = "Failed"


_NEXT_STAGE = {
    PipelineStage.NOT_STARTED: PipelineStage.AGENT_ENSURED,
    PipelineStage.AGENT_ENSURED: PipelineStage.MAPPED,
    PipelineStage.MAPPED: PipelineStage.PLANNED,
    PipelineStage.PLANNED: PipelineStage.PERSISTED,
}


@dataclass
class FaultOutcome:
    """Result of running one fault through the pipeline"""

    fault: DiagnosedFault
    stage: PipelineStage = PipelineStage.NOT_STARTED
    failed_stage: Optional[PipelineStage] = None  # stage that could not be reached
    work_order: Optional[WorkOrder] = None
    error: Optional[RepairPlannerError] = None

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.PERSISTED

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage

    def fail(self, error: RepairPlannerError) -> None:
        self.failed_stage = _NEXT_STAGE.get(self.stage, self.stage)
        self.stage = PipelineStage.FAILED
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "machineId": self.fault.machine_id,
            "faultType": self.fault.fault_type,
            "stage": self.stage.value,
        }
        if self.work_order is not None:
            result["workOrder"] = self.work_order.model_dump(mode="json", by_alias=True)
        if self.error is not None:
            result["failedStage"] = self.failed_stage.value if self.failed_stage else None
            result["error"] = self.error.to_dict()
        return result


@dataclass
class BatchReport:
    """Outcomes of a batch, in input order"""

    outcomes: List[FaultOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[FaultOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[FaultOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def work_orders(self) -> List[WorkOrder]:
        return [o.work_order for o in self.outcomes if o.work_order is not None]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class RepairPlannerOrchestrator:
    """Runs diagnosed faults through mapping, planning and persistence"""

    def __init__(
        self,
        agent_manager: AgentVersionManager,
        agent_spec: AgentVersionSpec,
        fault_mapper: FaultMapper,
        plan_generator: PlanGenerator,
        work_order_store: WorkOrderStore,
    ):
        self.agent_manager = agent_manager
        self.agent_spec = agent_spec
        self.fault_mapper = fault_mapper
        self.plan_generator = plan_generator
        self.work_order_store = work_order_store

        # One-time barrier state
        self._agent_lock = asyncio.Lock()
        self._agent_outcome: Optional[EnsureOutcome] = None
        self._agent_error: Optional[AgentProvisioningError] = None

    @property
    def agent_ready(self) -> bool:
        return self._agent_outcome is not None

    async def ensure_agent_ready(self) -> EnsureOutcome:
        """
        Ensure the agent definition once per orchestrator.

        Concurrent callers wait for the first one. A terminal failure is
        remembered and re-raised to every later caller.

        Raises:
            AgentProvisioningError: If the definition could not be ensured
        """
        if self._agent_outcome is not None:
            return self._agent_outcome
        if self._agent_error is not None:
            raise self._agent_error

        async with self._agent_lock:
            if self._agent_outcome is not None:
                return self._agent_outcome
            if self._agent_error is not None:
                raise self._agent_error

            try:
                self._agent_outcome = await self.agent_manager.ensure_agent_version(
                    self.agent_spec
                )
            except AgentProvisioningError as e:
                logger.error(f"Agent provisioning failed for {self.agent_spec.name}: {e.message}")
                self._agent_error = e
                raise

        logger.info(f"Agent {self.agent_spec.name} ready ({self._agent_outcome.value})")
        return self._agent_outcome

    async def resync_agent(self) -> EnsureOutcome:
        """Drop the barrier result and ensure the agent definition again."""
        async with self._agent_lock:
            self._agent_outcome = None
            self._agent_error = None
        return await self.ensure_agent_ready()

    async def _run_stages(self, fault: DiagnosedFault, outcome: FaultOutcome) -> None:
        await self.ensure_agent_ready()
        outcome.advance(PipelineStage.AGENT_ENSURED)

        context = self.fault_mapper.map(fault)
        outcome.advance(PipelineStage.MAPPED)

        plan = await self.plan_generator.generate_plan(fault, context)
        outcome.advance(PipelineStage.PLANNED)

        outcome.work_order = await self.work_order_store.create_work_order(fault, plan)
        outcome.advance(PipelineStage.PERSISTED)

    async def plan_and_create_work_order(self, fault: DiagnosedFault) -> WorkOrder:
        """
        Run the full pipeline for one fault.

        Returns:
            The persisted work order

        Raises:
            RepairPlannerError: Whatever stage failed, unclassified
        """
        outcome = FaultOutcome(fault=fault)
        await self._run_stages(fault, outcome)
        return outcome.work_order

    async def process_fault(self, fault: DiagnosedFault) -> FaultOutcome:
        """
        Run one fault, recording fault-level and unclassified failures in the outcome.

        Raises:
            AgentProvisioningError, PersistenceError: Run-fatal failures
        """
        outcome = FaultOutcome(fault=fault)
        try:
            await self._run_stages(fault, outcome)
        except FAULT_LEVEL_ERRORS as e:
            outcome.fail(e)
            logger.error(
                f"Fault {fault.fault_type} on {fault.machine_id} failed before "
                f"{outcome.failed_stage.value}: [{e.error_code}] {e.message}"
            )
        except RUN_FATAL_ERRORS as e:
            outcome.fail(e)
            raise
        except Exception as e:
            # Anything unclassified stays confined to this fault
            error = RepairPlannerError(
                f"Unexpected {type(e).__name__}: {e}",
                error_code="UNEXPECTED_ERROR",
                context={"machine_id": fault.machine_id, "exception": type(e).__name__},
            )
            outcome.fail(error)
            logger.exception(
                f"Fault {fault.fault_type} on {fault.machine_id} failed before "
                f"{outcome.failed_stage.value} with an unexpected error"
            )
        return outcome

    async def run_batch(
        self, faults: Iterable[DiagnosedFault], max_concurrency: int = 4
    ) -> BatchReport:
        """
        Process faults concurrently.

        Args:
            faults: Diagnosed faults; no ordering between them is implied
            max_concurrency: Maximum faults in flight

        Returns:
            BatchReport with one outcome per fault, in input order

        Raises:
            AgentProvisioningError, PersistenceError: Remaining faults are cancelled
        """
        faults = list(faults)
        await self.ensure_agent_ready()

        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def run_one(fault: DiagnosedFault) -> FaultOutcome:
            async with semaphore:
                return await self.process_fault(fault)

        tasks = [asyncio.create_task(run_one(fault)) for fault in faults]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        report = BatchReport(outcomes=list(outcomes))
        logger.info(
            f"Batch finished: {len(report.succeeded)} work orders created, "
            f"{len(report.failed)} faults failed"
        )
        return report

    async def aclose(self) -> None:
        """Release connections held by the collaborators (e.g. Redis)."""
        await self.work_order_store.aclose()
