"""Work order model - the durable output of the planner."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from repair_planner.models.fault import PriorityLevel, Severity
from repair_planner.models.plan import RepairPlan


class WorkOrderStatus(str, Enum):
    """
    Work order lifecycle status.

    The planner only ever writes CREATED. Later transitions belong to the
    maintenance-execution system.
    """

    CREATED = "Created"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in [WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED]


class WorkOrder(BaseModel):
    """Persisted record of authorized repair work"""

    id: str = Field(..., description="Opaque unique identifier")
    work_order_number: str = Field(..., description="Human-readable number, unique in the store")
    machine_id: str = Field(..., description="Machine to repair; used as partition key")
    fault_type: str
    root_cause: str = ""
    severity: Optional[Severity] = None
    priority: PriorityLevel = PriorityLevel.MEDIUM
    plan: RepairPlan
    status: WorkOrderStatus = WorkOrderStatus.CREATED
    created_at_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    etag: Optional[str] = Field(None, alias="_etag", description="Store-assigned revision tag")

    @property
    def partition_key(self) -> str:
        return self.machine_id

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store (camelCase, no store metadata)"""
        return self.model_dump(mode="json", by_alias=True, exclude={"etag"})

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "WorkOrder":
        """Rehydrate from a stored document, keeping the store's revision tag"""
        return cls.model_validate(document)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True
