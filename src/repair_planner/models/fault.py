"""Fault models.

- DiagnosedFault: immutable input produced by the upstream diagnosis system
- FaultTaxonomyEntry: one row of the fault taxonomy (configuration data)
- RepairContext: structured guidance derived from a fault for one planning call
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Fault severity reported by diagnosis"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PriorityLevel(str, Enum):
    """Work priority, ordered from least to most urgent"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    @classmethod
    def highest(cls, *levels: "PriorityLevel") -> "PriorityLevel":
        return max(levels, key=lambda level: level.rank)


_PRIORITY_ORDER = [
    PriorityLevel.LOW,
    PriorityLevel.MEDIUM,
    PriorityLevel.HIGH,
    PriorityLevel.URGENT,
]

_SEVERITY_PRIORITY = {
    Severity.LOW: PriorityLevel.LOW,
    Severity.MEDIUM: PriorityLevel.MEDIUM,
    Severity.HIGH: PriorityLevel.HIGH,
    Severity.CRITICAL: PriorityLevel.URGENT,
}


def priority_for_severity(severity: Severity) -> PriorityLevel:
    """Map a fault severity onto a work priority."""
    return _SEVERITY_PRIORITY[severity]


class DiagnosedFault(BaseModel):
    """A fault as diagnosed upstream. Never mutated by the planner."""

    machine_id: str = Field(..., min_length=1, description="Machine the fault was observed on")
    fault_type: str = Field(..., description="Taxonomy key, e.g. curing_temperature_excessive")
    root_cause: str = Field("", description="Diagnosed root cause")
    severity: Severity = Field(..., description="Diagnosed severity")
    detected_at_utc: Optional[datetime] = Field(None, description="When the fault was detected")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Extra diagnosis attributes")

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v):
        """Accept severities in any case ("High", "CRITICAL")"""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class FaultTaxonomyEntry(BaseModel):
    """Repair guidance for one fault type"""

    candidate_procedures: List[str] = Field(default_factory=list)
    required_tools: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)
    required_parts: List[str] = Field(default_factory=list)
    minimum_priority: Optional[PriorityLevel] = Field(
        None, description="Floor applied on top of the severity-derived priority"
    )

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class RepairContext(BaseModel):
    """Structured repair guidance handed to the planner for a single fault"""

    fault_type: str
    candidate_procedures: List[str] = Field(default_factory=list)
    required_tools: Set[str] = Field(default_factory=set)
    required_skills: Set[str] = Field(default_factory=set)
    required_parts: Set[str] = Field(default_factory=set)
    priority_hint: PriorityLevel = PriorityLevel.MEDIUM

    @property
    def is_known_fault(self) -> bool:
        return bool(self.candidate_procedures)

    @field_serializer("required_tools", "required_skills", "required_parts")
    def serialize_sorted(self, value: Set[str]) -> List[str]:
        return sorted(value)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True
