"""Repair plan models.

These models double as the structured-output contract sent to the planning
service (see RepairPlan.response_schema) and as the validator for whatever
comes back.
"""

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class RepairStep(BaseModel):
    """One ordered step of a repair plan"""

    description: str = Field(..., min_length=1, description="What the technician does")
    estimated_minutes: int = Field(..., ge=0, description="Expected duration in minutes")
    required_parts: Set[str] = Field(default_factory=set, description="Part numbers consumed")

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v):
        if not v.strip():
            raise ValueError("description must not be blank")
        return v.strip()

    @field_serializer("required_parts")
    def serialize_parts(self, value: Set[str]) -> List[str]:
        return sorted(value)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class RepairPlan(BaseModel):
    """Validated plan produced from generative output"""

    steps: List[RepairStep] = Field(..., min_length=1, description="Ordered repair steps")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Planner confidence (0.0-1.0)")
    summary: Optional[str] = Field(None, description="One-line summary of the plan")

    @property
    def total_estimated_minutes(self) -> int:
        return sum(step.estimated_minutes for step in self.steps)

    def mentions_any(self, procedures: List[str]) -> bool:
        """True if any step description references one of the given procedures"""
        descriptions = [step.description.lower() for step in self.steps]
        return any(
            procedure.lower() in description
            for procedure in procedures
            for description in descriptions
        )

    @classmethod
    def response_schema(cls) -> Dict[str, Any]:
        """JSON schema requested from the planning service"""
        return cls.model_json_schema(by_alias=True)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True
