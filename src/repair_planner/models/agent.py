"""Planning agent definition models.

AgentVersionSpec is what we want registered; AgentDefinition is what the
agent service currently holds. The two match when the definition hash and
the model deployment agree.
"""

import hashlib
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def hash_prompt_template(template: str) -> str:
    """Stable content hash of a prompt template."""
    return hashlib.sha256(template.encode("utf-8")).hexdigest()


class EnsureOutcome(str, Enum):
    """What ensure_agent_version did to the remote definition"""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"

    @property
    def mutated(self) -> bool:
        return self is not EnsureOutcome.UNCHANGED


class AgentVersionSpec(BaseModel):
    """Desired remote agent definition"""

    name: str = Field(..., min_length=1, description="Agent name registered with the service")
    prompt_template_hash: str = Field(..., min_length=1)
    model_deployment_name: str = Field(..., min_length=1)
    instructions: str = Field("", description="Prompt text registered with the agent")

    @classmethod
    def from_template(
        cls, name: str, template: str, model_deployment_name: str
    ) -> "AgentVersionSpec":
        return cls(
            name=name,
            prompt_template_hash=hash_prompt_template(template),
            model_deployment_name=model_deployment_name,
            instructions=template,
        )

    class Config:
        frozen = True


class AgentDefinition(BaseModel):
    """Agent definition as currently held by the agent service"""

    name: str
    version: int = Field(1, ge=1, description="Active version number")
    etag: Optional[str] = Field(None, description="Concurrency token for conditional updates")
    definition_hash: str
    model_deployment_name: str
    instructions: str = ""

    def matches(self, spec: AgentVersionSpec) -> bool:
        return (
            self.definition_hash == spec.prompt_template_hash
            and self.model_deployment_name == spec.model_deployment_name
        )

    class Config:
        frozen = True
