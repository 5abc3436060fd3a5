"""
Base provider interface for generative planning services.

This module defines the abstract base class that all planning providers must
implement. The planner treats a provider as `invoke(request) -> response`;
timeouts and retries are owned by the caller, not the provider.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PlanningRequest:
    """Structured request sent to the planning agent"""

    agent_name: str
    model_deployment: str
    input: Dict[str, Any]  # {"fault": {...}, "context": {...}}
    response_schema: Optional[Dict[str, Any]] = None
    feedback: List[str] = field(default_factory=list)  # corrective re-prompts

    @property
    def is_corrective(self) -> bool:
        return bool(self.feedback)


@dataclass
class PlanningResponse:
    """Raw response from a planning provider"""

    content: str
    provider: str
    model: str
    tokens_used: int = 0
    response_time_ms: int = 0


@dataclass
class ProviderConfig:
    """Configuration for a planning provider"""

    name: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 60.0
    api_version: str = "2025-05-01"
    temperature: float = 0.2
    max_output_tokens: int = 2000


class BasePlanningProvider(ABC):
    """Abstract base class for all planning providers"""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the unique name of this provider"""
        pass

    @abstractmethod
    async def invoke(self, request: PlanningRequest) -> PlanningResponse:
        """
        Invoke the planning agent.

        Args:
            request: Agent reference, deployment and structured input

        Returns:
            PlanningResponse with the raw generated text

        Raises:
            PlanningTransportError: If no response body could be obtained
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is properly configured"""
        pass

    @staticmethod
    def _start_timing() -> float:
        """Start timing for one call; keep the result local to that call"""
        return time.monotonic()

    @staticmethod
    def _get_response_time_ms(started: float) -> int:
        """Milliseconds elapsed since the given _start_timing() value"""
        return int((time.monotonic() - started) * 1000)

    def _validate_response_content(self, content: Optional[str]) -> str:
        """Validate and clean response content"""
        if content is None:
            raise ValueError(f"{self.provider_name} returned None content")

        content = content.strip()
        if not content:
            raise ValueError(f"{self.provider_name} returned empty content")

        return content
