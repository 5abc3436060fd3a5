"""Exception hierarchy for the repair planner.

Domain errors (what the orchestrator classifies):
- InvalidFaultError: bad input, never retried
- AgentProvisioningError: agent definition could not be synchronized (run-fatal)
- PlanGenerationError: transport/timeout talking to the planning service
- PlanValidationError: generative output failed structural validation
- PersistenceError: work order could not be stored (run-fatal)

Transport errors (raised by clients, translated by components):
- AgentServiceError and subclasses
- PlanningTransportError
- DocumentStoreError and subclasses
"""

from typing import Any, Dict, Optional


class RepairPlannerError(Exception):
    """Base error carrying a stable error code and structured context."""

    def __init__(
        self,
        message: str,
        error_code: str = "REPAIR_PLANNER_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(RepairPlannerError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CONFIGURATION_ERROR", context=context)


class InvalidFaultError(RepairPlannerError):
    """The diagnosed fault cannot be planned (e.g. empty fault type)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="INVALID_FAULT", context=context)


class AgentProvisioningError(RepairPlannerError):
    """The planning agent definition could not be brought in line with its spec."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="AGENT_PROVISIONING_FAILED", context=context)


class PlanGenerationError(RepairPlannerError):
    """The planning service could not be reached or timed out."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="PLAN_GENERATION_FAILED", context=context)


class PlanValidationError(RepairPlannerError):
    """The planning service returned output that is not a valid repair plan."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        raw_response: Optional[str] = None,
    ):
        super().__init__(message, error_code="PLAN_VALIDATION_FAILED", context=context)
        self.raw_response = raw_response


class PersistenceError(RepairPlannerError):
    """The work order could not be written to the document store."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="PERSISTENCE_FAILED", context=context)


# ---------------------------------------------------------------------------
# Transport-level errors
# ---------------------------------------------------------------------------


class AgentServiceError(Exception):
    """Base error raised by agent service clients."""


class AgentConflictError(AgentServiceError):
    """A conditional create/update lost a race (409 / 412)."""


class AgentServiceUnavailableError(AgentServiceError):
    """The agent service is unreachable or returned a server error."""


class PlanningTransportError(Exception):
    """The planning service call failed before a response body was obtained."""


class DocumentStoreError(Exception):
    """Base error raised by document stores."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DocumentConflictError(DocumentStoreError):
    """An item with the same id or unique key already exists."""


class DocumentThrottledError(DocumentStoreError):
    """The store rejected the request due to rate limiting."""


class DocumentStoreUnavailableError(DocumentStoreError):
    """The store is unreachable or returned a server error."""
