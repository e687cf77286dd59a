"""
Error model for the orchestration layer.

Stages report expected failures as AgentError entries inside their
AgentResult. The exception classes below are reserved for genuine
contract violations inside the orchestration core itself.
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Severity = Literal["low", "medium", "high", "critical"]


class AgentErrorKind(str, Enum):
    """Classification of stage failures, driving retry and fallback policy."""

    VALIDATION = "validation-error"
    TIMEOUT = "timeout-error"
    RATE_LIMIT = "rate-limit-error"
    PROVIDER_ERROR = "provider-error"
    NETWORK_ERROR = "network-error"
    COST_LIMIT = "cost-limit-error"
    EXECUTION_ERROR = "execution-error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown-error"


# Default severity and recoverability per kind
_KIND_DEFAULTS: Dict[AgentErrorKind, tuple] = {
    AgentErrorKind.VALIDATION: ("high", False),
    AgentErrorKind.TIMEOUT: ("medium", True),
    AgentErrorKind.RATE_LIMIT: ("medium", True),
    AgentErrorKind.PROVIDER_ERROR: ("medium", True),
    AgentErrorKind.NETWORK_ERROR: ("medium", True),
    AgentErrorKind.COST_LIMIT: ("high", False),
    AgentErrorKind.EXECUTION_ERROR: ("high", True),
    AgentErrorKind.CANCELLED: ("low", False),
    AgentErrorKind.UNKNOWN: ("critical", False),
}


class AgentError(BaseModel):
    """A single structured error reported by a stage or by the governor."""

    model_config = ConfigDict(frozen=True)

    kind: AgentErrorKind = Field(description="Error classification")
    message: str = Field(description="Human-readable error message")
    severity: Severity = Field(default="high", description="Error severity")
    recoverable: bool = Field(
        default=True, description="Whether a retry could plausibly succeed"
    )
    suggested_action: Optional[str] = Field(
        default=None, description="Suggested recovery action"
    )
    details: Dict[str, Any] = Field(
        default_factory=dict, description="Free-form diagnostic details"
    )

    @classmethod
    def of(
        cls,
        kind: AgentErrorKind,
        message: str,
        recoverable: Optional[bool] = None,
        severity: Optional[Severity] = None,
        suggested_action: Optional[str] = None,
        **details: Any,
    ) -> "AgentError":
        """Build an error, filling severity/recoverability from the kind defaults."""
        default_severity, default_recoverable = _KIND_DEFAULTS[kind]
        return cls(
            kind=kind,
            message=message,
            severity=severity or default_severity,
            recoverable=default_recoverable if recoverable is None else recoverable,
            suggested_action=suggested_action,
            details=details,
        )


class OrchestrationError(Exception):
    """Base class for orchestration-core failures."""

    pass


class InvalidTransition(OrchestrationError):
    """Raised when the state machine receives an event its state cannot accept."""

    def __init__(self, state: Any, event: Any):
        self.state = state
        self.event = event
        super().__init__(f"Event {event!r} is not valid in state {state!r}")


class ResultSlotError(OrchestrationError):
    """Raised when a result slot write would break write-once or stage ordering."""

    pass


class StageNotRegistered(OrchestrationError):
    """Raised when the registry has no factory for a stage."""

    pass


class ContractViolation(OrchestrationError):
    """Raised internally when a stage breaks the stage contract."""

    pass
