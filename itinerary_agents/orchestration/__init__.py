"""
Orchestration layer.

Coordinates the four-stage itinerary workflow:
- Stage contract and execution envelope
- Resource governor (timeouts, retries, budgets, provider fallback)
- Copy-on-write workflow context
- Pure state machine plus the async orchestrator that drives it
- Stage registry and transition event sinks
"""

from itinerary_agents.orchestration.clock import Clock, ManualClock
from itinerary_agents.orchestration.config import (
    OrchestratorSettings,
    ResourceLimits,
    RetryConfig,
)
from itinerary_agents.orchestration.context import (
    WorkflowContext,
    WorkflowStatus,
    new_context,
)
from itinerary_agents.orchestration.envelope import (
    AgentExecutionMetadata,
    AgentResult,
    ResourceUsage,
    TokenUsage,
)
from itinerary_agents.orchestration.errors import (
    AgentError,
    AgentErrorKind,
    ContractViolation,
    InvalidTransition,
    OrchestrationError,
    ResultSlotError,
    StageNotRegistered,
)
from itinerary_agents.orchestration.events import (
    CompositeEventSink,
    EventSink,
    JsonlEventSink,
    LoggingEventSink,
    QueueEventSink,
    TransitionEvent,
)
from itinerary_agents.orchestration.governor import GovernedExecution, ResourceGovernor
from itinerary_agents.orchestration.health import ProviderHealth
from itinerary_agents.orchestration.machine import dispatch
from itinerary_agents.orchestration.metrics import MetricsCollector, SessionMetrics
from itinerary_agents.orchestration.orchestrator import Orchestrator, WorkflowRun
from itinerary_agents.orchestration.registry import StageRegistry
from itinerary_agents.orchestration.stage import CancellationToken, Stage, StageAttempt
from itinerary_agents.orchestration.states import StageId, WorkflowState

__all__ = [
    "AgentError",
    "AgentErrorKind",
    "AgentExecutionMetadata",
    "AgentResult",
    "CancellationToken",
    "Clock",
    "CompositeEventSink",
    "ContractViolation",
    "EventSink",
    "GovernedExecution",
    "InvalidTransition",
    "JsonlEventSink",
    "LoggingEventSink",
    "ManualClock",
    "MetricsCollector",
    "OrchestrationError",
    "Orchestrator",
    "OrchestratorSettings",
    "ProviderHealth",
    "QueueEventSink",
    "ResourceGovernor",
    "ResourceLimits",
    "ResourceUsage",
    "ResultSlotError",
    "RetryConfig",
    "SessionMetrics",
    "Stage",
    "StageAttempt",
    "StageId",
    "StageNotRegistered",
    "StageRegistry",
    "TokenUsage",
    "TransitionEvent",
    "WorkflowContext",
    "WorkflowRun",
    "WorkflowState",
    "WorkflowStatus",
    "dispatch",
    "new_context",
]
