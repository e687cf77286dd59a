"""
Workflow context threaded from stage to stage.

WorkflowContext is frozen: every update returns a new value built with
`model_copy`, so the context a stage was handed never changes under it.
Result slots are write-once and are filled strictly in pipeline order.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from itinerary_agents.orchestration.config import (
    DEFAULT_RETRY_CONFIG,
    ResourceLimits,
    RetryConfig,
)
from itinerary_agents.orchestration.envelope import (
    AgentResult,
    AttemptRecord,
    ResourceUsage,
)
from itinerary_agents.orchestration.errors import AgentError, ResultSlotError
from itinerary_agents.orchestration.states import (
    STAGE_ORDER,
    STATE_STAGES,
    StageId,
    WorkflowState,
    predecessor,
    stage_index,
)
from itinerary_agents.shared.contracts.travel_request import TravelRequestV1


def _empty_slots() -> Dict[StageId, Optional[AgentResult]]:
    return {stage: None for stage in STAGE_ORDER}


class WorkflowStatus(BaseModel):
    """Progress summary for external consumers."""

    session_id: str
    state: WorkflowState
    current_stage: Optional[StageId] = None
    progress_percentage: int = Field(ge=0, le=100)
    completed_stages: List[StageId] = Field(default_factory=list)
    failed_stages: List[StageId] = Field(default_factory=list)
    status_message: str
    total_cost: float = 0.0
    elapsed_ms: float = 0.0


class WorkflowContext(BaseModel):
    """
    Accumulated state of one workflow run.

    Fields:
        session_id: Unique session identifier
        request: Immutable, already-validated request snapshot
        state: Current workflow state
        current_stage: Stage currently in flight (at most one)
        results: Stage id -> successful AgentResult, or None (write-once)
        messages: Append-only tracking messages
        errors: Ordered error history across every attempt
        attempts: Ordered attempt records across every stage
        limits: Workflow resource limits
        retry: Per-stage retry policy
        provider_chains: Per-stage provider chain overrides
        totals: Running resource totals (never decrease)
        last_failure: Final result of the stage that halted the workflow
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    request: TravelRequestV1
    state: WorkflowState = WorkflowState.INITIALIZED
    current_stage: Optional[StageId] = None
    results: Dict[StageId, Optional[AgentResult]] = Field(default_factory=_empty_slots)
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[AgentError] = Field(default_factory=list)
    attempts: List[AttemptRecord] = Field(default_factory=list)
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    retry: Dict[StageId, RetryConfig] = Field(default_factory=dict)
    provider_chains: Dict[StageId, List[str]] = Field(default_factory=dict)
    totals: ResourceUsage = Field(default_factory=ResourceUsage)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_failure: Optional[AgentResult] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def retry_for(self, stage: StageId) -> RetryConfig:
        return self.retry.get(stage, DEFAULT_RETRY_CONFIG)

    def result(self, stage: StageId) -> Optional[AgentResult]:
        return self.results.get(stage)

    def payload(self, stage: StageId) -> Any:
        """Payload of a completed stage, or None."""
        result = self.results.get(stage)
        return result.data if result is not None else None

    def visible_results(self, stage: StageId) -> Dict[StageId, Optional[AgentResult]]:
        """Slots `stage` may read: only those of stages before it."""
        return {s: self.results.get(s) for s in STAGE_ORDER[: stage_index(stage)]}

    @property
    def completed_stages(self) -> List[StageId]:
        return [s for s in STAGE_ORDER if self.results.get(s) is not None]

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    # ------------------------------------------------------------------
    # Copy-on-write updates
    # ------------------------------------------------------------------

    def with_state(
        self, state: WorkflowState, completed_at: Optional[datetime] = None
    ) -> "WorkflowContext":
        update: Dict[str, Any] = {
            "state": state,
            "current_stage": STATE_STAGES.get(state),
        }
        if completed_at is not None:
            update["completed_at"] = completed_at
        return self.model_copy(update=update)

    def with_result(self, stage: StageId, result: AgentResult) -> "WorkflowContext":
        """
        Write a successful result into its slot.

        Raises:
            ResultSlotError: If the slot is already filled, the stage is not
                the current one, the predecessor has no result, or the
                result is not a success for this stage.
        """
        if self.results.get(stage) is not None:
            raise ResultSlotError(f"Result slot for '{stage.value}' is already populated")
        if self.current_stage != stage:
            raise ResultSlotError(
                f"Cannot record '{stage.value}' while current stage is "
                f"'{self.current_stage.value if self.current_stage else None}'"
            )
        prev = predecessor(stage)
        if prev is not None and self.results.get(prev) is None:
            raise ResultSlotError(
                f"Cannot record '{stage.value}' before '{prev.value}' has a result"
            )
        if result.stage != stage or not result.success:
            raise ResultSlotError(f"Only successful '{stage.value}' results may fill its slot")

        results = dict(self.results)
        results[stage] = result
        return self.model_copy(update={"results": results})

    def with_execution(
        self,
        usage: ResourceUsage,
        attempts: List[AttemptRecord],
        errors: List[AgentError],
    ) -> "WorkflowContext":
        """Fold one governed stage execution's accounting into the context."""
        return self.model_copy(
            update={
                "totals": self.totals.plus(usage),
                "attempts": [*self.attempts, *attempts],
                "errors": [*self.errors, *errors],
            }
        )

    def with_errors(self, *errors: AgentError) -> "WorkflowContext":
        return self.model_copy(update={"errors": [*self.errors, *errors]})

    def with_message(self, agent: str, content: str, role: str = "system") -> "WorkflowContext":
        message = {"role": role, "agent": agent, "content": content}
        return self.model_copy(update={"messages": [*self.messages, message]})

    def with_failure(self, result: AgentResult) -> "WorkflowContext":
        return self.model_copy(update={"last_failure": result})

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> WorkflowStatus:
        completed = self.completed_stages
        failed = [self.last_failure.stage] if self.last_failure is not None else []
        if self.state == WorkflowState.COMPLETED:
            progress = 100
        else:
            progress = int(len(completed) * 100 / len(STAGE_ORDER))

        if self.state == WorkflowState.COMPLETED:
            message = "Itinerary compiled"
        elif self.state == WorkflowState.FAILED:
            stage = failed[0].value if failed else "unknown stage"
            message = f"Workflow failed at {stage}"
        elif self.state == WorkflowState.CANCELLED:
            message = "Workflow cancelled"
        elif self.current_stage is not None:
            message = f"Running {self.current_stage.value}"
        else:
            message = "Waiting to start"

        return WorkflowStatus(
            session_id=self.session_id,
            state=self.state,
            current_stage=self.current_stage,
            progress_percentage=progress,
            completed_stages=completed,
            failed_stages=failed,
            status_message=message,
            total_cost=self.totals.cost,
            elapsed_ms=self.totals.elapsed_ms,
        )


def new_context(
    request: TravelRequestV1,
    session_id: Optional[str] = None,
    limits: Optional[ResourceLimits] = None,
    retry: Optional[Dict[StageId, RetryConfig]] = None,
    provider_chains: Optional[Dict[StageId, List[str]]] = None,
) -> WorkflowContext:
    """Seed a fresh context with every result slot empty."""
    return WorkflowContext(
        session_id=session_id or str(uuid.uuid4()),
        request=request,
        limits=limits or ResourceLimits(),
        retry=dict(retry or {}),
        provider_chains={k: list(v) for k, v in (provider_chains or {}).items()},
    )
