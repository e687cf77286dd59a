"""
Stage contract.

Every pipeline stage subclasses Stage. Instances are cached and shared by
the registry across concurrent workflows, so they must keep no
per-execution state in instance fields: everything an execution needs
arrives through the WorkflowContext and the StageAttempt.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence, Type

from pydantic import BaseModel

from itinerary_agents.orchestration.clock import Clock
from itinerary_agents.orchestration.envelope import (
    AgentExecutionMetadata,
    AgentResult,
    TokenUsage,
)
from itinerary_agents.orchestration.errors import AgentError, AgentErrorKind
from itinerary_agents.orchestration.states import StageId, predecessor

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


class CancellationToken:
    """
    Cooperative cancellation flag for one workflow.

    Exposes `is_set()` so it can drive tenacity's `stop_when_event_set`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancellation requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class StageAttempt:
    """
    Per-attempt handle given to Stage.execute.

    `generation` identifies this attempt; once the governor moves on
    (timeout, retry) the attempt is stale and anything it returns is
    discarded. Long-running stages should check `should_stop` between
    external calls.
    """

    stage: StageId
    attempt: int
    generation: int
    provider: str
    started_at: datetime
    clock: Clock
    cancel_token: CancellationToken
    is_current: Callable[[int], bool] = field(default=lambda _generation: True)

    @property
    def is_stale(self) -> bool:
        return not self.is_current(self.generation)

    @property
    def should_stop(self) -> bool:
        return self.is_stale or self.cancel_token.cancelled


class Stage(ABC):
    """
    Base class for the four pipeline stages.

    Attributes:
        stage_id: Which pipeline slot this stage fills
        version: Stage version, recorded in result metadata
        timeout: Wall-clock budget in seconds shared by all attempts
        max_cost: Worst-case USD cost of a single attempt
        max_tokens: Worst-case token usage of a single attempt
        providers: Ordered provider fallback chain
        output_model: Pydantic model the payload must validate against
    """

    stage_id: StageId
    version: str = "1.0.0"
    timeout: float = 30.0
    max_cost: float = 0.10
    max_tokens: int = 4000
    providers: Sequence[str] = ("mock",)
    output_model: Optional[Type[BaseModel]] = None

    def validate(self, context: "WorkflowContext") -> bool:
        """
        Structural pre-check; must not have side effects.

        The default requires the predecessor's result to be present and
        successful (the first stage only needs a request).
        """
        if context is None or context.request is None:
            return False
        prev = predecessor(self.stage_id)
        if prev is None:
            return True
        result = context.result(prev)
        return result is not None and result.success

    @abstractmethod
    async def execute(
        self, context: "WorkflowContext", attempt: StageAttempt
    ) -> AgentResult:
        """
        Run the stage.

        Must not mutate `context` and must not raise for expected
        failures: those are returned as `success=False` with errors.
        """

    async def cleanup(self) -> None:
        """Release attempt-scoped resources. Called after every attempt."""
        return None

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def make_error(
        self,
        kind: AgentErrorKind,
        message: str,
        recoverable: Optional[bool] = None,
        **details: Any,
    ) -> AgentError:
        return AgentError.of(
            kind,
            message,
            recoverable=recoverable,
            stage=self.stage_id.value,
            **details,
        )

    def make_result(
        self,
        attempt: StageAttempt,
        data: Any = None,
        success: bool = True,
        errors: Sequence[AgentError] = (),
        cost: float = 0.0,
        tokens: Optional[TokenUsage] = None,
        confidence: Optional[float] = None,
        provider: Optional[str] = None,
    ) -> AgentResult:
        completed_at = attempt.clock.now()
        metadata = AgentExecutionMetadata(
            started_at=attempt.started_at,
            completed_at=completed_at,
            duration_ms=max(0.0, (completed_at - attempt.started_at).total_seconds() * 1000),
            cost=cost,
            provider=provider or attempt.provider,
            tokens=tokens or TokenUsage(),
            version=self.version,
        )
        if success and confidence is None:
            confidence = 0.9
        return AgentResult(
            stage=self.stage_id,
            success=success,
            data=data,
            metadata=metadata,
            errors=list(errors),
            confidence=confidence if success else None,
        )

    def failure(
        self,
        attempt: StageAttempt,
        *errors: AgentError,
        cost: float = 0.0,
        tokens: Optional[TokenUsage] = None,
    ) -> AgentResult:
        return self.make_result(
            attempt, success=False, errors=errors, cost=cost, tokens=tokens
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stage_id={self.stage_id.value!r}, version={self.version!r})"
