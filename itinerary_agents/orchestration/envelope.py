"""
Execution envelope returned by every stage.

AgentResult wraps the stage's opaque payload together with execution
metadata (timing, cost, tokens, provider) and the ordered error list.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from itinerary_agents.orchestration.errors import AgentError, AgentErrorKind
from itinerary_agents.orchestration.states import StageId


class TokenUsage(BaseModel):
    """Token counts for one attempt or an aggregate of attempts."""

    model_config = ConfigDict(frozen=True)

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(
            input=input_tokens,
            output=output_tokens,
            total=input_tokens + output_tokens,
        )

    def plus(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input=self.input + other.input,
            output=self.output + other.output,
            total=self.total + other.total,
        )


class AgentExecutionMetadata(BaseModel):
    """Execution metadata for one stage execution."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime = Field(description="Execution start time")
    completed_at: datetime = Field(description="Execution end time")
    duration_ms: float = Field(default=0.0, ge=0, description="Duration in milliseconds")
    cost: float = Field(default=0.0, ge=0, description="Cost incurred in USD")
    provider: str = Field(default="none", description="Provider that served the call")
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    retry_attempts: int = Field(
        default=0, ge=0, description="Retries made (provider fallbacks excluded)"
    )
    version: str = Field(default="1.0.0", description="Stage version")


class AgentResult(BaseModel):
    """
    Standard result returned by every stage.

    `confidence` is defined only for successful results and must lie in
    [0, 1]; failed results always carry confidence=None and at least one
    error.
    """

    model_config = ConfigDict(frozen=True)

    stage: StageId = Field(description="Stage that produced this result")
    success: bool = Field(description="Whether the stage succeeded")
    data: Any = Field(default=None, description="Stage-defined payload")
    metadata: AgentExecutionMetadata
    errors: List[AgentError] = Field(default_factory=list)
    next_stage: Optional[StageId] = Field(
        default=None, description="Optional hint for the next stage"
    )
    confidence: Optional[float] = Field(default=None, ge=0, le=1)

    @model_validator(mode="after")
    def _check_confidence(self) -> "AgentResult":
        if self.success and self.confidence is None:
            raise ValueError("successful results must report a confidence score")
        if not self.success:
            if self.confidence is not None:
                raise ValueError("confidence is only defined for successful results")
            if not self.errors:
                raise ValueError("failed results must carry at least one error")
        return self

    @property
    def last_error(self) -> Optional[AgentError]:
        return self.errors[-1] if self.errors else None


class ResourceUsage(BaseModel):
    """Running totals of resources consumed; only ever grows."""

    model_config = ConfigDict(frozen=True)

    cost: float = Field(default=0.0, ge=0)
    elapsed_ms: float = Field(default=0.0, ge=0)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    attempts: int = Field(default=0, ge=0)

    def plus(self, other: "ResourceUsage") -> "ResourceUsage":
        return ResourceUsage(
            cost=self.cost + other.cost,
            elapsed_ms=self.elapsed_ms + other.elapsed_ms,
            tokens=self.tokens.plus(other.tokens),
            attempts=self.attempts + other.attempts,
        )


class AttemptState(str, Enum):
    """Per-attempt lifecycle."""

    IDLE = "idle"
    VALIDATING = "validating"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed-out"


class AttemptRecord(BaseModel):
    """One physical attempt of a stage, kept for diagnostics."""

    model_config = ConfigDict(frozen=True)

    stage: StageId
    attempt: int = Field(ge=1, description="1-based attempt number")
    generation: int = Field(ge=1, description="Generation token of the attempt")
    provider: str
    state: AttemptState
    duration_ms: float = Field(default=0.0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    error_kind: Optional[AgentErrorKind] = None
