"""
Configuration for the orchestration layer.

Retry policy and resource limits are pydantic models carried on every
WorkflowContext. OrchestratorSettings centralizes process-level defaults
and can be loaded from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from tenacity import wait_exponential

from itinerary_agents.orchestration.errors import AgentErrorKind
from itinerary_agents.orchestration.states import STAGE_ORDER, StageId

load_dotenv()


DEFAULT_RETRYABLE_KINDS: FrozenSet[AgentErrorKind] = frozenset(
    {
        AgentErrorKind.TIMEOUT,
        AgentErrorKind.RATE_LIMIT,
        AgentErrorKind.NETWORK_ERROR,
        AgentErrorKind.EXECUTION_ERROR,
    }
)


class RetryConfig(BaseModel):
    """
    Retry policy for one stage.

    Delays are in seconds. The n-th retry (n starting at 0) waits
    min(base_delay * backoff_multiplier**n, max_delay).
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)
    retryable_kinds: FrozenSet[AgentErrorKind] = Field(
        default=DEFAULT_RETRYABLE_KINDS
    )

    def wait_strategy(self) -> wait_exponential:
        """Tenacity wait strategy implementing the backoff formula."""
        return wait_exponential(
            multiplier=self.base_delay,
            exp_base=self.backoff_multiplier,
            max=self.max_delay,
        )

    def delay_for(self, retry_index: int) -> float:
        """Backoff before retry number `retry_index` (0-based)."""
        return min(
            self.base_delay * self.backoff_multiplier ** retry_index, self.max_delay
        )

    def is_retryable(self, kind: AgentErrorKind) -> bool:
        return kind in self.retryable_kinds


class ResourceLimits(BaseModel):
    """Resource limits for one workflow."""

    model_config = ConfigDict(frozen=True)

    max_execution_time: float = Field(
        default=300.0, gt=0, description="Wall-clock budget in seconds"
    )
    max_cost: float = Field(default=1.0, ge=0, description="Cost budget in USD")
    max_tokens_per_stage: int = Field(default=20000, gt=0)
    max_memory_mb: int = Field(default=512, gt=0, description="Advisory only")
    max_concurrent_workflows: int = Field(default=10, gt=0)


DEFAULT_RETRY_CONFIG = RetryConfig()

DEFAULT_PROVIDER_CHAINS: Dict[StageId, List[str]] = {
    StageId.CONTENT_PLANNER: ["groq", "cerebras", "gemini"],
    StageId.INFO_GATHERER: ["groq", "cerebras"],
    StageId.STRATEGIST: ["cerebras", "groq", "gemini"],
    StageId.COMPILER: ["cerebras", "gemini"],
}

# Seconds
DEFAULT_STAGE_TIMEOUTS: Dict[StageId, float] = {
    StageId.CONTENT_PLANNER: 30.0,
    StageId.INFO_GATHERER: 45.0,
    StageId.STRATEGIST: 30.0,
    StageId.COMPILER: 20.0,
}

# USD, worst case per attempt
DEFAULT_STAGE_COST_BUDGETS: Dict[StageId, float] = {
    StageId.CONTENT_PLANNER: 0.10,
    StageId.INFO_GATHERER: 0.30,
    StageId.STRATEGIST: 0.20,
    StageId.COMPILER: 0.15,
}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass
class OrchestratorSettings:
    """
    Process-level orchestrator configuration.

    Attributes:
        limits: Resource limits applied to new workflows
        retry: Retry policy applied to every stage unless overridden
        stage_retry: Per-stage retry overrides
        provider_chains: Per-stage provider chain overrides
        use_mock_providers: Route every stage to the deterministic mock provider
        logs_dir: Directory for per-session JSON Lines event logs (None disables)
        provider_failure_threshold: Consecutive failures before a provider is skipped
        provider_cooldown: Seconds an unavailable provider is skipped for
    """

    limits: ResourceLimits = field(default_factory=ResourceLimits)
    retry: RetryConfig = field(default_factory=RetryConfig)
    stage_retry: Dict[StageId, RetryConfig] = field(default_factory=dict)
    provider_chains: Dict[StageId, List[str]] = field(default_factory=dict)
    use_mock_providers: bool = False
    logs_dir: Optional[str] = None
    provider_failure_threshold: int = 5
    provider_cooldown: float = 300.0

    def retry_for(self, stage: StageId) -> RetryConfig:
        return self.stage_retry.get(stage, self.retry)

    def retry_map(self) -> Dict[StageId, RetryConfig]:
        return {stage: self.retry_for(stage) for stage in STAGE_ORDER}

    def chains(self) -> Dict[StageId, List[str]]:
        if self.use_mock_providers:
            return {stage: ["mock"] for stage in STAGE_ORDER}
        return dict(self.provider_chains)

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        """
        Build settings from ITINERARY_* environment variables.

        Unset variables keep the defaults.
        """
        limits = ResourceLimits(
            max_execution_time=_env_float("ITINERARY_MAX_EXECUTION_TIME", 300.0),
            max_cost=_env_float("ITINERARY_MAX_COST", 1.0),
            max_tokens_per_stage=_env_int("ITINERARY_MAX_TOKENS_PER_STAGE", 20000),
            max_memory_mb=_env_int("ITINERARY_MAX_MEMORY_MB", 512),
            max_concurrent_workflows=_env_int("ITINERARY_MAX_CONCURRENT_WORKFLOWS", 10),
        )
        retry = RetryConfig(
            max_retries=_env_int("ITINERARY_MAX_RETRIES", 3),
            base_delay=_env_float("ITINERARY_RETRY_BASE_DELAY", 1.0),
            backoff_multiplier=_env_float("ITINERARY_RETRY_MULTIPLIER", 2.0),
            max_delay=_env_float("ITINERARY_RETRY_MAX_DELAY", 30.0),
        )
        use_mock = os.environ.get("ITINERARY_USE_MOCK_PROVIDERS", "").lower() in (
            "1",
            "true",
            "yes",
        )
        return cls(
            limits=limits,
            retry=retry,
            use_mock_providers=use_mock,
            logs_dir=os.environ.get("ITINERARY_LOGS_DIR") or None,
            provider_failure_threshold=_env_int("ITINERARY_PROVIDER_FAILURE_THRESHOLD", 5),
            provider_cooldown=_env_float("ITINERARY_PROVIDER_COOLDOWN", 300.0),
        )
