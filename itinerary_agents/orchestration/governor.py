"""
Resource governor.

Wraps one logical execution of one stage. A logical execution may span
several physical attempts (retries) and, inside each attempt, several
provider calls (fallback). All of them share the stage's time, cost and
token budgets.

Policy:
- Each physical call is raced against the remaining time budget. The
  loser is cancelled, and its generation is expired so that a result
  arriving late is discarded instead of applied.
- Retries follow the stage's RetryConfig through tenacity's AsyncRetrying.
- Before every physical call the projected workflow cost (assuming the
  stage's worst case) and the stage's token usage are checked against
  the limits; a call that would exceed them is not made.
- PROVIDER_ERROR moves to the next provider in the chain within the same
  attempt. Fallbacks are not counted in `retry_attempts`.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import List, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    stop_any,
    stop_when_event_set,
)

from itinerary_agents.orchestration.clock import Clock
from itinerary_agents.orchestration.context import WorkflowContext
from itinerary_agents.orchestration.envelope import (
    AgentExecutionMetadata,
    AgentResult,
    AttemptRecord,
    AttemptState,
    ResourceUsage,
)
from itinerary_agents.orchestration.errors import AgentError, AgentErrorKind
from itinerary_agents.orchestration.health import ProviderHealth
from itinerary_agents.orchestration.stage import CancellationToken, Stage, StageAttempt


logger = logging.getLogger(__name__)

# Float slack for budget comparisons
_EPSILON = 1e-9


@dataclass
class GovernedExecution:
    """Outcome of one governed stage execution."""

    result: AgentResult
    usage: ResourceUsage
    attempts: List[AttemptRecord] = field(default_factory=list)
    errors: List[AgentError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.result.success and not self.cancelled


class ResourceGovernor:
    """
    Applies timeout, retry, budget and fallback policy around stages.

    May be shared by concurrent workflows. Per-execution bookkeeping
    lives in a _StageExecution; the only shared state is provider health.
    """

    def __init__(
        self, clock: Optional[Clock] = None, health: Optional[ProviderHealth] = None
    ):
        self._clock = clock or Clock()
        self.health = health or ProviderHealth(self._clock)

    async def run(
        self,
        stage: Stage,
        context: Optional[WorkflowContext],
        cancel_token: Optional[CancellationToken] = None,
    ) -> GovernedExecution:
        execution = _StageExecution(
            stage, context, cancel_token or CancellationToken(), self._clock, self.health
        )
        return await execution.run()


class _StageExecution:
    """Bookkeeping for one logical execution of one stage."""

    def __init__(
        self,
        stage: Stage,
        context: Optional[WorkflowContext],
        cancel_token: CancellationToken,
        clock: Clock,
        health: ProviderHealth,
    ):
        self.stage = stage
        self.context = context
        self.token = cancel_token
        self.clock = clock
        self.health = health

        self.started_at = clock.now()
        self.started_mono = clock.monotonic()
        self.generation = 0
        self.attempt_number = 0
        self.provider_cursor = 0
        self.provider_exhausted = False
        self.last_provider = "none"

        self.usage = ResourceUsage()
        self.records: List[AttemptRecord] = []
        self.errors: List[AgentError] = []

        session_id = context.session_id if context is not None else "unknown"
        self._log = (
            f"[session={session_id}] [graph=orchestrator] "
            f"[governor={stage.stage_id.value}] "
        )

        if context is not None:
            self.retry = context.retry_for(stage.stage_id)
            chain = context.provider_chains.get(stage.stage_id) or stage.providers
            self.providers = health.filter_chain(chain) or ["none"]
        else:
            self.retry = None
            self.providers = list(stage.providers) or ["none"]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> GovernedExecution:
        if self.context is None:
            error = AgentError.of(
                AgentErrorKind.EXECUTION_ERROR,
                "Stage invoked without a workflow context",
                recoverable=False,
                severity="critical",
            )
            logger.error(f"{self._log}Contract violation: {error.message}")
            self.errors.append(error)
            return self._finish(self._governor_failure(error))

        self._wait = self.retry.wait_strategy()
        retrying = AsyncRetrying(
            stop=stop_any(
                stop_after_attempt(self.retry.max_retries + 1),
                stop_when_event_set(self.token),
                self._budget_spent,
            ),
            wait=self._backoff,
            retry=retry_if_result(self._should_retry),
            sleep=self._backoff_sleep,
            before_sleep=self._log_backoff,
            retry_error_callback=lambda state: state.outcome.result(),
        )
        result = await retrying(self._attempt)
        return self._finish(result)

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def _attempt(self) -> AgentResult:
        if self.token.cancelled:
            return self._cancelled_result()

        self.attempt_number += 1
        if self.provider_exhausted:
            # PROVIDER_ERROR configured as retryable: start the chain over
            self.provider_cursor = 0
            self.provider_exhausted = False

        while True:
            provider = self.providers[self.provider_cursor]
            result = await self._call_provider(provider)

            error = result.last_error
            if (
                result.success
                or error is None
                or error.kind != AgentErrorKind.PROVIDER_ERROR
            ):
                return result
            if self.provider_cursor + 1 >= len(self.providers):
                self.provider_exhausted = True
                logger.warning(
                    f"{self._log}Provider chain exhausted | chain={self.providers}"
                )
                return result

            self.provider_cursor += 1
            logger.info(
                f"{self._log}Provider fallback | from={provider}, "
                f"to={self.providers[self.provider_cursor]}, reason={error.message}"
            )
            if self.token.cancelled:
                return self._cancelled_result()

    async def _call_provider(self, provider: str) -> AgentResult:
        """One physical call: pre-emption, validation, then the timeout race."""
        self.last_provider = provider

        blocked = self._preempt()
        if blocked is not None:
            logger.warning(f"{self._log}Attempt blocked | {blocked.message}")
            self.errors.append(blocked)
            return self._governor_failure(blocked)

        self.generation += 1
        generation = self.generation
        attempt = StageAttempt(
            stage=self.stage.stage_id,
            attempt=self.attempt_number,
            generation=generation,
            provider=provider,
            started_at=self.clock.now(),
            clock=self.clock,
            cancel_token=self.token,
            is_current=self._is_current,
        )
        timeout = self._attempt_timeout()
        logger.info(
            f"{self._log}Attempt starting | attempt={self.attempt_number}, "
            f"generation={generation}, provider={provider}, timeout={timeout:.2f}s"
        )

        started = self.clock.monotonic()
        result, state = await self._race(attempt, timeout)
        duration_ms = max(0.0, (self.clock.monotonic() - started) * 1000)
        self._record_health(provider, result)

        result = self._enforce_budgets(result)
        state = self._final_state(result, state)

        usage = ResourceUsage(
            cost=result.metadata.cost,
            elapsed_ms=duration_ms,
            tokens=result.metadata.tokens,
            attempts=1,
        )
        self.usage = self.usage.plus(usage)
        self.errors.extend(result.errors)
        for error in result.errors:
            if error.kind == AgentErrorKind.UNKNOWN:
                logger.error(f"{self._log}Unknown error reported: {error.message}")
        self.records.append(
            AttemptRecord(
                stage=self.stage.stage_id,
                attempt=self.attempt_number,
                generation=generation,
                provider=provider,
                state=state,
                duration_ms=duration_ms,
                cost=result.metadata.cost,
                error_kind=result.last_error.kind if not result.success else None,
            )
        )
        logger.info(
            f"{self._log}Attempt finished | attempt={self.attempt_number}, "
            f"state={state.value}, duration={duration_ms:.0f}ms, "
            f"cost=${result.metadata.cost:.4f}"
        )
        return result

    async def _race(
        self, attempt: StageAttempt, timeout: float
    ) -> Tuple[AgentResult, AttemptState]:
        task = asyncio.ensure_future(self._invoke(attempt))
        done, _ = await asyncio.wait({task}, timeout=max(timeout, 0.0))
        if task in done:
            result = task.result()
            state = AttemptState.SUCCEEDED if result.success else AttemptState.FAILED
            return result, state

        # Expire the generation before cancelling so a late result is ignored
        self.generation += 1
        task.add_done_callback(partial(self._discard_late, attempt.generation))
        task.cancel()
        error = AgentError.of(
            AgentErrorKind.TIMEOUT,
            f"Stage '{self.stage.stage_id.value}' exceeded its time budget of {timeout:.2f}s",
            provider=attempt.provider,
            attempt=attempt.attempt,
        )
        return self._governor_failure(error, provider=attempt.provider), AttemptState.TIMED_OUT

    async def _invoke(self, attempt: StageAttempt) -> AgentResult:
        """Validate and execute; converts contract violations into failures."""
        try:
            logger.debug(f"{self._log}generation={attempt.generation} -> {AttemptState.VALIDATING.value}")
            try:
                valid = self.stage.validate(self.context)
            except Exception as e:
                logger.exception(f"{self._log}validate() raised: {e}")
                return self._violation(f"validate() raised {type(e).__name__}: {e}", attempt)

            if not valid:
                error = AgentError.of(
                    AgentErrorKind.VALIDATION,
                    f"Stage '{self.stage.stage_id.value}' rejected the workflow context",
                    suggested_action="Ensure the preceding stage completed successfully",
                )
                return self._governor_failure(error, provider=attempt.provider)

            logger.debug(f"{self._log}generation={attempt.generation} -> {AttemptState.EXECUTING.value}")
            try:
                result = await self.stage.execute(self.context, attempt)
            except Exception as e:
                logger.exception(f"{self._log}execute() raised: {e}")
                return self._violation(f"execute() raised {type(e).__name__}: {e}", attempt)

            if not isinstance(result, AgentResult):
                return self._violation(
                    f"execute() returned {type(result).__name__}, expected AgentResult",
                    attempt,
                )
            if result.stage != self.stage.stage_id:
                return self._violation(
                    f"execute() returned a result for '{result.stage.value}'", attempt
                )
            return result
        finally:
            try:
                await self.stage.cleanup()
            except Exception as e:
                logger.exception(f"{self._log}cleanup() raised: {e}")

    def _record_health(self, provider: str, result: AgentResult) -> None:
        if result.success:
            self.health.record_success(provider)
        elif result.last_error is not None:
            self.health.record_failure(provider, result.last_error.kind)

    def _discard_late(self, generation: int, task: "asyncio.Future") -> None:
        if task.cancelled():
            return
        if task.exception() is None:
            logger.warning(
                f"{self._log}Discarding stale result from generation {generation} "
                f"(current generation {self.generation})"
            )

    def _is_current(self, generation: int) -> bool:
        return generation == self.generation

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def _remaining_time(self) -> float:
        # Backoff waits count against the stage budget too
        stage_left = self.stage.timeout - (self.clock.monotonic() - self.started_mono)
        workflow_started = self.context.started_at or self.started_at
        workflow_elapsed = (self.clock.now() - workflow_started).total_seconds()
        workflow_left = self.context.limits.max_execution_time - workflow_elapsed
        return min(stage_left, workflow_left)

    def _attempt_timeout(self) -> float:
        remaining = self._remaining_time()
        per_attempt = getattr(self.stage, "attempt_timeout", None)
        return min(per_attempt, remaining) if per_attempt else remaining

    def _preempt(self) -> Optional[AgentError]:
        limits = self.context.limits
        projected = self.context.totals.cost + self.usage.cost + self.stage.max_cost
        if projected > limits.max_cost + _EPSILON:
            return AgentError.of(
                AgentErrorKind.COST_LIMIT,
                f"Projected cost ${projected:.4f} would exceed the workflow limit "
                f"of ${limits.max_cost:.4f}",
                projected_cost=projected,
                max_cost=limits.max_cost,
            )
        projected_tokens = self.usage.tokens.total + self.stage.max_tokens
        if projected_tokens > limits.max_tokens_per_stage:
            return AgentError.of(
                AgentErrorKind.COST_LIMIT,
                f"Projected {projected_tokens} tokens would exceed the per-stage "
                f"limit of {limits.max_tokens_per_stage}",
                projected_tokens=projected_tokens,
                max_tokens=limits.max_tokens_per_stage,
            )
        if self._remaining_time() <= 0:
            return AgentError.of(
                AgentErrorKind.TIMEOUT,
                f"No time budget left for stage '{self.stage.stage_id.value}'",
                recoverable=False,
            )
        return None

    def _enforce_budgets(self, result: AgentResult) -> AgentResult:
        """Turn a result that overspent its declared budget into a failure."""
        if result.metadata.cost > self.stage.max_cost + _EPSILON:
            error = AgentError.of(
                AgentErrorKind.COST_LIMIT,
                f"Attempt cost ${result.metadata.cost:.4f} exceeded the stage budget "
                f"of ${self.stage.max_cost:.4f}",
                recoverable=False,
            )
        elif self.usage.tokens.total + result.metadata.tokens.total > (
            self.context.limits.max_tokens_per_stage
        ):
            error = AgentError.of(
                AgentErrorKind.COST_LIMIT,
                "Stage token usage exceeded the per-stage limit",
                recoverable=False,
            )
        else:
            return result
        logger.warning(f"{self._log}{error.message}")
        return result.model_copy(
            update={
                "success": False,
                "data": None,
                "confidence": None,
                "errors": [*result.errors, error],
            }
        )

    def _budget_spent(self, retry_state: RetryCallState) -> bool:
        return self._remaining_time() <= 0

    # ------------------------------------------------------------------
    # Retry plumbing
    # ------------------------------------------------------------------

    def _should_retry(self, result: AgentResult) -> bool:
        if result.success or self.token.cancelled:
            return False
        error = result.last_error
        if error is None or not error.recoverable:
            return False
        if not self.retry.is_retryable(error.kind):
            return False
        return self._remaining_time() > 0

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Configured backoff, clipped to the time the stage has left."""
        return max(0.0, min(self._wait(retry_state), self._remaining_time()))

    async def _backoff_sleep(self, seconds: float) -> None:
        """Backoff delay that ends early if the workflow is cancelled."""
        sleeper = asyncio.ensure_future(self.clock.sleep(seconds))
        waiter = asyncio.ensure_future(self.token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        result = retry_state.outcome.result()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        kind = result.last_error.kind.value if result.last_error else "unknown"
        logger.info(
            f"{self._log}Retrying | attempt={retry_state.attempt_number}/"
            f"{self.retry.max_retries + 1}, error={kind}, backoff={delay:.2f}s"
        )

    # ------------------------------------------------------------------
    # Result construction
    # ------------------------------------------------------------------

    def _final_state(self, result: AgentResult, state: AttemptState) -> AttemptState:
        if state == AttemptState.TIMED_OUT:
            return state
        return AttemptState.SUCCEEDED if result.success else AttemptState.FAILED

    def _governor_failure(
        self, error: AgentError, provider: Optional[str] = None
    ) -> AgentResult:
        now = self.clock.now()
        return AgentResult(
            stage=self.stage.stage_id,
            success=False,
            metadata=AgentExecutionMetadata(
                started_at=now,
                completed_at=now,
                provider=provider or self.last_provider,
                version=self.stage.version,
            ),
            errors=[error],
        )

    def _violation(self, message: str, attempt: StageAttempt) -> AgentResult:
        error = AgentError.of(
            AgentErrorKind.EXECUTION_ERROR,
            f"Contract violation in stage '{self.stage.stage_id.value}': {message}",
            recoverable=False,
            severity="critical",
        )
        return self._governor_failure(error, provider=attempt.provider)

    def _cancelled_result(self) -> AgentResult:
        reason = self.token.reason or "Cancellation requested"
        error = AgentError.of(AgentErrorKind.CANCELLED, reason)
        self.errors.append(error)
        return self._governor_failure(error)

    def _finish(self, result: AgentResult) -> GovernedExecution:
        """Stamp aggregate metadata onto the final result."""
        metadata = result.metadata.model_copy(
            update={
                "started_at": self.started_at,
                "completed_at": self.clock.now(),
                "duration_ms": self.usage.elapsed_ms,
                "cost": self.usage.cost,
                "tokens": self.usage.tokens,
                "retry_attempts": max(self.attempt_number - 1, 0),
                "version": self.stage.version,
            }
        )
        update = {"metadata": metadata}
        if not result.success:
            update["errors"] = list(self.errors) or list(result.errors)
        final = result.model_copy(update=update)

        logger.info(
            f"{self._log}Execution finished | success={final.success}, "
            f"attempts={self.attempt_number}, provider={metadata.provider}, "
            f"cost=${metadata.cost:.4f}, errors={len(self.errors)}"
        )
        return GovernedExecution(
            result=final,
            usage=self.usage,
            attempts=list(self.records),
            errors=list(self.errors),
            cancelled=self.token.cancelled,
        )
