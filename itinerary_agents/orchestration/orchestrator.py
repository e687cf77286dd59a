"""
Workflow orchestrator.

Drives one workflow from `initialized` to a terminal state: feeds events
to the pure state machine, performs the effects it returns (run a stage
through the ResourceGovernor, finish), and emits a TransitionEvent for
every transition.

    orchestrator = Orchestrator(default_registry(settings), settings=settings)
    final = await orchestrator.start(new_context(request))

`stream()` returns a WorkflowRun that yields events as they happen.
"""

import asyncio
import logging
import sys
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import ValidationError

from itinerary_agents.orchestration.clock import Clock
from itinerary_agents.orchestration.context import WorkflowContext, new_context
from itinerary_agents.orchestration.envelope import AgentExecutionMetadata, AgentResult
from itinerary_agents.orchestration.errors import (
    AgentError,
    AgentErrorKind,
    InvalidTransition,
    OrchestrationError,
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
from itinerary_agents.orchestration.governor import ResourceGovernor
from itinerary_agents.orchestration.health import ProviderHealth
from itinerary_agents.orchestration.metrics import MetricsCollector, SessionMetrics
from itinerary_agents.orchestration.machine import (
    CancelRequested,
    Event,
    Finish,
    RunStage,
    StageFailed,
    StageSucceeded,
    Start,
    Transition,
    dispatch,
)
from itinerary_agents.orchestration.config import OrchestratorSettings
from itinerary_agents.orchestration.registry import StageRegistry
from itinerary_agents.orchestration.stage import CancellationToken, Stage
from itinerary_agents.orchestration.states import STATE_STAGES, StageId, WorkflowState
from itinerary_agents.shared.contracts.travel_request import TravelRequestV1
from itinerary_agents.shared.logging.config import log_state_transition


logger = logging.getLogger(__name__)


def _peak_memory_mb() -> Optional[float]:
    try:
        import resource
    except ImportError:
        # Not available on Windows
        return None
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, kilobytes elsewhere
    return peak / (1024 * 1024) if sys.platform == "darwin" else peak / 1024


class Orchestrator:
    """
    Runs workflows through the four-stage pipeline.

    One Orchestrator may drive many workflows concurrently; the number in
    flight is bounded by `settings.limits.max_concurrent_workflows`.
    """

    def __init__(
        self,
        registry: StageRegistry,
        sink: Optional[EventSink] = None,
        settings: Optional[OrchestratorSettings] = None,
        clock: Optional[Clock] = None,
        governor: Optional[ResourceGovernor] = None,
    ):
        self.registry = registry
        self.settings = settings or OrchestratorSettings()
        self.clock = clock or Clock()
        self.governor = governor or ResourceGovernor(
            self.clock,
            ProviderHealth(
                self.clock,
                failure_threshold=self.settings.provider_failure_threshold,
                cooldown=self.settings.provider_cooldown,
            ),
        )
        self.metrics = MetricsCollector()
        self.sink = sink or LoggingEventSink()
        self._jsonl = JsonlEventSink(self.settings.logs_dir) if self.settings.logs_dir else None
        self._slots = asyncio.Semaphore(self.settings.limits.max_concurrent_workflows)
        self._active: Dict[str, CancellationToken] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def new_context(
        self, request: TravelRequestV1, session_id: Optional[str] = None
    ) -> WorkflowContext:
        """Seed a context carrying this orchestrator's limits, retry policy and chains."""
        return new_context(
            request,
            session_id=session_id,
            limits=self.settings.limits,
            retry=self.settings.retry_map(),
            provider_chains=self.settings.chains(),
        )

    async def start(
        self,
        seed: WorkflowContext,
        cancel_token: Optional[CancellationToken] = None,
        sink: Optional[EventSink] = None,
    ) -> WorkflowContext:
        """
        Run a workflow to completion and return its terminal context.

        Raises:
            InvalidTransition: If `seed` is not in the `initialized` state.
            StageNotRegistered: If any pipeline stage has no factory.
            OrchestrationError: If the session id is already running.
        """
        missing = self.registry.missing_stages()
        if missing:
            raise StageNotRegistered(
                f"No stage registered for {', '.join(s.value for s in missing)}"
            )
        if seed.state != WorkflowState.INITIALIZED:
            raise InvalidTransition(seed.state, Start())
        if seed.session_id in self._active:
            raise OrchestrationError(f"Session '{seed.session_id}' is already running")

        token = cancel_token or CancellationToken()
        self._active[seed.session_id] = token
        try:
            async with self._slots:
                run = _WorkflowDriver(self, seed, token, self._sinks(sink))
                return await run.drive()
        finally:
            self._active.pop(seed.session_id, None)

    def stream(
        self,
        seed: WorkflowContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "WorkflowRun":
        """Start a workflow in the background and stream its transition events."""
        return WorkflowRun(self, seed, cancel_token)

    def cancel(self, session_id: str, reason: str = "Cancellation requested") -> bool:
        """
        Request cancellation of a running workflow.

        Returns False if no workflow with that session id is running.
        """
        token = self._active.get(session_id)
        if token is None:
            return False
        logger.info(f"[session={session_id}] [graph=orchestrator] Cancel requested: {reason}")
        token.cancel(reason)
        return True

    def is_running(self, session_id: str) -> bool:
        return session_id in self._active

    def metrics_snapshot(self) -> SessionMetrics:
        """Aggregate metrics over every workflow this orchestrator finished."""
        return self.metrics.snapshot(active_sessions=len(self._active))

    @property
    def active_sessions(self) -> List[str]:
        return list(self._active)

    def _sinks(self, extra: Optional[EventSink]) -> EventSink:
        sinks = [self.sink]
        if extra is not None:
            sinks.append(extra)
        if self._jsonl is not None:
            sinks.append(self._jsonl)
        return sinks[0] if len(sinks) == 1 else CompositeEventSink(*sinks)


class _WorkflowDriver:
    """Bookkeeping for one workflow run."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        seed: WorkflowContext,
        token: CancellationToken,
        sink: EventSink,
    ):
        self.orchestrator = orchestrator
        self.clock = orchestrator.clock
        self.context = seed
        self.token = token
        self.sink = sink
        self.sequence = 0
        self._log = f"[session={seed.session_id}] [graph=orchestrator] "

    async def drive(self) -> WorkflowContext:
        if self.context.started_at is None:
            self.context = self.context.model_copy(update={"started_at": self.clock.now()})

        request = self.context.request
        logger.info(
            f"{self._log}Workflow starting | destination={request.destination}, "
            f"duration={request.trip_duration}d, budget={request.budget.amount} "
            f"{request.budget.currency}"
        )
        self.context = self.context.with_message(
            "orchestrator", f"Workflow started for {request.destination}"
        )

        pending = list(await self._apply(Start()))
        while pending:
            effect = pending.pop(0)
            if isinstance(effect, Finish):
                continue
            if isinstance(effect, RunStage):
                event = await self._run_stage(effect.stage)
                pending.extend(await self._apply(event, effect.stage))

        self._write_summary()
        self.orchestrator.metrics.record(self.context)
        logger.info(
            f"{self._log}Workflow finished | state={self.context.state.value}, "
            f"completed={[s.value for s in self.context.completed_stages]}, "
            f"cost=${self.context.totals.cost:.4f}, errors={len(self.context.errors)}"
        )
        return self.context

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _apply(self, event: Event, stage: Optional[StageId] = None):
        from_state = self.context.state
        transition: Transition = dispatch(from_state, event)

        if transition.state == WorkflowState.CANCELLED:
            self._record_cancellation(event)

        completed_at = None
        if any(isinstance(e, Finish) for e in transition.effects):
            completed_at = self.clock.now()
        self.context = self.context.with_state(transition.state, completed_at=completed_at)

        log_state_transition(
            type(event).__name__,
            self.context.status().model_dump(mode="json"),
            extra={"from_state": from_state.value, "to_state": transition.state.value},
            logger=logger,
        )
        await self._emit(from_state, transition.state, stage or STATE_STAGES.get(transition.state))
        return transition.effects

    async def _emit(
        self,
        from_state: WorkflowState,
        to_state: WorkflowState,
        stage: Optional[StageId],
    ) -> None:
        event = TransitionEvent(
            session_id=self.context.session_id,
            sequence=self.sequence,
            from_state=from_state,
            to_state=to_state,
            stage=stage,
            timestamp=self.clock.now(),
            cost=self.context.totals.cost,
            elapsed_ms=self.context.totals.elapsed_ms,
        )
        self.sequence += 1
        try:
            await self.sink.emit(event)
        except Exception as e:
            logger.exception(f"{self._log}Event sink failed on event {event.sequence}: {e}")

    def _record_cancellation(self, event: Event) -> None:
        reason = getattr(event, "reason", None) or "Cancellation requested"
        if not any(e.kind == AgentErrorKind.CANCELLED for e in self.context.errors):
            self.context = self.context.with_errors(
                AgentError.of(AgentErrorKind.CANCELLED, reason)
            )
        self.context = self.context.with_message("orchestrator", f"Workflow cancelled: {reason}")
        logger.info(f"{self._log}Workflow cancelled | reason={reason}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stage(self, stage_id: StageId) -> Event:
        if self.token.cancelled:
            return CancelRequested(self.token.reason or "Cancellation requested")

        _log = f"{self._log}[node={stage_id.value}] "
        try:
            stage = self.orchestrator.registry.get(stage_id)
        except Exception as e:
            logger.exception(f"{_log}Could not build stage: {e}")
            return self._stage_unavailable(stage_id, e)
        logger.info(f"{_log}Stage starting | {stage!r}")

        execution = await self.orchestrator.governor.run(stage, self.context, self.token)
        self.context = self.context.with_execution(
            execution.usage, execution.attempts, execution.errors
        )
        self._check_memory(_log)

        if self.token.cancelled:
            if execution.result.success:
                logger.info(f"{_log}Discarding result of cancelled workflow")
            return CancelRequested(self.token.reason or "Cancellation requested")

        result = execution.result
        if execution.success:
            result = self._check_payload(stage, result)

        if result.success:
            self.context = self.context.with_result(stage_id, result).with_message(
                stage_id.value,
                f"Stage {stage_id.value} completed via {result.metadata.provider} "
                f"(retries={result.metadata.retry_attempts}, "
                f"confidence={result.confidence:.2f})",
            )
            logger.info(f"{_log}Stage succeeded | provider={result.metadata.provider}")
            return StageSucceeded(stage_id)

        error = result.last_error
        self.context = self.context.with_failure(result).with_message(
            stage_id.value,
            f"Stage {stage_id.value} failed: {error.message if error else 'unknown error'}",
        )
        logger.warning(
            f"{_log}Stage failed | kind={error.kind.value if error else 'unknown'}, "
            f"errors={len(result.errors)}"
        )
        return StageFailed(stage_id)

    def _stage_unavailable(self, stage_id: StageId, exc: Exception) -> Event:
        """Fail the workflow when the registry cannot produce a stage."""
        error = AgentError.of(
            AgentErrorKind.EXECUTION_ERROR,
            f"Stage '{stage_id.value}' could not be built: {type(exc).__name__}: {exc}",
            recoverable=False,
            severity="critical",
        )
        now = self.clock.now()
        result = AgentResult(
            stage=stage_id,
            success=False,
            metadata=AgentExecutionMetadata(started_at=now, completed_at=now),
            errors=[error],
        )
        self.context = (
            self.context.with_errors(error)
            .with_failure(result)
            .with_message(stage_id.value, f"Stage {stage_id.value} failed: {error.message}")
        )
        return StageFailed(stage_id)

    def _check_payload(self, stage: Stage, result: AgentResult) -> AgentResult:
        """Validate the payload against the stage's output model at the merge boundary."""
        model = stage.output_model
        if model is None:
            return result
        try:
            data = result.data if isinstance(result.data, model) else model.model_validate(result.data)
        except ValidationError as e:
            error = AgentError.of(
                AgentErrorKind.EXECUTION_ERROR,
                f"Stage '{stage.stage_id.value}' returned a payload that does not match "
                f"{model.__name__}: {e.error_count()} validation error(s)",
                recoverable=False,
                severity="critical",
                validation_errors=[
                    {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
                ],
            )
            logger.error(f"{self._log}[node={stage.stage_id.value}] {error.message}")
            self.context = self.context.with_errors(error)
            return AgentResult(
                stage=result.stage,
                success=False,
                metadata=result.metadata,
                errors=[*result.errors, error],
            )
        return result.model_copy(update={"data": data})

    def _check_memory(self, _log: str) -> None:
        limit = self.context.limits.max_memory_mb
        peak = _peak_memory_mb()
        if peak is not None and peak > limit:
            logger.warning(
                f"{_log}Process peak memory {peak:.0f}MB exceeds advisory limit {limit}MB"
            )

    def _write_summary(self) -> None:
        jsonl = self.orchestrator._jsonl
        if jsonl is None:
            return
        totals = self.context.totals
        jsonl.write_summary(
            self.context.session_id,
            {
                "timestamp": self.clock.now().isoformat(),
                "session_id": self.context.session_id,
                "state": self.context.state.value,
                "completed_stages": [s.value for s in self.context.completed_stages],
                "total_attempts": totals.attempts,
                "total_input_tokens": totals.tokens.input,
                "total_output_tokens": totals.tokens.output,
                "total_tokens": totals.tokens.total,
                "total_cost_usd": round(totals.cost, 6),
                "total_elapsed_ms": round(totals.elapsed_ms, 2),
                "errors": [e.kind.value for e in self.context.errors],
            },
        )


_DONE = object()


class WorkflowRun:
    """
    A workflow running in the background.

    Iterate it to receive TransitionEvents as they happen; await
    `final_context()` for the terminal context.

        run = orchestrator.stream(seed)
        async for event in run:
            ...
        final = await run.final_context()
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        seed: WorkflowContext,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.session_id = seed.session_id
        self.cancel_token = cancel_token or CancellationToken()
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task = asyncio.ensure_future(self._run(orchestrator, seed))

    async def _run(self, orchestrator: Orchestrator, seed: WorkflowContext) -> WorkflowContext:
        try:
            return await orchestrator.start(
                seed, cancel_token=self.cancel_token, sink=QueueEventSink(self._queue)
            )
        finally:
            await self._queue.put(_DONE)

    def __aiter__(self) -> AsyncIterator[TransitionEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[TransitionEvent]:
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    def cancel(self, reason: str = "Cancellation requested") -> None:
        self.cancel_token.cancel(reason)

    async def final_context(self) -> WorkflowContext:
        """Terminal context; re-raises anything that aborted the run."""
        return await self._task
