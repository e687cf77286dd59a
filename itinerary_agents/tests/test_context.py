"""
Tests for WorkflowContext.

Covers write-once result slots, pipeline ordering, copy-on-write updates,
read visibility and the status summary.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from itinerary_agents.orchestration.envelope import (
    AgentExecutionMetadata,
    AgentResult,
    ResourceUsage,
    TokenUsage,
)
from itinerary_agents.orchestration.errors import AgentError, AgentErrorKind, ResultSlotError
from itinerary_agents.orchestration.states import STAGE_ORDER, StageId, WorkflowState
from itinerary_agents.tests.stubs import make_context


# =============================================================================
# Helpers
# =============================================================================

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _make_result(stage: StageId, success: bool = True, data=None) -> AgentResult:
    errors = [] if success else [AgentError.of(AgentErrorKind.TIMEOUT, "slow")]
    return AgentResult(
        stage=stage,
        success=success,
        data=data if data is not None else {"stage": stage.value},
        metadata=AgentExecutionMetadata(started_at=NOW, completed_at=NOW, cost=0.01),
        errors=errors,
        confidence=0.9 if success else None,
    )


def _advance(context, stage: StageId):
    """Move to the stage's state and record its result."""
    state = {
        StageId.CONTENT_PLANNER: WorkflowState.CONTENT_PLANNING,
        StageId.INFO_GATHERER: WorkflowState.INFO_GATHERING,
        StageId.STRATEGIST: WorkflowState.STRATEGIZING,
        StageId.COMPILER: WorkflowState.COMPILING,
    }[stage]
    return context.with_state(state).with_result(stage, _make_result(stage))


# =============================================================================
# Seeding
# =============================================================================


class TestNewContext:
    def test_all_slots_start_empty(self):
        context = make_context()
        assert context.state == WorkflowState.INITIALIZED
        assert context.current_stage is None
        assert list(context.results) == list(STAGE_ORDER)
        assert all(v is None for v in context.results.values())
        assert context.totals == ResourceUsage()

    def test_generates_session_id_when_missing(self):
        from itinerary_agents.orchestration.context import new_context
        from itinerary_agents.tests.stubs import make_request

        first = new_context(make_request())
        second = new_context(make_request())
        assert first.session_id and second.session_id
        assert first.session_id != second.session_id

    def test_context_is_frozen(self):
        context = make_context()
        with pytest.raises(ValidationError):
            context.state = WorkflowState.COMPLETED


# =============================================================================
# Result slots
# =============================================================================


class TestResultSlots:
    """Slots are write-once and fill strictly in pipeline order."""

    def test_records_results_in_order(self):
        context = make_context()
        for stage in STAGE_ORDER:
            context = _advance(context, stage)
        assert context.completed_stages == list(STAGE_ORDER)
        assert context.payload(StageId.COMPILER) == {"stage": "compiler"}

    def test_slot_is_write_once(self):
        context = _advance(make_context(), StageId.CONTENT_PLANNER)
        with pytest.raises(ResultSlotError):
            context.with_result(StageId.CONTENT_PLANNER, _make_result(StageId.CONTENT_PLANNER))

    def test_cannot_skip_a_stage(self):
        context = make_context().with_state(WorkflowState.INFO_GATHERING)
        with pytest.raises(ResultSlotError):
            context.with_result(StageId.INFO_GATHERER, _make_result(StageId.INFO_GATHERER))

    def test_only_current_stage_may_write(self):
        context = make_context().with_state(WorkflowState.CONTENT_PLANNING)
        with pytest.raises(ResultSlotError):
            context.with_result(StageId.INFO_GATHERER, _make_result(StageId.INFO_GATHERER))

    def test_failed_result_cannot_fill_slot(self):
        context = make_context().with_state(WorkflowState.CONTENT_PLANNING)
        with pytest.raises(ResultSlotError):
            context.with_result(
                StageId.CONTENT_PLANNER, _make_result(StageId.CONTENT_PLANNER, success=False)
            )

    def test_result_for_other_stage_cannot_fill_slot(self):
        context = make_context().with_state(WorkflowState.CONTENT_PLANNING)
        with pytest.raises(ResultSlotError):
            context.with_result(StageId.CONTENT_PLANNER, _make_result(StageId.COMPILER))


# =============================================================================
# Copy-on-write
# =============================================================================


class TestCopyOnWrite:
    def test_updates_leave_original_untouched(self):
        original = make_context()
        updated = _advance(original, StageId.CONTENT_PLANNER).with_message("test", "hello")

        assert original.results[StageId.CONTENT_PLANNER] is None
        assert original.state == WorkflowState.INITIALIZED
        assert original.messages == []
        assert updated.results[StageId.CONTENT_PLANNER] is not None
        assert updated.messages[-1] == {"role": "system", "agent": "test", "content": "hello"}

    def test_request_is_shared_by_reference(self):
        original = make_context()
        updated = original.with_state(WorkflowState.CONTENT_PLANNING)
        assert updated.request is original.request

    def test_with_execution_accumulates(self):
        context = make_context()
        usage = ResourceUsage(cost=0.02, elapsed_ms=100, tokens=TokenUsage.of(10, 5), attempts=1)
        error = AgentError.of(AgentErrorKind.RATE_LIMIT, "slow down")

        context = context.with_execution(usage, [], [error]).with_execution(usage, [], [])

        assert context.totals.cost == pytest.approx(0.04)
        assert context.totals.elapsed_ms == pytest.approx(200)
        assert context.totals.tokens.total == 30
        assert context.totals.attempts == 2
        assert context.errors == [error]

    def test_with_state_tracks_current_stage(self):
        context = make_context().with_state(WorkflowState.STRATEGIZING)
        assert context.current_stage == StageId.STRATEGIST
        context = context.with_state(WorkflowState.FAILED, completed_at=NOW)
        assert context.current_stage is None
        assert context.completed_at == NOW


# =============================================================================
# Reads
# =============================================================================


class TestVisibility:
    def test_stage_sees_only_predecessors(self):
        context = make_context()
        for stage in STAGE_ORDER[:2]:
            context = _advance(context, stage)

        visible = context.visible_results(StageId.STRATEGIST)
        assert list(visible) == [StageId.CONTENT_PLANNER, StageId.INFO_GATHERER]
        assert context.visible_results(StageId.CONTENT_PLANNER) == {}

    def test_retry_for_falls_back_to_default(self):
        from itinerary_agents.orchestration.config import DEFAULT_RETRY_CONFIG
        from itinerary_agents.orchestration.context import new_context
        from itinerary_agents.tests.stubs import make_request

        context = new_context(make_request())
        assert context.retry_for(StageId.COMPILER) == DEFAULT_RETRY_CONFIG


class TestStatus:
    def test_progress_while_running(self):
        context = make_context(session_id="s-1")
        context = _advance(context, StageId.CONTENT_PLANNER)
        context = context.with_state(WorkflowState.INFO_GATHERING)

        status = context.status()
        assert status.session_id == "s-1"
        assert status.progress_percentage == 25
        assert status.current_stage == StageId.INFO_GATHERER
        assert status.completed_stages == [StageId.CONTENT_PLANNER]
        assert status.status_message == "Running info-gatherer"

    def test_completed_is_full_progress(self):
        context = make_context()
        for stage in STAGE_ORDER:
            context = _advance(context, stage)
        status = context.with_state(WorkflowState.COMPLETED).status()
        assert status.progress_percentage == 100
        assert status.status_message == "Itinerary compiled"

    def test_failed_reports_failed_stage(self):
        context = make_context().with_state(WorkflowState.CONTENT_PLANNING)
        context = context.with_failure(
            _make_result(StageId.CONTENT_PLANNER, success=False)
        ).with_state(WorkflowState.FAILED)

        status = context.status()
        assert status.failed_stages == [StageId.CONTENT_PLANNER]
        assert status.status_message == "Workflow failed at content-planner"
        assert status.progress_percentage == 0


class TestAgentResult:
    """Envelope invariants."""

    def test_success_requires_confidence(self):
        with pytest.raises(ValidationError):
            AgentResult(
                stage=StageId.COMPILER,
                success=True,
                metadata=AgentExecutionMetadata(started_at=NOW, completed_at=NOW),
            )

    def test_failure_requires_an_error(self):
        with pytest.raises(ValidationError):
            AgentResult(
                stage=StageId.COMPILER,
                success=False,
                metadata=AgentExecutionMetadata(started_at=NOW, completed_at=NOW),
            )

    def test_failure_rejects_confidence(self):
        with pytest.raises(ValidationError):
            AgentResult(
                stage=StageId.COMPILER,
                success=False,
                metadata=AgentExecutionMetadata(started_at=NOW, completed_at=NOW),
                errors=[AgentError.of(AgentErrorKind.UNKNOWN, "boom")],
                confidence=0.5,
            )

    def test_confidence_bounds(self):
        dumped = _make_result(StageId.COMPILER).model_dump()
        with pytest.raises(ValidationError):
            AgentResult.model_validate({**dumped, "confidence": 1.5})

    def test_error_kind_defaults(self):
        error = AgentError.of(AgentErrorKind.COST_LIMIT, "too expensive")
        assert error.recoverable is False
        assert error.severity == "high"
        assert AgentError.of(AgentErrorKind.RATE_LIMIT, "x").recoverable is True
