"""
Tests for the pure workflow state machine.

Covers the happy path, failure and cancellation from every in-flight
state, and rejection of invalid events.
"""

import pytest

from itinerary_agents.orchestration.errors import InvalidTransition
from itinerary_agents.orchestration.machine import (
    CancelRequested,
    Finish,
    RunStage,
    StageFailed,
    StageSucceeded,
    Start,
    dispatch,
)
from itinerary_agents.orchestration.states import (
    STAGE_ORDER,
    STAGE_STATES,
    StageId,
    WorkflowState,
    predecessor,
    successor,
)


IN_FLIGHT = [STAGE_STATES[s] for s in STAGE_ORDER]
TERMINAL = [WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.CANCELLED]


class TestHappyPath:
    """Tests for the linear success path."""

    def test_start_runs_content_planner(self):
        transition = dispatch(WorkflowState.INITIALIZED, Start())
        assert transition.state == WorkflowState.CONTENT_PLANNING
        assert transition.effects == (RunStage(StageId.CONTENT_PLANNER),)

    def test_each_success_runs_the_next_stage(self):
        state = dispatch(WorkflowState.INITIALIZED, Start()).state
        visited = [state]
        for stage in STAGE_ORDER[:-1]:
            transition = dispatch(state, StageSucceeded(stage))
            assert transition.effects == (RunStage(successor(stage)),)
            state = transition.state
            visited.append(state)

        assert visited == [
            WorkflowState.CONTENT_PLANNING,
            WorkflowState.INFO_GATHERING,
            WorkflowState.STRATEGIZING,
            WorkflowState.COMPILING,
        ]

    def test_compiler_success_completes(self):
        transition = dispatch(WorkflowState.COMPILING, StageSucceeded(StageId.COMPILER))
        assert transition.state == WorkflowState.COMPLETED
        assert transition.effects == (Finish(WorkflowState.COMPLETED),)


class TestFailureAndCancellation:
    """Failed and cancelled are reachable from every in-flight state."""

    @pytest.mark.parametrize("stage", STAGE_ORDER)
    def test_stage_failure_fails_workflow(self, stage):
        transition = dispatch(STAGE_STATES[stage], StageFailed(stage))
        assert transition.state == WorkflowState.FAILED
        assert transition.effects == (Finish(WorkflowState.FAILED),)

    @pytest.mark.parametrize("state", IN_FLIGHT)
    def test_cancel_from_in_flight_state(self, state):
        transition = dispatch(state, CancelRequested("user asked"))
        assert transition.state == WorkflowState.CANCELLED
        assert transition.effects == (Finish(WorkflowState.CANCELLED),)


class TestInvalidTransitions:
    """Events a state cannot accept raise InvalidTransition."""

    @pytest.mark.parametrize("state", TERMINAL)
    def test_terminal_states_accept_nothing(self, state):
        for event in (Start(), CancelRequested(), StageSucceeded(StageId.COMPILER)):
            with pytest.raises(InvalidTransition):
                dispatch(state, event)

    def test_start_twice_is_rejected(self):
        with pytest.raises(InvalidTransition):
            dispatch(WorkflowState.CONTENT_PLANNING, Start())

    def test_cancel_before_start_is_rejected(self):
        with pytest.raises(InvalidTransition):
            dispatch(WorkflowState.INITIALIZED, CancelRequested())

    def test_outcome_for_wrong_stage_is_rejected(self):
        with pytest.raises(InvalidTransition) as excinfo:
            dispatch(WorkflowState.INFO_GATHERING, StageSucceeded(StageId.STRATEGIST))
        assert excinfo.value.state == WorkflowState.INFO_GATHERING

    def test_dispatch_is_pure(self):
        first = dispatch(WorkflowState.STRATEGIZING, StageSucceeded(StageId.STRATEGIST))
        second = dispatch(WorkflowState.STRATEGIZING, StageSucceeded(StageId.STRATEGIST))
        assert first == second


class TestStageOrder:
    def test_predecessor_and_successor(self):
        assert predecessor(StageId.CONTENT_PLANNER) is None
        assert predecessor(StageId.COMPILER) == StageId.STRATEGIST
        assert successor(StageId.COMPILER) is None
        assert successor(StageId.CONTENT_PLANNER) == StageId.INFO_GATHERER

    def test_terminal_flags(self):
        for state in TERMINAL:
            assert state.is_terminal
            assert not state.is_in_flight
        for state in IN_FLIGHT:
            assert state.is_in_flight
            assert not state.is_terminal
        assert not WorkflowState.INITIALIZED.is_in_flight
