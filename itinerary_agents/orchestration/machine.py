"""
Pure workflow state machine.

`dispatch(state, event)` returns the next state plus the effects the
driver must perform. It has no I/O and no knowledge of stages beyond
their order, which keeps every transition unit-testable.

    initialized --Start--> content-planning --ok--> info-gathering --ok-->
    strategizing --ok--> compiling --ok--> completed

Any in-flight state goes to `failed` on StageFailed and to `cancelled`
on CancelRequested. Terminal states accept no events.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from itinerary_agents.orchestration.errors import InvalidTransition
from itinerary_agents.orchestration.states import (
    STAGE_ORDER,
    STAGE_STATES,
    STATE_STAGES,
    StageId,
    WorkflowState,
    successor,
)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class StageSucceeded:
    stage: StageId


@dataclass(frozen=True)
class StageFailed:
    stage: StageId


@dataclass(frozen=True)
class CancelRequested:
    reason: str = "Cancellation requested"


Event = Union[Start, StageSucceeded, StageFailed, CancelRequested]


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class RunStage:
    stage: StageId


@dataclass(frozen=True)
class Finish:
    state: WorkflowState


Effect = Union[RunStage, Finish]


@dataclass(frozen=True)
class Transition:
    state: WorkflowState
    effects: Tuple[Effect, ...] = ()


def dispatch(state: WorkflowState, event: Event) -> Transition:
    """
    Compute the transition for `event` in `state`.

    Raises:
        InvalidTransition: If `state` cannot accept `event`.
    """
    if isinstance(event, Start):
        if state != WorkflowState.INITIALIZED:
            raise InvalidTransition(state, event)
        first = STAGE_ORDER[0]
        return Transition(STAGE_STATES[first], (RunStage(first),))

    if state.is_terminal or not state.is_in_flight:
        raise InvalidTransition(state, event)

    current = STATE_STAGES[state]

    if isinstance(event, CancelRequested):
        return Transition(WorkflowState.CANCELLED, (Finish(WorkflowState.CANCELLED),))

    if isinstance(event, (StageSucceeded, StageFailed)) and event.stage != current:
        raise InvalidTransition(state, event)

    if isinstance(event, StageFailed):
        return Transition(WorkflowState.FAILED, (Finish(WorkflowState.FAILED),))

    if isinstance(event, StageSucceeded):
        nxt = successor(current)
        if nxt is None:
            return Transition(WorkflowState.COMPLETED, (Finish(WorkflowState.COMPLETED),))
        return Transition(STAGE_STATES[nxt], (RunStage(nxt),))

    raise InvalidTransition(state, event)
