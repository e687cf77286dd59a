"""
Stage identifiers and workflow states.

The pipeline is fixed and linear: each stage has exactly one predecessor
and one successor, and one in-flight workflow state.
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class StageId(str, Enum):
    """The four pipeline stages."""

    CONTENT_PLANNER = "content-planner"
    INFO_GATHERER = "info-gatherer"
    STRATEGIST = "strategist"
    COMPILER = "compiler"


class WorkflowState(str, Enum):
    """Workflow lifecycle states."""

    INITIALIZED = "initialized"
    CONTENT_PLANNING = "content-planning"
    INFO_GATHERING = "info-gathering"
    STRATEGIZING = "strategizing"
    COMPILING = "compiling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_in_flight(self) -> bool:
        return self in STATE_STAGES


STAGE_ORDER: Tuple[StageId, ...] = (
    StageId.CONTENT_PLANNER,
    StageId.INFO_GATHERER,
    StageId.STRATEGIST,
    StageId.COMPILER,
)

STAGE_STATES: Dict[StageId, WorkflowState] = {
    StageId.CONTENT_PLANNER: WorkflowState.CONTENT_PLANNING,
    StageId.INFO_GATHERER: WorkflowState.INFO_GATHERING,
    StageId.STRATEGIST: WorkflowState.STRATEGIZING,
    StageId.COMPILER: WorkflowState.COMPILING,
}

STATE_STAGES: Dict[WorkflowState, StageId] = {v: k for k, v in STAGE_STATES.items()}

TERMINAL_STATES = frozenset(
    {WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.CANCELLED}
)


def stage_index(stage: StageId) -> int:
    """Zero-based position of a stage in the pipeline."""
    return STAGE_ORDER.index(stage)


def predecessor(stage: StageId) -> Optional[StageId]:
    """Stage that must succeed before `stage` may run, or None for the first."""
    idx = stage_index(stage)
    return STAGE_ORDER[idx - 1] if idx > 0 else None


def successor(stage: StageId) -> Optional[StageId]:
    """Stage that runs after `stage`, or None for the last."""
    idx = stage_index(stage)
    return STAGE_ORDER[idx + 1] if idx + 1 < len(STAGE_ORDER) else None
