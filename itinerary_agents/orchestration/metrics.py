"""
Session metrics.

Aggregates terminal workflow contexts into success rates, average cost
and duration, and per-stage performance.
"""

from dataclasses import dataclass
from typing import Dict, List

from pydantic import BaseModel, Field

from itinerary_agents.orchestration.context import WorkflowContext
from itinerary_agents.orchestration.states import STAGE_ORDER, StageId, WorkflowState


class StagePerformance(BaseModel):
    """How one stage performed across finished workflows."""

    executions: int = 0
    success_rate: float = Field(default=0.0, ge=0, le=1)
    average_duration_ms: float = 0.0
    average_cost: float = 0.0


class SessionMetrics(BaseModel):
    """Metrics over every workflow an orchestrator has finished."""

    total_sessions: int = 0
    active_sessions: int = 0
    completed_sessions: int = 0
    failed_sessions: int = 0
    cancelled_sessions: int = 0
    success_rate: float = Field(default=0.0, ge=0, le=1)
    average_duration_ms: float = 0.0
    average_cost: float = 0.0
    stage_performance: Dict[StageId, StagePerformance] = Field(default_factory=dict)


@dataclass
class _StageTally:
    executions: int = 0
    successes: int = 0
    duration_ms: float = 0.0
    cost: float = 0.0


def _average(total: float, count: int) -> float:
    return total / count if count else 0.0


class MetricsCollector:
    """Running tallies; `record` is called once per terminal context."""

    def __init__(self) -> None:
        self._states: List[WorkflowState] = []
        self._duration_ms = 0.0
        self._cost = 0.0
        self._stages: Dict[StageId, _StageTally] = {s: _StageTally() for s in STAGE_ORDER}

    def record(self, context: WorkflowContext) -> None:
        self._states.append(context.state)
        self._cost += context.totals.cost
        if context.started_at is not None and context.completed_at is not None:
            self._duration_ms += (context.completed_at - context.started_at).total_seconds() * 1000

        failed_stage = context.last_failure.stage if context.last_failure else None
        for stage in STAGE_ORDER:
            attempts = [a for a in context.attempts if a.stage == stage]
            if not attempts and stage != failed_stage:
                continue
            tally = self._stages[stage]
            tally.executions += 1
            tally.successes += context.results[stage] is not None
            tally.duration_ms += sum(a.duration_ms for a in attempts)
            tally.cost += sum(a.cost for a in attempts)

    def snapshot(self, active_sessions: int = 0) -> SessionMetrics:
        total = len(self._states)
        completed = self._states.count(WorkflowState.COMPLETED)
        return SessionMetrics(
            total_sessions=total,
            active_sessions=active_sessions,
            completed_sessions=completed,
            failed_sessions=self._states.count(WorkflowState.FAILED),
            cancelled_sessions=self._states.count(WorkflowState.CANCELLED),
            success_rate=_average(completed, total),
            average_duration_ms=_average(self._duration_ms, total),
            average_cost=_average(self._cost, total),
            stage_performance={
                stage: StagePerformance(
                    executions=tally.executions,
                    success_rate=_average(tally.successes, tally.executions),
                    average_duration_ms=_average(tally.duration_ms, tally.executions),
                    average_cost=_average(tally.cost, tally.executions),
                )
                for stage, tally in self._stages.items()
            },
        )
