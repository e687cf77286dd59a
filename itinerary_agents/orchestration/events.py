"""
Transition events and event sinks.

Every state transition emits one TransitionEvent to the caller-supplied
sink. How events travel further (SSE, queue, log file) is up to the sink.
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from itinerary_agents.orchestration.states import StageId, WorkflowState


logger = logging.getLogger(__name__)


class TransitionEvent(BaseModel):
    """Canonical transition event."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    sequence: int = Field(ge=0, description="Per-workflow sequence number")
    from_state: WorkflowState
    to_state: WorkflowState
    stage: Optional[StageId] = Field(
        default=None, description="Stage the transition concerns"
    )
    timestamp: datetime
    cost: float = Field(ge=0, description="Workflow cost so far in USD")
    elapsed_ms: float = Field(ge=0, description="Workflow stage time so far")


class EventSink(ABC):
    """Receives transition events."""

    @abstractmethod
    async def emit(self, event: TransitionEvent) -> None:
        """Deliver one event."""


class CollectingEventSink(EventSink):
    """Keeps every event in memory, in arrival order."""

    def __init__(self) -> None:
        self.events: List[TransitionEvent] = []

    async def emit(self, event: TransitionEvent) -> None:
        self.events.append(event)


class CallbackEventSink(EventSink):
    """Adapts a plain sync or async callable into a sink."""

    def __init__(self, callback: Callable[[TransitionEvent], Union[None, Awaitable[None]]]):
        self._callback = callback

    async def emit(self, event: TransitionEvent) -> None:
        outcome = self._callback(event)
        if inspect.isawaitable(outcome):
            await outcome


class LoggingEventSink(EventSink):
    """Logs each transition at INFO level."""

    def __init__(self, logger_name: str = __name__):
        self._logger = logging.getLogger(logger_name)

    async def emit(self, event: TransitionEvent) -> None:
        stage = event.stage.value if event.stage else "-"
        self._logger.info(
            f"[session={event.session_id}] [graph=orchestrator] [event={event.sequence}] "
            f"{event.from_state.value} -> {event.to_state.value} | stage={stage}, "
            f"cost=${event.cost:.4f}, elapsed={event.elapsed_ms:.0f}ms"
        )


class QueueEventSink(EventSink):
    """Pushes events onto an asyncio.Queue for streaming consumers."""

    def __init__(self, queue: Optional["asyncio.Queue[Any]"] = None):
        self.queue: "asyncio.Queue[Any]" = queue if queue is not None else asyncio.Queue()

    async def emit(self, event: TransitionEvent) -> None:
        await self.queue.put(event)


class JsonlEventSink(EventSink):
    """
    Writes events to per-session JSON Lines files.

    Each session gets its own folder: `<logs_dir>/<session_id>/events.jsonl`.
    A summary line is appended when `write_summary` is called.
    """

    def __init__(self, logs_dir: str = "logs"):
        self.base_logs_dir = Path(logs_dir)

    def log_file(self, session_id: str) -> Path:
        return self.base_logs_dir / session_id / "events.jsonl"

    def _append(self, session_id: str, entry: Dict[str, Any]) -> None:
        path = self.log_file(session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

    async def emit(self, event: TransitionEvent) -> None:
        entry = {"type": "transition", **event.model_dump(mode="json")}
        self._append(event.session_id, entry)

    def write_summary(self, session_id: str, summary: Dict[str, Any]) -> None:
        self._append(session_id, {"type": "session_summary", **summary})


class CompositeEventSink(EventSink):
    """Fans every event out to several sinks; one failing sink does not block the others."""

    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    async def emit(self, event: TransitionEvent) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(event)
            except Exception as e:
                logger.exception(
                    f"[session={event.session_id}] [graph=orchestrator] "
                    f"Event sink {type(sink).__name__} failed: {e}"
                )
