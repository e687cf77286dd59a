"""
FastAPI endpoints for the orchestrator.

Provides the API to run the full content-planner -> info-gatherer ->
strategist -> compiler pipeline for a travel request, either blocking
until the workflow is terminal or streaming transitions as Server-Sent
Events. Finished results, session metrics and provider health can be
read back afterwards.
"""

import json
import logging
import uuid
from collections import OrderedDict
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from itinerary_agents.orchestration.config import OrchestratorSettings
from itinerary_agents.orchestration.context import WorkflowContext, WorkflowStatus
from itinerary_agents.orchestration.errors import AgentError, OrchestrationError
from itinerary_agents.orchestration.metrics import SessionMetrics
from itinerary_agents.orchestration.orchestrator import Orchestrator
from itinerary_agents.orchestration.states import StageId, WorkflowState
from itinerary_agents.shared.contracts.travel_request import TravelRequestV1
from itinerary_agents.stages import default_registry


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orchestrator", tags=["orchestrator"])

# Shared orchestrator instance (created on first use)
_orchestrator: Optional[Orchestrator] = None

# Terminal responses of finished workflows, oldest evicted first
# (replace with Redis/DB in production)
MAX_FINISHED_SESSIONS = 500
_finished: "OrderedDict[str, OrchestratorRunResponse]" = OrderedDict()


def get_orchestrator() -> Orchestrator:
    """Get or create the shared orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        settings = OrchestratorSettings.from_env()
        _orchestrator = Orchestrator(default_registry(settings), settings=settings)
    return _orchestrator


def set_orchestrator(orchestrator: Optional[Orchestrator]) -> None:
    """Replace the shared orchestrator (None resets to lazy creation)."""
    global _orchestrator
    _orchestrator = orchestrator
    _finished.clear()


# ============================================================================
# Request/Response Models
# ============================================================================


class OrchestratorRunRequest(BaseModel):
    """Request to run the orchestrator pipeline."""

    request: TravelRequestV1 = Field(description="Validated travel request")
    session_id: Optional[str] = Field(
        default=None, description="Session identifier (generated if omitted)"
    )


class OrchestratorRunResponse(BaseModel):
    """Terminal state of a pipeline run."""

    session_id: str = Field(description="Pipeline session identifier")
    state: WorkflowState = Field(description="Terminal workflow state")
    status: WorkflowStatus
    itinerary: Optional[Dict[str, Any]] = Field(
        default=None, description="Compiled itinerary, when the workflow completed"
    )
    results: Dict[str, Optional[Dict[str, Any]]] = Field(
        default_factory=dict, description="Stage id -> stage result envelope"
    )
    messages: List[Dict[str, Any]] = Field(
        default_factory=list, description="Pipeline tracking messages"
    )
    errors: List[AgentError] = Field(
        default_factory=list, description="Ordered error history"
    )


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


class SessionStatusResponse(BaseModel):
    session_id: str
    exists: bool
    running: bool = False
    status: Optional[WorkflowStatus] = None


def build_run_response(context: WorkflowContext) -> OrchestratorRunResponse:
    """Serialize a terminal context for the API."""
    compiled = context.result(StageId.COMPILER)
    return OrchestratorRunResponse(
        session_id=context.session_id,
        state=context.state,
        status=context.status(),
        itinerary=compiled.model_dump(mode="json")["data"] if compiled else None,
        results={
            stage.value: (result.model_dump(mode="json") if result is not None else None)
            for stage, result in context.results.items()
        },
        messages=context.messages,
        errors=context.errors,
    )


def _remember(response: OrchestratorRunResponse) -> OrchestratorRunResponse:
    _finished[response.session_id] = response
    _finished.move_to_end(response.session_id)
    while len(_finished) > MAX_FINISHED_SESSIONS:
        _finished.popitem(last=False)
    return response


def _seed(orchestrator: Orchestrator, body: OrchestratorRunRequest) -> WorkflowContext:
    session_id = body.session_id or str(uuid.uuid4())
    if orchestrator.is_running(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} is already running",
        )
    return orchestrator.new_context(body.request, session_id=session_id)


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/run", response_model=OrchestratorRunResponse)
async def run_orchestrator(body: OrchestratorRunRequest) -> OrchestratorRunResponse:
    """
    Run the full orchestrator pipeline.

    Blocks until the workflow reaches completed, failed or cancelled and
    returns the terminal context. A failed workflow is still a 200: the
    state and error history describe what went wrong.
    """
    orchestrator = get_orchestrator()
    seed = _seed(orchestrator, body)
    _log = f"[session={seed.session_id}] [graph=orchestrator] [api=run] "

    logger.info(
        f"{_log}Pipeline starting | destination={body.request.destination}, "
        f"duration={body.request.trip_duration}d"
    )
    try:
        final = await orchestrator.start(seed)
    except OrchestrationError as e:
        logger.exception(f"{_log}Pipeline failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Pipeline execution failed: {str(e)}",
        )

    response = _remember(build_run_response(final))
    logger.info(
        f"{_log}Pipeline finished | state={final.state.value}, "
        f"errors={len(final.errors)}, messages={len(final.messages)}"
    )
    return response


def _sse(event: str, payload: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


@router.post("/stream")
async def stream_orchestrator(body: OrchestratorRunRequest) -> StreamingResponse:
    """
    Run the pipeline and stream every transition as a Server-Sent Event.

    Emits `transition` events while running, then one `complete` event
    carrying the terminal response (or `error` if the run aborted).
    """
    orchestrator = get_orchestrator()
    seed = _seed(orchestrator, body)
    _log = f"[session={seed.session_id}] [graph=orchestrator] [api=stream] "
    run = orchestrator.stream(seed)
    logger.info(f"{_log}Streaming pipeline started")

    async def events() -> AsyncIterator[str]:
        async for event in run:
            yield _sse("transition", event.model_dump(mode="json"))
        try:
            final = await run.final_context()
        except OrchestrationError as e:
            logger.exception(f"{_log}Pipeline failed: {e}")
            yield _sse("error", {"session_id": seed.session_id, "detail": str(e)})
            return
        response = _remember(build_run_response(final))
        yield _sse("complete", response.model_dump(mode="json"))

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Session-Id": seed.session_id},
    )


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_workflow(session_id: str) -> CancelResponse:
    """Request cancellation of a running workflow."""
    if not get_orchestrator().cancel(session_id, reason="Cancelled via API"):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} is not running",
        )
    return CancelResponse(session_id=session_id, cancelled=True)


@router.get("/session/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str) -> SessionStatusResponse:
    """Whether a workflow is running, or how it finished."""
    if get_orchestrator().is_running(session_id):
        return SessionStatusResponse(session_id=session_id, exists=True, running=True)
    finished = _finished.get(session_id)
    if finished is None:
        return SessionStatusResponse(session_id=session_id, exists=False)
    return SessionStatusResponse(session_id=session_id, exists=True, status=finished.status)


@router.get("/result/{session_id}", response_model=OrchestratorRunResponse)
async def get_workflow_result(session_id: str) -> OrchestratorRunResponse:
    """
    Terminal response of a finished workflow.

    Lets a client whose stream dropped fetch the compiled itinerary.
    Returns 409 while the workflow is still running and 404 if the
    session is unknown or has been evicted.
    """
    if get_orchestrator().is_running(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} is still running",
        )
    finished = _finished.get(session_id)
    if finished is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No result for session {session_id}",
        )
    return finished


@router.get("/metrics", response_model=SessionMetrics)
async def get_metrics() -> SessionMetrics:
    """Success rate, average cost and duration, and per-stage performance."""
    return get_orchestrator().metrics_snapshot()


@router.get("/providers")
async def get_provider_health() -> Dict[str, Dict[str, Any]]:
    """Success and failure counts per provider, and whether it is in rotation."""
    return get_orchestrator().governor.health.snapshot()
