"""
FastAPI application entry point.

Assembles the FastAPI app with the orchestrator router.
"""

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from itinerary_agents.orchestration.orchestrator_api import router as orchestrator_router
from itinerary_agents.orchestration.states import STAGE_ORDER


# ============================================================================
# Logging configuration (single source of truth for all stages)
# ============================================================================
LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)-45s | %(message)s"
)

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,  # Override any prior basicConfig calls
)

# Quiet noisy third-party loggers
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)


app = FastAPI(
    title="Itinerary Orchestrator",
    description="Four-stage travel itinerary workflow with budgets, retries and provider fallback",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orchestrator_router)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Itinerary Orchestrator",
        "version": "0.1.0",
        "pipeline": [stage.value for stage in STAGE_ORDER],
        "endpoints": "/api/orchestrator",
    }


@app.get("/health")
async def health():
    """Global health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
