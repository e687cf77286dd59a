"""Logging configuration and utilities."""

from itinerary_agents.shared.logging.config import (
    StructuredFormatter,
    log_state_transition,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "log_state_transition",
    "StructuredFormatter",
]
