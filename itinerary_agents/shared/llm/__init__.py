"""LLM client utilities."""

from itinerary_agents.shared.llm.client import (
    LLMCallError,
    LLMCompletion,
    call_llm_with_usage,
    get_cached_client,
)
from itinerary_agents.shared.llm.pricing import calculate_cost

__all__ = [
    "LLMCallError",
    "LLMCompletion",
    "call_llm_with_usage",
    "get_cached_client",
    "calculate_cost",
]
