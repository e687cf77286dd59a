"""
Prompt templates and builders for the LLM-backed stages.

Each stage gets a system prompt naming its role and a user prompt that
carries the request plus the predecessor payloads as JSON, followed by
the JSON schema its answer must follow.
"""

import json
from typing import Any, Dict, Type

from pydantic import BaseModel


_RESPONSE_RULES = """
Respond with a single JSON object that validates against the schema below.
Do not wrap it in prose. Use the trip currency for every amount unless a
field name says USD.
"""

CONTENT_PLANNER_PROMPT = """You are the content planner of a travel itinerary pipeline.
Turn the traveller's request into a trip frame: dates, party, a budget split
into accommodation, food and activities, the traveller's interests, and the
search queries and priorities the research step should cover.
""" + _RESPONSE_RULES

INFO_GATHERER_PROMPT = """You are the information gatherer of a travel itinerary pipeline.
Using the content plan, research the destination: attractions matching the
interests, accommodation options within the lodging budget, dining options
that respect dietary restrictions, and practical information (currency,
language, timezone, local transport, safety). List the ids of the search
queries you answered.
""" + _RESPONSE_RULES

STRATEGIST_PROMPT = """You are the planning strategist of a travel itinerary pipeline.
Using the content plan and the gathered information, allocate the budget,
assess risks, choose where to stay, and give every trip day a theme and the
attractions to focus on. Arrival and departure days should be light.
""" + _RESPONSE_RULES

COMPILER_PROMPT = """You are the itinerary compiler of a travel itinerary pipeline.
Using the strategy and the gathered information, schedule every day into
timed events (meals included), estimate costs, and summarize the total
against the budget. Add practical tips for the trip.
""" + _RESPONSE_RULES


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def build_user_prompt(
    sections: Dict[str, Any], output_model: Type[BaseModel]
) -> str:
    """
    Build a user prompt from named input sections and the output schema.

    Args:
        sections: Section title -> model or JSON-serializable value
        output_model: Contract the response must validate against

    Returns:
        Prompt string
    """
    parts = []
    for title, value in sections.items():
        parts.append(f"## {title}\n{json.dumps(_dump(value), indent=2, default=str)}")
    schema = json.dumps(output_model.model_json_schema(), indent=2)
    parts.append(f"## Output schema ({output_model.__name__})\n{schema}")
    return "\n\n".join(parts)
