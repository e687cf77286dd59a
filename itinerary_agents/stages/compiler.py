"""
Compiler stage.

Last stage: turns the strategy into the final timed itinerary.
"""

from typing import TYPE_CHECKING, Any, Dict

from itinerary_agents.orchestration.states import StageId
from itinerary_agents.shared.contracts.itinerary import ItineraryV1
from itinerary_agents.stages.base import LLMStage
from itinerary_agents.stages.mock_data import build_itinerary
from itinerary_agents.stages.prompts import COMPILER_PROMPT

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


class CompilerStage(LLMStage):
    stage_id = StageId.COMPILER
    output_model = ItineraryV1
    system_prompt = COMPILER_PROMPT
    timeout = 20.0
    max_cost = 0.15
    max_tokens = 8000
    providers = ("cerebras", "gemini")
    mock_confidence = 0.9

    def prompt_sections(self, context: "WorkflowContext") -> Dict[str, Any]:
        return {
            "Travel request": context.request,
            "Strategy": context.payload(StageId.STRATEGIST),
            "Gathered information": context.payload(StageId.INFO_GATHERER),
        }

    def build_mock(self, context: "WorkflowContext") -> ItineraryV1:
        return build_itinerary(
            context.request,
            context.payload(StageId.STRATEGIST),
            context.payload(StageId.INFO_GATHERER),
        )
