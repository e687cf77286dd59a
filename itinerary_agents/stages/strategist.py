"""
Planning strategist stage.

Allocates the budget and lays out a theme and focus list for every day.
"""

from typing import TYPE_CHECKING, Any, Dict

from itinerary_agents.orchestration.states import StageId
from itinerary_agents.shared.contracts.strategy import StrategyV1
from itinerary_agents.stages.base import LLMStage
from itinerary_agents.stages.mock_data import build_strategy
from itinerary_agents.stages.prompts import STRATEGIST_PROMPT

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


class StrategistStage(LLMStage):
    stage_id = StageId.STRATEGIST
    output_model = StrategyV1
    system_prompt = STRATEGIST_PROMPT
    timeout = 30.0
    max_cost = 0.20
    max_tokens = 6000
    providers = ("cerebras", "groq", "gemini")

    def prompt_sections(self, context: "WorkflowContext") -> Dict[str, Any]:
        return {
            "Travel request": context.request,
            "Content plan": context.payload(StageId.CONTENT_PLANNER),
            "Gathered information": context.payload(StageId.INFO_GATHERER),
        }

    def build_mock(self, context: "WorkflowContext") -> StrategyV1:
        return build_strategy(
            context.request,
            context.payload(StageId.CONTENT_PLANNER),
            context.payload(StageId.INFO_GATHERER),
        )
