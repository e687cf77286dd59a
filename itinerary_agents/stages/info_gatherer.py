"""
Info gatherer stage.

Researches the destination along the content plan's search queries.
"""

from typing import TYPE_CHECKING, Any, Dict

from itinerary_agents.orchestration.states import StageId
from itinerary_agents.shared.contracts.gathered_info import GatheredInfoV1
from itinerary_agents.stages.base import LLMStage
from itinerary_agents.stages.mock_data import build_gathered_info
from itinerary_agents.stages.prompts import INFO_GATHERER_PROMPT

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


class InfoGathererStage(LLMStage):
    stage_id = StageId.INFO_GATHERER
    output_model = GatheredInfoV1
    system_prompt = INFO_GATHERER_PROMPT
    timeout = 45.0
    max_cost = 0.30
    max_tokens = 8000
    providers = ("groq", "cerebras")
    mock_cost = 0.02

    def prompt_sections(self, context: "WorkflowContext") -> Dict[str, Any]:
        return {
            "Travel request": context.request,
            "Content plan": context.payload(StageId.CONTENT_PLANNER),
        }

    def build_mock(self, context: "WorkflowContext") -> GatheredInfoV1:
        return build_gathered_info(context.request, context.payload(StageId.CONTENT_PLANNER))
