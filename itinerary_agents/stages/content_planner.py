"""
Content planner stage.

First stage of the pipeline: frames the trip and decides what the info
gatherer has to find out.
"""

from typing import TYPE_CHECKING, Any, Dict

from itinerary_agents.orchestration.states import StageId
from itinerary_agents.shared.contracts.content_plan import ContentPlanV1
from itinerary_agents.stages.base import LLMStage
from itinerary_agents.stages.mock_data import build_content_plan
from itinerary_agents.stages.prompts import CONTENT_PLANNER_PROMPT

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


class ContentPlannerStage(LLMStage):
    stage_id = StageId.CONTENT_PLANNER
    output_model = ContentPlanV1
    system_prompt = CONTENT_PLANNER_PROMPT
    timeout = 30.0
    max_cost = 0.10
    max_tokens = 4000
    providers = ("groq", "cerebras", "gemini")

    def validate(self, context: "WorkflowContext") -> bool:
        if not super().validate(context):
            return False
        request = context.request
        return request.departure_date <= request.return_date and request.adults >= 1

    def prompt_sections(self, context: "WorkflowContext") -> Dict[str, Any]:
        return {"Travel request": context.request}

    def build_mock(self, context: "WorkflowContext") -> ContentPlanV1:
        return build_content_plan(context.request)
