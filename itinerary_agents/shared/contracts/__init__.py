"""Stage input and output contracts for inter-stage handoffs."""

from itinerary_agents.shared.contracts.content_plan import ContentPlanV1
from itinerary_agents.shared.contracts.gathered_info import GatheredInfoV1
from itinerary_agents.shared.contracts.itinerary import ItineraryV1
from itinerary_agents.shared.contracts.strategy import StrategyV1
from itinerary_agents.shared.contracts.travel_request import (
    BudgetInfo,
    TravelPreferences,
    TravelRequestV1,
)

__all__ = [
    "BudgetInfo",
    "TravelPreferences",
    "TravelRequestV1",
    "ContentPlanV1",
    "GatheredInfoV1",
    "StrategyV1",
    "ItineraryV1",
]
