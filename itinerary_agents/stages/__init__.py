"""
Built-in pipeline stages.

`default_registry` registers the four stages with the timeouts, cost
budgets and provider chains from the settings.
"""

from typing import Optional

from itinerary_agents.orchestration.config import (
    DEFAULT_PROVIDER_CHAINS,
    DEFAULT_STAGE_COST_BUDGETS,
    DEFAULT_STAGE_TIMEOUTS,
    OrchestratorSettings,
)
from itinerary_agents.orchestration.registry import StageRegistry
from itinerary_agents.orchestration.states import StageId
from itinerary_agents.stages.compiler import CompilerStage
from itinerary_agents.stages.content_planner import ContentPlannerStage
from itinerary_agents.stages.info_gatherer import InfoGathererStage
from itinerary_agents.stages.strategist import StrategistStage

STAGE_CLASSES = {
    StageId.CONTENT_PLANNER: ContentPlannerStage,
    StageId.INFO_GATHERER: InfoGathererStage,
    StageId.STRATEGIST: StrategistStage,
    StageId.COMPILER: CompilerStage,
}


def default_registry(settings: Optional[OrchestratorSettings] = None) -> StageRegistry:
    """Registry holding the four built-in stages."""
    settings = settings or OrchestratorSettings()
    chains = settings.chains()
    registry = StageRegistry()
    for stage_id, stage_cls in STAGE_CLASSES.items():
        providers = chains.get(stage_id) or DEFAULT_PROVIDER_CHAINS[stage_id]

        def factory(cls=stage_cls, sid=stage_id, chain=tuple(providers)):
            return cls(
                timeout=DEFAULT_STAGE_TIMEOUTS[sid],
                max_cost=DEFAULT_STAGE_COST_BUDGETS[sid],
                providers=chain,
            )

        registry.register(stage_id, factory)
    return registry


__all__ = [
    "ContentPlannerStage",
    "InfoGathererStage",
    "StrategistStage",
    "CompilerStage",
    "STAGE_CLASSES",
    "default_registry",
]
