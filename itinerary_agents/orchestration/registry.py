"""
Stage registry.

Maps each StageId to a factory. The first lookup builds the stage and
caches it; later lookups return the same instance, which is shared by
every workflow. Stages therefore keep no per-execution state.
"""

import logging
from typing import Callable, Dict, List

from itinerary_agents.orchestration.errors import ContractViolation, StageNotRegistered
from itinerary_agents.orchestration.stage import Stage
from itinerary_agents.orchestration.states import STAGE_ORDER, StageId


logger = logging.getLogger(__name__)

StageFactory = Callable[[], Stage]


class StageRegistry:
    """Lazy, cached StageId -> Stage lookup."""

    def __init__(self) -> None:
        self._factories: Dict[StageId, StageFactory] = {}
        self._instances: Dict[StageId, Stage] = {}

    def register(self, stage_id: StageId, factory: StageFactory) -> None:
        """
        Register (or replace) the factory for a stage.

        Replacing a factory drops the cached instance.
        """
        if stage_id in self._factories:
            logger.info(f"[registry] Replacing factory for stage '{stage_id.value}'")
        self._factories[stage_id] = factory
        self._instances.pop(stage_id, None)

    def get(self, stage_id: StageId) -> Stage:
        """
        Resolve a stage, building it on first use.

        Raises:
            StageNotRegistered: If no factory is registered for `stage_id`.
            ContractViolation: If the factory builds a stage for another id.
        """
        instance = self._instances.get(stage_id)
        if instance is not None:
            return instance

        factory = self._factories.get(stage_id)
        if factory is None:
            raise StageNotRegistered(f"No stage registered for '{stage_id.value}'")

        instance = factory()
        if not isinstance(instance, Stage) or instance.stage_id != stage_id:
            raise ContractViolation(
                f"Factory for '{stage_id.value}' built {instance!r} instead of a "
                f"'{stage_id.value}' stage"
            )
        self._instances[stage_id] = instance
        logger.debug(f"[registry] Built stage {instance!r}")
        return instance

    def is_registered(self, stage_id: StageId) -> bool:
        return stage_id in self._factories

    def registered_stages(self) -> List[StageId]:
        return [s for s in STAGE_ORDER if s in self._factories]

    def missing_stages(self) -> List[StageId]:
        return [s for s in STAGE_ORDER if s not in self._factories]

    def clear(self) -> None:
        """Drop every factory and cached instance."""
        self._factories.clear()
        self._instances.clear()
