"""
Itinerary workflow package.

This package contains:
- orchestration/: Workflow core (state machine, governor, context, registry, API)
- stages/: The four built-in pipeline stages
- shared/: Common infrastructure (LLM client, logging, contracts)
"""

from itinerary_agents.orchestration import Orchestrator, new_context
from itinerary_agents.stages import default_registry

__all__ = ["Orchestrator", "default_registry", "new_context"]
