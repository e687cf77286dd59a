"""
Provider health tracking.

Shared by every workflow an orchestrator drives. A provider that keeps
failing is taken out of fallback chains for a cooldown period, after
which it gets another chance. A single success makes it healthy again.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from itinerary_agents.orchestration.clock import Clock
from itinerary_agents.orchestration.errors import AgentErrorKind


logger = logging.getLogger(__name__)

# Failures the provider itself is responsible for
PROVIDER_FAULTS = frozenset(
    {
        AgentErrorKind.PROVIDER_ERROR,
        AgentErrorKind.NETWORK_ERROR,
        AgentErrorKind.RATE_LIMIT,
        AgentErrorKind.TIMEOUT,
    }
)


@dataclass
class ProviderStats:
    success_count: int = 0
    error_count: int = 0
    consecutive_failures: int = 0
    unavailable_since: Optional[float] = None

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.error_count
        return self.success_count / total if total else 0.0


class ProviderHealth:
    """
    Per-provider success and failure counts.

    A provider is marked unavailable after `failure_threshold` consecutive
    faults (see PROVIDER_FAULTS) and is skipped by `filter_chain` until
    `cooldown` seconds have passed.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        failure_threshold: int = 5,
        cooldown: float = 300.0,
    ):
        self._clock = clock or Clock()
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._stats: Dict[str, ProviderStats] = {}

    def stats(self, provider: str) -> ProviderStats:
        return self._stats.setdefault(provider, ProviderStats())

    def record_success(self, provider: str) -> None:
        stats = self.stats(provider)
        stats.success_count += 1
        stats.consecutive_failures = 0
        if stats.unavailable_since is not None:
            logger.info(f"[health] Provider '{provider}' recovered")
            stats.unavailable_since = None

    def record_failure(self, provider: str, kind: AgentErrorKind) -> None:
        if kind not in PROVIDER_FAULTS:
            return
        stats = self.stats(provider)
        stats.error_count += 1
        stats.consecutive_failures += 1
        if (
            stats.consecutive_failures >= self.failure_threshold
            and stats.unavailable_since is None
        ):
            stats.unavailable_since = self._clock.monotonic()
            logger.warning(
                f"[health] Provider '{provider}' marked unavailable after "
                f"{stats.consecutive_failures} consecutive failures"
            )

    def is_available(self, provider: str) -> bool:
        stats = self._stats.get(provider)
        if stats is None or stats.unavailable_since is None:
            return True
        return self._clock.monotonic() - stats.unavailable_since >= self.cooldown

    def filter_chain(self, chain: Sequence[str]) -> List[str]:
        """
        Drop unavailable providers from a chain.

        If every provider is unavailable the chain is returned unchanged,
        so the stage still gets a chance to run.
        """
        healthy = [p for p in chain if self.is_available(p)]
        if not healthy:
            return list(chain)
        if len(healthy) < len(chain):
            skipped = [p for p in chain if p not in healthy]
            logger.info(f"[health] Skipping unavailable providers {skipped}")
        return healthy

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        return {
            provider: {
                "available": self.is_available(provider),
                "success_count": stats.success_count,
                "error_count": stats.error_count,
                "consecutive_failures": stats.consecutive_failures,
                "success_rate": round(stats.success_rate, 4),
            }
            for provider, stats in self._stats.items()
        }
