"""
Tests for provider health tracking.
"""

import pytest

from itinerary_agents.orchestration.clock import ManualClock
from itinerary_agents.orchestration.errors import AgentErrorKind
from itinerary_agents.orchestration.governor import ResourceGovernor
from itinerary_agents.orchestration.health import ProviderHealth
from itinerary_agents.orchestration.states import StageId
from itinerary_agents.tests.stubs import ScriptedStage, make_context


class TestProviderHealth:
    def test_marked_unavailable_after_consecutive_failures(self):
        health = ProviderHealth(ManualClock(), failure_threshold=3)
        for _ in range(2):
            health.record_failure("groq", AgentErrorKind.PROVIDER_ERROR)
        assert health.is_available("groq")

        health.record_failure("groq", AgentErrorKind.NETWORK_ERROR)

        assert not health.is_available("groq")
        assert health.filter_chain(["groq", "cerebras"]) == ["cerebras"]

    def test_success_resets_the_streak(self):
        health = ProviderHealth(ManualClock(), failure_threshold=2)
        health.record_failure("groq", AgentErrorKind.RATE_LIMIT)
        health.record_success("groq")
        health.record_failure("groq", AgentErrorKind.RATE_LIMIT)

        assert health.is_available("groq")
        assert health.stats("groq").error_count == 2
        assert health.stats("groq").success_rate == pytest.approx(1 / 3)

    def test_non_provider_faults_are_ignored(self):
        health = ProviderHealth(ManualClock(), failure_threshold=1)
        health.record_failure("groq", AgentErrorKind.VALIDATION)
        health.record_failure("groq", AgentErrorKind.CANCELLED)
        assert health.is_available("groq")
        assert health.snapshot() == {}

    def test_cooldown_brings_provider_back(self):
        clock = ManualClock()
        health = ProviderHealth(clock, failure_threshold=1, cooldown=60.0)
        health.record_failure("groq", AgentErrorKind.TIMEOUT)
        assert not health.is_available("groq")

        clock.advance(60.0)

        assert health.is_available("groq")

    def test_all_unavailable_keeps_chain(self):
        health = ProviderHealth(ManualClock(), failure_threshold=1)
        health.record_failure("groq", AgentErrorKind.PROVIDER_ERROR)
        health.record_failure("gemini", AgentErrorKind.PROVIDER_ERROR)
        assert health.filter_chain(["groq", "gemini"]) == ["groq", "gemini"]

    def test_snapshot(self):
        health = ProviderHealth(ManualClock(), failure_threshold=1)
        health.record_success("cerebras")
        health.record_failure("groq", AgentErrorKind.PROVIDER_ERROR)

        snapshot = health.snapshot()

        assert snapshot["cerebras"]["available"] is True
        assert snapshot["cerebras"]["success_rate"] == 1.0
        assert snapshot["groq"]["available"] is False
        assert snapshot["groq"]["consecutive_failures"] == 1


class TestGovernorUsesHealth:
    @pytest.mark.asyncio
    async def test_failing_provider_leaves_the_chain(self):
        clock = ManualClock()
        governor = ResourceGovernor(clock, ProviderHealth(clock, failure_threshold=2))
        stage = ScriptedStage(
            StageId.CONTENT_PLANNER,
            providers=("A", "B"),
            by_provider={"A": AgentErrorKind.PROVIDER_ERROR},
        )

        for _ in range(2):
            assert (await governor.run(stage, make_context())).success
        assert stage.calls == [("A", 1), ("B", 1), ("A", 1), ("B", 1)]

        execution = await governor.run(stage, make_context())

        assert execution.success
        assert stage.calls[4:] == [("B", 1)]
        assert execution.result.metadata.provider == "B"

    @pytest.mark.asyncio
    async def test_provider_returns_after_cooldown(self):
        clock = ManualClock()
        governor = ResourceGovernor(
            clock, ProviderHealth(clock, failure_threshold=1, cooldown=30.0)
        )
        stage = ScriptedStage(
            StageId.CONTENT_PLANNER, providers=("A", "B"), script=[AgentErrorKind.PROVIDER_ERROR]
        )
        await governor.run(stage, make_context())
        assert not governor.health.is_available("A")

        clock.advance(30.0)
        execution = await governor.run(stage, make_context())

        assert execution.result.metadata.provider == "A"
        assert governor.health.is_available("A")
