"""
Tests for the built-in stages.

Tests the deterministic mock payloads, the response parser, the LLM
client wrapper and the provider path of LLM-backed stages.
"""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from itinerary_agents.orchestration.clock import ManualClock
from itinerary_agents.orchestration.errors import AgentErrorKind
from itinerary_agents.orchestration.governor import ResourceGovernor
from itinerary_agents.orchestration.stage import CancellationToken
from itinerary_agents.shared.contracts.content_plan import ContentPlanV1
from itinerary_agents.shared.contracts.gathered_info import GatheredInfoV1
from itinerary_agents.shared.contracts.itinerary import ItineraryV1
from itinerary_agents.shared.contracts.strategy import StrategyV1
from itinerary_agents.shared.llm import client as llm_client
from itinerary_agents.shared.llm.client import (
    LLMCallError,
    LLMCompletion,
    call_llm_with_usage,
    classify_exception,
    get_cached_client,
    model_for,
)
from itinerary_agents.shared.llm.pricing import calculate_cost
from itinerary_agents.stages.content_planner import ContentPlannerStage
from itinerary_agents.stages.mock_data import (
    build_content_plan,
    build_gathered_info,
    build_itinerary,
    build_strategy,
)
from itinerary_agents.stages.prompts import build_user_prompt
from itinerary_agents.stages.response_parser import (
    ParseError,
    extract_json_from_response,
    parse_model_response,
)
from itinerary_agents.tests.stubs import fast_retry, make_context, make_request


# ============================================================================
# Test Fixtures
# ============================================================================


def _build_all(days: int = 3):
    request = make_request(days=days)
    plan = build_content_plan(request)
    info = build_gathered_info(request, plan)
    strategy = build_strategy(request, plan, info)
    itinerary = build_itinerary(request, strategy, info)
    return request, plan, info, strategy, itinerary


def _completion(content: str, provider: str = "groq") -> LLMCompletion:
    return LLMCompletion(
        content=content,
        provider=provider,
        model="llama-3.1-70b-versatile",
        input_tokens=1200,
        output_tokens=800,
        cost=0.002,
    )


def _fake_llm(outcomes):
    """Replacement for call_llm_with_usage keyed by provider."""
    calls = []

    async def fake(messages, provider, **kwargs):
        calls.append(provider)
        outcome = outcomes[provider]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fake.calls = calls
    return fake


def _fake_client(outcome):
    class _Completions:
        def __init__(self):
            self.kwargs = None

        async def create(self, **kwargs):
            self.kwargs = kwargs
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

    return SimpleNamespace(chat=SimpleNamespace(completions=_Completions()))


def _response(content, prompt_tokens=100, completion_tokens=50):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


_REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


def _status_error(cls, status: int):
    return cls("failed", response=httpx.Response(status, request=_REQUEST), body=None)


# ============================================================================
# Mock payloads
# ============================================================================


class TestMockPayloads:
    """Mock builders produce contract-valid, deterministic payloads."""

    def test_payloads_validate_against_contracts(self):
        _, plan, info, strategy, itinerary = _build_all()
        ContentPlanV1.model_validate(plan.model_dump())
        GatheredInfoV1.model_validate(info.model_dump())
        StrategyV1.model_validate(strategy.model_dump())
        ItineraryV1.model_validate(itinerary.model_dump())

    @pytest.mark.parametrize("days", [1, 3, 5])
    def test_itinerary_covers_every_day(self, days):
        request, plan, _, strategy, itinerary = _build_all(days)

        assert plan.trip_duration == days
        assert len(strategy.day_plans) == days
        assert itinerary.trip_duration == days
        assert [d.day_number for d in itinerary.days] == list(range(1, days + 1))
        assert itinerary.days[0].date == request.departure_date.isoformat()
        assert itinerary.days[-1].date == request.return_date.isoformat()

    def test_interests_come_first(self):
        _, _, info, _, _ = _build_all()
        tags = set(info.attractions[0].tags)
        assert tags & {"food", "history"}

    def test_builders_are_deterministic(self):
        first = _build_all()
        second = _build_all()
        assert [m.model_dump() for m in first[1:]] == [m.model_dump() for m in second[1:]]

    def test_cost_summary_uses_request_budget(self):
        request, _, _, _, itinerary = _build_all()
        summary = itinerary.cost_summary
        assert summary.currency == "EUR"
        assert summary.budget == request.budget.amount
        assert summary.remaining == pytest.approx(summary.budget - summary.total_estimated)


# ============================================================================
# Response parser
# ============================================================================


class TestResponseParser:
    def test_raw_json(self):
        assert json.loads(extract_json_from_response('{"a": 1}')) == {"a": 1}

    def test_markdown_block(self):
        raw = 'Here you go:\n```json\n{"a": {"b": 2}}\n```\nEnjoy!'
        assert json.loads(extract_json_from_response(raw)) == {"a": {"b": 2}}

    def test_prose_around_object(self):
        raw = 'Sure! {"text": "braces } inside strings", "n": 1} hope that helps'
        assert json.loads(extract_json_from_response(raw)) == {
            "text": "braces } inside strings",
            "n": 1,
        }

    def test_parse_into_model(self):
        plan = build_content_plan(make_request())
        parsed = parse_model_response(f"```\n{plan.model_dump_json()}\n```", ContentPlanV1)
        assert parsed == plan

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            parse_model_response("no json here", ContentPlanV1)

    def test_schema_mismatch(self):
        with pytest.raises(ParseError) as excinfo:
            parse_model_response('{"destination": "Lisbon"}', ContentPlanV1)
        assert "ContentPlanV1" in str(excinfo.value)


class TestPrompts:
    def test_user_prompt_has_sections_and_schema(self):
        prompt = build_user_prompt({"Travel request": make_request()}, ContentPlanV1)
        assert "## Travel request" in prompt
        assert '"destination": "Lisbon, Portugal"' in prompt
        assert "## Output schema (ContentPlanV1)" in prompt


# ============================================================================
# LLM client
# ============================================================================


class TestLLMClient:
    @pytest.mark.asyncio
    async def test_call_returns_content_and_usage(self):
        client = _fake_client(_response('{"ok": true}', 1000, 500))

        completion = await call_llm_with_usage(
            [{"role": "user", "content": "hi"}], provider="openai", model="gpt-4o-mini", client=client
        )

        assert completion.content == '{"ok": true}'
        assert completion.total_tokens == 1500
        assert completion.cost == pytest.approx(calculate_cost("gpt-4o-mini", 1000, 500))
        assert client.chat.completions.kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_empty_response_is_execution_error(self):
        client = _fake_client(_response(""))
        with pytest.raises(LLMCallError) as excinfo:
            await call_llm_with_usage([], provider="openai", model="gpt-4o-mini", client=client)
        assert excinfo.value.kind == AgentErrorKind.EXECUTION_ERROR

    @pytest.mark.asyncio
    async def test_sdk_error_is_classified(self):
        client = _fake_client(_status_error(openai.RateLimitError, 429))
        with pytest.raises(LLMCallError) as excinfo:
            await call_llm_with_usage([], provider="groq", model="x", client=client)
        assert excinfo.value.kind == AgentErrorKind.RATE_LIMIT
        assert excinfo.value.provider == "groq"

    @pytest.mark.parametrize(
        "error, kind",
        [
            (_status_error(openai.RateLimitError, 429), AgentErrorKind.RATE_LIMIT),
            (openai.APITimeoutError(request=_REQUEST), AgentErrorKind.TIMEOUT),
            (openai.APIConnectionError(request=_REQUEST), AgentErrorKind.NETWORK_ERROR),
            (_status_error(openai.AuthenticationError, 401), AgentErrorKind.PROVIDER_ERROR),
            (_status_error(openai.InternalServerError, 503), AgentErrorKind.PROVIDER_ERROR),
            (_status_error(openai.BadRequestError, 400), AgentErrorKind.EXECUTION_ERROR),
            (ValueError("odd"), AgentErrorKind.UNKNOWN),
        ],
    )
    def test_classify_exception(self, error, kind):
        assert classify_exception(error) == kind

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("CEREBRAS_API_KEY", raising=False)
        monkeypatch.setattr(llm_client, "_clients", {})
        with pytest.raises(LLMCallError) as excinfo:
            get_cached_client("cerebras")
        assert excinfo.value.kind == AgentErrorKind.PROVIDER_ERROR

    def test_unknown_provider(self):
        with pytest.raises(LLMCallError) as excinfo:
            get_cached_client("carrier-pigeon")
        assert excinfo.value.kind == AgentErrorKind.PROVIDER_ERROR

    def test_model_override(self, monkeypatch):
        monkeypatch.setenv("ITINERARY_GROQ_MODEL", "llama-3.1-8b-instant")
        assert model_for("groq") == "llama-3.1-8b-instant"
        monkeypatch.delenv("ITINERARY_GROQ_MODEL")
        assert model_for("groq") == "llama-3.1-70b-versatile"


# ============================================================================
# LLM-backed stages
# ============================================================================


class TestLLMStage:
    """The provider path of a stage, run through the governor."""

    async def _run(self, monkeypatch, outcomes, providers=("groq",), max_retries=0):
        fake = _fake_llm(outcomes)
        monkeypatch.setattr("itinerary_agents.stages.base.call_llm_with_usage", fake)
        stage = ContentPlannerStage(providers=providers)
        context = make_context(retry=fast_retry(max_retries=max_retries))
        execution = await ResourceGovernor(ManualClock()).run(stage, context)
        return execution, fake.calls

    @pytest.mark.asyncio
    async def test_parses_provider_response(self, monkeypatch):
        plan = build_content_plan(make_request())
        execution, calls = await self._run(
            monkeypatch, {"groq": _completion(plan.model_dump_json())}
        )

        assert execution.success
        assert execution.result.data == plan
        assert execution.result.metadata.cost == pytest.approx(0.002)
        assert execution.result.metadata.tokens.total == 2000
        assert calls == ["groq"]

    @pytest.mark.asyncio
    async def test_provider_error_falls_back(self, monkeypatch):
        plan = build_content_plan(make_request())
        execution, calls = await self._run(
            monkeypatch,
            {
                "groq": LLMCallError(AgentErrorKind.PROVIDER_ERROR, "down", "groq"),
                "cerebras": _completion(plan.model_dump_json(), provider="cerebras"),
            },
            providers=("groq", "cerebras"),
        )

        assert execution.success
        assert execution.result.metadata.provider == "cerebras"
        assert calls == ["groq", "cerebras"]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, monkeypatch):
        execution, calls = await self._run(
            monkeypatch,
            {"groq": LLMCallError(AgentErrorKind.RATE_LIMIT, "429", "groq")},
            max_retries=2,
        )

        assert not execution.success
        assert calls == ["groq"] * 3
        assert execution.result.last_error.kind == AgentErrorKind.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_unparseable_response_is_execution_error(self, monkeypatch):
        execution, _ = await self._run(monkeypatch, {"groq": _completion("I cannot help")})

        assert not execution.success
        assert execution.result.last_error.kind == AgentErrorKind.EXECUTION_ERROR
        # Tokens were still spent
        assert execution.usage.cost == pytest.approx(0.002)

    @pytest.mark.asyncio
    async def test_mock_provider(self):
        stage = ContentPlannerStage(providers=("mock",))
        execution = await ResourceGovernor(ManualClock()).run(stage, make_context())

        assert execution.success
        assert isinstance(execution.result.data, ContentPlanV1)
        assert execution.result.confidence == 0.8
        assert execution.result.metadata.provider == "mock"

    @pytest.mark.asyncio
    async def test_cancel_during_provider_call_skips_parse(self, monkeypatch):
        token = CancellationToken()
        plan = build_content_plan(make_request())

        async def fake(messages, provider, **kwargs):
            token.cancel("traveller left")
            return _completion(plan.model_dump_json())

        monkeypatch.setattr("itinerary_agents.stages.base.call_llm_with_usage", fake)
        execution = await ResourceGovernor(ManualClock()).run(
            ContentPlannerStage(providers=("groq",)), make_context(), token
        )

        assert execution.cancelled
        assert execution.result.data is None
        assert AgentErrorKind.CANCELLED in [e.kind for e in execution.errors]
        # The provider call was still paid for
        assert execution.usage.cost == pytest.approx(0.002)

    def test_planner_rejects_empty_party(self):
        context = make_context()
        stage = ContentPlannerStage()
        assert stage.validate(context)
        # model_copy skips validation, so this request slips past the contract
        no_adults = context.request.model_copy(update={"adults": 0})
        assert not stage.validate(context.model_copy(update={"request": no_adults}))
