"""
Base class for the built-in stages.

An LLMStage either builds its payload deterministically (the "mock"
provider) or asks an OpenAI-compatible provider for it and parses the
answer against `output_model`. Provider failures come back as failed
results whose error kind drives the governor's retry and fallback.
"""

import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Type

from pydantic import BaseModel

from itinerary_agents.orchestration.envelope import AgentResult, TokenUsage
from itinerary_agents.orchestration.errors import AgentErrorKind
from itinerary_agents.orchestration.stage import Stage, StageAttempt
from itinerary_agents.shared.llm.client import LLMCallError, call_llm_with_usage
from itinerary_agents.stages.prompts import build_user_prompt
from itinerary_agents.stages.response_parser import ParseError, parse_model_response

if TYPE_CHECKING:
    from itinerary_agents.orchestration.context import WorkflowContext


logger = logging.getLogger(__name__)

MOCK_PROVIDER = "mock"


class LLMStage(Stage):
    """
    Stage backed by an LLM provider chain, with a deterministic mock path.

    Subclasses set `stage_id`, `output_model` and `system_prompt`, and
    implement `prompt_sections` and `build_mock`.
    """

    output_model: Type[BaseModel]
    system_prompt: str = ""
    mock_cost: float = 0.01
    mock_confidence: float = 0.8
    llm_confidence: float = 0.85

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_cost: Optional[float] = None,
        providers: Optional[Sequence[str]] = None,
        attempt_timeout: Optional[float] = None,
    ):
        if timeout is not None:
            self.timeout = timeout
        if max_cost is not None:
            self.max_cost = max_cost
        if providers is not None:
            self.providers = tuple(providers)
        self.attempt_timeout = attempt_timeout

    @abstractmethod
    def prompt_sections(self, context: "WorkflowContext") -> Dict[str, Any]:
        """Named inputs rendered into the user prompt."""

    @abstractmethod
    def build_mock(self, context: "WorkflowContext") -> BaseModel:
        """Deterministic payload for the mock provider."""

    async def execute(
        self, context: "WorkflowContext", attempt: StageAttempt
    ) -> AgentResult:
        _log = (
            f"[session={context.session_id}] [graph=orchestrator] "
            f"[node={self.stage_id.value}] "
        )
        if attempt.provider == MOCK_PROVIDER:
            payload = self.build_mock(context)
            logger.info(f"{_log}Built mock payload | attempt={attempt.attempt}")
            return self.make_result(
                attempt,
                data=payload,
                cost=self.mock_cost,
                confidence=self.mock_confidence,
            )

        if attempt.should_stop:
            return self.failure(
                attempt,
                self.make_error(AgentErrorKind.CANCELLED, "Attempt stopped before the provider call"),
            )

        messages = [
            {"role": "system", "content": self.system_prompt},
            {
                "role": "user",
                "content": build_user_prompt(self.prompt_sections(context), self.output_model),
            },
        ]
        logger.info(
            f"{_log}Calling provider | provider={attempt.provider}, attempt={attempt.attempt}"
        )
        try:
            completion = await call_llm_with_usage(messages, provider=attempt.provider)
        except LLMCallError as e:
            return self.failure(
                attempt, self.make_error(e.kind, str(e), provider=e.provider)
            )

        tokens = TokenUsage.of(completion.input_tokens, completion.output_tokens)
        if attempt.should_stop:
            # Timed out or cancelled while waiting on the provider
            logger.info(f"{_log}Attempt superseded, skipping parse | provider={attempt.provider}")
            return self.failure(
                attempt,
                self.make_error(
                    AgentErrorKind.CANCELLED,
                    "Attempt superseded before its response was parsed",
                    provider=attempt.provider,
                ),
                cost=completion.cost,
                tokens=tokens,
            )

        try:
            payload = parse_model_response(completion.content, self.output_model)
        except ParseError as e:
            logger.warning(f"{_log}Unparseable response | provider={attempt.provider}, {e}")
            return self.failure(
                attempt,
                self.make_error(AgentErrorKind.EXECUTION_ERROR, str(e), provider=attempt.provider),
                cost=completion.cost,
                tokens=tokens,
            )

        logger.info(
            f"{_log}Provider response parsed | model={completion.model}, "
            f"tokens={tokens.total}, cost=${completion.cost:.4f}"
        )
        return self.make_result(
            attempt,
            data=payload,
            cost=completion.cost,
            tokens=tokens,
            confidence=self.llm_confidence,
        )
