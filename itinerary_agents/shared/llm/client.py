"""
Async OpenAI-compatible client for the stage providers.

Every provider (groq, cerebras, gemini, openai) speaks the OpenAI chat
completions protocol, so one AsyncOpenAI client per provider is cached
and reused. Retries are not done here: the ResourceGovernor owns retry,
timeout and fallback policy, so SDK retries are disabled and failures
are surfaced as LLMCallError with an AgentErrorKind.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import openai
from openai import AsyncOpenAI
from dotenv import load_dotenv

from itinerary_agents.orchestration.errors import AgentErrorKind
from itinerary_agents.shared.llm.pricing import calculate_cost

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one provider."""

    name: str
    api_key_env: str
    default_model: str
    base_url: Optional[str] = None


PROVIDERS: Dict[str, ProviderConfig] = {
    "groq": ProviderConfig(
        name="groq",
        api_key_env="GROQ_API_KEY",
        default_model="llama-3.1-70b-versatile",
        base_url="https://api.groq.com/openai/v1",
    ),
    "cerebras": ProviderConfig(
        name="cerebras",
        api_key_env="CEREBRAS_API_KEY",
        default_model="llama3.1-8b",
        base_url="https://api.cerebras.ai/v1",
    ),
    "gemini": ProviderConfig(
        name="gemini",
        api_key_env="GOOGLE_API_KEY",
        default_model="gemini-1.5-flash",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
    ),
    "openai": ProviderConfig(
        name="openai",
        api_key_env="OPENAI_API_KEY",
        default_model="gpt-4o-mini",
    ),
}

# Module-level cache of clients, keyed by provider name
_clients: Dict[str, AsyncOpenAI] = {}


class LLMCallError(Exception):
    """A provider call failed; `kind` drives the governor's policy."""

    def __init__(self, kind: AgentErrorKind, message: str, provider: str):
        self.kind = kind
        self.provider = provider
        super().__init__(message)


@dataclass(frozen=True)
class LLMCompletion:
    """Response content plus accounting for one call."""

    content: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def model_for(provider: str) -> str:
    """Model used for a provider; `ITINERARY_<PROVIDER>_MODEL` overrides the default."""
    config = _provider_config(provider)
    return os.environ.get(f"ITINERARY_{provider.upper()}_MODEL") or config.default_model


def _provider_config(provider: str) -> ProviderConfig:
    config = PROVIDERS.get(provider)
    if config is None:
        raise LLMCallError(
            AgentErrorKind.PROVIDER_ERROR, f"Unknown provider '{provider}'", provider
        )
    return config


def get_cached_client(provider: str) -> AsyncOpenAI:
    """
    Returns a cached AsyncOpenAI client for the provider.

    Raises:
        LLMCallError: PROVIDER_ERROR if the provider is unknown or its API
            key environment variable is not set.
    """
    client = _clients.get(provider)
    if client is not None:
        return client

    config = _provider_config(provider)
    api_key = os.environ.get(config.api_key_env)
    if not api_key:
        raise LLMCallError(
            AgentErrorKind.PROVIDER_ERROR,
            f"{config.api_key_env} environment variable is not set",
            provider,
        )
    client = AsyncOpenAI(api_key=api_key, base_url=config.base_url, max_retries=0)
    _clients[provider] = client
    return client


def classify_exception(error: Exception) -> AgentErrorKind:
    """Map an openai SDK exception onto an AgentErrorKind."""
    if isinstance(error, openai.RateLimitError):
        return AgentErrorKind.RATE_LIMIT
    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, openai.APITimeoutError):
        return AgentErrorKind.TIMEOUT
    if isinstance(error, openai.APIConnectionError):
        return AgentErrorKind.NETWORK_ERROR
    if isinstance(
        error,
        (
            openai.AuthenticationError,
            openai.PermissionDeniedError,
            openai.NotFoundError,
            openai.InternalServerError,
        ),
    ):
        return AgentErrorKind.PROVIDER_ERROR
    if isinstance(error, openai.APIStatusError):
        return AgentErrorKind.EXECUTION_ERROR
    return AgentErrorKind.UNKNOWN


async def call_llm_with_usage(
    messages: List[Dict[str, str]],
    provider: str,
    model: Optional[str] = None,
    client: Optional[AsyncOpenAI] = None,
    json_mode: bool = True,
) -> LLMCompletion:
    """
    Call a provider's chat completion endpoint and return content with usage.

    Args:
        messages: List of message dicts with 'role' and 'content' keys
        provider: Provider name (a key of PROVIDERS)
        model: Model identifier; defaults to `model_for(provider)`
        client: Optional client instance. If not provided, uses the cached one.
        json_mode: Ask the provider for a JSON object response

    Returns:
        LLMCompletion with content, token counts and cost

    Raises:
        LLMCallError: For every provider-side failure.
    """
    if client is None:
        client = get_cached_client(provider)
    model = model or model_for(provider)

    kwargs = {"model": model, "messages": messages}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    try:
        response = await client.chat.completions.create(**kwargs)
    except openai.OpenAIError as e:
        kind = classify_exception(e)
        logger.warning(
            f"[provider={provider}] Chat completion failed | model={model}, "
            f"kind={kind.value}, error={type(e).__name__}: {e}"
        )
        raise LLMCallError(kind, f"{type(e).__name__}: {e}", provider) from e

    content = (response.choices[0].message.content or "").strip() if response.choices else ""
    if not content:
        raise LLMCallError(
            AgentErrorKind.EXECUTION_ERROR, f"Empty response from {provider}/{model}", provider
        )

    usage = response.usage
    input_tokens = usage.prompt_tokens if usage else 0
    output_tokens = usage.completion_tokens if usage else 0
    return LLMCompletion(
        content=content,
        provider=provider,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost=calculate_cost(model, input_tokens, output_tokens),
    )
