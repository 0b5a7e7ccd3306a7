# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend
# =============================================================================
#
# Provides a common interface for LLM completions and streaming, with
# concrete implementations for Anthropic (Claude) and OpenAI-compatible APIs
# (OpenAI, DeepSeek, Qwen, a self-hosted Gemma behind vLLM, ...).
#
# Consumers:
#   - ComplianceAnalyzer  → complete() (one long JSON report)
#   - QAService           → stream()   (answer fragments forwarded as SSE)
#   - LLMTranslator       → complete() (answer translation)
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Tests hand in small fakes with the same two methods; nothing inherits.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Direct control over request parameters and streaming, fewer moving parts.
#
# DESIGN DECISION: Constructed once, injected.
# build_llm_provider(settings) is called by build_services() at process
# start. The SDK clients own their connection pools; one instance per
# process is shared by every request.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   │   ├── complete()           — system prompt as top-level kwarg
#   │   └── stream()             — messages.stream() text_stream
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   │   ├── complete()           — system prompt as message role
#   │   └── stream()             — chat.completions stream=True deltas
#   └── build_llm_provider()     — factory, reads Settings
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from app.config import Settings
from app.exceptions import ModelError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats (Anthropic vs OpenAI)
    into a single structure that downstream code can consume.
    """

    content: str           # The generated text
    model: str             # Model identifier (e.g., "claude-sonnet-4-6")
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the LLM provider interface.

    Both implementations provide `complete()` and `stream()`. Provider SDK
    errors are re-raised as ModelError so callers handle one error type.
    """

    model: str

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
                Roles: "user", "assistant" (no "system"; use the system param).
            system: System prompt. Anthropic takes it as a top-level kwarg,
                OpenAI as a leading {"role": "system"} message.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).
            model: Override the configured model for this call only.
        """
        ...

    def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments in the order the model produces them."""
        ...


def _pick(value: float | int | None, default: float | int) -> float | int:
    # 0 and 0.0 are legitimate overrides; only None falls back
    return default if value is None else value


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system". This is the
    opposite of OpenAI's pattern and a common source of bugs.
    """

    def __init__(
        self,
        settings: Settings,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self.model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self.model)

    def _request_kwargs(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        temperature: float | None,
        max_tokens: int | None,
        model: str | None = None,
    ) -> dict:
        kwargs: dict = {
            "model": model or self.model,
            "messages": messages,
            "max_tokens": _pick(max_tokens, self._max_tokens),
            "temperature": _pick(temperature, self._temperature),
        }
        # Anthropic: system prompt is a top-level kwarg, not a message
        if system:
            kwargs["system"] = system
        return kwargs

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        from anthropic import AnthropicError

        kwargs = self._request_kwargs(messages, system, temperature, max_tokens, model)
        try:
            response = await self._client.messages.create(**kwargs)
        except AnthropicError as exc:
            raise ModelError(f"Anthropic request failed: {exc}") from exc

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion from Claude, one text delta at a time."""
        from anthropic import AnthropicError

        kwargs = self._request_kwargs(messages, system, temperature, max_tokens)
        try:
            # Leaving the context manager closes the HTTP stream, which is
            # what stops generation when the consumer goes away.
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except AnthropicError as exc:
            raise ModelError(f"Anthropic stream failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (DeepSeek, Qwen, vLLM, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        settings: Settings,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self.model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self.model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    @staticmethod
    def _with_system(
        messages: list[dict[str, str]],
        system: str | None,
    ) -> list[dict[str, str]]:
        # OpenAI: system prompt goes as the first message
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)
        return all_messages

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        from openai import OpenAIError

        try:
            response = await self._client.chat.completions.create(
                model=model or self.model,
                messages=self._with_system(messages, system),
                max_tokens=_pick(max_tokens, self._max_tokens),
                temperature=_pick(temperature, self._temperature),
            )
        except OpenAIError as exc:
            raise ModelError(f"LLM request failed: {exc}") from exc

        content = response.choices[0].message.content or ""

        # Token counts: OpenAI uses different field names than Anthropic
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=content,
            model=response.model or self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion, yielding each non-empty content delta."""
        from openai import OpenAIError

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=self._with_system(messages, system),
                max_tokens=_pick(max_tokens, self._max_tokens),
                temperature=_pick(temperature, self._temperature),
                stream=True,
            )
            try:
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
            finally:
                await response.close()
        except OpenAIError as exc:
            raise ModelError(f"LLM stream failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def build_llm_provider(settings: Settings) -> LLMProvider:
    """
    Build the configured LLM provider.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider (DeepSeek, Qwen, etc.)
    """
    if settings.llm_provider == "openai_compatible":
        return OpenAICompatibleProvider(settings)
    return AnthropicProvider(settings)
