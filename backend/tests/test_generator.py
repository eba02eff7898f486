"""
Tests for prompt assembly, the ResponseGenerator and the LLM providers.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pal.core.errors import GenerationError
from pal.services.generator import (
    CLOSING_PROMPT,
    PERSONA_PROMPT,
    ResponseGenerator,
    build_system_prompt,
    format_messages,
)
from pal.services.providers import (
    GeminiProvider,
    GenerationParams,
    GenerationResult,
    OpenAIProvider,
)
from pal.services.retrieval import ContextFragment


# ============================================================================
# Prompt assembly
# ============================================================================

class TestPrompt:

    def test_prompt_without_context(self):
        prompt = build_system_prompt([])

        assert prompt.startswith(PERSONA_PROMPT)
        assert prompt.endswith(CLOSING_PROMPT)
        assert "RELEVANT INFORMATION" not in prompt

    def test_prompt_enumerates_context_from_one(self):
        context = [
            ContextFragment(content="Opening hours are 9 to 5.", origin="doc-1", similarity=0.9),
            ContextFragment(content="Closed on Sundays.", origin="doc-2", similarity=0.7),
        ]

        prompt = build_system_prompt(context)

        assert "[1] Opening hours are 9 to 5.\n\n[2] Closed on Sundays." in prompt
        assert prompt.index("[1]") < prompt.index(CLOSING_PROMPT)

    def test_format_messages_prepends_system(self):
        history = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "hours?"},
        ]

        messages = format_messages(history, "SYSTEM")

        assert messages[0] == {"role": "system", "content": "SYSTEM"}
        assert messages[1:] == history


# ============================================================================
# ResponseGenerator
# ============================================================================

class TestResponseGenerator:

    def _provider(self):
        provider = MagicMock()
        provider.name = "openai"
        provider.generate = AsyncMock(
            return_value=GenerationResult(content="Sure!", model="gpt", provider="openai", usage={"total_tokens": 5})
        )
        return provider

    async def test_uses_default_params_and_system_prompt(self):
        provider = self._provider()
        defaults = GenerationParams(max_tokens=321)
        generator = ResponseGenerator(provider, defaults)

        result = await generator.generate([{"role": "user", "content": "hi"}])

        assert result.content == "Sure!"
        messages, params = provider.generate.await_args.args
        assert messages[0]["role"] == "system"
        assert messages[-1] == {"role": "user", "content": "hi"}
        assert params is defaults

    async def test_explicit_params_override_defaults(self):
        provider = self._provider()
        generator = ResponseGenerator(provider)
        params = GenerationParams(temperature=0.7)

        await generator.generate([{"role": "user", "content": "hi"}], [], params)

        assert provider.generate.await_args.args[1] is params

    async def test_unexpected_errors_become_generation_errors(self):
        provider = self._provider()
        provider.generate.side_effect = RuntimeError("socket closed")

        with pytest.raises(GenerationError, match="socket closed"):
            await ResponseGenerator(provider).generate([{"role": "user", "content": "hi"}])

    async def test_generation_errors_pass_through(self):
        provider = self._provider()
        original = GenerationError("Gemini API error: quota")
        provider.generate.side_effect = original

        with pytest.raises(GenerationError) as exc_info:
            await ResponseGenerator(provider).generate([{"role": "user", "content": "hi"}])
        assert exc_info.value is original


# ============================================================================
# GenerationParams
# ============================================================================

class TestGenerationParams:

    def test_from_settings_with_overrides(self, settings):
        params = GenerationParams.from_settings(settings, temperature=0.7)

        assert params.temperature == 0.7
        assert params.max_tokens == settings.max_tokens
        assert params.top_k == settings.top_k


# ============================================================================
# Providers
# ============================================================================

class TestOpenAIProvider:

    async def test_unconfigured_provider_refuses(self):
        provider = OpenAIProvider(api_key="", model="gpt-3.5-turbo")

        assert not provider.configured
        with pytest.raises(GenerationError, match="not available or not configured"):
            await provider.generate([{"role": "user", "content": "hi"}], GenerationParams())


class TestGeminiProvider:

    def _provider(self, handler) -> tuple[GeminiProvider, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def record(request):
            seen.append(request)
            return handler(request)

        provider = GeminiProvider(api_key="gem-key", model="gemini-pro")
        provider._client = httpx.AsyncClient(transport=httpx.MockTransport(record))
        return provider, seen

    def test_to_contents_reshapes_roles(self):
        contents = GeminiProvider.to_contents([
            {"role": "system", "content": "Be nice."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ])

        assert contents == [
            {"role": "user", "parts": [{"text": "System Instructions: Be nice."}]},
            {"role": "user", "parts": [{"text": "hi"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ]

    async def test_generate_parses_first_candidate(self):
        payload = {
            "candidates": [{"content": {"parts": [{"text": "Hi there!"}]}}],
            "usageMetadata": {"totalTokenCount": 11},
        }
        provider, seen = self._provider(lambda r: httpx.Response(200, json=payload))

        result = await provider.generate([{"role": "user", "content": "hi"}], GenerationParams(max_tokens=50))

        assert result.content == "Hi there!"
        assert result.provider == "gemini"
        assert result.usage == {"totalTokenCount": 11}
        request = seen[0]
        assert request.url.path.endswith("/models/gemini-pro:generateContent")
        assert request.url.params["key"] == "gem-key"
        body = json.loads(request.content)
        assert body["generationConfig"]["maxOutputTokens"] == 50

    async def test_missing_candidates_is_an_error(self):
        provider, _ = self._provider(lambda r: httpx.Response(200, json={"candidates": []}))

        with pytest.raises(GenerationError, match="No content"):
            await provider.generate([{"role": "user", "content": "hi"}], GenerationParams())

    async def test_http_error_is_wrapped(self):
        provider, _ = self._provider(
            lambda r: httpx.Response(429, json={"error": {"message": "Resource exhausted"}})
        )

        with pytest.raises(GenerationError, match="Resource exhausted"):
            await provider.generate([{"role": "user", "content": "hi"}], GenerationParams())

    async def test_embed_returns_values(self):
        provider, seen = self._provider(lambda r: httpx.Response(200, json={"embedding": {"values": [0.5, 0.25]}}))

        assert await provider.embed("hello") == [0.5, 0.25]
        assert seen[0].url.path.endswith("/models/embedding-001:embedContent")

    async def test_unconfigured_provider_refuses(self):
        provider = GeminiProvider(api_key="", model="gemini-pro")

        with pytest.raises(GenerationError):
            await provider.generate([{"role": "user", "content": "hi"}], GenerationParams())
        await provider.aclose()
