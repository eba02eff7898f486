import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from openai import AsyncOpenAI

from pal.core.config import Settings
from pal.core.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class GenerationParams:
    max_tokens: int = 1000
    temperature: float = 0.8
    top_p: float = 0.9
    top_k: int = 30
    frequency_penalty: float = 0.1
    presence_penalty: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "GenerationParams":
        params = cls(
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            top_k=settings.top_k,
            frequency_penalty=settings.frequency_penalty,
            presence_penalty=settings.presence_penalty,
        )
        for key, value in overrides.items():
            setattr(params, key, value)
        return params


@dataclass
class GenerationResult:
    content: str
    model: str
    provider: str
    usage: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Chat completion plus embeddings for one vendor."""

    name: str
    model: str

    @property
    @abstractmethod
    def configured(self) -> bool:
        pass

    @abstractmethod
    async def generate(self, messages: list[dict[str, str]], params: GenerationParams) -> GenerationResult:
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        pass

    async def aclose(self) -> None:
        return None


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        embedding_model: str = "text-embedding-ada-002",
        base_url: str | None = None,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self._client: AsyncOpenAI | None = None
        if api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or None)
            logger.info("OpenAI client initialized (model=%s)", model)

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def generate(self, messages: list[dict[str, str]], params: GenerationParams) -> GenerationResult:
        if self._client is None:
            raise GenerationError("LLM provider openai not available or not configured")
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                top_p=params.top_p,
                frequency_penalty=params.frequency_penalty,
                presence_penalty=params.presence_penalty,
            )
        except Exception as e:
            logger.error("OpenAI API error: %s", e)
            raise GenerationError(f"OpenAI API error: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise GenerationError("No content in OpenAI response")
        usage = completion.usage.model_dump() if completion.usage is not None else {}
        return GenerationResult(
            content=content,
            model=completion.model or self.model,
            provider=self.name,
            usage=usage,
        )

    async def embed(self, text: str) -> list[float]:
        if self._client is None:
            raise RuntimeError("OpenAI embeddings not configured")
        response = await self._client.embeddings.create(model=self.embedding_model, input=text)
        return list(response.data[0].embedding)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


class GeminiProvider(LLMProvider):
    """Generative Language REST API; the SDK is not needed for two endpoints."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        embedding_model: str = "embedding-001",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.embedding_model = embedding_model
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, headers={"Content-Type": "application/json"})
        if api_key:
            logger.info("Gemini API key configured (model=%s)", model)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def to_contents(messages: list[dict[str, str]]) -> list[dict[str, Any]]:
        """Reshape role-tagged messages into Gemini user/model turns."""
        contents: list[dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role")
            if role == "system":
                contents.append({"role": "user", "parts": [{"text": f"System Instructions: {msg['content']}"}]})
            elif role == "user":
                contents.append({"role": "user", "parts": [{"text": msg["content"]}]})
            elif role == "assistant":
                contents.append({"role": "model", "parts": [{"text": msg["content"]}]})
        return contents

    @staticmethod
    def _error_message(e: Exception) -> str:
        if isinstance(e, httpx.HTTPStatusError):
            try:
                return e.response.json().get("error", {}).get("message") or str(e)
            except ValueError:
                return str(e)
        return str(e)

    async def generate(self, messages: list[dict[str, str]], params: GenerationParams) -> GenerationResult:
        if not self.configured:
            raise GenerationError("LLM provider gemini not available or not configured")

        payload = {
            "contents": self.to_contents(messages),
            "generationConfig": {
                "temperature": params.temperature,
                "topK": params.top_k,
                "topP": params.top_p,
                "maxOutputTokens": params.max_tokens,
            },
        }
        try:
            resp = await self._client.post(
                f"{self.base_url}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=payload,
            )
            resp.raise_for_status()
            data = resp.json()
        except Exception as e:
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            logger.error("Gemini API error: %s (status=%s, model=%s)", self._error_message(e), status_code, self.model)
            raise GenerationError(f"Gemini API error: {self._error_message(e)}") from e

        content = None
        candidates = data.get("candidates") or []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            if parts:
                content = parts[0].get("text")
        if not content:
            raise GenerationError("Gemini API error: No content in Gemini response")

        return GenerationResult(
            content=content,
            model=self.model,
            provider=self.name,
            usage=data.get("usageMetadata") or {},
        )

    async def embed(self, text: str) -> list[float]:
        if not self.configured:
            raise RuntimeError("Gemini embeddings not configured")
        resp = await self._client.post(
            f"{self.base_url}/models/{self.embedding_model}:embedContent",
            params={"key": self.api_key},
            json={
                "model": f"models/{self.embedding_model}",
                "content": {"parts": [{"text": text}]},
            },
        )
        resp.raise_for_status()
        values = (resp.json().get("embedding") or {}).get("values")
        if not values:
            raise ValueError("Invalid embedding response from Gemini")
        return list(values)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_providers(settings: Settings) -> dict[str, LLMProvider]:
    return {
        "openai": OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            embedding_model=settings.openai_embedding_model,
            base_url=settings.openai_base_url,
        ),
        "gemini": GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            embedding_model=settings.gemini_embedding_model,
            base_url=settings.gemini_base_url,
            timeout=settings.gemini_timeout_seconds,
        ),
    }
