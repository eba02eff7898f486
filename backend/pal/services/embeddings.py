import logging
import math
import re

from pal.services.providers import LLMProvider

logger = logging.getLogger(__name__)

LOCAL_EMBEDDING_DIMENSIONS = 384

_WORD_SPLIT_RE = re.compile(r"\W+", re.ASCII)


def hash_embedding(text: str, dimensions: int = LOCAL_EMBEDDING_DIMENSIONS) -> list[float]:
    """
    Deterministic bag-of-characters vector.

    Every character of every word longer than two characters bumps slot
    ``(code point + word position) % dimensions``; the result is L2-normalised.
    Text without qualifying words maps to the zero vector.
    """
    words = [w for w in _WORD_SPLIT_RE.split((text or "").lower()) if len(w) > 2]
    vector = [0.0] * dimensions

    for index, word in enumerate(words):
        for char in word:
            vector[(ord(char) + index) % dimensions] += 1.0

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


class Embedder:
    """
    Text to vector through the configured provider, degrading to the local
    hash embedding whenever the provider is missing or fails. Chunks and
    queries must go through the same instance for their vectors to be
    comparable.
    """

    def __init__(self, provider: LLMProvider | None = None, dimensions: int = LOCAL_EMBEDDING_DIMENSIONS):
        self.provider = provider if provider is not None and provider.configured else None
        self.dimensions = dimensions
        if provider is not None and self.provider is None:
            logger.warning("Embedding provider %s is not configured, using local hash embeddings", provider.name)

    @property
    def source(self) -> str:
        return self.provider.name if self.provider else "local"

    async def embed(self, text: str) -> list[float]:
        if self.provider is None:
            return hash_embedding(text, self.dimensions)
        try:
            return await self.provider.embed(text)
        except Exception as e:
            logger.error("Error generating %s embedding, falling back to local hash: %s", self.provider.name, e)
            return hash_embedding(text, self.dimensions)
