"""
Tests for the local hash embedding and the provider-backed Embedder.
"""
import math
from unittest.mock import AsyncMock, MagicMock

from pal.services.embeddings import Embedder, hash_embedding, LOCAL_EMBEDDING_DIMENSIONS


def _provider(configured: bool = True, name: str = "openai") -> MagicMock:
    provider = MagicMock()
    provider.name = name
    provider.configured = configured
    provider.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return provider


# ============================================================================
# hash_embedding
# ============================================================================

class TestHashEmbedding:

    def test_has_default_dimensions_and_unit_norm(self):
        vector = hash_embedding("Where can I find the refund policy?")

        assert len(vector) == LOCAL_EMBEDDING_DIMENSIONS
        assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0, rel_tol=1e-9)

    def test_is_deterministic(self):
        assert hash_embedding("shipping times") == hash_embedding("shipping times")

    def test_is_case_insensitive(self):
        assert hash_embedding("Shipping Times") == hash_embedding("shipping times")

    def test_short_words_only_give_zero_vector(self):
        vector = hash_embedding("a an to of")
        assert vector == [0.0] * LOCAL_EMBEDDING_DIMENSIONS

    def test_empty_text_gives_zero_vector(self):
        assert not any(hash_embedding(""))

    def test_custom_dimensions(self):
        assert len(hash_embedding("custom size vector", dimensions=16)) == 16

    def test_word_position_changes_the_vector(self):
        assert hash_embedding("alpha beta") != hash_embedding("beta alpha")


# ============================================================================
# Embedder
# ============================================================================

class TestEmbedder:

    async def test_without_provider_uses_hash(self):
        embedder = Embedder()

        assert embedder.source == "local"
        assert await embedder.embed("return policy") == hash_embedding("return policy")

    async def test_unconfigured_provider_is_ignored(self):
        provider = _provider(configured=False)
        embedder = Embedder(provider)

        assert embedder.source == "local"
        assert await embedder.embed("return policy") == hash_embedding("return policy")
        provider.embed.assert_not_called()

    async def test_configured_provider_is_used(self):
        provider = _provider()
        embedder = Embedder(provider)

        assert embedder.source == "openai"
        assert await embedder.embed("return policy") == [0.1, 0.2, 0.3]
        provider.embed.assert_awaited_once_with("return policy")

    async def test_provider_failure_falls_back_to_hash(self):
        provider = _provider()
        provider.embed.side_effect = RuntimeError("quota exceeded")
        embedder = Embedder(provider, dimensions=64)

        vector = await embedder.embed("return policy")

        assert vector == hash_embedding("return policy", dimensions=64)
