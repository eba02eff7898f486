"""
Tests for the retrieval fallback chain: documents, then web, then nothing.
"""
import uuid
from unittest.mock import AsyncMock, MagicMock

import numpy as np

from pal.services.retrieval import RetrievalOrchestrator, WEB_SEARCH_ORIGIN, WEB_SEARCH_SIMILARITY
from pal.services.search import WebContext, WebResult
from pal.services.vector_store import IndexedChunk


def _hit(content: str, similarity: float) -> IndexedChunk:
    return IndexedChunk(
        id=uuid.uuid4(),
        document_id=uuid.uuid4(),
        content=content,
        embedding=np.ones(3),
        metadata={"chunkIndex": 0},
        similarity=similarity,
    )


def _orchestrator(hits=None, web_available=False, web_context=None, **kwargs):
    index = MagicMock()
    index.search = AsyncMock(return_value=hits or [])
    web = MagicMock()
    web.is_available.return_value = web_available
    web.get_web_context = AsyncMock(return_value=web_context)
    return RetrievalOrchestrator(index, web, **kwargs), index, web


class TestRetrievalOrchestrator:

    async def test_document_hits_are_used_and_web_is_skipped(self):
        hits = [_hit("Opening hours are 9 to 5.", 0.92), _hit("Closed on Sundays.", 0.61)]
        orchestrator, index, web = _orchestrator(hits, web_available=True)

        result = await orchestrator.retrieve("when are you open?")

        assert [f.content for f in result.fragments] == ["Opening hours are 9 to 5.", "Closed on Sundays."]
        assert result.fragments[0].origin == str(hits[0].document_id)
        assert result.fragments[0].similarity == 0.92
        assert result.documents_used == 2
        assert not result.web_search_used
        web.get_web_context.assert_not_called()

    async def test_search_uses_configured_limit_and_threshold(self):
        orchestrator, index, _ = _orchestrator(max_chunks=3, threshold=0.3)

        await orchestrator.retrieve("question")

        index.search.assert_awaited_once_with("question", limit=3, threshold=0.3)

    async def test_web_fallback_gives_single_fragment(self):
        sources = [
            WebResult(title="Pal FAQ", snippet="Pal answers questions.", link="https://example.com/faq", source="google"),
            WebResult(title="Pal docs", snippet="Setup guide.", link="https://example.com/docs", source="google"),
        ]
        web_context = WebContext(context="[Web Result 1] Pal FAQ\n...", sources=sources)
        orchestrator, _, web = _orchestrator(web_available=True, web_context=web_context, web_results=3)

        result = await orchestrator.retrieve("what is pal?")

        assert len(result.fragments) == 1
        fragment = result.fragments[0]
        assert fragment.origin == WEB_SEARCH_ORIGIN
        assert fragment.is_web
        assert fragment.similarity == WEB_SEARCH_SIMILARITY
        assert fragment.content == web_context.context
        assert result.web_search_used
        assert result.documents_used == 0
        assert result.web_sources == [s.to_dict() for s in sources]
        web.get_web_context.assert_awaited_once_with("what is pal?", 3)

    async def test_no_documents_and_no_web_gives_empty_context(self):
        orchestrator, _, web = _orchestrator(web_available=False)

        result = await orchestrator.retrieve("anything")

        assert result.fragments == []
        assert not result.web_search_used
        web.get_web_context.assert_not_called()

    async def test_empty_web_results_give_empty_context(self):
        orchestrator, _, _ = _orchestrator(web_available=True, web_context=None)

        result = await orchestrator.retrieve("anything")

        assert result.fragments == []
        assert not result.web_search_used
        assert result.web_sources == []

    async def test_index_failure_falls_through_to_web(self):
        web_context = WebContext(context="ctx", sources=[WebResult("t", "s", "l", "bing")])
        orchestrator, index, _ = _orchestrator(web_available=True, web_context=web_context)
        index.search.side_effect = RuntimeError("boom")

        result = await orchestrator.retrieve("question")

        assert result.web_search_used
        assert len(result.fragments) == 1

    async def test_web_failure_gives_empty_context(self):
        orchestrator, _, web = _orchestrator(web_available=True)
        web.get_web_context.side_effect = RuntimeError("network down")

        result = await orchestrator.retrieve("question")

        assert result.fragments == []
        assert not result.web_search_used
