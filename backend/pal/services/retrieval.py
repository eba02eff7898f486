import logging
from dataclasses import dataclass, field
from typing import Any

from pal.services.search import WebSearchService
from pal.services.vector_store import SimilarityIndex

logger = logging.getLogger(__name__)

WEB_SEARCH_ORIGIN = "web-search"
WEB_SEARCH_SIMILARITY = 0.8


@dataclass
class ContextFragment:
    content: str
    origin: str  # document id, or WEB_SEARCH_ORIGIN
    similarity: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_web(self) -> bool:
        return self.origin == WEB_SEARCH_ORIGIN


@dataclass
class RetrievalResult:
    fragments: list[ContextFragment] = field(default_factory=list)
    web_search_used: bool = False
    web_sources: list[dict[str, str]] = field(default_factory=list)

    @property
    def documents_used(self) -> int:
        return sum(1 for f in self.fragments if not f.is_web)


class RetrievalOrchestrator:
    """Document chunks first, then web search, then nothing."""

    def __init__(
        self,
        index: SimilarityIndex,
        web_search: WebSearchService,
        max_chunks: int = 3,
        threshold: float = 0.3,
        web_results: int = 3,
    ):
        self.index = index
        self.web_search = web_search
        self.max_chunks = max_chunks
        self.threshold = threshold
        self.web_results = web_results

    async def retrieve(self, query: str) -> RetrievalResult:
        result = RetrievalResult()

        try:
            chunks = await self.index.search(query, limit=self.max_chunks, threshold=self.threshold)
            result.fragments = [
                ContextFragment(
                    content=c.content,
                    origin=str(c.document_id),
                    similarity=c.similarity,
                    metadata=c.metadata,
                )
                for c in chunks
            ]
            logger.info("Found %d relevant document chunks", len(result.fragments))
        except Exception:
            logger.exception("Error searching document context")

        if result.fragments or not self.web_search.is_available():
            return result

        try:
            web = await self.web_search.get_web_context(query, self.web_results)
            if web:
                sources = [s.to_dict() for s in web.sources]
                result.fragments = [
                    ContextFragment(
                        content=web.context,
                        origin=WEB_SEARCH_ORIGIN,
                        similarity=WEB_SEARCH_SIMILARITY,
                        metadata={"source": "web", "results": sources},
                    )
                ]
                result.web_search_used = True
                result.web_sources = sources
                logger.info("Used web search for context (%d results)", len(sources))
        except Exception:
            logger.exception("Error in web search")

        return result
