import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from pal.core.config import Settings
from pal.services.chunker import Chunker
from pal.services.document_processor import DocumentProcessor
from pal.services.embeddings import Embedder
from pal.services.generator import ResponseGenerator
from pal.services.providers import GenerationParams, LLMProvider, build_providers
from pal.services.retrieval import RetrievalOrchestrator
from pal.services.search import WebSearchService
from pal.services.storage import StorageService
from pal.services.tasks import DocumentTaskRunner
from pal.services.vector_store import SimilarityIndex

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    providers: dict[str, LLMProvider]
    embedder: Embedder
    index: SimilarityIndex
    web_search: WebSearchService
    retrieval: RetrievalOrchestrator
    generator: ResponseGenerator
    storage: StorageService
    processor: DocumentProcessor
    runner: DocumentTaskRunner

    async def startup(self) -> None:
        await self.index.load()
        logger.info(
            "Services ready (llm=%s, embeddings=%s, web_search=%s)",
            self.generator.provider.name,
            self.embedder.source,
            self.web_search.is_available(),
        )

    async def shutdown(self) -> None:
        await self.runner.shutdown()
        await self.web_search.aclose()
        for provider in self.providers.values():
            await provider.aclose()


def build_services(
    settings: Settings,
    session_factory: Callable[[], AsyncSession],
    providers: dict[str, LLMProvider] | None = None,
    web_search: WebSearchService | None = None,
) -> ServiceContainer:
    providers = providers or build_providers(settings)

    embedding_provider = providers.get(settings.embeddings_provider)
    embedder = Embedder(embedding_provider, dimensions=settings.local_embedding_dimensions)

    index = SimilarityIndex(
        session_factory,
        embedder,
        limit=settings.retrieval_limit,
        threshold=settings.similarity_threshold,
    )
    web_search = web_search or WebSearchService(
        serpapi_key=settings.serpapi_key,
        bing_key=settings.bing_search_key,
        timeout=settings.web_search_timeout_seconds,
    )
    retrieval = RetrievalOrchestrator(
        index,
        web_search,
        max_chunks=settings.context_chunks,
        threshold=settings.similarity_threshold,
        web_results=settings.web_search_results,
    )
    generator = ResponseGenerator(providers[settings.llm_provider], GenerationParams.from_settings(settings))
    storage = StorageService(settings.upload_dir)
    processor = DocumentProcessor(
        session_factory,
        storage,
        embedder,
        index,
        Chunker(settings.chunk_size, settings.chunk_overlap),
        min_content_length=settings.min_content_length,
    )

    return ServiceContainer(
        settings=settings,
        providers=providers,
        embedder=embedder,
        index=index,
        web_search=web_search,
        retrieval=retrieval,
        generator=generator,
        storage=storage,
        processor=processor,
        runner=DocumentTaskRunner(),
    )
