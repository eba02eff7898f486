from pal.services.chat_service import ChatService, SessionNotFoundError
from pal.services.chunker import Chunker, TextChunk
from pal.services.container import ServiceContainer, build_services
from pal.services.document_processor import DocumentProcessor
from pal.services.embeddings import Embedder, hash_embedding
from pal.services.generator import ResponseGenerator
from pal.services.providers import GenerationParams, GenerationResult, LLMProvider
from pal.services.retrieval import RetrievalOrchestrator, RetrievalResult, ContextFragment
from pal.services.search import WebSearchService
from pal.services.storage import StorageService
from pal.services.tasks import DocumentTaskRunner
from pal.services.vector_store import SimilarityIndex, cosine_similarity

__all__ = [
    "ChatService",
    "SessionNotFoundError",
    "Chunker",
    "TextChunk",
    "ServiceContainer",
    "build_services",
    "DocumentProcessor",
    "Embedder",
    "hash_embedding",
    "ResponseGenerator",
    "GenerationParams",
    "GenerationResult",
    "LLMProvider",
    "RetrievalOrchestrator",
    "RetrievalResult",
    "ContextFragment",
    "WebSearchService",
    "StorageService",
    "DocumentTaskRunner",
    "SimilarityIndex",
    "cosine_similarity",
]
