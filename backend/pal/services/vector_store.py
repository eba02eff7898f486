import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Sequence

import numpy as np
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pal.models import DocumentChunk
from pal.services.embeddings import Embedder

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.3

_QUERY_SPLIT_RE = re.compile(r"\W+", re.ASCII)


@dataclass
class IndexedChunk:
    id: uuid.UUID
    document_id: uuid.UUID
    content: str
    embedding: np.ndarray | None
    metadata: dict[str, Any] = field(default_factory=dict)
    similarity: float = 0.0

    @classmethod
    def from_row(cls, chunk: DocumentChunk) -> "IndexedChunk":
        return cls(
            id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            embedding=_as_vector(chunk.embedding),
            metadata=dict(chunk.meta or {}),
        )


def _as_vector(values: Sequence[float] | np.ndarray | None) -> np.ndarray | None:
    if values is None:
        return None
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1 or vector.size == 0:
        return None
    return vector


def cosine_similarity(a: Sequence[float] | np.ndarray | None, b: Sequence[float] | np.ndarray | None) -> float:
    """dot(a, b) / (|a| |b|); 0.0 for missing, mismatched or zero-norm vectors."""
    vec_a = _as_vector(a)
    vec_b = _as_vector(b)
    if vec_a is None or vec_b is None or vec_a.shape != vec_b.shape:
        return 0.0

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    if not np.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


class SimilarityIndex:
    """
    In-memory view over every persisted chunk, scanned linearly per query.

    The index is a rebuildable cache: ``load()`` replaces it from the
    database, ``add_chunk``/``remove_chunks_for_document`` patch it between
    reloads. ``search`` never raises.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        embedder: Embedder,
        limit: int = DEFAULT_SEARCH_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.session_factory = session_factory
        self.embedder = embedder
        self.limit = limit
        self.threshold = threshold
        self._chunks: list[IndexedChunk] = []
        self.is_loaded = False

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def chunks(self) -> list[IndexedChunk]:
        return list(self._chunks)

    async def load(self) -> int:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(DocumentChunk).order_by(DocumentChunk.created_at))
                rows = result.scalars().all()
        except Exception:
            logger.exception("Error loading chunks into similarity index")
            return len(self._chunks)

        # Swap in one assignment so concurrent readers see old or new, never half.
        self._chunks = [IndexedChunk.from_row(row) for row in rows]
        self.is_loaded = True
        logger.info("Loaded %d chunks into similarity index", len(self._chunks))
        return len(self._chunks)

    def add_chunk(self, chunk: DocumentChunk | IndexedChunk) -> None:
        entry = chunk if isinstance(chunk, IndexedChunk) else IndexedChunk.from_row(chunk)
        self._chunks = [c for c in self._chunks if c.id != entry.id] + [entry]
        logger.debug("Added chunk %s to similarity index", entry.id)

    def remove_chunks_for_document(self, document_id: uuid.UUID) -> int:
        before = len(self._chunks)
        self._chunks = [c for c in self._chunks if c.document_id != document_id]
        removed = before - len(self._chunks)
        logger.info("Removed %d chunks for document %s from similarity index", removed, document_id)
        return removed

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[IndexedChunk]:
        limit = self.limit if limit is None else limit
        threshold = self.threshold if threshold is None else threshold
        try:
            if not self._chunks:
                await self.load()
            chunks = self._chunks
            if not chunks or limit <= 0:
                return []

            query_vector = await self.embedder.embed(query)

            scored = [replace(c, similarity=cosine_similarity(query_vector, c.embedding)) for c in chunks]
            # sorted() is stable, so ties keep insertion order.
            results = sorted(
                (c for c in scored if c.similarity >= threshold),
                key=lambda c: c.similarity,
                reverse=True,
            )[:limit]

            logger.debug("Vector search found %d relevant chunks for query", len(results))
            return results
        except Exception:
            logger.exception("Error in vector search, using keyword fallback")
            return self.fallback_search(query, limit)

    def fallback_search(self, query: str, limit: int | None = None) -> list[IndexedChunk]:
        """Score chunks by occurrences of query words longer than two characters."""
        limit = self.limit if limit is None else limit
        try:
            words = [w for w in _QUERY_SPLIT_RE.split((query or "").lower()) if len(w) > 2]
            if not words or limit <= 0:
                return []
            patterns = [re.compile(re.escape(w)) for w in words]

            scored: list[IndexedChunk] = []
            for chunk in self._chunks:
                content = chunk.content.lower()
                score = sum(len(p.findall(content)) for p in patterns)
                scored.append(replace(chunk, similarity=score / len(words)))

            results = sorted(
                (c for c in scored if c.similarity > 0),
                key=lambda c: c.similarity,
                reverse=True,
            )[:limit]

            logger.debug("Fallback search found %d relevant chunks", len(results))
            return results
        except Exception:
            logger.exception("Error in fallback search")
            return []

    def stats(self) -> dict[str, int]:
        chunks = self._chunks
        total = len(chunks)
        return {
            "total_chunks": total,
            "indexed_documents": len({c.document_id for c in chunks}),
            "average_chunk_size": round(sum(len(c.content) for c in chunks) / total) if total else 0,
        }
