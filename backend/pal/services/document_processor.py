import asyncio
import io
import logging
import re
import uuid
from datetime import datetime, timezone
from html.parser import HTMLParser
from pathlib import Path
from typing import Callable

import aiofiles
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pal.core.errors import ExtractionError, UnsupportedDocumentError
from pal.models import Document, DocumentChunk, DocumentStatus
from pal.services.chunker import Chunker, TextChunk
from pal.services.embeddings import Embedder
from pal.services.storage import StorageService
from pal.services.vector_store import SimilarityIndex

logger = logging.getLogger(__name__)

PDF_TYPE = "application/pdf"
HTML_TYPE = "text/html"
TEXT_TYPE = "text/plain"
DOC_TYPE = "application/msword"
DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES = (PDF_TYPE, HTML_TYPE, TEXT_TYPE, DOC_TYPE, DOCX_TYPE)

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_TYPE,
    ".html": HTML_TYPE,
    ".htm": HTML_TYPE,
    ".txt": TEXT_TYPE,
    ".doc": DOC_TYPE,
    ".docx": DOCX_TYPE,
}

INTERRUPTED_ERROR = "Processing was interrupted before it finished"

_WHITESPACE_RE = re.compile(r"\s+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def resolve_mime_type(declared: str | None, filename: str) -> str | None:
    """Declared MIME type if supported, else the one implied by the extension."""
    declared = (declared or "").split(";", 1)[0].strip().lower()
    if declared in SUPPORTED_MIME_TYPES:
        return declared
    return EXTENSION_MIME_TYPES.get(Path(filename).suffix.lower())


def clean_content(content: str | None) -> str:
    if not content:
        return ""
    content = _WHITESPACE_RE.sub(" ", content)
    content = _CONTROL_CHARS_RE.sub("", content)
    return content.strip()


class _HTMLTextExtractor(HTMLParser):
    SKIPPED_TAGS = {"script", "style", "nav", "footer", "header"}

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._skip_depth = 0
        self._open = {"main": 0, "article": 0, "body": 0}
        self.parts: dict[str, list[str]] = {"main": [], "article": [], "body": [], "all": []}

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIPPED_TAGS:
            self._skip_depth += 1
        elif tag in self._open:
            self._open[tag] += 1

    def handle_endtag(self, tag):
        if tag in self.SKIPPED_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in self._open:
            self._open[tag] = max(0, self._open[tag] - 1)

    def handle_data(self, data):
        if self._skip_depth:
            return
        self.parts["all"].append(data)
        for tag, depth in self._open.items():
            if depth:
                self.parts[tag].append(data)

    def text(self) -> str:
        for section in ("main", "article", "body", "all"):
            text = " ".join(self.parts[section])
            if text.strip():
                return text
        return ""


def extract_html_text(html: str) -> str:
    parser = _HTMLTextExtractor()
    parser.feed(html)
    parser.close()
    return parser.text()


class DocumentProcessor:
    """
    Turns a stored upload into persisted, embedded chunks.

    ``process_document`` is the background entry point: every failure ends
    up in the document's status and metadata, never in the caller.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        storage: StorageService,
        embedder: Embedder,
        index: SimilarityIndex,
        chunker: Chunker,
        min_content_length: int = 50,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.embedder = embedder
        self.index = index
        self.chunker = chunker
        self.min_content_length = min_content_length

    async def extract_text(self, file_path: Path, mime_type: str) -> str:
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedDocumentError(f"Unsupported file type: {mime_type}")

        try:
            async with aiofiles.open(file_path, "rb") as f:
                raw = await f.read()
        except OSError as e:
            raise ExtractionError(f"Failed to read file: {e}") from e

        if mime_type == PDF_TYPE:
            return self._extract_pdf(raw)
        if mime_type == DOCX_TYPE:
            return self._extract_docx(raw)
        if mime_type == HTML_TYPE:
            try:
                return extract_html_text(raw.decode("utf-8", errors="ignore"))
            except Exception as e:
                raise ExtractionError(f"Failed to parse HTML file: {e}") from e
        # text/plain and legacy .doc are read as text
        return raw.decode("utf-8", errors="ignore")

    @staticmethod
    def _extract_pdf(raw: bytes) -> str:
        import fitz  # PyMuPDF

        try:
            with fitz.open(stream=raw, filetype="pdf") as doc:
                pages = [page.get_text() for page in doc]
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF file: {e}") from e
        return "\n\n".join(p for p in pages if p.strip())

    @staticmethod
    def _extract_docx(raw: bytes) -> str:
        from docx import Document as DocxDocument

        try:
            doc = DocxDocument(io.BytesIO(raw))
        except Exception as e:
            raise ExtractionError(f"Failed to parse Word document: {e}") from e
        return "\n".join(p.text for p in doc.paragraphs)

    async def build_chunks(self, document_id: uuid.UUID, content: str) -> list[DocumentChunk]:
        """Chunk and embed; a chunk whose embedding cannot be produced is skipped."""
        pieces: list[TextChunk] = self.chunker.chunk(content)
        rows: list[DocumentChunk] = []

        for piece in pieces:
            try:
                embedding = await self.embedder.embed(piece.content)
                now = datetime.now(timezone.utc)
                rows.append(
                    DocumentChunk(
                        id=uuid.uuid4(),
                        document_id=document_id,
                        content=piece.content,
                        start_index=piece.start_index,
                        end_index=piece.end_index,
                        embedding=embedding,
                        meta={
                            "chunkIndex": piece.index,
                            "wordCount": piece.word_count,
                            "createdAt": now.isoformat(),
                        },
                        created_at=now,
                    )
                )
                logger.debug("Processed chunk %d/%d for document %s", piece.index + 1, len(pieces), document_id)
            except Exception:
                logger.exception("Error processing chunk %d for document %s", piece.index, document_id)

        return rows

    async def process_document(self, document_id: uuid.UUID) -> None:
        async with self.session_factory() as db:
            try:
                document = await db.get(Document, document_id)
                if not document:
                    logger.warning("Document %s vanished before processing", document_id)
                    return

                document.status = DocumentStatus.PROCESSING.value
                await db.commit()
                logger.info("Processing document %s (%s, %s)", document_id, document.original_name, document.mime_type)

                file_path = await self.storage.get_file_path(document.storage_key)
                content = clean_content(await self.extract_text(file_path, document.mime_type))
                if len(content) < self.min_content_length:
                    raise ExtractionError("Document content is too short or empty")

                chunks = await self.build_chunks(document_id, content)

                # Document may have been deleted while embedding; stop gracefully.
                exists = await db.scalar(select(Document.id).where(Document.id == document_id))
                if not exists:
                    logger.info("Document %s was deleted during processing", document_id)
                    return

                # Replace previous results so reprocessing never duplicates chunks.
                await db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
                db.add_all(chunks)

                processed_at = datetime.now(timezone.utc)
                document.content = content
                document.status = DocumentStatus.COMPLETED.value
                document.processed_at = processed_at
                meta = dict(document.meta or {})
                meta.pop("error", None)
                meta.update(
                    chunksCount=len(chunks),
                    contentLength=len(content),
                    processedAt=processed_at.isoformat(),
                )
                document.meta = meta
                await db.commit()

                logger.info("Document %s processed successfully: %d chunks created", document_id, len(chunks))
            except asyncio.CancelledError:
                logger.warning("Processing of document %s was cancelled", document_id)
                await db.rollback()
                async with self.session_factory() as fresh:
                    await self._mark_failed(fresh, document_id, INTERRUPTED_ERROR)
                raise
            except Exception as e:
                logger.exception("Error processing document %s", document_id)
                await db.rollback()
                await self._mark_failed(db, document_id, str(e))
                return

        self.index.remove_chunks_for_document(document_id)
        for chunk in chunks:
            self.index.add_chunk(chunk)
        await self.index.load()

    async def _mark_failed(self, db: AsyncSession, document_id: uuid.UUID, error: str) -> None:
        try:
            document = await db.get(Document, document_id)
            if not document:
                return
            document.status = DocumentStatus.FAILED.value
            document.processed_at = datetime.now(timezone.utc)
            document.meta = {**(document.meta or {}), "error": error}
            await db.commit()
        except Exception:
            logger.exception("Failed to record failure for document %s", document_id)
