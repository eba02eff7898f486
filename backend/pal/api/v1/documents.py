import uuid
import logging
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from pal.core import get_db
from pal.api.deps import get_services
from pal.models import Document, DocumentChunk, DocumentStatus
from pal.schemas import (
    DocumentResponse,
    DocumentDetailResponse,
    DocumentStatsResponse,
    DocumentsByStatus,
    ReprocessResponse,
)
from pal.services.container import ServiceContainer
from pal.services.document_processor import resolve_mime_type, EXTENSION_MIME_TYPES

logger = logging.getLogger(__name__)

router = APIRouter()

CONTENT_PREVIEW_LENGTH = 500


def _document_response(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        filename=document.original_name,
        size=document.size,
        mime_type=document.mime_type,
        status=document.status,
        uploaded_at=document.uploaded_at,
        processed_at=document.processed_at,
        metadata=document.meta or {},
    )


async def _get_document_or_404(db: AsyncSession, document_id: uuid.UUID) -> Document:
    document = await db.get(Document, document_id)
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    db: Annotated[AsyncSession, Depends(get_db)],
    services: Annotated[ServiceContainer, Depends(get_services)],
    document: UploadFile = File(...),
):
    """Store an upload and start processing it in the background."""
    filename = document.filename or ""
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    mime_type = resolve_mime_type(document.content_type, filename)
    if not mime_type:
        supported = ", ".join(EXTENSION_MIME_TYPES)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type not allowed. Supported types: {supported}",
        )

    max_size = services.settings.max_file_size
    try:
        storage_key, size = await services.storage.save_upload_file(document, max_size=max_size)
    except ValueError as e:
        msg = str(e)
        if msg == "File size exceeds limit":
            msg = f"File size exceeds {max_size // (1024 * 1024)}MB limit"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=msg)

    try:
        record = Document(
            storage_key=storage_key,
            original_name=filename,
            mime_type=mime_type,
            size=size,
            status=DocumentStatus.PENDING.value,
            meta={"extension": storage_key.rsplit(".", 1)[-1] if "." in storage_key else ""},
        )
        db.add(record)
        await db.commit()

        record.status = DocumentStatus.PROCESSING.value
        await db.commit()
        await db.refresh(record)
    except Exception:
        await db.rollback()
        await services.storage.delete_file(storage_key)
        raise

    logger.info("Document uploaded: %s (%s)", record.id, filename)
    services.runner.submit(record.id, services.processor.process_document)

    return _document_response(record)


@router.get("", response_model=list[DocumentResponse])
async def list_documents(db: Annotated[AsyncSession, Depends(get_db)]):
    result = await db.execute(select(Document).order_by(Document.uploaded_at.desc()))
    documents = result.scalars().all()
    logger.debug("Retrieved %d documents", len(documents))
    return [_document_response(d) for d in documents]


@router.get("/stats/summary", response_model=DocumentStatsResponse)
async def document_stats(
    db: Annotated[AsyncSession, Depends(get_db)],
    services: Annotated[ServiceContainer, Depends(get_services)],
):
    rows = await db.execute(select(Document.status, func.count(Document.id)).group_by(Document.status))
    by_status = DocumentsByStatus(**{s: count for s, count in rows.all()})
    total_size = await db.scalar(select(func.coalesce(func.sum(Document.size), 0)))

    index_stats = services.index.stats()
    return DocumentStatsResponse(
        total_documents=by_status.completed + by_status.processing + by_status.failed + by_status.pending,
        documents_by_status=by_status,
        total_size=total_size or 0,
        total_chunks=index_stats["total_chunks"],
        indexed_documents=index_stats["indexed_documents"],
        average_chunk_size=index_stats["average_chunk_size"],
    )


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(document_id: uuid.UUID, db: Annotated[AsyncSession, Depends(get_db)]):
    document = await _get_document_or_404(db, document_id)

    preview = None
    if document.content:
        preview = document.content[:CONTENT_PREVIEW_LENGTH]
        if len(document.content) > CONTENT_PREVIEW_LENGTH:
            preview += "..."

    return DocumentDetailResponse(
        **_document_response(document).model_dump(),
        content_preview=preview,
    )


@router.post("/{document_id}/reprocess", response_model=ReprocessResponse)
async def reprocess_document(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    services: Annotated[ServiceContainer, Depends(get_services)],
):
    """Re-run extraction, chunking and embedding from the stored file."""
    document = await _get_document_or_404(db, document_id)

    # Only a live task blocks; a leftover "processing" status from a dead run does not.
    if services.runner.is_running(document_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document is already being processed")

    if not await services.storage.exists(document.storage_key):
        document.status = DocumentStatus.FAILED.value
        document.meta = {**(document.meta or {}), "error": "Original file not found"}
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Original file not found. Please re-upload the document.",
        )

    document.status = DocumentStatus.PROCESSING.value
    await db.commit()

    services.runner.submit(document_id, services.processor.process_document)
    logger.info("Started reprocessing document %s", document_id)

    return ReprocessResponse(
        id=document_id,
        status=DocumentStatus.PROCESSING.value,
        message="Document reprocessing started",
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    services: Annotated[ServiceContainer, Depends(get_services)],
):
    document = await _get_document_or_404(db, document_id)

    removed = services.index.remove_chunks_for_document(document_id)

    await db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
    await db.delete(document)
    await db.commit()

    try:
        await services.storage.delete_file(document.storage_key)
    except (OSError, ValueError):
        logger.warning("Could not delete stored file for document %s", document_id, exc_info=True)

    logger.info("Deleted document %s (%s), %d chunks unindexed", document_id, document.original_name, removed)
