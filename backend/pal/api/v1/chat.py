import uuid
import logging
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from pal.core import get_db
from pal.api.deps import get_services
from pal.models import ChatSession, ChatMessage
from pal.schemas import (
    ChatRequest,
    ChatResponse,
    ChatContextSummary,
    ChatMessageResponse,
    ChatSessionResponse,
    ChatSessionSummary,
    ChatSessionDetail,
    ChatSessionUpdate,
    LastMessagePreview,
)
from pal.services.chat_service import ChatService, SessionNotFoundError
from pal.services.container import ServiceContainer
from pal.services.providers import GenerationParams

logger = logging.getLogger(__name__)

router = APIRouter()

LAST_MESSAGE_PREVIEW_LENGTH = 100
CHAT_MAX_TOKENS = 1000
CHAT_TEMPERATURE = 0.7


def _message_response(message: ChatMessage) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=message.id,
        role=message.role,
        content=message.content,
        timestamp=message.created_at,
        metadata=message.meta or {},
    )


def _preview(content: str) -> str:
    if len(content) > LAST_MESSAGE_PREVIEW_LENGTH:
        return content[:LAST_MESSAGE_PREVIEW_LENGTH] + "..."
    return content


async def _get_session_or_404(db: AsyncSession, session_id: uuid.UUID, with_messages: bool = False) -> ChatSession:
    query = select(ChatSession).where(ChatSession.id == session_id)
    if with_messages:
        query = query.options(selectinload(ChatSession.messages))
    result = await db.execute(query)
    session = result.scalar_one_or_none()
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return session


@router.post("", response_model=ChatResponse)
async def send_message(
    request: ChatRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    services: Annotated[ServiceContainer, Depends(get_services)],
):
    """Answer a message, grounding the reply in documents or the web when possible."""
    params = GenerationParams.from_settings(
        services.settings, max_tokens=CHAT_MAX_TOKENS, temperature=CHAT_TEMPERATURE
    )
    service = ChatService(db, services.retrieval, services.generator, params)

    try:
        turn = await service.send_message(request.message, request.session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")

    return ChatResponse(
        session_id=turn.session.id,
        message=_message_response(turn.assistant_message),
        context=ChatContextSummary(
            documents_used=turn.retrieval.documents_used,
            web_search_used=turn.retrieval.web_search_used,
            sources=turn.retrieval.web_sources,
        ),
        usage=turn.generation.usage,
    )


@router.get("/sessions", response_model=list[ChatSessionSummary])
async def list_sessions(db: Annotated[AsyncSession, Depends(get_db)]):
    result = await db.execute(
        select(ChatSession)
        .options(selectinload(ChatSession.messages))
        .order_by(ChatSession.updated_at.desc())
    )
    sessions = result.scalars().all()

    summaries = []
    for session in sessions:
        last = session.messages[-1] if session.messages else None
        summaries.append(
            ChatSessionSummary(
                id=session.id,
                title=session.title,
                created_at=session.created_at,
                updated_at=session.updated_at,
                message_count=len(session.messages),
                last_message=LastMessagePreview(
                    content=_preview(last.content),
                    timestamp=last.created_at,
                    role=last.role,
                ) if last else None,
            )
        )
    return summaries


@router.get("/sessions/{session_id}", response_model=ChatSessionDetail)
async def get_session(session_id: uuid.UUID, db: Annotated[AsyncSession, Depends(get_db)]):
    session = await _get_session_or_404(db, session_id, with_messages=True)
    return ChatSessionDetail(
        id=session.id,
        title=session.title,
        created_at=session.created_at,
        updated_at=session.updated_at,
        messages=[_message_response(m) for m in session.messages],
    )


@router.put("/sessions/{session_id}", response_model=ChatSessionResponse)
async def rename_session(
    session_id: uuid.UUID,
    update: ChatSessionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    session = await _get_session_or_404(db, session_id)
    session.title = update.title
    await db.commit()
    await db.refresh(session)
    logger.info("Renamed chat session %s", session_id)
    return ChatSessionResponse.model_validate(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: uuid.UUID, db: Annotated[AsyncSession, Depends(get_db)]):
    session = await _get_session_or_404(db, session_id)
    await db.delete(session)
    await db.commit()
    logger.info("Deleted chat session %s", session_id)
