import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pal.models import ChatSession, ChatMessage, MessageRole
from pal.services.generator import ResponseGenerator
from pal.services.providers import GenerationParams, GenerationResult
from pal.services.retrieval import RetrievalOrchestrator, RetrievalResult

logger = logging.getLogger(__name__)

SESSION_TITLE_LENGTH = 50


class SessionNotFoundError(LookupError):
    pass


@dataclass
class ChatTurn:
    session: ChatSession
    user_message: ChatMessage
    assistant_message: ChatMessage
    retrieval: RetrievalResult
    generation: GenerationResult


def session_title(message: str) -> str:
    message = message.strip()
    if len(message) > SESSION_TITLE_LENGTH:
        return message[:SESSION_TITLE_LENGTH] + "..."
    return message


class ChatService:
    """One chat turn: persist the question, retrieve context, generate, persist the answer."""

    def __init__(
        self,
        db: AsyncSession,
        retrieval: RetrievalOrchestrator,
        generator: ResponseGenerator,
        params: GenerationParams | None = None,
    ):
        self.db = db
        self.retrieval = retrieval
        self.generator = generator
        self.params = params

    async def _get_or_create_session(self, session_id: uuid.UUID | None, message: str) -> ChatSession:
        if session_id is None:
            session = ChatSession(title=session_title(message))
            self.db.add(session)
            await self.db.flush()
            logger.info("Created new chat session: %s", session.id)
            return session

        session = await self.db.get(ChatSession, session_id)
        if not session:
            raise SessionNotFoundError(str(session_id))
        return session

    async def history(self, session_id: uuid.UUID) -> list[dict[str, str]]:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.asc())
        )
        return [{"role": m.role, "content": m.content} for m in result.scalars().all()]

    async def send_message(self, message: str, session_id: uuid.UUID | None = None) -> ChatTurn:
        session = await self._get_or_create_session(session_id, message)

        user_message = ChatMessage(session_id=session.id, role=MessageRole.USER.value, content=message, meta={})
        self.db.add(user_message)
        # Committed before generation so the question survives an LLM failure.
        await self.db.commit()

        history = await self.history(session.id)
        retrieval = await self.retrieval.retrieve(message)

        generation = await self.generator.generate(history, retrieval.fragments, self.params)

        metadata: dict[str, Any] = {
            "model": generation.model,
            "provider": generation.provider,
            "usage": generation.usage,
            "contextSources": len(retrieval.fragments),
            "searchedWeb": retrieval.web_search_used,
            "sources": retrieval.web_sources,
        }
        assistant_message = ChatMessage(
            session_id=session.id,
            role=MessageRole.ASSISTANT.value,
            content=generation.content,
            meta=metadata,
        )
        self.db.add(assistant_message)
        session.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info("Chat response generated for session %s", session.id)
        return ChatTurn(
            session=session,
            user_message=user_message,
            assistant_message=assistant_message,
            retrieval=retrieval,
            generation=generation,
        )
