import uuid
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HealthResponse(APIModel):
    status: str
    version: str
    uptime: float
    timestamp: datetime


class DocumentResponse(APIModel):
    id: uuid.UUID
    filename: str
    size: int
    mime_type: str
    status: str
    uploaded_at: datetime
    processed_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentDetailResponse(DocumentResponse):
    content_preview: str | None = None


class ReprocessResponse(APIModel):
    id: uuid.UUID
    status: str
    message: str


class DocumentsByStatus(APIModel):
    completed: int = 0
    processing: int = 0
    failed: int = 0
    pending: int = 0


class IndexStats(APIModel):
    total_chunks: int
    indexed_documents: int
    average_chunk_size: int


class DocumentStatsResponse(IndexStats):
    total_documents: int
    documents_by_status: DocumentsByStatus
    total_size: int


class ChatRequest(APIModel):
    message: str
    session_id: uuid.UUID | None = None

    @field_validator("message")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message is required and must be a non-empty string")
        return v


class ChatMessageResponse(APIModel):
    id: uuid.UUID
    role: str
    content: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatContextSummary(APIModel):
    documents_used: int
    web_search_used: bool
    sources: list[dict[str, Any]] = Field(default_factory=list)


class ChatResponse(APIModel):
    session_id: uuid.UUID
    message: ChatMessageResponse
    context: ChatContextSummary
    usage: dict[str, Any] = Field(default_factory=dict)


class LastMessagePreview(APIModel):
    content: str
    timestamp: datetime
    role: str


class ChatSessionResponse(APIModel):
    id: uuid.UUID
    title: str | None
    created_at: datetime
    updated_at: datetime


class ChatSessionSummary(ChatSessionResponse):
    message_count: int = 0
    last_message: LastMessagePreview | None = None


class ChatSessionDetail(ChatSessionResponse):
    messages: list[ChatMessageResponse] = Field(default_factory=list)


class ChatSessionUpdate(APIModel):
    title: str

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Title is required and must be a non-empty string")
        return v
