from pal.schemas.schemas import (
    APIModel, HealthResponse,
    DocumentResponse, DocumentDetailResponse, ReprocessResponse,
    DocumentsByStatus, IndexStats, DocumentStatsResponse,
    ChatRequest, ChatMessageResponse, ChatContextSummary, ChatResponse,
    LastMessagePreview, ChatSessionResponse, ChatSessionSummary, ChatSessionDetail, ChatSessionUpdate
)

__all__ = [
    "APIModel", "HealthResponse",
    "DocumentResponse", "DocumentDetailResponse", "ReprocessResponse",
    "DocumentsByStatus", "IndexStats", "DocumentStatsResponse",
    "ChatRequest", "ChatMessageResponse", "ChatContextSummary", "ChatResponse",
    "LastMessagePreview", "ChatSessionResponse", "ChatSessionSummary", "ChatSessionDetail", "ChatSessionUpdate"
]
