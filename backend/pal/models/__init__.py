from pal.models.models import (
    Document, DocumentChunk, ChatSession, ChatMessage,
    DocumentStatus, MessageRole
)

__all__ = [
    "Document", "DocumentChunk", "ChatSession", "ChatMessage",
    "DocumentStatus", "MessageRole"
]
