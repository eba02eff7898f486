from pal.core.config import Settings, get_settings
from pal.core.database import Base, get_db, async_session_maker, engine
from pal.core.errors import (
    PalError,
    UnsupportedDocumentError,
    ExtractionError,
    GenerationError,
    WebSearchError,
)

__all__ = [
    "Settings",
    "get_settings",
    "Base",
    "get_db",
    "async_session_maker",
    "engine",
    "PalError",
    "UnsupportedDocumentError",
    "ExtractionError",
    "GenerationError",
    "WebSearchError",
]
