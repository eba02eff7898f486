from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from functools import lru_cache
from typing import Literal, Optional

_PLACEHOLDER_SUFFIX = "_here"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Pal"
    environment: str = "development"
    debug: bool = False
    log_level: Optional[str] = None
    api_v1_prefix: str = "/api/v1"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/pal.db"

    # Local File Storage
    upload_dir: str = "./uploads"
    max_file_size: int = 10 * 1024 * 1024

    # CORS - supports comma-separated string from env
    allowed_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # LLM providers
    llm_provider: Literal["openai", "gemini"] = "openai"
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None  # Custom API URL for OpenAI-compatible providers
    openai_model: str = "gpt-3.5-turbo"
    openai_embedding_model: str = "text-embedding-ada-002"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-pro"
    gemini_embedding_model: str = "embedding-001"
    gemini_timeout_seconds: float = 60.0

    # Embeddings: "local" uses the hashed bag-of-characters vector
    embeddings_provider: Literal["openai", "gemini", "local"] = "local"
    local_embedding_dimensions: int = 384

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_content_length: int = 50

    # Retrieval
    similarity_threshold: float = 0.3
    retrieval_limit: int = 5
    context_chunks: int = 3

    # Web search (available when either key is set)
    serpapi_key: Optional[str] = None
    bing_search_key: Optional[str] = None
    web_search_results: int = 3
    web_search_timeout_seconds: float = 10.0

    # Generation defaults
    max_tokens: int = 1000
    temperature: float = 0.8
    top_p: float = 0.9
    top_k: int = 30
    frequency_penalty: float = 0.1
    presence_penalty: float = 0.1

    # API rate limiting (in-memory)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100

    @field_validator("openai_api_key", "gemini_api_key", "serpapi_key", "bing_search_key", mode="before")
    @classmethod
    def drop_placeholder_keys(cls, v):
        """Treat values like ``your_openai_api_key_here`` as unset."""
        if isinstance(v, str):
            v = v.strip()
            if v.lower().startswith("your_") and v.lower().endswith(_PLACEHOLDER_SUFFIX):
                return ""
        return v

    @field_validator("chunk_overlap")
    @classmethod
    def validate_overlap(cls, v: int) -> int:
        if v < 0:
            raise ValueError("CHUNK_OVERLAP must not be negative")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def web_search_available(self) -> bool:
        return bool(self.serpapi_key or self.bing_search_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
