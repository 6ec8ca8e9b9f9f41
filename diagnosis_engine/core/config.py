"""Configuration management for the diagnosis engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Environment variables should be set directly
    pass


ZHIPU_CHAT_COMPLETIONS_URL = "https://open.bigmodel.cn/api/paas/v4/chat/completions"
ZHIPU_EMBEDDINGS_URL = "https://open.bigmodel.cn/api/paas/v4/embeddings"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Environment
    DIAG_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration (one active backend per deployment)
    EMBEDDING_PROVIDER: str = Field(default="openai", description="Embedding backend: openai, zhipu")
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    OPENAI_EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    ZHIPU_API_KEY: str | None = Field(default=None, description="Zhipu AI API key")
    ZHIPU_EMBEDDING_MODEL: str = Field(default="embedding-3", description="Zhipu embedding model")
    ZHIPU_EMBEDDINGS_URL: str = Field(
        default=ZHIPU_EMBEDDINGS_URL, description="Zhipu embeddings endpoint"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Chat completion backend
    COMPLETION_API_URL: str = Field(
        default=ZHIPU_CHAT_COMPLETIONS_URL, description="Chat completions endpoint"
    )
    COMPLETION_API_KEY: str | None = Field(
        default=None, description="Chat completions API key (defaults to ZHIPU_API_KEY)"
    )
    COMPLETION_MODEL: str = Field(default="glm-4-flash", description="Chat completion model")
    COMPLETION_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Timeout for streaming and non-streaming completions"
    )
    CHAT_TEMPERATURE: float = Field(default=0.7, description="Temperature for conversation")
    EXTRACTION_TEMPERATURE: float = Field(default=0.3, description="Temperature for extraction")
    COMPLETION_TOP_P: float = Field(default=0.9, description="Nucleus sampling top_p")
    COMPLETION_MAX_TOKENS: int = Field(default=2000, description="Max tokens per completion")

    # Retrieval configuration
    RETRIEVAL_MATCH_THRESHOLD: float = Field(
        default=0.7, description="Minimum similarity for retrieved passages"
    )
    RETRIEVAL_TOP_K: int = Field(default=3, description="Passages retrieved per chat turn")
    CHAT_HISTORY_LIMIT: int = Field(
        default=10, description="Prior transcript entries replayed to the chat model"
    )

    # Offline ingestion
    INGEST_DOCS_DIR: str = Field(default="docs", description="Directory of knowledge documents")
    INGEST_CHUNK_SIZE: int = Field(default=500, description="Max characters per chunk")
    INGEST_CHUNK_OVERLAP: int = Field(default=50, description="Characters carried between chunks")
    INGEST_BATCH_SIZE: int = Field(default=100, description="Records per insert batch")
    INGEST_MAX_RETRIES: int = Field(default=3, description="Attempts per failed insert batch")

    @property
    def completion_api_key(self) -> str | None:
        """API key for the completion backend."""
        return self.COMPLETION_API_KEY or self.ZHIPU_API_KEY


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance loaded from environment

    Raises:
        ValidationError: If required settings are missing
    """
    return Settings()
