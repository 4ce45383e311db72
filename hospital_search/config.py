"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingProvider(str, Enum):
    """Hosted embedding providers the service can call."""

    GEMINI = "gemini"
    OPENAI = "openai"

    @property
    def alternate(self) -> "EmbeddingProvider":
        """The other provider, used as the default fallback."""
        if self is EmbeddingProvider.GEMINI:
            return EmbeddingProvider.OPENAI
        return EmbeddingProvider.GEMINI


class EmbeddingSettings(BaseSettings):
    """Provider-independent embedding configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    provider: EmbeddingProvider = Field(
        default=EmbeddingProvider.GEMINI,
        description="Preferred embedding provider",
    )
    fallback: bool = Field(
        default=True,
        description="Retry with the other provider when the preferred one fails",
    )
    dimensions: int = Field(
        default=1536,
        description="Dimensionality of every stored vector",
    )
    batch_size: int = Field(
        default=20,
        description="Batch size for bulk embedding operations",
    )
    max_concurrency: int = Field(
        default=3,
        description="Maximum concurrent provider requests within a batch",
    )
    timeout: float = Field(
        default=30.0,
        description="Provider request timeout in seconds",
    )


class GeminiSettings(BaseSettings):
    """Google Gemini embedding API configuration."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_")

    api_key: SecretStr | None = Field(
        default=None,
        description="Gemini API key",
    )
    model: str = Field(
        default="text-embedding-004",
        description="Gemini embedding model",
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API base URL",
    )


class OpenAISettings(BaseSettings):
    """OpenAI embedding API configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    project_id: str | None = Field(
        default=None,
        description="OpenAI project id (only for non project-scoped keys)",
    )
    model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI REST API base URL",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    hospitals_collection: str = Field(
        default="hospitals",
        description="Collection holding hospital records",
    )
    doctors_collection: str = Field(
        default="doctors",
        description="Collection holding doctor records",
    )


class SearchSettings(BaseSettings):
    """Default ranking knobs for hospital search."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    semantic_weight: float = Field(default=0.7, description="Weight of cosine similarity")
    text_weight: float = Field(default=0.3, description="Weight of lexical match score")
    similarity_threshold: float = Field(
        default=0.6,
        description="Minimum similarity for rows found only by the semantic pass",
    )
    default_limit: int = Field(default=50, description="Default result limit")
    max_limit: int = Field(default=100, description="Upper bound on any result limit")
    hospital_limit: int = Field(default=20, description="Combined search hospital limit")
    doctor_limit: int = Field(default=15, description="Combined search doctor limit")


class IndexingSettings(BaseSettings):
    """Batch indexing configuration."""

    model_config = SettingsConfigDict(env_prefix="INDEXING_")

    batch_size: int = Field(default=10, description="Hospitals per indexing batch")
    delay_between_batches: float = Field(
        default=1.0,
        description="Pause between batches in seconds",
    )
    cron_secret: SecretStr | None = Field(
        default=None,
        description="Bearer token required by the cron trigger",
    )
    webhook_secret: SecretStr | None = Field(
        default=None,
        description="When set, change webhooks must carry a signature header",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    indexing: IndexingSettings = Field(default_factory=IndexingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
