"""Tests for application configuration."""

import os
from unittest.mock import patch

from hospital_search.config import (
    EmbeddingProvider,
    EmbeddingSettings,
    Environment,
    GeminiSettings,
    IndexingSettings,
    OpenAISettings,
    QdrantSettings,
    SearchSettings,
    Settings,
    get_settings,
)


class TestEmbeddingSettings:
    """Tests for embedding configuration."""

    def test_default_values(self) -> None:
        """Gemini is preferred with fallback and 1536-d vectors."""
        settings = EmbeddingSettings()
        assert settings.provider == EmbeddingProvider.GEMINI
        assert settings.fallback is True
        assert settings.dimensions == 1536
        assert settings.max_concurrency == 3

    def test_env_override(self) -> None:
        """Environment variables override defaults."""
        env = {"EMBEDDING_PROVIDER": "openai", "EMBEDDING_FALLBACK": "false"}
        with patch.dict(os.environ, env):
            settings = EmbeddingSettings()
            assert settings.provider == EmbeddingProvider.OPENAI
            assert settings.fallback is False


class TestEmbeddingProvider:
    """Tests for the provider variant."""

    def test_alternate(self) -> None:
        """Each provider's alternate is the other one."""
        assert EmbeddingProvider.GEMINI.alternate == EmbeddingProvider.OPENAI
        assert EmbeddingProvider.OPENAI.alternate == EmbeddingProvider.GEMINI


class TestProviderSettings:
    """Tests for provider credentials."""

    def test_api_keys_are_secret(self) -> None:
        """API keys are masked when printed."""
        with patch.dict(os.environ, {"GEMINI_API_KEY": "g-secret", "OPENAI_API_KEY": "o-secret"}):
            gemini = GeminiSettings()
            openai = OpenAISettings()

        assert "g-secret" not in str(gemini.api_key)
        assert gemini.api_key is not None
        assert gemini.api_key.get_secret_value() == "g-secret"
        assert openai.api_key is not None
        assert openai.api_key.get_secret_value() == "o-secret"

    def test_default_models(self) -> None:
        """Default models match the providers' current embedding models."""
        assert GeminiSettings().model == "text-embedding-004"
        assert OpenAISettings().model == "text-embedding-3-small"


class TestQdrantSettings:
    """Tests for Qdrant configuration."""

    def test_default_values(self) -> None:
        """Default values point to local Qdrant."""
        settings = QdrantSettings()
        assert settings.url == "http://localhost:6333"
        assert settings.hospitals_collection == "hospitals"
        assert settings.doctors_collection == "doctors"


class TestSearchSettings:
    """Tests for ranking defaults."""

    def test_default_values(self) -> None:
        """Defaults are 0.7/0.3 weights, 0.6 threshold, limit 50."""
        settings = SearchSettings()
        assert settings.semantic_weight == 0.7
        assert settings.text_weight == 0.3
        assert settings.similarity_threshold == 0.6
        assert settings.default_limit == 50
        assert settings.max_limit == 100


class TestIndexingSettings:
    """Tests for indexing configuration."""

    def test_default_values(self) -> None:
        settings = IndexingSettings()
        assert settings.batch_size == 10
        assert settings.delay_between_batches == 1.0

    def test_env_override(self) -> None:
        with patch.dict(os.environ, {"INDEXING_CRON_SECRET": "tick"}):
            settings = IndexingSettings()
            assert settings.cron_secret is not None
            assert settings.cron_secret.get_secret_value() == "tick"


class TestSettings:
    """Tests for main settings."""

    def test_default_environment(self) -> None:
        """Default environment is development."""
        settings = Settings()
        assert settings.environment == Environment.DEVELOPMENT

    def test_nested_settings(self) -> None:
        """Nested settings are accessible."""
        settings = Settings()
        assert isinstance(settings.embedding, EmbeddingSettings)
        assert isinstance(settings.qdrant, QdrantSettings)
        assert isinstance(settings.search, SearchSettings)
        assert isinstance(settings.indexing, IndexingSettings)

    def test_get_settings_cached(self) -> None:
        """get_settings returns cached instance."""
        get_settings.cache_clear()
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2
