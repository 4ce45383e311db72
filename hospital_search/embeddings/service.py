"""Embedding service with primary/fallback provider selection."""

import asyncio
import time
from collections.abc import Mapping, Sequence

from hospital_search.config import (
    EmbeddingProvider,
    EmbeddingSettings,
    Settings,
    get_settings,
)
from hospital_search.embeddings.composer import compose_hospital_text
from hospital_search.embeddings.models import (
    BatchEmbeddingError,
    BatchEmbeddingResult,
    ConfigValidation,
    EmbeddingOptions,
    EmbeddingVector,
)
from hospital_search.embeddings.providers import (
    EmbeddingProviderClient,
    GeminiEmbeddingClient,
    OpenAIEmbeddingClient,
)
from hospital_search.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    QuotaExceededError,
)
from hospital_search.logging_config import get_logger
from hospital_search.observability.metrics import (
    track_embedding_fallback,
    track_embedding_request,
)
from hospital_search.store.models import HospitalRecord

logger = get_logger(__name__)

_PLACEHOLDER_KEYS = {
    EmbeddingProvider.OPENAI: "your-openai-api-key-here",
    EmbeddingProvider.GEMINI: "your-gemini-api-key-here",
}


class EmbeddingService:
    """Uniform embedding entry point over the configured providers.

    Tries the preferred provider and, when enabled, substitutes the fallback
    provider once. There is no retry beyond that substitution.
    """

    def __init__(
        self,
        providers: Mapping[EmbeddingProvider, EmbeddingProviderClient] | None = None,
        settings: EmbeddingSettings | None = None,
    ) -> None:
        """Initialize the embedding service.

        Args:
            providers: Provider clients by identity. Defaults to HTTP clients
                for Gemini and OpenAI built from settings.
            settings: Embedding configuration. Uses defaults if not provided.
        """
        self._settings = settings or get_settings().embedding
        if providers is None:
            providers = {
                EmbeddingProvider.GEMINI: GeminiEmbeddingClient(timeout=self._settings.timeout),
                EmbeddingProvider.OPENAI: OpenAIEmbeddingClient(timeout=self._settings.timeout),
            }
        self._providers = dict(providers)

    @property
    def default_provider(self) -> EmbeddingProvider:
        return self._settings.provider

    @property
    def dimensions(self) -> int:
        return self._settings.dimensions

    async def close(self) -> None:
        """Close all provider clients."""
        for provider in self._providers.values():
            await provider.close()

    def _client_for(self, provider: EmbeddingProvider) -> EmbeddingProviderClient:
        client = self._providers.get(provider)
        if client is None:
            raise ConfigurationError(
                f"No client registered for provider {provider.value}",
                details={"provider": provider.value},
            )
        return client

    async def _embed_with(
        self,
        provider: EmbeddingProvider,
        text: str,
        options: EmbeddingOptions,
        dimensions: int,
    ) -> EmbeddingVector:
        client = self._client_for(provider)
        start = time.perf_counter()
        try:
            vector = await client.embed(text, dimensions, options.task_type)
        except ExternalServiceError:
            track_embedding_request(provider.value, time.perf_counter() - start, success=False)
            raise
        track_embedding_request(provider.value, time.perf_counter() - start, success=True)
        return vector

    async def generate_embedding(
        self,
        text: str,
        options: EmbeddingOptions | None = None,
    ) -> EmbeddingVector:
        """Generate one embedding, falling back to a second provider on failure.

        Args:
            text: Text to embed.
            options: Provider selection; defaults come from settings.

        Returns:
            EmbeddingVector tagged with the provider that produced it.

        Raises:
            ExternalServiceError: If the primary (and fallback, when enabled)
                provider failed. With fallback disabled the primary error is
                re-raised unchanged.
            QuotaExceededError: If every attempted provider was out of quota.
        """
        options = options or EmbeddingOptions()
        primary = options.provider or self._settings.provider
        dimensions = options.dimensions or self._settings.dimensions
        enable_fallback = (
            self._settings.fallback if options.enable_fallback is None else options.enable_fallback
        )

        try:
            return await self._embed_with(primary, text, options, dimensions)
        except ExternalServiceError as primary_error:
            fallback = options.fallback_provider or primary.alternate
            if not enable_fallback or fallback == primary:
                raise

            logger.warning(
                f"Primary provider {primary.value} failed, trying {fallback.value}",
                extra={"provider": primary.value, "error": primary_error.message},
            )
            track_embedding_fallback(primary.value, fallback.value)

            try:
                return await self._embed_with(fallback, text, options, dimensions)
            except ExternalServiceError as fallback_error:
                message = (
                    f"Both {primary.value} and {fallback.value} failed. "
                    f"Primary: {primary_error.message}, Fallback: {fallback_error.message}"
                )
                details = {
                    "primary_error": primary_error.message,
                    "fallback_error": fallback_error.message,
                }
                service = f"{primary.value},{fallback.value}"
                if isinstance(primary_error, QuotaExceededError) and isinstance(
                    fallback_error, QuotaExceededError
                ):
                    raise QuotaExceededError(message, service, details) from fallback_error
                raise ExternalServiceError(message, service, details=details) from fallback_error

    async def generate_batch_embeddings(
        self,
        records: Sequence[HospitalRecord],
        options: EmbeddingOptions | None = None,
    ) -> BatchEmbeddingResult:
        """Embed hospitals in chunks, keeping results aligned to input order.

        Records are processed ``batch_size`` at a time; within a chunk at most
        ``max_concurrency`` provider calls are in flight. Each record is
        composed into its embedding text and embedded with the single-item
        fallback rules. A failure only affects its own position.

        Args:
            records: Hospitals to embed.
            options: Provider selection shared by every item.

        Returns:
            BatchEmbeddingResult whose ``embeddings`` has one slot per record.
        """
        if not records:
            return BatchEmbeddingResult()

        semaphore = asyncio.Semaphore(max(1, self._settings.max_concurrency))
        batch_size = max(1, self._settings.batch_size)

        async def embed_one(record: HospitalRecord) -> EmbeddingVector:
            async with semaphore:
                return await self.generate_embedding(compose_hospital_text(record), options)

        result = BatchEmbeddingResult()
        for start in range(0, len(records), batch_size):
            chunk = records[start : start + batch_size]
            outcomes = await asyncio.gather(
                *(embed_one(record) for record in chunk),
                return_exceptions=True,
            )
            for offset, outcome in enumerate(outcomes):
                if isinstance(outcome, EmbeddingVector):
                    result.embeddings.append(outcome)
                    continue
                if not isinstance(outcome, Exception):
                    # CancelledError and other BaseExceptions must propagate.
                    raise outcome
                result.embeddings.append(None)
                result.errors.append(
                    BatchEmbeddingError(index=start + offset, error=str(outcome))
                )

        logger.info(
            f"Batch embedding complete: {result.successful}/{len(records)} successful",
            extra={"successful": result.successful, "failed": result.failed},
        )
        return result


def validate_embedding_settings(settings: Settings | None = None) -> ConfigValidation:
    """Check that the configured providers can actually be called.

    Args:
        settings: Settings to check (defaults to the cached settings).

    Returns:
        ConfigValidation listing blocking errors and advisory warnings.
    """
    settings = settings or get_settings()
    errors: list[str] = []
    warnings: list[str] = []

    keys = {
        EmbeddingProvider.OPENAI: settings.openai.api_key,
        EmbeddingProvider.GEMINI: settings.gemini.api_key,
    }
    configured = {
        provider: key is not None and bool(key.get_secret_value())
        for provider, key in keys.items()
    }
    env_names = {
        EmbeddingProvider.OPENAI: "OPENAI_API_KEY",
        EmbeddingProvider.GEMINI: "GEMINI_API_KEY",
    }

    if not any(configured.values()):
        errors.append(
            "No embedding provider is configured. Set either OPENAI_API_KEY or GEMINI_API_KEY."
        )

    primary = settings.embedding.provider
    if not configured[primary]:
        errors.append(
            f'EMBEDDING_PROVIDER is set to "{primary.value}" but {env_names[primary]} is missing.'
        )

    if settings.embedding.fallback and not configured[primary.alternate]:
        warnings.append(
            f"Fallback is enabled but {primary.alternate.value} is not configured. "
            f"Consider setting {env_names[primary.alternate]}."
        )

    for provider, key in keys.items():
        if key is not None and key.get_secret_value() == _PLACEHOLDER_KEYS[provider]:
            errors.append(
                f"{env_names[provider]} is set to placeholder value. "
                "Replace with your actual API key."
            )

    if not 1 <= settings.embedding.batch_size <= 100:
        warnings.append("EMBEDDING_BATCH_SIZE should be between 1 and 100.")
    if not 1 <= settings.embedding.max_concurrency <= 10:
        warnings.append("EMBEDDING_MAX_CONCURRENCY should be between 1 and 10.")

    return ConfigValidation(is_valid=not errors, errors=errors, warnings=warnings)
