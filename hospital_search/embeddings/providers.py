"""Hosted embedding provider clients.

Each client calls one provider's REST API and returns a vector coerced to
the requested dimensionality.
"""

import math
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import SecretStr

from hospital_search.config import (
    EmbeddingProvider,
    GeminiSettings,
    OpenAISettings,
    get_settings,
)
from hospital_search.embeddings.models import EmbeddingVector, TaskType
from hospital_search.exceptions import (
    ErrorCode,
    ExternalServiceError,
    QuotaExceededError,
)
from hospital_search.logging_config import get_logger

logger = get_logger(__name__)

_QUOTA_MARKERS = ("quota", "resource_exhausted", "rate limit", "insufficient_quota")


def coerce_dimensions(values: list[float], dimensions: int) -> list[float]:
    """Force a vector to ``dimensions`` elements and unit length.

    Longer vectors are truncated; shorter ones are repeated cyclically
    (a 768-d vector requested at 1536 becomes two concatenated copies).
    """
    if not values:
        raise ValueError("cannot coerce an empty vector")

    if len(values) >= dimensions:
        coerced = list(values[:dimensions])
    else:
        coerced = [values[i % len(values)] for i in range(dimensions)]

    norm = math.sqrt(sum(v * v for v in coerced))
    if norm == 0:
        return coerced
    return [v / norm for v in coerced]


class EmbeddingProviderClient(ABC):
    """Abstract base class for embedding providers."""

    provider: EmbeddingProvider

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout or get_settings().embedding.timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are available."""
        ...

    @abstractmethod
    async def embed(
        self,
        text: str,
        dimensions: int,
        task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT,
    ) -> EmbeddingVector:
        """Generate an embedding of exactly ``dimensions`` elements.

        Raises:
            QuotaExceededError: If the provider reports rate or credit exhaustion.
            ExternalServiceError: For any other provider failure.
        """
        ...

    def _require_api_key(self, api_key: SecretStr | None) -> str:
        """Return the secret value, or raise if no key is configured."""
        value = api_key.get_secret_value() if api_key is not None else ""
        if not value:
            raise ExternalServiceError(
                f"{self.provider.value} API key is not configured",
                service=self.provider.value,
                code=ErrorCode.PROVIDER_NOT_CONFIGURED,
            )
        return value

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        """POST JSON and translate failures into typed errors."""
        client = await self._get_client()
        service = self.provider.value

        try:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text
            logger.error(
                f"{service} embedding request failed: {status}",
                extra={"provider": service, "status": status},
            )
            if status == 429 or any(marker in body.lower() for marker in _QUOTA_MARKERS):
                raise QuotaExceededError(
                    f"{service} quota exceeded ({status})",
                    service=service,
                    details={"status_code": status},
                ) from e
            raise ExternalServiceError(
                f"{service} returned {status}",
                service=service,
                details={"status_code": status},
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"{service} embedding request error: {e}",
                extra={"provider": service},
            )
            raise ExternalServiceError(
                f"Failed to connect to {service}: {e}",
                service=service,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"Invalid JSON from {service}",
                service=service,
                code=ErrorCode.INVALID_PROVIDER_RESPONSE,
            ) from e
        if not isinstance(data, dict):
            raise ExternalServiceError(
                f"Unexpected response body from {service}",
                service=service,
                code=ErrorCode.INVALID_PROVIDER_RESPONSE,
            )
        return data

    def _build_vector(self, values: Any, dimensions: int) -> EmbeddingVector:
        if not isinstance(values, list) or not values:
            raise ExternalServiceError(
                f"{self.provider.value} returned no embedding values",
                service=self.provider.value,
                code=ErrorCode.INVALID_PROVIDER_RESPONSE,
            )
        try:
            coerced = coerce_dimensions([float(v) for v in values], dimensions)
        except (TypeError, ValueError) as e:
            raise ExternalServiceError(
                f"{self.provider.value} returned non-numeric embedding values",
                service=self.provider.value,
                code=ErrorCode.INVALID_PROVIDER_RESPONSE,
            ) from e
        if len(values) != dimensions:
            logger.debug(
                f"Coerced {self.provider.value} embedding from {len(values)} to {dimensions}",
                extra={"provider": self.provider.value},
            )
        return EmbeddingVector(
            values=coerced,
            provider=self.provider,
            model=self.model_name,
            dimensions=dimensions,
        )


class GeminiEmbeddingClient(EmbeddingProviderClient):
    """Google Gemini ``embedContent`` client."""

    provider = EmbeddingProvider.GEMINI

    # Largest output each model can produce natively
    MODEL_DIMENSIONS = {
        "text-embedding-004": 768,
        "embedding-001": 768,
        "gemini-embedding-001": 3072,
    }

    def __init__(
        self,
        settings: GeminiSettings | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self._settings = settings or get_settings().gemini

    @property
    def model_name(self) -> str:
        return self._settings.model

    @property
    def is_configured(self) -> bool:
        return self._settings.api_key is not None and bool(
            self._settings.api_key.get_secret_value()
        )

    async def embed(
        self,
        text: str,
        dimensions: int,
        task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT,
    ) -> EmbeddingVector:
        api_key = self._require_api_key(self._settings.api_key)

        native = self.MODEL_DIMENSIONS.get(self.model_name, dimensions)
        url = f"{self._settings.base_url}/models/{self.model_name}:embedContent"
        payload = {
            "model": f"models/{self.model_name}",
            "content": {"parts": [{"text": text}]},
            "taskType": task_type.value,
            "outputDimensionality": min(dimensions, native),
        }
        headers = {"x-goog-api-key": api_key}

        data = await self._post(url, payload, headers)
        embedding = data.get("embedding")
        values = embedding.get("values") if isinstance(embedding, dict) else None
        return self._build_vector(values, dimensions)


class OpenAIEmbeddingClient(EmbeddingProviderClient):
    """OpenAI ``/embeddings`` client."""

    provider = EmbeddingProvider.OPENAI

    MODEL_DIMENSIONS = {
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        settings: OpenAISettings | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self._settings = settings or get_settings().openai

    @property
    def model_name(self) -> str:
        return self._settings.model

    @property
    def is_configured(self) -> bool:
        return self._settings.api_key is not None and bool(
            self._settings.api_key.get_secret_value()
        )

    async def embed(
        self,
        text: str,
        dimensions: int,
        task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT,
    ) -> EmbeddingVector:
        api_key = self._require_api_key(self._settings.api_key)

        payload: dict[str, Any] = {"input": text, "model": self.model_name}
        # Only the text-embedding-3 family accepts a dimensions parameter.
        if self.model_name.startswith("text-embedding-3"):
            native = self.MODEL_DIMENSIONS.get(self.model_name, dimensions)
            payload["dimensions"] = min(dimensions, native)

        headers = {"Authorization": f"Bearer {api_key}"}
        if self._settings.project_id:
            headers["OpenAI-Project"] = self._settings.project_id

        data = await self._post(f"{self._settings.base_url}/embeddings", payload, headers)
        try:
            values = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(
                f"Invalid response from openai: {e}",
                service=self.provider.value,
                code=ErrorCode.INVALID_PROVIDER_RESPONSE,
            ) from e
        return self._build_vector(values, dimensions)
