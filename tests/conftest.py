"""Pytest configuration and shared fixtures."""

import hashlib
import re
import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient

from hospital_search.api.app import create_app
from hospital_search.api.dependencies import Services
from hospital_search.config import (
    EmbeddingProvider,
    EmbeddingSettings,
    IndexingSettings,
    QdrantSettings,
    SearchSettings,
    Settings,
)
from hospital_search.embeddings.models import EmbeddingVector, TaskType
from hospital_search.embeddings.providers import EmbeddingProviderClient, coerce_dimensions
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import ExternalServiceError, QuotaExceededError
from hospital_search.store.models import DoctorRecord, HospitalRecord, HospitalType
from hospital_search.store.service import QdrantHospitalStore

TEST_DIMENSIONS = 64


def bag_of_words_vector(text: str, dimensions: int = TEST_DIMENSIONS) -> list[float]:
    """Deterministic unit vector: each token bumps a hashed slot."""
    values = [0.0] * dimensions
    for token in re.findall(r"[a-z0-9]+", text.lower()):
        slot = int(hashlib.sha256(token.encode()).hexdigest(), 16) % dimensions
        values[slot] += 1.0
    return coerce_dimensions(values, dimensions)


class FakeProvider(EmbeddingProviderClient):
    """Offline provider double.

    Texts containing any ``fail_on`` marker raise ExternalServiceError
    (QuotaExceededError when ``quota`` is set). ``native_dimensions`` lets a
    test exercise dimension coercion.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        fail_on: tuple[str, ...] = (),
        fail_all: bool = False,
        quota: bool = False,
        native_dimensions: int | None = None,
    ) -> None:
        super().__init__(timeout=1.0)
        self.provider = provider
        self.fail_on = fail_on
        self.fail_all = fail_all
        self.quota = quota
        self.native_dimensions = native_dimensions
        self.calls: list[str] = []

    @property
    def model_name(self) -> str:
        return f"fake-{self.provider.value}"

    @property
    def is_configured(self) -> bool:
        return True

    async def embed(
        self,
        text: str,
        dimensions: int,
        task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT,
    ) -> EmbeddingVector:
        self.calls.append(text)
        if self.fail_all or any(marker in text for marker in self.fail_on):
            if self.quota:
                raise QuotaExceededError(
                    f"{self.provider.value} quota exceeded", self.provider.value
                )
            raise ExternalServiceError(f"{self.provider.value} unavailable", self.provider.value)

        values = bag_of_words_vector(text, self.native_dimensions or dimensions)
        return EmbeddingVector(
            values=coerce_dimensions(values, dimensions),
            provider=self.provider,
            model=self.model_name,
            dimensions=dimensions,
        )


def make_hospital(**overrides: Any) -> HospitalRecord:
    """Build an active, verified hospital with sensible defaults."""
    fields: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "name": "Bangkok General Hospital",
        "description": "Full service general hospital with emergency care.",
        "type": HospitalType.GENERAL,
        "city": "Bangkok",
        "state": "Bangkok",
        "trauma_level": None,
        "emergency_services": True,
        "is_active": True,
        "is_verified": True,
        "rating": 4.0,
    }
    fields.update(overrides)
    return HospitalRecord(**fields)


def make_doctor(**overrides: Any) -> DoctorRecord:
    fields: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "first_name": "Somchai",
        "last_name": "Prasert",
        "title": "Dr.",
        "years_of_experience": 10,
        "is_active": True,
        "is_verified": True,
        "is_accepting_new_patients": True,
        "specialties": [{"name": "Cardiology", "category": "Medicine", "is_primary": True}],
        "hospitals": [
            {"hospital_id": str(uuid.uuid4()), "name": "Heart Center", "city": "Bangkok"}
        ],
    }
    fields.update(overrides)
    return DoctorRecord(**fields)


@pytest.fixture
def embedding_settings() -> EmbeddingSettings:
    return EmbeddingSettings(
        provider=EmbeddingProvider.GEMINI,
        fallback=True,
        dimensions=TEST_DIMENSIONS,
        max_concurrency=2,
    )


@pytest.fixture
def search_settings() -> SearchSettings:
    return SearchSettings()


@pytest.fixture
def indexing_settings() -> IndexingSettings:
    return IndexingSettings(batch_size=10, delay_between_batches=0.0)


@pytest.fixture
def gemini() -> FakeProvider:
    return FakeProvider(EmbeddingProvider.GEMINI)


@pytest.fixture
def openai() -> FakeProvider:
    return FakeProvider(EmbeddingProvider.OPENAI)


@pytest.fixture
def embedding_service(
    gemini: FakeProvider,
    openai: FakeProvider,
    embedding_settings: EmbeddingSettings,
) -> EmbeddingService:
    return EmbeddingService(
        providers={EmbeddingProvider.GEMINI: gemini, EmbeddingProvider.OPENAI: openai},
        settings=embedding_settings,
    )


@pytest.fixture
def failing_embedding_service(embedding_settings: EmbeddingSettings) -> EmbeddingService:
    """Every provider fails and fallback is disabled."""
    settings = embedding_settings.model_copy(update={"fallback": False})
    return EmbeddingService(
        providers={
            EmbeddingProvider.GEMINI: FakeProvider(EmbeddingProvider.GEMINI, fail_all=True),
            EmbeddingProvider.OPENAI: FakeProvider(EmbeddingProvider.OPENAI, fail_all=True),
        },
        settings=settings,
    )


@pytest.fixture
async def store() -> AsyncGenerator[QdrantHospitalStore, None]:
    """In-process Qdrant store with empty collections."""
    client = AsyncQdrantClient(location=":memory:")
    hospital_store = QdrantHospitalStore(
        settings=QdrantSettings(),
        client=client,
        dimensions=TEST_DIMENSIONS,
    )
    await hospital_store.ensure_collections()
    yield hospital_store
    await client.close()


@pytest.fixture
def hospital_factory() -> Callable[..., HospitalRecord]:
    return make_hospital


@pytest.fixture
def doctor_factory() -> Callable[..., DoctorRecord]:
    return make_doctor


@pytest.fixture
def test_settings(
    embedding_settings: EmbeddingSettings,
    search_settings: SearchSettings,
    indexing_settings: IndexingSettings,
) -> Settings:
    return Settings(
        embedding=embedding_settings,
        search=search_settings,
        indexing=indexing_settings,
    )


@pytest.fixture
def services(
    test_settings: Settings,
    store: QdrantHospitalStore,
    embedding_service: EmbeddingService,
) -> Services:
    return Services.build(test_settings, store=store, embeddings=embedding_service)


@pytest.fixture
def app(services: Services) -> FastAPI:
    """Application wired to the in-process store and fake providers."""
    application = create_app()
    application.state.services = services
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
