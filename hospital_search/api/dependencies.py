"""FastAPI dependencies resolving the services built at startup."""

from dataclasses import dataclass

from fastapi import Request

from hospital_search.config import Settings, get_settings
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import ConfigurationError
from hospital_search.indexing.engine import HospitalIndexer
from hospital_search.search.combined import CombinedSearchOrchestrator
from hospital_search.search.engine import HybridSearchEngine
from hospital_search.store.service import HospitalStore, QdrantHospitalStore


@dataclass
class Services:
    """Long-lived service graph shared by every request."""

    store: HospitalStore
    embeddings: EmbeddingService
    search: HybridSearchEngine
    combined: CombinedSearchOrchestrator
    indexer: HospitalIndexer

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        store: HospitalStore | None = None,
        embeddings: EmbeddingService | None = None,
    ) -> "Services":
        """Wire the services from settings, reusing any given collaborators."""
        settings = settings or get_settings()
        store = store or QdrantHospitalStore(
            settings.qdrant,
            dimensions=settings.embedding.dimensions,
        )
        embeddings = embeddings or EmbeddingService(settings=settings.embedding)
        return cls(
            store=store,
            embeddings=embeddings,
            search=HybridSearchEngine(store, embeddings, settings.search),
            combined=CombinedSearchOrchestrator(store, embeddings, settings.search),
            indexer=HospitalIndexer(store, embeddings, settings.indexing),
        )

    async def close(self) -> None:
        await self.embeddings.close()
        await self.store.close()


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services are not initialised")
    return services


def get_store(request: Request) -> HospitalStore:
    return get_services(request).store


def get_search_engine(request: Request) -> HybridSearchEngine:
    return get_services(request).search


def get_combined_search(request: Request) -> CombinedSearchOrchestrator:
    return get_services(request).combined


def get_indexer(request: Request) -> HospitalIndexer:
    return get_services(request).indexer
