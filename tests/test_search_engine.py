"""Tests for hybrid hospital search."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from hospital_search.config import (
    EmbeddingProvider,
    EmbeddingSettings,
    GeminiSettings,
    SearchSettings,
)
from hospital_search.embeddings.composer import compose_hospital_text
from hospital_search.embeddings.providers import GeminiEmbeddingClient
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import HospitalNotFoundError, ValidationError
from hospital_search.search.engine import HybridSearchEngine, validate_query
from hospital_search.search.lexical import (
    broaden_query,
    cosine_similarity,
    domain_keywords_in,
    text_score,
    tokenize,
)
from hospital_search.search.models import SearchOptions
from hospital_search.store import HospitalRecord, QdrantHospitalStore, SearchFilters

from tests.conftest import FakeProvider, bag_of_words_vector, make_hospital


def _indexed(**overrides: object) -> HospitalRecord:
    """A hospital carrying the vector the fake providers would produce."""
    hospital = make_hospital(**overrides)
    return hospital.model_copy(
        update={"embedding": bag_of_words_vector(compose_hospital_text(hospital))}
    )


class TestValidateQuery:
    """Tests for query validation."""

    def test_strips(self) -> None:
        assert validate_query("  stroke rehab ") == "stroke rehab"

    @pytest.mark.parametrize("query", ["", "   ", None, 42, ["stroke"]])
    def test_rejects(self, query: object) -> None:
        with pytest.raises(ValidationError):
            validate_query(query)


class TestLexicalScoring:
    """Tests for text scoring and recall broadening."""

    def test_name_match(self) -> None:
        record = make_hospital(name="Stroke Recovery Institute")
        assert text_score("stroke recovery", record) == 1.0

    def test_description_match(self) -> None:
        record = make_hospital(name="City Clinic", description="Stroke recovery programs")
        assert text_score("STROKE RECOVERY", record) == 0.8

    def test_partial_token_match(self) -> None:
        """Token coverage is scaled below a literal match."""
        record = make_hospital(name="City Clinic", description="Physical therapy gym")
        assert text_score("therapy for stroke", record) == pytest.approx(0.3)

    def test_no_match(self) -> None:
        record = make_hospital(name="Eye Clinic", description="Ophthalmology")
        assert text_score("kidney", record) == 0.0

    def test_tokenize_drops_stopwords_and_short_tokens(self) -> None:
        assert tokenize("Hospital with a helicopter pad in BKK") == ["helicopter", "pad", "bkk"]

    def test_broaden_adds_keywords(self) -> None:
        terms = broaden_query("neurorehab after stroke")
        assert "stroke" in terms
        assert "neuro" in terms
        assert domain_keywords_in("Physical Therapy") == ["physical", "therapy"]

    def test_cosine_similarity(self) -> None:
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


class TestSearchValidation:
    """Invalid queries fail before any collaborator is called."""

    @pytest.mark.parametrize("query", ["", "   ", None, 7])
    @pytest.mark.asyncio
    async def test_no_calls_on_invalid_query(self, query: object) -> None:
        store = AsyncMock()
        embeddings = MagicMock(spec=EmbeddingService)
        embeddings.generate_embedding = AsyncMock()
        engine = HybridSearchEngine(store, embeddings, SearchSettings())

        with pytest.raises(ValidationError):
            await engine.search(query)

        store.search_hospitals.assert_not_awaited()
        store.similarity_search.assert_not_awaited()
        embeddings.generate_embedding.assert_not_awaited()


class TestResolveOptions:
    """Tests for option defaults."""

    def test_defaults(self, embedding_service: EmbeddingService) -> None:
        engine = HybridSearchEngine(AsyncMock(), embedding_service, SearchSettings())

        resolved = engine.resolve_options()

        assert resolved.semantic_weight == 0.7
        assert resolved.text_weight == 0.3
        assert resolved.similarity_threshold == 0.6
        assert resolved.limit == 50

    def test_limit_capped(self, embedding_service: EmbeddingService) -> None:
        engine = HybridSearchEngine(AsyncMock(), embedding_service, SearchSettings(max_limit=20))

        assert engine.resolve_options(SearchOptions(limit=80)).limit == 20


class TestHybridSearch:
    """Tests against the in-process store."""

    @pytest.mark.asyncio
    async def test_semantic_and_lexical_scores(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        stroke = _indexed(name="Stroke Rehabilitation Center", description="Stroke recovery")
        eyes = _indexed(name="Vision Clinic", description="Ophthalmology")
        await store.upsert_hospitals([stroke, eyes])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search("stroke rehabilitation")

        assert response.metadata.has_semantic_search is True
        assert response.results[0].id == stroke.id
        top = response.results[0]
        assert top.text_score == 1.0
        assert top.similarity_score > 0
        assert top.combined_score == pytest.approx(
            0.7 * top.similarity_score + 0.3 * top.text_score
        )
        assert all(r.id != eyes.id for r in response.results)

    @pytest.mark.asyncio
    async def test_degraded_mode(
        self,
        store: QdrantHospitalStore,
        failing_embedding_service: EmbeddingService,
    ) -> None:
        """Without a query embedding the search is text-only, not an error."""
        hospital = _indexed(name="Cardiac Institute", description="Heart surgery")
        await store.upsert_hospitals([hospital])
        engine = HybridSearchEngine(store, failing_embedding_service, SearchSettings())

        response = await engine.search("cardiac")

        assert response.metadata.has_semantic_search is False
        assert [r.id for r in response.results] == [hospital.id]
        assert response.results[0].similarity_score == 0.0
        assert response.results[0].combined_score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_malformed_provider_response_degrades(
        self,
        store: QdrantHospitalStore,
        embedding_settings: EmbeddingSettings,
    ) -> None:
        """A vector with nulls falls back, then degrades instead of erroring."""
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda _: httpx.Response(200, json={"embedding": {"values": [0.1, None, 0.3]}})
            )
        )
        gemini = GeminiEmbeddingClient(settings=GeminiSettings(api_key="g-key"), client=http)
        openai = FakeProvider(EmbeddingProvider.OPENAI, fail_all=True)
        service = EmbeddingService(
            providers={EmbeddingProvider.GEMINI: gemini, EmbeddingProvider.OPENAI: openai},
            settings=embedding_settings,
        )
        hospital = _indexed(name="Cardiac Institute", description="Heart surgery")
        await store.upsert_hospitals([hospital])
        engine = HybridSearchEngine(store, service, SearchSettings())

        response = await engine.search("cardiac")

        assert response.metadata.has_semantic_search is False
        assert [r.id for r in response.results] == [hospital.id]
        assert openai.calls == ["cardiac"]
        await http.aclose()

    @pytest.mark.asyncio
    async def test_ties_broken_by_rating(
        self,
        store: QdrantHospitalStore,
        failing_embedding_service: EmbeddingService,
    ) -> None:
        low = make_hospital(name="Heart Hospital", rating=3.2)
        high = make_hospital(name="Heart Hospital", rating=4.7)
        await store.upsert_hospitals([low, high])
        engine = HybridSearchEngine(store, failing_embedding_service, SearchSettings())

        response = await engine.search("heart")

        assert [r.id for r in response.results] == [high.id, low.id]
        assert response.results[0].combined_score == response.results[1].combined_score

    @pytest.mark.asyncio
    async def test_filters_are_conjunctive(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        wanted = _indexed(city="Bangkok", emergency_services=True)
        no_emergency = _indexed(city="Bangkok", emergency_services=False)
        elsewhere = _indexed(city="Phuket", emergency_services=True)
        await store.upsert_hospitals([wanted, no_emergency, elsewhere])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search(
            "general hospital",
            filters=SearchFilters(city="Bangkok", emergency_services=True),
        )

        assert [r.id for r in response.results] == [wanted.id]
        assert response.results[0].city == "Bangkok"
        assert response.results[0].emergency_services is True

    @pytest.mark.asyncio
    async def test_broadened_recall_with_trauma_filter(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        """A query phrased differently from the description still finds it."""
        helipad = _indexed(
            name="Chao Phraya Medical Center",
            description="Level 1 trauma center with a rooftop helicopter pad",
            trauma_level="LEVEL_1",
        )
        level_two = _indexed(
            name="Riverside Hospital",
            description="Regional trauma center with helicopter pad",
            trauma_level="LEVEL_2",
        )
        await store.upsert_hospitals([helipad, level_two])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search(
            "hospital with helicopter pad",
            filters=SearchFilters(trauma_level="LEVEL_1"),
        )

        assert [r.id for r in response.results] == [helipad.id]
        assert response.results[0].combined_score > 0

    @pytest.mark.asyncio
    async def test_threshold_applies_to_semantic_only_rows(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        exact = make_hospital(
            name="Alpha Center",
            description="Outpatient services",
            embedding=bag_of_words_vector("cardiac care"),
        )
        loose = make_hospital(
            name="Beta Center",
            description="Outpatient services",
            embedding=bag_of_words_vector("cardiac imaging radiology oncology"),
        )
        await store.upsert_hospitals([exact, loose])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search(
            "cardiac care",
            options=SearchOptions(similarity_threshold=0.95),
        )

        assert [r.id for r in response.results] == [exact.id]
        assert response.results[0].text_score == 0.0
        assert response.results[0].similarity_score == pytest.approx(1.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_custom_weights_and_limit(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        await store.upsert_hospitals(
            [_indexed(name=f"Heart Clinic {i}", rating=float(i)) for i in range(5)]
        )
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search(
            "heart clinic",
            options=SearchOptions(semantic_weight=0.0, text_weight=1.0, limit=3),
        )

        assert len(response.results) == 3
        assert all(r.combined_score == r.text_score for r in response.results)
        assert [r.rating for r in response.results] == [4.0, 3.0, 2.0]
        assert response.metadata.search_options.limit == 3
        assert response.metadata.total_results == 3

    @pytest.mark.asyncio
    async def test_unverified_excluded_by_default(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        verified = _indexed(name="Heart Clinic")
        unverified = _indexed(name="Heart Clinic", is_verified=False)
        await store.upsert_hospitals([verified, unverified])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.search("heart clinic")

        assert [r.id for r in response.results] == [verified.id]


class TestFindSimilarHospitals:
    """Tests for hospital-to-hospital similarity."""

    @pytest.mark.asyncio
    async def test_similar(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        target = _indexed(name="Heart Institute", description="Cardiac surgery")
        twin = _indexed(name="Heart Institute", description="Cardiac surgery", rating=3.5)
        other = _indexed(name="Skin Clinic", description="Dermatology")
        await store.upsert_hospitals([target, twin, other])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.find_similar_hospitals(target.id, threshold=0.95)

        ids = [h.id for h in response.similar_hospitals]
        assert target.id not in ids
        assert ids[0] == twin.id
        assert other.id not in ids
        assert response.metadata.has_embedding is True
        assert response.metadata.total_results == len(ids)
        assert response.metadata.statistics.max_similarity >= 0.95

    @pytest.mark.asyncio
    async def test_unknown_hospital(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        with pytest.raises(HospitalNotFoundError):
            await engine.find_similar_hospitals("9b2f5c1e-8a43-4d2b-bb0e-5e1c2d3f4a5b")

    @pytest.mark.asyncio
    async def test_target_without_embedding(
        self,
        store: QdrantHospitalStore,
        embedding_service: EmbeddingService,
    ) -> None:
        target = make_hospital()
        await store.upsert_hospitals([target])
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        response = await engine.find_similar_hospitals(target.id)

        assert response.similar_hospitals == []
        assert response.metadata.has_embedding is False
        assert response.message is not None

    @pytest.mark.parametrize(("threshold", "limit"), [(-0.1, 10), (1.5, 10), (0.5, 0), (0.5, 51)])
    @pytest.mark.asyncio
    async def test_invalid_parameters(
        self,
        embedding_service: EmbeddingService,
        threshold: float,
        limit: int,
    ) -> None:
        store = AsyncMock()
        engine = HybridSearchEngine(store, embedding_service, SearchSettings())

        with pytest.raises(ValidationError):
            await engine.find_similar_hospitals("any", threshold=threshold, limit=limit)

        store.get_hospital.assert_not_awaited()
