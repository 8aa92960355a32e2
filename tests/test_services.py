"""
Integration Tests for Services
"""

import pytest
from unittest.mock import MagicMock, patch

import numpy as np
from qdrant_client.models import MatchAny, MatchValue

from veritas_server.pipeline.embedder import Embedder
from veritas_server.pipeline.indexer import PassageStore, build_filter
from veritas_server.services.cache_service import CacheService
from veritas_server.services.claim_alignment import ClaimAligner
from veritas_server.services.integrity import source_hash
from veritas_server.services.record_store import (
    InMemoryRecordStore,
    QdrantRecordStore,
    get_record_store,
)
from veritas_server.services.retriever import Retriever
from veritas_server.services.similarity import SemanticSimilarity, cosine_similarity

from tests.conftest import ScriptedLLM


class TestCacheService:
    """Tests for CacheService."""

    def test_cache_set_get(self):
        """Test basic cache operations."""
        with patch("veritas_server.services.cache_service.get_settings") as mock_settings:
            mock_settings.return_value.cache.enabled = True
            mock_settings.return_value.cache.ttl_query = 300
            mock_settings.return_value.cache.ttl_content = 900

            cache = CacheService()
            cache.set("retrieval:key", {"value": 123})
            result = cache.get("retrieval:key")

            assert result == {"value": 123}
            assert cache.get_stats()["query_cache"]["size"] == 1

    def test_cache_disabled(self):
        """Test cache when disabled."""
        with patch("veritas_server.services.cache_service.get_settings") as mock_settings:
            mock_settings.return_value.cache.enabled = False
            mock_settings.return_value.cache.ttl_query = 300
            mock_settings.return_value.cache.ttl_content = 900

            cache = CacheService()
            cache.set("retrieval:key", {"value": 123})
            result = cache.get("retrieval:key")

            assert result is None

    def test_make_key_is_stable(self):
        a = CacheService.make_key("embedding", "model", "text")
        assert a == CacheService.make_key("embedding", "model", "text")
        assert a != CacheService.make_key("embedding", "model", "other")
        assert a.startswith("embedding:")


class TestEmbedder:
    """Tests for Embedder caching."""

    def test_cached_vectors_are_reused(self, settings):
        embedder = Embedder(settings)
        model = MagicMock()
        model.embed.side_effect = lambda texts, batch_size: [np.ones(3) for _ in texts]
        embedder._dense_model = model

        first = embedder.embed(["duty of care", "breach"])
        second = embedder.embed(["breach", "causation"])

        assert first == [[1.0, 1.0, 1.0], [1.0, 1.0, 1.0]]
        assert len(second) == 2
        assert model.embed.call_args_list[1].args[0] == ["causation"]

    def test_empty_input(self, settings):
        assert Embedder(settings).embed([]) == []


class TestSimilarity:
    """Tests for semantic similarity."""

    def test_cosine(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    @pytest.mark.asyncio
    async def test_score_many_single_embed_call(self, embedder):
        similarity = SemanticSimilarity(embedder)
        scores = await similarity.score_many(
            "duty of reasonable care",
            ["a duty of reasonable care is owed", "tax code depreciation", ""],
        )
        assert embedder.calls == 1
        assert scores[0] > scores[1]
        assert scores[2] == 0.0
        assert all(0.0 <= s <= 1.0 for s in scores)

    @pytest.mark.asyncio
    async def test_empty_text_scores_zero(self, embedder):
        assert await SemanticSimilarity(embedder).score("", "anything") == 0.0


class TestRetriever:
    """Tests for Retriever (Qdrant mocked)."""

    @pytest.mark.asyncio
    async def test_passages_are_numbered_by_relevance(
        self, settings, embedder, mock_passage_store, federal_case
    ):
        store = PassageStore(settings, client=MagicMock())
        mock_passage_store.search.return_value = [
            ("case-1", 0.61, store.build_payload(federal_case(1))),
            ("case-2", 0.93, store.build_payload(federal_case(2))),
        ]
        retriever = Retriever(embedder, mock_passage_store, settings)

        passages = await retriever.retrieve("duty owed to invitees", top_k=5)

        assert [p.source.id for p in passages] == ["case-2", "case-1"]
        assert [p.index for p in passages] == [1, 2]
        assert passages[0].source.content_hash == source_hash(federal_case(2))

    @pytest.mark.asyncio
    async def test_top_k_and_filter_are_passed(self, settings, embedder, mock_passage_store):
        retriever = Retriever(embedder, mock_passage_store, settings)
        await retriever.retrieve("q", top_k=3, filter={"jurisdiction": "federal"})

        args = mock_passage_store.search.call_args.args
        assert args[1] == 3
        assert args[2] == {"jurisdiction": "federal"}

    @pytest.mark.asyncio
    async def test_results_are_cached(self, settings, embedder, mock_passage_store):
        retriever = Retriever(embedder, mock_passage_store, settings)
        await retriever.retrieve("same question", top_k=3)
        await retriever.retrieve("same question", top_k=3)
        assert mock_passage_store.search.call_count == 1

    @pytest.mark.asyncio
    async def test_invalid_top_k(self, settings, embedder, mock_passage_store):
        with pytest.raises(ValueError):
            await Retriever(embedder, mock_passage_store, settings).retrieve("q", top_k=0)

    @pytest.mark.asyncio
    async def test_store_failure_returns_empty(self, settings, embedder, mock_passage_store):
        mock_passage_store.search.side_effect = ConnectionError("qdrant unreachable")
        passages = await Retriever(embedder, mock_passage_store, settings).retrieve("q", top_k=3)
        assert passages == []


class TestPassageStore:
    """Tests for PassageStore (Qdrant client mocked)."""

    def test_build_filter(self):
        assert build_filter(None) is None
        f = build_filter({"jurisdiction": "federal", "court": ["A", "B"]})
        assert isinstance(f.must[0].match, MatchValue)
        assert isinstance(f.must[1].match, MatchAny)

    def test_point_id_is_deterministic(self):
        assert PassageStore.point_id("case-1") == PassageStore.point_id("case-1")
        assert PassageStore.point_id("case-1") != PassageStore.point_id("case-2")

    def test_search_maps_points(self, settings):
        client = MagicMock()
        point = MagicMock(id=7, score=0.8, payload={"source_id": "case-1", "title": "T"})
        client.query_points.return_value.points = [point]
        store = PassageStore(settings, client=client)

        assert store.search([0.1, 0.2], 4) == [("case-1", 0.8, point.payload)]
        assert client.query_points.call_args.kwargs["limit"] == 4

    def test_delete_requires_filter(self, settings):
        with pytest.raises(ValueError):
            PassageStore(settings, client=MagicMock()).delete_by_filter({})


class TestRecordStore:
    """Tests for the record stores."""

    def test_insert_is_idempotent(self):
        store = InMemoryRecordStore()
        assert store.insert("records", "a", {"n": 1})
        assert not store.insert("records", "a", {"n": 2})
        assert store.get("records", "a") == {"n": 1}

    def test_returned_records_are_copies(self):
        store = InMemoryRecordStore()
        store.insert("records", "a", {"items": [1]})
        store.get("records", "a")["items"].append(2)
        assert store.get("records", "a") == {"items": [1]}

    def test_list_with_filters(self):
        store = InMemoryRecordStore()
        store.insert("tasks", "1", {"status": "pending"})
        store.insert("tasks", "2", {"status": "completed"})
        assert store.list("tasks", {"status": "pending"}) == [{"status": "pending"}]
        assert store.list("missing") == []

    def test_factory(self, settings):
        assert isinstance(get_record_store(settings), InMemoryRecordStore)
        settings.store.backend = "qdrant"
        assert isinstance(get_record_store(settings), QdrantRecordStore)


class TestClaimAligner:
    """Tests for ClaimAligner."""

    def test_heuristic_claims_skip_questions_and_hedges(self, embedder):
        aligner = ClaimAligner(SemanticSimilarity(embedder))
        claims = aligner.extract_claims(
            "A landowner owes invitees a duty of reasonable care [Source 1]. "
            "Is that always true? It might possibly depend on the state. Yes."
        )
        assert claims == ["A landowner owes invitees a duty of reasonable care."]

    @pytest.mark.asyncio
    async def test_align_links_claims_to_best_passage(self, embedder, federal_case, negligence_source, passage):
        aligner = ClaimAligner(SemanticSimilarity(embedder))
        passages = [passage(negligence_source, 1), passage(federal_case(1), 2)]

        result = await aligner.align(
            "A landowner owes invitees a duty of reasonable care to maintain the "
            "premises in a reasonably safe condition [Source 2].",
            passages,
        )

        assert len(result.claims) == 1
        (link,) = result.evidence_chain
        assert link.claim_id == "claim_1"
        assert link.source_id == "case-1"
        assert link.support_strength == pytest.approx(result.alignment_per_claim[0], abs=1e-4)

    @pytest.mark.asyncio
    async def test_align_uses_keyword_overlap_when_embedding_fails(
        self, federal_case, negligence_source, passage
    ):
        failing = MagicMock()
        failing.embed.side_effect = RuntimeError("embedding service down")
        aligner = ClaimAligner(SemanticSimilarity(failing))
        passages = [passage(negligence_source, 1), passage(federal_case(1), 2)]

        result = await aligner.align(
            "A landowner owes invitees a duty of reasonable care [Source 2].",
            passages,
        )

        assert result.alignment_per_claim == [1.0]
        (link,) = result.evidence_chain
        assert link.source_id == "case-1"

    @pytest.mark.asyncio
    async def test_llm_claims_fall_back_on_bad_reply(self, embedder):
        aligner = ClaimAligner(
            SemanticSimilarity(embedder), llm=ScriptedLLM(["not json"]), use_llm=True
        )
        claims = await aligner.extract_claims_with_llm(
            "A landowner owes invitees a duty of reasonable care."
        )
        assert claims == ["A landowner owes invitees a duty of reasonable care."]
