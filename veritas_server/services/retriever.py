"""
Services - Retriever

Dense retrieval over the passage store with optional FlashRank
reranking and a short-lived result cache.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from veritas_server.config import get_settings
from veritas_server.schemas.source import RetrievedPassage, Source
from veritas_server.services.cache_service import CacheService

if TYPE_CHECKING:
    from veritas_server.pipeline.embedder import Embedder
    from veritas_server.pipeline.indexer import PassageStore

logger = logging.getLogger(__name__)


class Retriever:
    """Finds the passages most relevant to a query."""

    def __init__(
        self,
        embedder: "Embedder",
        store: "PassageStore",
        settings=None,
        cache: Optional[CacheService] = None,
    ):
        self.settings = settings or get_settings()
        self.embedder = embedder
        self.store = store
        self.cache = cache or CacheService(self.settings)
        self._reranker = None

    @property
    def reranker(self):
        """Lazy load FlashRank reranker."""
        if self._reranker is None:
            from flashrank import Ranker
            self._reranker = Ranker(
                model_name="ms-marco-MiniLM-L-12-v2",
                cache_dir=str(self.settings.embedding.cache_dir),
            )
        return self._reranker

    async def retrieve(
        self,
        query: str,
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievedPassage]:
        """
        Retrieve passages for a query.

        Args:
            query: User question
            top_k: Maximum passages to return (>= 1)
            filter: Payload field criteria, e.g. {"jurisdiction": "federal"}

        Returns:
            Passages ordered by descending relevance and numbered from 1;
            empty if the embedder or store fails

        Raises:
            ValueError: top_k < 1
        """
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")

        cache_key = CacheService.make_key(
            "retrieval", query, top_k, json.dumps(filter or {}, sort_keys=True),
        )
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            candidates = await asyncio.to_thread(self._search, query, top_k, filter)
        except Exception as e:
            logger.error(f"Retrieval failed for query '{query[:80]}': {e!r}")
            return []

        passages = [
            RetrievedPassage(source=source, relevance=score, index=n)
            for n, (source, score) in enumerate(candidates[:top_k], start=1)
        ]
        logger.info(f"Retrieved {len(passages)} passages for query '{query[:80]}'")
        self.cache.set(cache_key, passages)
        return passages

    def _search(
        self,
        query: str,
        top_k: int,
        filter: Optional[Dict[str, Any]],
    ) -> List[tuple]:
        vector = self.embedder.embed_query(query)
        # Prefetch more for reranking
        limit = top_k * 3 if self.settings.rag.rerank else top_k
        hits = self.store.search(vector, limit, filter)

        candidates = [
            (Source.from_payload(payload), max(0.0, min(1.0, score)))
            for _, score, payload in hits
        ]
        if self.settings.rag.rerank and candidates:
            candidates = self._rerank(query, candidates)

        return sorted(candidates, key=lambda c: c[1], reverse=True)

    def _rerank(self, query: str, candidates: List[tuple]) -> List[tuple]:
        """Rerank candidates using FlashRank."""
        from flashrank import RerankRequest

        passages = [
            {
                "id": str(i),
                "text": f"{source.title} {source.content[:self.settings.rag.max_passage_chars]}",
            }
            for i, (source, _) in enumerate(candidates)
        ]
        reranked = self.reranker.rerank(RerankRequest(query=query, passages=passages))

        return [
            (candidates[int(item["id"])][0], max(0.0, min(1.0, float(item["score"]))))
            for item in reranked
        ]
