"""
Pipeline - Embedder

Dense vector generation using fastembed, with a content-tier cache.
"""

from typing import List, Optional

from veritas_server.config import get_settings
from veritas_server.services.cache_service import CacheService


class Embedder:
    """Generates dense embeddings using a local fastembed model."""

    def __init__(self, settings=None, cache: Optional[CacheService] = None):
        self.settings = settings or get_settings()
        self.cache = cache or CacheService(self.settings)
        self._dense_model = None

    @property
    def dense_model(self):
        """Lazy load dense embedding model."""
        if self._dense_model is None:
            from fastembed import TextEmbedding
            cache_dir = str(self.settings.embedding.cache_dir)
            self._dense_model = TextEmbedding(
                model_name=self.settings.embedding.model_dense,
                cache_dir=cache_dir,
            )
        return self._dense_model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate dense embeddings for texts, reusing cached vectors.

        Args:
            texts: List of texts to embed

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        model_name = self.settings.embedding.model_dense
        keys = [CacheService.make_key("embedding", model_name, t) for t in texts]
        vectors: List[Optional[List[float]]] = [self.cache.get(k) for k in keys]

        missing = [i for i, v in enumerate(vectors) if v is None]
        if missing:
            fresh = list(self.dense_model.embed(
                [texts[i] for i in missing],
                batch_size=self.settings.embedding.batch_size,
            ))
            for i, emb in zip(missing, fresh):
                vector = emb.tolist()
                vectors[i] = vector
                self.cache.set(keys[i], vector)

        return vectors

    def embed_query(self, query: str) -> List[float]:
        """Embed a single search query."""
        results = self.embed([query])
        return results[0] if results else []

    def embed_for_index(self, title: str, content: str) -> List[float]:
        """Embed a source for the passage store (title + content)."""
        return self.embed_query(f"{title}\n\n{content}")
