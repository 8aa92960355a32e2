"""
Services - Semantic Similarity

Embedding cosine similarity between texts, clipped to [0, 1].
"""

import asyncio
from typing import List, Sequence, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from veritas_server.pipeline.embedder import Embedder


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either is all zeros."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class SemanticSimilarity:
    """Scores how close two texts are in embedding space."""

    def __init__(self, embedder: "Embedder"):
        self.embedder = embedder

    async def score(self, a: str, b: str) -> float:
        """Similarity of `a` and `b`; 0.0 if either is empty."""
        scores = await self.score_many(a, [b])
        return scores[0]

    async def score_many(self, text: str, others: List[str]) -> List[float]:
        """Similarity of `text` against each of `others` in one embed call."""
        if not others:
            return []
        if not text or not text.strip():
            return [0.0] * len(others)

        vectors = await asyncio.to_thread(self.embedder.embed, [text, *others])
        return [
            max(0.0, min(1.0, cosine_similarity(vectors[0], v))) if other.strip() else 0.0
            for other, v in zip(others, vectors[1:])
        ]
