"""
Shared fixtures: settings, a deterministic embedder, in-memory stores,
and a scripted LLM.
"""

import datetime as dt
import hashlib
import re
from typing import List

import pytest
from unittest.mock import MagicMock

from veritas_server.config import Settings
from veritas_server.schemas.source import RetrievedPassage, Source


REFERENCE_YEAR = 2024


class BagOfWordsEmbedder:
    """Hashes lowercase words (len > 2) into a fixed-size count vector."""

    def __init__(self, dimensions: int = 512):
        self.dimensions = dimensions
        self.calls = 0

    def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, query: str) -> List[float]:
        return self._vector(query)

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for word in re.findall(r"[a-z]{3,}", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimensions
            vector[bucket] += 1.0
        return vector


class ScriptedLLM:
    """LLM double returning queued responses; exceptions in the queue are raised."""

    def __init__(self, responses=None, model: str = "test-model"):
        self.responses = list(responses or [])
        self.model = model
        self.calls = []

    async def chat(self, messages, max_tokens=2000, temperature=0.1):
        self.calls.append(messages)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response

    async def chat_with_model(self, messages, max_tokens=2000, temperature=0.1):
        return await self.chat(messages, max_tokens, temperature), self.model

    async def complete(self, prompt, max_tokens=2000, temperature=0.1):
        return await self.chat([{"role": "user", "content": prompt}], max_tokens, temperature)

    async def stream_chat(self, messages, max_tokens=2000, temperature=0.1):
        text = await self.chat(messages, max_tokens, temperature)
        for word in text.split(" "):
            yield word + " "


@pytest.fixture
def settings():
    """Default settings with caching on and the in-memory record store."""
    s = Settings()
    s.store.backend = "memory"
    s.review.webhook_url = None
    s.validation.llm_claim_extraction = False
    s.rag.rerank = False
    return s


@pytest.fixture
def embedder():
    return BagOfWordsEmbedder()


@pytest.fixture
def negligence_source():
    return Source(
        id="restatement-282",
        title="Restatement §282",
        content=(
            "Negligence is conduct which falls below the standard established by law "
            "for the protection of others. The reasonable person standard asks whether "
            "the defendant exercised the care of a reasonable person under like circumstances."
        ),
        citation="Restatement (Second) of Torts § 282",
        document_type="secondary",
    )


@pytest.fixture
def federal_case():
    def make(n: int, year: int = 2021) -> Source:
        return Source(
            id=f"case-{n}",
            title=f"Premises Case {n}",
            content=(
                "A landowner owes invitees a duty of reasonable care to maintain the "
                "premises in a reasonably safe condition and to warn of hidden dangers."
            ),
            citation=f"{100 + n} F.3d {200 + n} (9th Cir. {year})",
            court="U.S. Court of Appeals for the Ninth Circuit",
            document_type="case_law",
            jurisdiction="federal",
            date=dt.date(year, 6, 1),
            practice_area="torts",
        )
    return make


@pytest.fixture
def passage():
    def make(source: Source, index: int = 1, relevance: float = 0.8) -> RetrievedPassage:
        return RetrievedPassage(source=source, relevance=relevance, index=index)
    return make


@pytest.fixture
def mock_passage_store():
    """PassageStore double whose search returns nothing by default."""
    store = MagicMock()
    store.search.return_value = []
    return store
