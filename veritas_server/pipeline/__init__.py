"""
Pipeline Module - Passage Ingestion

Embeds legal sources and stores them in Qdrant for retrieval:
Load → Hash → Embed → Store
"""

from veritas_server.pipeline.embedder import Embedder
from veritas_server.pipeline.indexer import PassageStore

__all__ = [
    "Embedder",
    "PassageStore",
]
