"""
Pipeline - Indexer

Qdrant passage store: collection setup, upserts, filtered deletes, and
nearest-neighbour search over legal sources.
"""

from typing import List, Dict, Any, Optional, Tuple
from datetime import datetime, timezone
import hashlib

from qdrant_client import QdrantClient
from qdrant_client.models import (
    PointStruct,
    VectorParams,
    Distance,
    PayloadSchemaType,
    Filter,
    FieldCondition,
    MatchValue,
    MatchAny,
    FilterSelector,
)

from veritas_server.config import get_settings
from veritas_server.schemas.source import Source
from veritas_server.services.integrity import source_hash


def build_filter(criteria: Optional[Dict[str, Any]]) -> Optional[Filter]:
    """Translate {"field": value | [values]} criteria into a Qdrant filter."""
    if not criteria:
        return None

    conditions = []
    for key, value in criteria.items():
        if isinstance(value, (list, tuple, set)):
            conditions.append(FieldCondition(key=key, match=MatchAny(any=list(value))))
        else:
            conditions.append(FieldCondition(key=key, match=MatchValue(value=value)))
    return Filter(must=conditions)


class PassageStore:
    """Vector store of legal sources backed by Qdrant."""

    def __init__(self, settings=None, client: Optional[QdrantClient] = None):
        self.settings = settings or get_settings()
        self.collection_name = self.settings.qdrant.collection
        self.vector_size = self.settings.embedding.dimensions
        self._client = client

    @property
    def client(self) -> QdrantClient:
        """Lazy load Qdrant client."""
        if self._client is None:
            self._client = QdrantClient(
                host=self.settings.qdrant.host,
                port=self.settings.qdrant.port,
                api_key=self.settings.qdrant.api_key,
            )
        return self._client

    def ensure_collection(self) -> None:
        """Create collection if it doesn't exist."""
        if self.client.collection_exists(self.collection_name):
            return

        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(
                size=self.vector_size,
                distance=Distance.COSINE,
            ),
        )

        # Payload indexes for filtered retrieval
        for field, schema in [
            ("source_id", PayloadSchemaType.KEYWORD),
            ("document_type", PayloadSchemaType.KEYWORD),
            ("jurisdiction", PayloadSchemaType.KEYWORD),
            ("court", PayloadSchemaType.KEYWORD),
            ("practice_area", PayloadSchemaType.KEYWORD),
        ]:
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=field,
                field_schema=schema,
            )

    @staticmethod
    def point_id(source_id: str) -> int:
        """Deterministic int64 point ID from a source id."""
        return int(hashlib.sha256(source_id.encode()).hexdigest()[:15], 16)

    def build_payload(self, source: Source) -> Dict[str, Any]:
        """Build Qdrant payload from a source, stamping its content hash."""
        return {
            "source_id": source.id,
            "title": source.title,
            "content": source.content,
            "citation": source.citation,
            "court": source.court,
            "document_type": source.document_type,
            "jurisdiction": source.jurisdiction,
            "date": source.date.isoformat() if source.date else None,
            "year": source.year,
            "url": source.url,
            "practice_area": source.practice_area,
            "content_hash": source_hash(source),
            "indexed_at": datetime.now(timezone.utc).isoformat(),
        }

    def upsert(
        self,
        source_id: str,
        vector: List[float],
        metadata: Dict[str, Any],
    ) -> None:
        """
        Upsert a single source vector.

        Args:
            source_id: Source identifier
            vector: Dense embedding
            metadata: Source payload
        """
        self.client.upsert(
            collection_name=self.collection_name,
            points=[
                PointStruct(
                    id=self.point_id(source_id),
                    vector=vector,
                    payload=metadata,
                )
            ],
        )

    def upsert_batch(self, points: List[Tuple[str, List[float], Dict[str, Any]]]) -> None:
        """Upsert many (source_id, vector, metadata) tuples at once."""
        self.client.upsert(
            collection_name=self.collection_name,
            points=[
                PointStruct(id=self.point_id(sid), vector=vec, payload=meta)
                for sid, vec, meta in points
            ],
        )

    def search(
        self,
        query_vector: List[float],
        top_k: int,
        criteria: Optional[Dict[str, Any]] = None,
    ) -> List[Tuple[str, float, Dict[str, Any]]]:
        """
        Nearest-neighbour search.

        Returns:
            List of (source_id, score, payload) ordered by descending score
        """
        response = self.client.query_points(
            collection_name=self.collection_name,
            query=query_vector,
            limit=top_k,
            query_filter=build_filter(criteria),
            with_payload=True,
        )
        return [
            (str(point.payload.get("source_id", point.id)), float(point.score), point.payload)
            for point in response.points
        ]

    def delete_by_filter(self, criteria: Dict[str, Any]) -> None:
        """Delete every source matching the criteria."""
        if not criteria:
            raise ValueError("Refusing to delete with an empty filter")
        self.client.delete(
            collection_name=self.collection_name,
            points_selector=FilterSelector(filter=build_filter(criteria)),
        )

    def get_collection_info(self) -> Dict[str, Any]:
        """Get collection statistics."""
        info = self.client.get_collection(self.collection_name)
        return {
            "points_count": info.points_count,
            "indexed_vectors_count": info.indexed_vectors_count,
            "status": info.status.value,
        }
