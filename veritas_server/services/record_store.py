"""
Services - Record Store

Keyed document storage for validation records, review tasks, decisions,
and audit rows. Qdrant payload-only collections in production, a dict
in development and tests.
"""

import copy
import hashlib
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from qdrant_client import QdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue, PointStruct

from veritas_server.config import get_settings

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Minimal structured-data store used by the pipeline."""

    def insert(self, collection: str, key: str, record: Dict[str, Any]) -> bool:
        """Insert if absent. Returns False when the key already exists."""
        ...

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        ...

    def update(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        ...

    def list(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        ...


class InMemoryRecordStore:
    """Dict-backed RecordStore."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def insert(self, collection: str, key: str, record: Dict[str, Any]) -> bool:
        with self._lock:
            rows = self._data.setdefault(collection, {})
            if key in rows:
                return False
            rows[key] = copy.deepcopy(record)
            return True

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._data.get(collection, {}).get(key)
            return copy.deepcopy(record) if record is not None else None

    def update(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(collection, {})[key] = copy.deepcopy(record)

    def list(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = list(self._data.get(collection, {}).values())
        if filters:
            rows = [
                r for r in rows
                if all(r.get(k) == v for k, v in filters.items())
            ]
        return copy.deepcopy(rows)


class QdrantRecordStore:
    """RecordStore on Qdrant collections that carry payloads only."""

    SCROLL_PAGE = 256

    def __init__(self, settings=None, client: Optional[QdrantClient] = None):
        self.settings = settings or get_settings()
        self.prefix = self.settings.store.collection_prefix
        self._client = client
        self._known_collections = set()

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

    @staticmethod
    def point_id(key: str) -> int:
        """Deterministic int64 point ID from a record key."""
        return int(hashlib.sha256(key.encode()).hexdigest()[:15], 16)

    def _collection(self, name: str) -> str:
        full_name = f"{self.prefix}{name}"
        if full_name not in self._known_collections:
            if not self.client.collection_exists(full_name):
                logger.info(f"Creating record collection {full_name}")
                self.client.create_collection(
                    collection_name=full_name,
                    vectors_config={},
                )
            self._known_collections.add(full_name)
        return full_name

    def insert(self, collection: str, key: str, record: Dict[str, Any]) -> bool:
        if self.get(collection, key) is not None:
            return False
        self.update(collection, key, record)
        return True

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        points = self.client.retrieve(
            collection_name=self._collection(collection),
            ids=[self.point_id(key)],
            with_payload=True,
        )
        return dict(points[0].payload) if points else None

    def update(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        self.client.upsert(
            collection_name=self._collection(collection),
            points=[PointStruct(id=self.point_id(key), vector={}, payload=record)],
        )

    def list(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        scroll_filter = None
        if filters:
            scroll_filter = Filter(must=[
                FieldCondition(key=k, match=MatchValue(value=v))
                for k, v in filters.items()
            ])

        records = []
        offset = None
        while True:
            points, offset = self.client.scroll(
                collection_name=self._collection(collection),
                scroll_filter=scroll_filter,
                limit=self.SCROLL_PAGE,
                offset=offset,
                with_payload=True,
            )
            records.extend(dict(p.payload) for p in points)
            if offset is None:
                break
        return records


def get_record_store(settings=None) -> RecordStore:
    """Factory for the configured record store backend."""
    settings = settings or get_settings()
    if settings.store.backend == "memory":
        return InMemoryRecordStore()
    return QdrantRecordStore(settings)
