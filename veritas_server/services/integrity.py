"""
Services - Integrity

Content hashing for tamper detection of sources and audit records.
"""

import hashlib
import json
import re
from typing import Any, Dict

from veritas_server.schemas.source import Source


_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse whitespace so formatting changes don't alter hashes."""
    return _WHITESPACE.sub(" ", text or "").strip()


def content_hash(text: str) -> str:
    """SHA-256 of normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def source_hash(source: Source) -> str:
    """SHA-256 over the canonical JSON of a source's identifying fields."""
    canonical = json.dumps(
        {
            "content": normalize_text(source.content),
            "title": normalize_text(source.title),
            "citation": normalize_text(source.citation),
            "url": source.url or "",
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verify_source_integrity(source: Source) -> bool:
    """
    Check a source against the hash recorded at ingestion.

    Sources without a recorded hash have nothing to compare against and
    pass.
    """
    if not source.content_hash:
        return True
    return source.content_hash == source_hash(source)


def bundle_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 of a JSON-serializable payload in canonical form."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verify_record(payload: Dict[str, Any], expected_hash: str) -> bool:
    """True if the payload still hashes to what was stored."""
    return bundle_hash(payload) == expected_hash
