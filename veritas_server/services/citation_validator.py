"""
Services - Citation Validator

Resolves each citation to a retrieved source and checks integrity,
textual support, semantic similarity, and legal authority.
"""

import asyncio
import logging
import re
from typing import List, Optional, Sequence, Tuple

from veritas_server.config import get_settings
from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.source import RetrievedPassage
from veritas_server.services.authority import score_authority, source_hyperlink
from veritas_server.services.citation_extractor import strip_markers
from veritas_server.services.integrity import (
    normalize_text,
    source_hash,
    verify_source_integrity,
)
from veritas_server.services.similarity import SemanticSimilarity

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return normalize_text(re.sub(r"[^\w§\s]", " ", text or "")).lower()


def keyword_overlap(claim: str, source_text: str) -> float:
    """Share of a claim's significant words (len > 3) present in the source."""
    claim_words = {w for w in _normalize(claim).split() if len(w) > 3}
    if not claim_words:
        return 0.0
    source_words = set(_normalize(source_text).split())
    return len(claim_words & source_words) / len(claim_words)


def is_publishable(
    validation: CitationValidation,
    strict: bool = False,
    settings=None,
) -> bool:
    """
    Publication gate, stricter than the `verified` status.

    Requires verified status, similarity of at least 0.6 (0.8 in strict
    mode), and authority of at least 50.
    """
    cfg = (settings or get_settings()).validation
    threshold = cfg.publish_similarity_strict if strict else cfg.publish_similarity
    return (
        validation.status == "verified"
        and validation.semantic_similarity >= threshold
        and validation.authority_score >= cfg.publish_min_authority
    )


class CitationValidator:
    """Validates extracted citations against the retrieved passages."""

    def __init__(
        self,
        similarity: SemanticSimilarity,
        settings=None,
        reference_year: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self.similarity = similarity
        self.reference_year = reference_year

    async def validate_all(
        self,
        citations: Sequence[Citation],
        passages: Sequence[RetrievedPassage],
    ) -> List[CitationValidation]:
        """Validate citations concurrently; results keep citation order."""
        if not citations:
            return []
        return list(await asyncio.gather(
            *(self.validate(c, passages) for c in citations)
        ))

    async def validate(
        self,
        citation: Citation,
        passages: Sequence[RetrievedPassage],
    ) -> CitationValidation:
        """
        Validate one citation.

        Args:
            citation: Extracted citation
            passages: Passages the answer was generated from

        Returns:
            CitationValidation; unresolved or failing citations are flagged
        """
        try:
            return await self._validate(citation, passages)
        except Exception as e:
            logger.error(f"Validation of {citation.id} failed: {e!r}")
            return self._unresolved(citation)

    async def _validate(
        self,
        citation: Citation,
        passages: Sequence[RetrievedPassage],
    ) -> CitationValidation:
        context = strip_markers(citation.context) or citation.claim_text
        passage, similarity = await self._resolve(citation, context, passages)
        if passage is None:
            logger.info(f"{citation.id} '{citation.text}' did not resolve to a source")
            return self._unresolved(citation)

        source = passage.source
        digest = source_hash(source)
        integrity = verify_source_integrity(source)
        if not integrity:
            logger.warning(f"Source {source.id} failed integrity check")

        if similarity is None:
            similarity = await self.similarity.score(
                context, source.content[: self.settings.rag.max_passage_chars]
            )

        authority = score_authority(source, self.reference_year)
        verified = (
            integrity
            and similarity >= self.settings.validation.min_similarity
            and authority >= self.settings.validation.min_authority
        )

        return CitationValidation(
            citation_id=citation.id,
            original_text=citation.text,
            source_id=source.id,
            source_hash=digest,
            integrity_valid=integrity,
            textual_match=self._textual_match(citation, passage),
            semantic_similarity=round(similarity, 4),
            authority_score=authority,
            hyperlink=source_hyperlink(source, digest),
            status="verified" if verified else "flagged",
        )

    async def _resolve(
        self,
        citation: Citation,
        context: str,
        passages: Sequence[RetrievedPassage],
    ) -> Tuple[Optional[RetrievedPassage], Optional[float]]:
        """Find the cited passage; also returns the similarity if computed."""
        if not passages:
            return None, None

        if citation.kind == "source_marker":
            for passage in passages:
                if passage.index == citation.source_index:
                    return passage, None
            return None, None

        cited = _normalize(citation.text)
        for passage in passages:
            known = _normalize(passage.source.citation)
            if known and (cited in known or known in cited):
                return passage, None

        limit = self.settings.rag.max_passage_chars
        scores = await self.similarity.score_many(
            context, [p.source.content[:limit] for p in passages]
        )
        best = max(range(len(passages)), key=lambda i: scores[i])
        return passages[best], scores[best]

    @staticmethod
    def _textual_match(citation: Citation, passage: RetrievedPassage) -> bool:
        source = passage.source
        haystack = _normalize(" ".join([source.content, source.title, source.citation]))
        if citation.kind == "source_marker":
            claim = _normalize(citation.claim_text)
            if claim and claim in haystack:
                return True
            return keyword_overlap(citation.claim_text, haystack) >= 0.5
        return _normalize(citation.text) in haystack

    @staticmethod
    def _unresolved(citation: Citation) -> CitationValidation:
        return CitationValidation(
            citation_id=citation.id,
            original_text=citation.text,
            status="flagged",
        )

    def is_publishable(self, validation: CitationValidation, strict: bool = False) -> bool:
        return is_publishable(validation, strict, self.settings)
