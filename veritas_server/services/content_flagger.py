"""
Services - Content Flagger

Threshold rules over confidence and citation outcomes that produce the
list of problems found in an answer.
"""

import re
from typing import List, Optional, Sequence

from veritas_server.config import get_settings
from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.validation import ConfidenceScore, FlaggedContent
from veritas_server.services.citation_extractor import CitationExtractor, sentence_spans
from veritas_server.services.citation_validator import is_publishable


LOW_CONFIDENCE_THRESHOLD = 50
CRITICAL_CONFIDENCE_THRESHOLD = 25

# Authoritative phrasing that needs a citation in the same sentence
HALLUCINATION_PATTERNS = (
    re.compile(r"\bcourts have consistently\b", re.IGNORECASE),
    re.compile(r"\bit is well[- ]established\b", re.IGNORECASE),
    re.compile(r"\baccording to\b", re.IGNORECASE),
    re.compile(r"\bit is settled law\b", re.IGNORECASE),
)


class ContentFlagger:
    """Applies additive flagging rules to a validated answer."""

    def __init__(self, settings=None, extractor: Optional[CitationExtractor] = None):
        self.settings = settings or get_settings()
        self.extractor = extractor or CitationExtractor()

    def flag(
        self,
        confidence: ConfidenceScore,
        validations: Sequence[CitationValidation],
        answer_text: str = "",
        citations: Sequence[Citation] = (),
        publication_strict: bool = False,
        sources_available: bool = False,
    ) -> List[FlaggedContent]:
        """
        Flag problems with an answer.

        Args:
            confidence: Confidence score for the answer
            validations: Citation validation results
            answer_text: Generated answer, scanned for unsupported phrasing
            citations: Citations extracted from answer_text
            publication_strict: Use the strict similarity gate for publication
            sources_available: Whether any passages were retrieved

        Returns:
            Flags in rule order; empty when nothing is wrong
        """
        flags: List[FlaggedContent] = []
        if answer_text and not citations:
            citations = self.extractor.extract(answer_text)

        if confidence.overall < LOW_CONFIDENCE_THRESHOLD:
            critical = confidence.overall < CRITICAL_CONFIDENCE_THRESHOLD
            flags.append(FlaggedContent(
                content_id="confidence_overall",
                flag_type="low_confidence",
                severity="critical" if critical else "high",
                description=(
                    f"Overall confidence score is {confidence.overall}%, "
                    f"below acceptable threshold"
                ),
                requires_removal=critical,
            ))

        for v in validations:
            if v.status == "flagged":
                flags.append(FlaggedContent(
                    content_id=v.citation_id,
                    flag_type="inaccuracy",
                    severity="high",
                    description=f"Citation validation failed for: {v.original_text}",
                    span_text=v.original_text,
                    suggested_correction="Verify citation accuracy or remove",
                    requires_removal=True,
                ))

        if answer_text:
            flags.extend(self._hallucinations(answer_text, citations))

        if sources_available and answer_text and not citations:
            flags.append(FlaggedContent(
                content_id="citations_missing",
                flag_type="missing_source",
                severity="medium",
                description="Answer makes no citations although sources were available",
            ))

        by_id = {c.id: c for c in citations}
        for v in validations:
            if v.status != "verified":
                continue
            citation = by_id.get(v.citation_id)
            unmatched = (
                citation is not None
                and citation.kind != "source_marker"
                and not v.textual_match
            )
            if unmatched or not is_publishable(v, publication_strict, self.settings):
                reason = (
                    "citation text not found in the resolved source"
                    if unmatched
                    else f"similarity {v.semantic_similarity:.2f}, authority {v.authority_score}"
                )
                flags.append(FlaggedContent(
                    content_id=f"{v.citation_id}_publication",
                    flag_type="semantic_mismatch",
                    severity="medium",
                    description=f"Citation {v.original_text} below publication standard: {reason}",
                    span_text=v.original_text,
                ))

        return flags

    def _hallucinations(
        self,
        text: str,
        citations: Sequence[Citation],
    ) -> List[FlaggedContent]:
        protected = [(c.start, c.end) for c in citations]

        flags = []
        for start, end in sentence_spans(text, protected):
            if any(start <= c.start < end for c in citations):
                continue
            sentence = text[start:end].strip()
            if any(p.search(sentence) for p in HALLUCINATION_PATTERNS):
                flags.append(FlaggedContent(
                    content_id=f"hallucination_{len(flags)}",
                    flag_type="hallucination",
                    severity="high",
                    description="Potential hallucination detected: unsupported authoritative claim",
                    span_text=sentence,
                    requires_removal=False,
                ))
        return flags
