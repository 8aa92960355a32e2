"""
Services - Correction Pass

Repairs a flagged answer: substitutes corrected citations, excises
sentences that must be removed, and regenerates or refuses when too
little survives.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.result import Ok, parse_structured
from veritas_server.schemas.source import RetrievedPassage
from veritas_server.schemas.validation import FlaggedContent
from veritas_server.services.citation_extractor import CitationExtractor, sentence_spans
from veritas_server.services.generator import AugmentedGenerator

logger = logging.getLogger(__name__)


REFUSAL_MESSAGE = (
    "I apologize, but I cannot provide a reliable answer based on the available "
    "sources. Please consult with a legal professional for accurate information."
)

MIN_RETAINED_RATIO = 0.5


class CorrectedCitation(BaseModel):
    """Shape expected from the citation correction prompt."""
    corrected_citation: str


@dataclass
class CorrectionResult:
    """Outcome of a correction pass."""
    text: str
    citation_validations: List[CitationValidation]
    regenerated: bool = False
    refused: bool = False
    model: Optional[str] = None
    removed_spans: List[str] = field(default_factory=list)

    @property
    def corrected(self) -> bool:
        return any(v.status in ("corrected", "removed") for v in self.citation_validations)


class CitationCorrector:
    """Asks the LLM for a properly formatted replacement citation."""

    SYSTEM_PROMPT = (
        "You are a legal citation expert. Generate a properly formatted citation "
        "for the given source that matches legal citation standards. "
        'Respond with JSON only: {"corrected_citation": "..."}'
    )

    def __init__(self, llm):
        self.llm = llm

    async def suggest(
        self,
        citation: Citation,
        validation: CitationValidation,
        passage: Optional[RetrievedPassage],
    ) -> Optional[str]:
        """
        Suggest a replacement for a flagged citation.

        Returns:
            Corrected citation text, or None when no trustworthy correction
            exists (unresolved citation, LLM failure, unparseable reply)
        """
        if passage is None or citation.kind == "source_marker":
            return None

        source = passage.source
        source_info = json.dumps({
            "title": source.title,
            "citation": source.citation,
            "court": source.court,
            "jurisdiction": source.jurisdiction,
            "year": source.effective_year,
        })
        messages = [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f'Original citation: "{citation.text}"\n'
                    f"Source: {source_info}\n\nGenerate corrected citation:"
                ),
            },
        ]

        try:
            raw = await self.llm.chat(messages, max_tokens=200, temperature=0.0)
        except Exception as e:
            logger.warning(f"Citation correction for {citation.id} failed: {e!r}")
            return None

        result = parse_structured(raw, CorrectedCitation)
        if not isinstance(result, Ok):
            logger.warning(f"Unparseable correction for {citation.id}: {result.reason}")
            return None

        corrected = result.value.corrected_citation.strip()
        if not corrected or corrected == citation.text:
            return None
        return corrected


class CorrectionPass:
    """Applies corrections and removals to a flagged answer."""

    def __init__(
        self,
        generator: AugmentedGenerator,
        extractor: Optional[CitationExtractor] = None,
    ):
        self.generator = generator
        self.extractor = extractor or CitationExtractor()

    async def correct(
        self,
        answer: str,
        flags: Sequence[FlaggedContent],
        citation_validations: Sequence[CitationValidation],
        passages: Sequence[RetrievedPassage],
        corrections: Optional[Dict[str, str]] = None,
        query: str = "",
    ) -> CorrectionResult:
        """
        Correct an answer.

        Args:
            answer: Generated answer text
            flags: Flags raised against the answer
            citation_validations: Validations for the answer's citations
            passages: Passages the answer was generated from
            corrections: citation_id -> corrected citation text
            query: Original question, needed for regeneration

        Returns:
            CorrectionResult with annotated citation validations
        """
        corrections = corrections or {}
        statuses: Dict[str, str] = {}
        text = answer

        for v in citation_validations:
            replacement = corrections.get(v.citation_id)
            if replacement and v.original_text in text:
                text = text.replace(v.original_text, replacement, 1)
                statuses[v.citation_id] = "corrected"

        removed_spans = []
        for f in flags:
            if not f.requires_removal or f.content_id in statuses:
                continue
            if f.span_text is None:
                logger.info(f"Flag {f.content_id} removes the whole answer")
                text = ""
                removed_spans.append(answer)
                break
            if f.span_text in text:
                text = self._excise(text, f.span_text)
                removed_spans.append(f.span_text)
            if f.flag_type == "inaccuracy":
                statuses[f.content_id] = "removed"

        annotated = [
            v.model_copy(update={"status": statuses[v.citation_id]})
            if v.citation_id in statuses else v
            for v in citation_validations
        ]

        if len(text.strip()) >= MIN_RETAINED_RATIO * len(answer.strip()):
            return CorrectionResult(
                text=text.strip(),
                citation_validations=annotated,
                removed_spans=removed_spans,
            )

        flagged_sources = {
            v.source_id for v in citation_validations
            if v.status == "flagged" and v.source_id
        }
        remaining = [p for p in passages if p.source.id not in flagged_sources]
        if not remaining:
            logger.info("No unflagged sources left; refusing to answer")
            return CorrectionResult(
                text=REFUSAL_MESSAGE,
                citation_validations=annotated,
                refused=True,
                removed_spans=removed_spans,
            )

        result = await self.generator.regenerate(query, remaining)
        if result.failed:
            return CorrectionResult(
                text=REFUSAL_MESSAGE,
                citation_validations=annotated,
                refused=True,
                removed_spans=removed_spans,
            )
        return CorrectionResult(
            text=result.text,
            citation_validations=annotated,
            regenerated=True,
            model=result.model,
            removed_spans=removed_spans,
        )

    def _excise(self, text: str, span: str) -> str:
        """Remove every sentence containing `span`."""
        protected = [(c.start, c.end) for c in self.extractor.extract(text)]
        kept = [
            text[s:e] for s, e in sentence_spans(text, protected)
            if span not in text[s:e]
        ]
        return re.sub(r"[ \t]{2,}", " ", "".join(kept)).strip()
