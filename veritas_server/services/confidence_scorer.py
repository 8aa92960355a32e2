"""
Services - Confidence Scorer

Combines six evidence components into a single 0-100 confidence score.
Given identical inputs the score is identical; nothing here is random
or clock-dependent once `reference_year` is fixed.
"""

from typing import List, Optional, Sequence

from veritas_server.schemas.citation import CitationValidation
from veritas_server.schemas.source import RetrievedPassage
from veritas_server.schemas.validation import ConfidenceScore, combine_components
from veritas_server.services.authority import (
    score_authority,
    source_quality_rubric,
    source_recency,
)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class ConfidenceScorer:
    """Scores how well an answer is supported by its sources."""

    def __init__(self, reference_year: Optional[int] = None):
        self.reference_year = reference_year

    def score(
        self,
        passages: Sequence[RetrievedPassage],
        citation_validations: Sequence[CitationValidation],
        alignment_per_claim: Sequence[float],
    ) -> ConfidenceScore:
        """
        Compute the confidence score.

        Args:
            passages: Retrieved passages the answer drew on
            citation_validations: Validation results for the answer's citations
            alignment_per_claim: Best source similarity (0-1) per extracted claim

        Returns:
            ConfidenceScore with rounded components and weighted overall
        """
        if not passages:
            return ConfidenceScore.zero()

        n = len(passages)
        sources = [p.source for p in passages]

        quality = round(_mean([
            0.5 * source_quality_rubric(p.source) + 0.5 * p.relevance * 100
            for p in passages
        ]))
        quantity = round(min(100.0, n / 5 * 100))

        if alignment_per_claim:
            alignment = round(_mean(alignment_per_claim) * 100)
        else:
            alignment = round(_mean(
                [v.semantic_similarity for v in citation_validations]
            ) * 100)

        authority = round(_mean([score_authority(s, self.reference_year) for s in sources]))
        recency = round(_mean([source_recency(s, self.reference_year) for s in sources]))
        consensus = min(100, n * 20)

        components = dict(
            source_quality=min(100, quality),
            source_quantity=quantity,
            semantic_alignment=max(0, min(100, alignment)),
            authority_level=authority,
            recency=recency,
            consensus=consensus,
        )
        return ConfidenceScore(
            overall=combine_components(**components),
            reasoning=self._reasoning(components),
            **components,
        )

    @staticmethod
    def _reasoning(components: dict) -> str:
        factors: List[str] = []
        if components["source_quality"] > 80:
            factors.append("high-quality sources")
        if components["authority_level"] > 80:
            factors.append("authoritative sources")
        if components["semantic_alignment"] > 80:
            factors.append("strong semantic alignment")
        if components["source_quantity"] > 80:
            factors.append("sufficient source quantity")
        return f"Confidence based on: {', '.join(factors) or 'limited supporting evidence'}"
