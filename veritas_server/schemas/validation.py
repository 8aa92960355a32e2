"""
Schemas - Validation Models

Confidence scores, content flags, evidence links, and the write-once
validation record persisted for audit.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal, Tuple
from datetime import datetime, timezone

from veritas_server.schemas.citation import CitationValidation


FlagType = Literal[
    "hallucination", "inaccuracy", "low_confidence", "missing_source", "semantic_mismatch"
]
Severity = Literal["low", "medium", "high", "critical"]

# quality, quantity, alignment, authority, recency, consensus
CONFIDENCE_WEIGHTS: Tuple[float, ...] = (0.25, 0.15, 0.25, 0.20, 0.10, 0.05)


def combine_components(
    source_quality: float,
    source_quantity: float,
    semantic_alignment: float,
    authority_level: float,
    recency: float,
    consensus: float,
) -> int:
    """Weighted overall confidence, rounded and clamped to [0, 100]."""
    components = (
        source_quality,
        source_quantity,
        semantic_alignment,
        authority_level,
        recency,
        consensus,
    )
    overall = sum(w * c for w, c in zip(CONFIDENCE_WEIGHTS, components))
    return int(max(0, min(100, round(overall))))


class ConfidenceScore(BaseModel):
    """Aggregate confidence for one generated answer."""
    overall: int = Field(ge=0, le=100)
    source_quality: int = Field(ge=0, le=100)
    source_quantity: int = Field(ge=0, le=100)
    semantic_alignment: int = Field(ge=0, le=100)
    authority_level: int = Field(ge=0, le=100)
    recency: int = Field(ge=0, le=100)
    consensus: int = Field(ge=0, le=100)
    reasoning: str = ""

    model_config = {"frozen": True}

    @classmethod
    def zero(cls, reasoning: str = "No supporting sources") -> "ConfidenceScore":
        return cls(
            overall=0,
            source_quality=0,
            source_quantity=0,
            semantic_alignment=0,
            authority_level=0,
            recency=0,
            consensus=0,
            reasoning=reasoning,
        )

    def recompute_overall(self) -> int:
        """Recompute `overall` from the six stored components."""
        return combine_components(
            self.source_quality,
            self.source_quantity,
            self.semantic_alignment,
            self.authority_level,
            self.recency,
            self.consensus,
        )


class FlaggedContent(BaseModel):
    """A problem found in an answer."""
    content_id: str
    flag_type: FlagType
    severity: Severity
    description: str
    # Offending text; None means the whole answer
    span_text: Optional[str] = None
    suggested_correction: Optional[str] = None
    requires_removal: bool = False

    model_config = {"frozen": True}


class EvidenceLink(BaseModel):
    """A claim linked to the passage that best supports it."""
    claim_id: str
    claim: str
    source_id: str
    source_title: str
    hyperlink: str
    relevant_passage: str
    support_strength: float = Field(ge=0.0, le=1.0)


class CitationReport(BaseModel):
    """Summary of citation validation outcomes for one answer."""
    total_citations: int = 0
    verified_citations: int = 0
    flagged_citations: int = 0
    corrected_citations: int = 0
    removed_citations: int = 0
    overall_accuracy: int = 0
    recommendations: List[str] = []


class ValidationRecord(BaseModel):
    """Write-once audit artifact for one pipeline run."""
    record_id: str
    content_hash: str
    query_hash: str
    confidence: ConfidenceScore
    citation_validations: List[CitationValidation] = []
    flagged_content: List[FlaggedContent] = []
    evidence_chain: List[EvidenceLink] = []
    source_hashes: List[str] = []
    requires_human_review: bool = False
    review_task_id: Optional[str] = None
    processing_time_ms: int = 0
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    bundle_hash: str = ""

    model_config = {"frozen": True}
