"""
Schemas - Answer Models

The result of a grounded query and the tagged events emitted while
streaming one.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal, Union, Dict, Any, Annotated

from veritas_server.schemas.source import RetrievedPassage
from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.validation import (
    ConfidenceScore,
    FlaggedContent,
    EvidenceLink,
    CitationReport,
)
from veritas_server.schemas.review import ReviewState


FailureKind = Literal["generation_failed", "retrieval_failed", "validation_failed"]


class QueryOptions(BaseModel):
    """Per-query options; None falls back to configured defaults."""
    top_k: Optional[int] = Field(None, ge=1)
    filter: Optional[Dict[str, Any]] = None
    strict_mode: Optional[bool] = None
    enable_review: Optional[bool] = None
    auto_correct: Optional[bool] = None


class FailureInfo(BaseModel):
    """Explicit, typed failure attached to a degraded answer."""
    kind: FailureKind
    message: str


class Answer(BaseModel):
    """Final answer with its validation trail."""
    query: str
    answer: str
    original_answer: str = ""
    sources: List[RetrievedPassage] = []
    citations: List[Citation] = []
    citation_validations: List[CitationValidation] = []
    confidence: ConfidenceScore
    flagged_content: List[FlaggedContent] = []
    evidence_chain: List[EvidenceLink] = []
    citation_report: CitationReport = Field(default_factory=CitationReport)
    requires_human_review: bool = False
    review_state: ReviewState = "not_reviewed"
    review_task_id: Optional[str] = None
    corrected: bool = False
    regenerated: bool = False
    validation_record_id: Optional[str] = None
    model_used: Optional[str] = None
    processing_time_ms: int = 0
    failure: Optional[FailureInfo] = None

    @property
    def validated_citations(self) -> List[CitationValidation]:
        return [v for v in self.citation_validations if v.status == "verified"]

    @property
    def flagged_citations(self) -> List[CitationValidation]:
        return [v for v in self.citation_validations if v.status != "verified"]

    @property
    def is_valid(self) -> bool:
        """No critical flags and no failure."""
        return self.failure is None and not any(
            f.severity == "critical" for f in self.flagged_content
        )


# ─────────────────────────────────────────────
#  Stream events
# ─────────────────────────────────────────────

class SourcesFound(BaseModel):
    kind: Literal["sources"] = "sources"
    sources: List[RetrievedPassage]


class Chunk(BaseModel):
    kind: Literal["chunk"] = "chunk"
    text: str


class ValidationComplete(BaseModel):
    kind: Literal["validation"] = "validation"
    confidence: ConfidenceScore
    citation_validations: List[CitationValidation] = []
    flagged_content: List[FlaggedContent] = []
    requires_human_review: bool = False


class Done(BaseModel):
    kind: Literal["done"] = "done"
    answer: Answer


class Error(BaseModel):
    kind: Literal["error"] = "error"
    failure: FailureInfo


StreamEvent = Annotated[
    Union[SourcesFound, Chunk, ValidationComplete, Done, Error],
    Field(discriminator="kind"),
]
