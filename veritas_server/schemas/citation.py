"""
Schemas - Citation Models

Citations extracted from generated text and their validation outcomes.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime, timezone


CitationKind = Literal["source_marker", "reporter", "case_name", "statute", "regulation"]
ValidationStatus = Literal["verified", "flagged", "corrected", "removed"]


class Citation(BaseModel):
    """A span of generated text claiming to reference a source."""
    id: str
    kind: CitationKind
    text: str
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    context: str = ""
    claim_text: str = ""
    source_index: Optional[int] = None

    model_config = {"frozen": True}


class CitationValidation(BaseModel):
    """Validation outcome for one citation."""
    citation_id: str
    original_text: str
    source_id: Optional[str] = None
    source_hash: str = ""
    integrity_valid: bool = False
    textual_match: bool = False
    semantic_similarity: float = Field(0.0, ge=0.0, le=1.0)
    authority_score: int = Field(0, ge=0, le=100)
    hyperlink: str = ""
    status: ValidationStatus = "flagged"
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = {"frozen": True}

    @property
    def resolved(self) -> bool:
        return self.source_id is not None
