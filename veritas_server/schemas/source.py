"""
Schemas - Source Models

Pydantic models for legal sources and retrieved passages.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal, Dict, Any
import datetime as dt


DocumentType = Literal["case_law", "statute", "regulation", "secondary"]


class Source(BaseModel):
    """A retrievable legal source. Read-only to the pipeline."""
    id: str
    title: str
    content: str
    citation: str = ""
    court: Optional[str] = None
    document_type: Optional[DocumentType] = None
    jurisdiction: Optional[str] = None
    date: Optional[dt.date] = None
    year: Optional[int] = None
    url: Optional[str] = None
    practice_area: Optional[str] = None
    # Hash recorded at ingestion time, used for tamper detection
    content_hash: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def effective_year(self) -> Optional[int]:
        """Publication year from `year`, falling back to `date`."""
        if self.year:
            return self.year
        if self.date:
            return self.date.year
        return None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Source":
        """Build a Source from a passage-store payload."""
        return cls(
            id=str(payload.get("source_id") or payload.get("id")),
            title=payload.get("title") or "Legal Document",
            content=payload.get("content") or payload.get("text") or "",
            citation=payload.get("citation") or "",
            court=payload.get("court"),
            document_type=payload.get("document_type"),
            jurisdiction=payload.get("jurisdiction"),
            date=payload.get("date"),
            year=payload.get("year"),
            url=payload.get("url"),
            practice_area=payload.get("practice_area"),
            content_hash=payload.get("content_hash"),
        )


class RetrievedPassage(BaseModel):
    """A Source scored for one query; `index` is the N in [Source N]."""
    source: Source
    relevance: float = Field(ge=0.0, le=1.0)
    index: int = Field(ge=1)

    model_config = {"frozen": True}
