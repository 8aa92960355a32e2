"""
Schemas Module - Pydantic Models

Data models for sources, citations, validation, review tasks, and answers.
"""

from veritas_server.schemas.source import Source, RetrievedPassage
from veritas_server.schemas.citation import Citation, CitationValidation
from veritas_server.schemas.validation import (
    CONFIDENCE_WEIGHTS,
    ConfidenceScore,
    FlaggedContent,
    EvidenceLink,
    CitationReport,
    ValidationRecord,
    combine_components,
)
from veritas_server.schemas.review import (
    ReviewTask,
    ReviewDecision,
    ReviewMetrics,
    review_state_for,
)
from veritas_server.schemas.answer import (
    Answer,
    FailureInfo,
    QueryOptions,
    SourcesFound,
    Chunk,
    ValidationComplete,
    Done,
    Error,
    StreamEvent,
)
from veritas_server.schemas.result import Ok, ParseError, parse_structured

__all__ = [
    "Source",
    "RetrievedPassage",
    "Citation",
    "CitationValidation",
    "CONFIDENCE_WEIGHTS",
    "ConfidenceScore",
    "FlaggedContent",
    "EvidenceLink",
    "CitationReport",
    "ValidationRecord",
    "combine_components",
    "ReviewTask",
    "ReviewDecision",
    "ReviewMetrics",
    "review_state_for",
    "Answer",
    "FailureInfo",
    "QueryOptions",
    "SourcesFound",
    "Chunk",
    "ValidationComplete",
    "Done",
    "Error",
    "StreamEvent",
    "Ok",
    "ParseError",
    "parse_structured",
]
