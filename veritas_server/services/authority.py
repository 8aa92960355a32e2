"""
Services - Authority

Single legal-authority rubric shared by the validator, scorer, and
flagger, plus the per-source metadata helpers built on it.
"""

from datetime import date
from typing import Optional

from veritas_server.schemas.source import Source


# Checked in order; first substring match wins
COURT_WEIGHTS = (
    ("supreme", 40),
    ("circuit", 30),
    ("appeals", 25),
    ("district", 20),
)

DOCUMENT_TYPE_WEIGHTS = {
    "statute": 30,
    "case_law": 25,
    "regulation": 20,
    "secondary": 10,
}

UNKNOWN_AGE_YEARS = 10


def _reference_year(reference_year: Optional[int]) -> int:
    return reference_year if reference_year is not None else date.today().year


def source_age(source: Source, reference_year: Optional[int] = None) -> int:
    """Age of a source in years; unknown dates count as 10 years old."""
    year = source.effective_year
    if year is None:
        return UNKNOWN_AGE_YEARS
    return max(0, _reference_year(reference_year) - year)


def score_authority(source: Source, reference_year: Optional[int] = None) -> int:
    """
    Score the legal authority of a source on a 0-100 scale.

    Base 50, adjusted for court level, document type, jurisdiction, and
    age. Sources without a known date get no recency adjustment.

    Args:
        source: Source to score
        reference_year: Year to measure age against (defaults to today)

    Returns:
        Authority score clamped to [0, 100]
    """
    score = 50

    court = (source.court or "").lower()
    for keyword, weight in COURT_WEIGHTS:
        if keyword in court:
            score += weight
            break

    if source.document_type:
        score += DOCUMENT_TYPE_WEIGHTS.get(source.document_type, 0)

    if source.jurisdiction:
        score += 15 if source.jurisdiction.lower() == "federal" else 10

    year = source.effective_year
    if year is not None:
        age = _reference_year(reference_year) - year
        if age <= 5:
            score += 10
        elif age <= 10:
            score += 5
        elif age > 20:
            score -= 10

    return max(0, min(100, score))


def source_quality_rubric(source: Source) -> int:
    """Metadata completeness rubric used for the source-quality component."""
    score = 50
    if source.court:
        score += 20
    if source.jurisdiction:
        score += 10
    if source.citation:
        score += 15
    if source.practice_area:
        score += 5
    return min(100, score)


def source_recency(source: Source, reference_year: Optional[int] = None) -> int:
    """Recency score: 100 minus 5 per year of age, floored at 0."""
    return max(0, 100 - 5 * source_age(source, reference_year))


def source_hyperlink(source: Source, content_hash: str) -> str:
    """Link to the source, or to the verified internal document view."""
    if source.url:
        return source.url
    return f"/documents/{source.id}?verified=true&hash={content_hash[:16]}"
