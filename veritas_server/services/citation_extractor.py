"""
Services - Citation Extractor

Finds citation-like spans in generated text: [Source N] markers and
common U.S. legal citation formats.
"""

import re
from typing import List, Optional, Sequence, Tuple

from veritas_server.schemas.citation import Citation, CitationKind


CONTEXT_WINDOW = 100

# Order matters: a later pattern never claims text an earlier one matched
CITATION_PATTERNS: Tuple[Tuple[CitationKind, "re.Pattern[str]"], ...] = (
    ("source_marker", re.compile(r"\[Source\s+(\d+)\]", re.IGNORECASE)),
    (
        "reporter",
        re.compile(r"\b\d+\s+U\.S\.\s+\d+(?:\s*\(\d{4}\))?"),
    ),
    (
        "reporter",
        re.compile(
            r"\b\d+\s+F\.(?:\s?Supp\.(?:\s?[23]d)?|\s?[234]d)?\s+\d+"
            r"(?:\s*\([^)]*?\d{4}\))?"
        ),
    ),
    (
        "case_name",
        re.compile(
            r"\b[A-Z][\w&'-]*(?:\s+(?:of|and|&)\s+[A-Z][\w&'-]*|\s+[A-Z][\w&'-]*)*"
            r"\s+v\.\s+"
            r"[A-Z][\w&'-]*(?:\s+(?:of|and|&)\s+[A-Z][\w&'-]*|\s+[A-Z][\w&'-]*)*"
        ),
    ),
    (
        "statute",
        re.compile(r"\b\d+\s+U\.S\.C\.?\s*§+\s*\d+[\w\-()]*"),
    ),
    (
        "regulation",
        re.compile(r"\b\d+\s+C\.F\.R\.?\s*§+\s*\d+(?:\.\d+)*[a-z]?(?:\([\w]+\))*"),
    ),
)

# Sentence-initial words swallowed by the case-name pattern
_LEADING_NOISE = {"in", "see", "under", "per", "cf.", "as", "also", "the", "following"}

# Tokens ending in a period that do not end a sentence
_ABBREVIATIONS = {
    "v", "u.s", "f", "supp", "2d", "3d", "4d", "c.f.r", "u.s.c", "no",
    "inc", "co", "corp", "ltd", "e.g", "i.e", "cf", "id", "dept", "st",
    "mr", "ms", "dr", "jr", "sec", "art",
}

_BOUNDARY = re.compile(r"[.!?]+[\"')\]]*\s+")
_MARKER = CITATION_PATTERNS[0][1]


def strip_markers(text: str) -> str:
    """Remove [Source N] markers and tidy the spacing they leave."""
    cleaned = _MARKER.sub("", text)
    cleaned = re.sub(r"\s+([.,;:!?])", r"\1", cleaned)
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def sentence_spans(
    text: str,
    protected: Sequence[Tuple[int, int]] = (),
) -> List[Tuple[int, int]]:
    """
    Split text into (start, end) sentence spans.

    Periods inside `protected` spans (typically citations) and after
    common legal abbreviations are not treated as boundaries.
    """
    spans = []
    start = 0
    for match in _BOUNDARY.finditer(text):
        stop = match.start()
        if any(s <= stop < e for s, e in protected):
            continue
        preceding = text[start:stop].rsplit(None, 1)
        token = preceding[-1].lower().rstrip(".") if preceding else ""
        if token in _ABBREVIATIONS or (len(token) == 1 and token.isalpha()):
            continue
        spans.append((start, match.end()))
        start = match.end()
    if start < len(text) and text[start:].strip():
        spans.append((start, len(text)))
    return spans


def split_sentences(text: str) -> List[str]:
    """Sentences of `text`, citation periods respected."""
    protected = [(c.start, c.end) for c in CitationExtractor().extract(text)]
    return [text[s:e].strip() for s, e in sentence_spans(text, protected) if text[s:e].strip()]


class CitationExtractor:
    """Extracts citations from generated answers in document order."""

    def __init__(self, context_window: int = CONTEXT_WINDOW):
        self.context_window = context_window

    def extract(self, text: str) -> List[Citation]:
        """
        Extract all citations from text.

        Args:
            text: Generated answer

        Returns:
            Citations ordered by position with ids citation_1..citation_n
        """
        if not text:
            return []

        matches: List[Tuple[int, int, CitationKind, str, Optional[int]]] = []
        for kind, pattern in CITATION_PATTERNS:
            for m in pattern.finditer(text):
                start, end = m.start(), m.end()
                raw = m.group(0)
                if kind == "case_name":
                    start, raw = self._trim_case_name(start, raw)
                    if " v. " not in raw:
                        continue
                if any(start < e and s < end for s, e, *_ in matches):
                    continue
                index = int(m.group(1)) if kind == "source_marker" else None
                matches.append((start, end, kind, raw, index))

        matches.sort(key=lambda m: m[0])
        protected = [(s, e) for s, e, *_ in matches]
        sentences = sentence_spans(text, protected)

        citations = []
        for n, (start, end, kind, raw, index) in enumerate(matches, start=1):
            citations.append(Citation(
                id=f"citation_{n}",
                kind=kind,
                text=raw,
                start=start,
                end=end,
                context=text[max(0, start - self.context_window):end + self.context_window],
                claim_text=self._claim_for(text, sentences, start),
                source_index=index,
            ))
        return citations

    @staticmethod
    def _trim_case_name(start: int, raw: str) -> Tuple[int, str]:
        """Drop sentence-initial noise words ("In", "See") from a case name."""
        words = raw.split(" ")
        while len(words) > 3 and words[0].lower() in _LEADING_NOISE:
            start += len(words[0]) + 1
            words = words[1:]
        return start, " ".join(words)

    @staticmethod
    def _claim_for(text: str, sentences: List[Tuple[int, int]], position: int) -> str:
        for s, e in sentences:
            if s <= position < e:
                return strip_markers(text[s:e])
        return strip_markers(text)
