"""
MCP Tool - ask_question

Grounded legal question answering with citation validation.
"""

from fastmcp import FastMCP
from typing import Optional, Dict, Any

from veritas_server.schemas.answer import QueryOptions
from veritas_server.tools.context import get_pipeline

router = FastMCP("ask_question")


@router.tool()
async def ask_question(
    question: str,
    top_k: Optional[int] = None,
    jurisdiction: Optional[str] = None,
    practice_area: Optional[str] = None,
    strict_mode: Optional[bool] = None,
) -> dict:
    """
    Answer a legal question from the indexed sources.

    Every citation in the answer is validated against its source, and
    low-confidence answers are queued for human review.

    Args:
        question: Natural language legal question
        top_k: Number of sources to retrieve (default from settings)
        jurisdiction: Only use sources from this jurisdiction
        practice_area: Only use sources from this practice area
        strict_mode: Apply the stricter publication threshold

    Returns:
        Answer with sources, validated citations, confidence, flags, and
        review status
    """
    criteria: Dict[str, Any] = {}
    if jurisdiction:
        criteria["jurisdiction"] = jurisdiction
    if practice_area:
        criteria["practice_area"] = practice_area

    options = QueryOptions(
        top_k=max(1, min(top_k, 20)) if top_k else None,
        filter=criteria or None,
        strict_mode=strict_mode,
    )
    answer = await get_pipeline().process_query(question, options)

    return {
        "answer": answer.answer,
        "sources": [
            {
                "index": p.index,
                "source_id": p.source.id,
                "title": p.source.title,
                "citation": p.source.citation,
                "url": p.source.url,
                "relevance": round(p.relevance, 4),
            }
            for p in answer.sources
        ],
        "citations": [
            {
                "text": v.original_text,
                "status": v.status,
                "source_id": v.source_id,
                "similarity": v.semantic_similarity,
                "authority": v.authority_score,
                "hyperlink": v.hyperlink,
            }
            for v in answer.citation_validations
        ],
        "confidence": answer.confidence.model_dump(),
        "flags": [f.model_dump() for f in answer.flagged_content],
        "citation_report": answer.citation_report.model_dump(),
        "review_state": answer.review_state,
        "review_task_id": answer.review_task_id,
        "corrected": answer.corrected,
        "validation_record_id": answer.validation_record_id,
        "failure": answer.failure.model_dump() if answer.failure else None,
    }
