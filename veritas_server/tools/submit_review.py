"""
MCP Tool - submit_review

Record a human reviewer's decision on a review task.
"""

from fastmcp import FastMCP
from typing import Literal, Optional

from veritas_server.schemas.review import ReviewDecision
from veritas_server.services.review_gate import ReviewTaskNotFoundError, ReviewTransitionError
from veritas_server.tools.context import get_pipeline

router = FastMCP("submit_review")


@router.tool()
async def submit_review(
    task_id: str,
    decision: Literal["approve", "reject", "modify", "escalate"],
    reviewer_id: str,
    reasoning: str = "",
    modifications: Optional[str] = None,
    confidence_override: Optional[int] = None,
    time_spent_minutes: float = 0.0,
) -> dict:
    """
    Submit a decision for a pending review task.

    Args:
        task_id: Review task ID (from ask_question)
        decision: approve, reject, modify, or escalate
        reviewer_id: Who made the decision
        reasoning: Why
        modifications: Corrected answer text when decision is "modify"
        confidence_override: Reviewer's confidence (0-100)
        time_spent_minutes: Time spent reviewing

    Returns:
        Updated task status, or an error if the task is unknown or closed
    """
    review = ReviewDecision(
        decision=decision,
        reviewer_id=reviewer_id,
        reasoning=reasoning,
        modifications=modifications,
        confidence_override=confidence_override,
        time_spent_minutes=time_spent_minutes,
    )

    try:
        task = await get_pipeline().submit_review(task_id, review)
    except ReviewTaskNotFoundError:
        return {"error": f"Review task not found: {task_id}"}
    except ReviewTransitionError as e:
        return {"error": str(e)}

    return {
        "task_id": task.id,
        "status": task.status,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }
