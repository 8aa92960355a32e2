"""
MCP Tool - review_status

Inspect one review task or the open review queue.
"""

from fastmcp import FastMCP
from typing import Optional

from veritas_server.schemas.review import review_state_for
from veritas_server.services.review_gate import ReviewTaskNotFoundError
from veritas_server.tools.context import get_pipeline

router = FastMCP("review_status")


@router.tool()
async def review_status(
    task_id: Optional[str] = None,
    assignee: Optional[str] = None,
) -> dict:
    """
    Get review status.

    With a task_id, returns that task. Without one, returns the open
    queue (optionally for one assignee) and review metrics.

    Args:
        task_id: Review task ID
        assignee: Filter the open queue by assignee

    Returns:
        Task details, or queue and metrics
    """
    review = get_pipeline().review

    if task_id:
        try:
            task = review.get_task(task_id)
        except ReviewTaskNotFoundError:
            return {"error": f"Review task not found: {task_id}"}
        return {
            "task_id": task.id,
            "status": task.status,
            "review_state": review_state_for(task),
            "task_type": task.task_type,
            "priority": task.priority,
            "assigned_to": task.assigned_to,
            "deadline": task.deadline.isoformat(),
            "confidence": task.confidence.overall,
            "flags": [f.description for f in task.flagged_issues],
        }

    pending = review.pending_tasks(assignee)
    return {
        "pending": [
            {
                "task_id": t.id,
                "priority": t.priority,
                "task_type": t.task_type,
                "deadline": t.deadline.isoformat(),
                "query": t.query,
            }
            for t in pending
        ],
        "count": len(pending),
        "metrics": review.metrics().model_dump(),
    }
