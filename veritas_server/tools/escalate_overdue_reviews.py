"""
MCP Tool - escalate_overdue_reviews

Escalate review tasks whose SLA deadline has passed.
"""

from fastmcp import FastMCP

from veritas_server.tools.context import get_pipeline

router = FastMCP("escalate_overdue_reviews")


@router.tool()
async def escalate_overdue_reviews() -> dict:
    """
    Escalate every open review task past its deadline.

    Returns:
        IDs of the escalated tasks
    """
    escalated = await get_pipeline().review.escalate_overdue()
    return {
        "escalated": [t.id for t in escalated],
        "count": len(escalated),
    }
