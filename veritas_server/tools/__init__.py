"""
Tools Module - MCP Tool Implementations

MCP tools for grounded question answering and human review.
"""

from veritas_server.tools import ask_question
from veritas_server.tools import submit_review
from veritas_server.tools import review_status
from veritas_server.tools import escalate_overdue_reviews

__all__ = [
    "ask_question",
    "submit_review",
    "review_status",
    "escalate_overdue_reviews",
]
