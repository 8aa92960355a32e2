"""
Schemas - Review Models

Human-in-the-loop review tasks and reviewer decisions.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal, Dict, Any
from datetime import datetime, timezone

from veritas_server.schemas.validation import ConfidenceScore, FlaggedContent


TaskType = Literal["validation", "correction", "review", "approval"]
Priority = Literal["low", "medium", "high", "urgent"]
TaskStatus = Literal["pending", "in_progress", "completed", "escalated"]
DecisionType = Literal["approve", "reject", "modify", "escalate"]
ReviewState = Literal["not_reviewed", "pending_review", "completed", "escalated"]

TERMINAL_STATUSES = ("completed", "escalated")


class ReviewTask(BaseModel):
    """An answer awaiting human adjudication."""
    id: str
    task_type: TaskType
    priority: Priority
    content: str
    query: str = ""
    confidence: ConfidenceScore
    flagged_issues: List[FlaggedContent] = []
    assigned_to: Optional[str] = None
    status: TaskStatus = "pending"
    deadline: datetime
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    completed_at: Optional[datetime] = None
    validation_record_id: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ReviewDecision(BaseModel):
    """A reviewer's decision on a task."""
    decision: DecisionType
    reviewer_id: str
    reasoning: str = ""
    modifications: Optional[str] = None
    confidence_override: Optional[int] = Field(None, ge=0, le=100)
    time_spent_minutes: float = 0.0
    decided_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


def review_state_for(task: Optional[ReviewTask]) -> ReviewState:
    """Map a task's lifecycle status onto the answer-level review state."""
    if task is None:
        return "not_reviewed"
    if task.status == "completed":
        return "completed"
    if task.status == "escalated":
        return "escalated"
    return "pending_review"


class ReviewMetrics(BaseModel):
    """Aggregate statistics over review tasks and decisions."""
    total_tasks: int = 0
    pending_tasks: int = 0
    completed_tasks: int = 0
    escalated_tasks: int = 0
    overdue_tasks: int = 0
    escalation_rate: float = 0.0
    approval_rate: float = 0.0
    average_resolution_hours: float = 0.0
    reviewer_performance: Dict[str, Dict[str, float]] = {}
