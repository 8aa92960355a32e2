"""
Services - Human Review Gate

Decides when an answer needs human adjudication and manages the review
task lifecycle: pending -> in_progress -> completed | escalated.
Terminal tasks never reopen.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from veritas_server.config import get_settings
from veritas_server.schemas.review import (
    ReviewDecision,
    ReviewMetrics,
    ReviewTask,
    Priority,
    TaskType,
)
from veritas_server.schemas.validation import ConfidenceScore, FlaggedContent
from veritas_server.services.notifier import LogNotifier, Notifier
from veritas_server.services.record_store import RecordStore

logger = logging.getLogger(__name__)


class ReviewTaskNotFoundError(KeyError):
    """No review task with the given id."""


class ReviewTransitionError(ValueError):
    """Requested lifecycle change is not allowed from the task's status."""


DECISION_STATUS = {
    "approve": "completed",
    "reject": "completed",
    "modify": "completed",
    "escalate": "escalated",
}


class HumanReviewGate:
    """Threshold rules for routing answers to human review."""

    def __init__(self, threshold: int = 75):
        self.threshold = threshold

    def requires_review(
        self,
        confidence: ConfidenceScore,
        flags: Sequence[FlaggedContent],
    ) -> bool:
        """Below threshold, any critical flag, or three or more high flags."""
        if confidence.overall < self.threshold:
            return True
        if any(f.severity == "critical" for f in flags):
            return True
        return sum(1 for f in flags if f.severity == "high") >= 3

    @staticmethod
    def determine_priority(
        confidence: ConfidenceScore,
        flags: Sequence[FlaggedContent],
    ) -> Priority:
        if confidence.overall < 25 or any(f.severity == "critical" for f in flags):
            return "urgent"
        if confidence.overall < 50 or any(f.severity == "high" for f in flags):
            return "high"
        return "medium"

    @staticmethod
    def determine_task_type(
        confidence: ConfidenceScore,
        flags: Sequence[FlaggedContent],
    ) -> TaskType:
        if any(f.requires_removal for f in flags):
            return "correction"
        if confidence.overall < 50:
            return "validation"
        return "review"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService:
    """Creates, transitions, and reports on review tasks."""

    TASKS = "review_tasks"
    DECISIONS = "review_decisions"

    def __init__(
        self,
        store: RecordStore,
        notifier: Optional[Notifier] = None,
        settings=None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.gate = HumanReviewGate(self.settings.review.confidence_threshold)

    async def open_task(
        self,
        content: str,
        confidence: ConfidenceScore,
        flags: Sequence[FlaggedContent],
        query: str = "",
        validation_record_id: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> ReviewTask:
        """
        Open a new pending review task for an answer.

        The task is returned even if persisting it fails; the failure is
        logged for later reconciliation.
        """
        now = self.clock()
        task = ReviewTask(
            id=f"hitl_{uuid.uuid4().hex[:12]}",
            task_type=self.gate.determine_task_type(confidence, flags),
            priority=self.gate.determine_priority(confidence, flags),
            content=content,
            query=query,
            confidence=confidence,
            flagged_issues=list(flags),
            assigned_to=self.settings.review.default_assignee,
            deadline=now + timedelta(hours=self.settings.review.sla_hours),
            created_at=now,
            validation_record_id=validation_record_id,
            metadata=metadata or {},
        )

        logger.info(f"Opening review task {task.id} ({task.priority}, {task.task_type})")
        try:
            self.store.insert(self.TASKS, task.id, task.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Failed to persist review task {task.id}: {e!r}")

        await self._notify("created", task)
        return task

    def get_task(self, task_id: str) -> ReviewTask:
        record = self.store.get(self.TASKS, task_id)
        if record is None:
            raise ReviewTaskNotFoundError(task_id)
        return ReviewTask.model_validate(record)

    def claim(self, task_id: str, reviewer_id: str) -> ReviewTask:
        """Move a pending task to in_progress for a reviewer."""
        task = self.get_task(task_id)
        if task.status != "pending":
            raise ReviewTransitionError(
                f"Task {task_id} is {task.status}; only pending tasks can be claimed"
            )
        task = task.model_copy(update={"status": "in_progress", "assigned_to": reviewer_id})
        self._save(task)
        return task

    async def submit_review(self, task_id: str, decision: ReviewDecision) -> ReviewTask:
        """
        Apply a reviewer's decision.

        Args:
            task_id: Task to decide
            decision: Reviewer decision

        Returns:
            The updated task (completed or escalated)

        Raises:
            ReviewTaskNotFoundError: Unknown task id
            ReviewTransitionError: Task already completed or escalated
        """
        task = self.get_task(task_id)
        if task.is_terminal:
            raise ReviewTransitionError(
                f"Task {task_id} is already {task.status}"
            )

        status = DECISION_STATUS[decision.decision]
        task = task.model_copy(update={
            "status": status,
            "completed_at": decision.decided_at,
        })

        self.store.insert(
            self.DECISIONS,
            f"{task_id}:{decision.decided_at.isoformat()}",
            {"task_id": task_id, **decision.model_dump(mode="json")},
        )
        self._save(task)
        logger.info(f"Task {task_id} {status} by {decision.reviewer_id} ({decision.decision})")

        await self._notify(status, task)
        return task

    async def handle_deadline_breach(
        self,
        task_id: str,
        now: Optional[datetime] = None,
    ) -> ReviewTask:
        """Escalate a task whose SLA deadline has passed; otherwise no-op."""
        now = now or self.clock()
        task = self.get_task(task_id)
        if task.is_terminal or now <= task.deadline:
            return task

        task = task.model_copy(update={
            "status": "escalated",
            "metadata": {**task.metadata, "escalation_reason": "sla_breach"},
        })
        self._save(task)
        logger.warning(f"Task {task_id} escalated after missing deadline {task.deadline.isoformat()}")
        await self._notify("escalated", task)
        return task

    async def escalate_overdue(self, now: Optional[datetime] = None) -> List[ReviewTask]:
        """Escalate every open task past its deadline."""
        now = now or self.clock()
        escalated = []
        for task in self.pending_tasks():
            if now > task.deadline:
                escalated.append(await self.handle_deadline_breach(task.id, now))
        return escalated

    def pending_tasks(self, assignee: Optional[str] = None) -> List[ReviewTask]:
        """Open tasks, most urgent first then earliest deadline."""
        order = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
        tasks = [
            ReviewTask.model_validate(r)
            for r in self.store.list(self.TASKS)
            if r.get("status") in ("pending", "in_progress")
        ]
        if assignee:
            tasks = [t for t in tasks if t.assigned_to == assignee]
        return sorted(tasks, key=lambda t: (order[t.priority], t.deadline))

    def metrics(self) -> ReviewMetrics:
        """Task counts, rates, and per-reviewer performance."""
        now = self.clock()
        tasks = [ReviewTask.model_validate(r) for r in self.store.list(self.TASKS)]
        decisions = [ReviewDecision.model_validate(r) for r in self.store.list(self.DECISIONS)]

        total = len(tasks)
        open_tasks = [t for t in tasks if not t.is_terminal]
        completed = [t for t in tasks if t.status == "completed"]
        escalated = [t for t in tasks if t.status == "escalated"]

        resolution_hours = [
            (t.completed_at - t.created_at).total_seconds() / 3600
            for t in completed
            if t.completed_at is not None
        ]

        performance: Dict[str, Dict[str, float]] = {}
        for d in decisions:
            perf = performance.setdefault(
                d.reviewer_id,
                {"total_reviews": 0, "approved": 0, "average_minutes": 0.0, "approval_rate": 0.0},
            )
            perf["total_reviews"] += 1
            n = perf["total_reviews"]
            perf["average_minutes"] = (perf["average_minutes"] * (n - 1) + d.time_spent_minutes) / n
            if d.decision == "approve":
                perf["approved"] += 1
            perf["approval_rate"] = round(perf["approved"] / n * 100, 1)

        approvals = sum(1 for d in decisions if d.decision == "approve")
        return ReviewMetrics(
            total_tasks=total,
            pending_tasks=len(open_tasks),
            completed_tasks=len(completed),
            escalated_tasks=len(escalated),
            overdue_tasks=sum(1 for t in open_tasks if now > t.deadline),
            escalation_rate=round(len(escalated) / total * 100, 1) if total else 0.0,
            approval_rate=round(approvals / len(decisions) * 100, 1) if decisions else 0.0,
            average_resolution_hours=(
                round(sum(resolution_hours) / len(resolution_hours), 2)
                if resolution_hours else 0.0
            ),
            reviewer_performance=performance,
        )

    def _save(self, task: ReviewTask) -> None:
        self.store.update(self.TASKS, task.id, task.model_dump(mode="json"))

    async def _notify(self, event: str, task: ReviewTask) -> None:
        try:
            await self.notifier.notify(event, task)
        except Exception as e:
            logger.warning(f"Notification '{event}' for task {task.id} failed: {e!r}")
