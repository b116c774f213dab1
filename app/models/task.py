"""
Project Task Assistant
Task domain model.

Models:
    - Task: a single work item on a project board

Status and priority always hold one of the canonical values below; phase
labels such as "Verification" or "Sprint Backlog" are display concerns
resolved by app.ai.assistants.vocabulary.
"""

from datetime import datetime, timezone

from app.models import db

# ── Shared constants ─────────────────────────────────────────────────────

TASK_STATUSES = ("todo", "inprogress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
OPEN_STATUSES = ("todo", "inprogress", "review")


class Task(db.Model):
    """
    Work item on a project board.

    Lifecycle: todo → inprogress → review → done
    """

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")

    status = db.Column(
        db.String(20), nullable=False, default="todo",
        comment="todo | inprogress | review | done",
    )
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="low | medium | high | urgent",
    )

    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    creator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
        comment="Set once at creation",
    )

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True, comment="Due date")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="tasks")
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    creator = db.relationship("User", foreign_keys=[creator_id])

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('todo','inprogress','review','done')",
            name="ck_task_status",
        ),
        db.CheckConstraint(
            "priority IN ('low','medium','high','urgent')",
            name="ck_task_priority",
        ),
        db.Index("ix_tasks_project_status", "project_id", "status"),
    )

    def is_overdue(self, today=None) -> bool:
        """End date in the past while the task is still open."""
        if self.end_date is None or self.status not in OPEN_STATUSES:
            return False
        today = today or datetime.now(timezone.utc).date()
        return self.end_date < today

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "assignee": self.assignee.name if self.assignee else None,
            "creator_id": self.creator_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task #{self.id}: {self.title[:40]}>"
