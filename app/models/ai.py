"""
Project Task Assistant
Assistant conversation models.

Models:
    - AssistantMessage: one turn of an assistant conversation, scoped to a
      project and an opaque client session id
"""

from datetime import datetime, timezone

from app.models import db

MESSAGE_ROLES = {"user", "assistant"}
MESSAGE_KINDS = {"message", "information", "command", "error"}


class AssistantMessage(db.Model):
    """Individual message within a project assistant conversation."""

    __tablename__ = "assistant_messages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    session_id = db.Column(db.String(64), nullable=False, default="default",
                           comment="Client-supplied conversation key")
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    role = db.Column(db.String(20), nullable=False, comment="user | assistant")
    kind = db.Column(db.String(20), nullable=False, default="message",
                     comment="message | information | command | error")
    content = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('user','assistant')",
            name="ck_assistant_msg_role",
        ),
        db.Index("ix_assistant_msg_session", "project_id", "session_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "role": self.role,
            "kind": self.kind,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AssistantMessage project={self.project_id} session={self.session_id} role={self.role}>"
