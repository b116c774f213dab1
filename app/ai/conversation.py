"""
Project Task Assistant
Conversation Manager.

Per-project, per-session message history for the assistant:
    - record user / assistant turns
    - recent history as [{role, content}] for the compiler's lookback
    - full session listing for the history endpoint
"""

import logging

from app.models import db
from app.models.ai import MESSAGE_KINDS, MESSAGE_ROLES, AssistantMessage

logger = logging.getLogger(__name__)

# Maximum turns handed back to the compiler / router
MAX_HISTORY_MESSAGES = 20
DEFAULT_SESSION = "default"


class ConversationManager:
    """Stores and reads assistant turns for one project."""

    def __init__(self, project_id: int, session_id: str | None = None,
                 max_history: int = MAX_HISTORY_MESSAGES):
        self.project_id = project_id
        self.session_id = (session_id or DEFAULT_SESSION)[:64]
        self.max_history = max_history

    def _query(self):
        return AssistantMessage.query.filter_by(project_id=self.project_id, session_id=self.session_id)

    def record(self, role: str, content: str, *, kind: str = "message",
               user_id: int | None = None) -> AssistantMessage:
        """Add one turn. Flushes only; the caller commits."""
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid role: {role}")
        msg = AssistantMessage(
            project_id=self.project_id,
            session_id=self.session_id,
            user_id=user_id,
            role=role,
            kind=kind if kind in MESSAGE_KINDS else "message",
            content=content or "",
        )
        db.session.add(msg)
        db.session.flush()
        return msg

    def recent_history(self, limit: int | None = None) -> list[dict]:
        """Last ``limit`` turns, oldest first, as {role, content}."""
        limit = limit or self.max_history
        rows = (
            self._query()
            .order_by(AssistantMessage.created_at.desc(), AssistantMessage.id.desc())
            .limit(limit)
            .all()
        )
        return [{"role": m.role, "content": m.content} for m in reversed(rows)]

    def list_messages(self) -> list[dict]:
        rows = self._query().order_by(AssistantMessage.created_at.asc(), AssistantMessage.id.asc()).all()
        return [m.to_dict() for m in rows]
