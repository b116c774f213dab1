"""Project domain model: the container a task list and its team belong to."""

from datetime import datetime, timezone

from app.models import db

METHODOLOGIES = ("kanban", "scrum", "agile", "waterfall", "lean")
DEFAULT_METHODOLOGY = "kanban"


class Project(db.Model):
    """A task board run under one delivery methodology."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
    )
    methodology = db.Column(
        db.String(20), nullable=False, default=DEFAULT_METHODOLOGY,
        comment="kanban | scrum | agile | waterfall | lean",
    )
    status_aliases = db.Column(
        db.JSON, nullable=True,
        comment="Project-specific phase label -> canonical status overrides",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    owner = db.relationship("User", foreign_keys=[owner_id])
    memberships = db.relationship(
        "ProjectMember", lazy="dynamic", cascade="all, delete-orphan",
    )
    tasks = db.relationship(
        "Task", back_populates="project", lazy="dynamic", cascade="all, delete-orphan",
    )

    def member_users(self, include_owner: bool = True) -> list:
        """Return formal members, plus the owner unless excluded, without duplicates."""
        users = [m.user for m in self.memberships.all() if m.user is not None]
        if include_owner and self.owner is not None:
            users.insert(0, self.owner)
        seen = set()
        unique = []
        for user in users:
            if user.id in seen:
                continue
            seen.add(user.id)
            unique.append(user)
        return unique

    def is_member(self, user_id: int) -> bool:
        if user_id is None:
            return False
        if self.owner_id == user_id:
            return True
        return self.memberships.filter_by(user_id=user_id).first() is not None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "methodology": self.methodology or DEFAULT_METHODOLOGY,
            "status_aliases": self.status_aliases or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
