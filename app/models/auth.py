"""
People on a project: users and project memberships.

Tasks and projects only reference users. A project's owner counts as a
member without a ProjectMember row (see Project.is_member).
"""

from datetime import datetime, timezone

from app.models import db


class User(db.Model):
    """Someone a task can be created by or assigned to."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, comment="Display name used for @mentions and fuzzy matching")
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    memberships = db.relationship(
        "ProjectMember", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<User {self.id}: {self.name}>"


class ProjectMember(db.Model):
    """Membership row; one per (project, user)."""

    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    joined_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", back_populates="memberships")

    def __repr__(self):
        return f"<ProjectMember project={self.project_id} user={self.user_id}>"
