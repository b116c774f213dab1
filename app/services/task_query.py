"""Task query service: Filters → ordered, optionally windowed task set.

Read-only. Every function here issues SELECTs only; the plan executor is the
single writer.

Filter keys (all optional):
    ids, title_hints, title_contains, description_contains, status, priority,
    overdue, unassigned, assigned_to_hint, due_before, due_after, due_on,
    created_before, created_after, order_by, order, limit, all

Applied in that order. ``all`` selects everything and is ignored whenever
``assigned_to_hint`` is present. An unresolvable assignee hint or a set of
title hints that resolves to nothing yields an empty result (fail safe).
"""
import logging
from datetime import datetime, time, timedelta

from sqlalchemy import case, or_

from app.ai.assistants.entity_matcher import EntityMatcher
from app.models import db
from app.models.task import OPEN_STATUSES, TASK_PRIORITIES, TASK_STATUSES, Task
from app.utils.helpers import parse_relative_date, utc_today

logger = logging.getLogger(__name__)

DEFAULT_ORDER_BY = "created_at"
ORDERABLE_FIELDS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "id": Task.id,
    "title": Task.title,
    "start_date": Task.start_date,
    "end_date": Task.end_date,
    "due_date": Task.end_date,
    "status": case({s: i for i, s in enumerate(TASK_STATUSES)}, value=Task.status),
    "priority": case({p: i for i, p in enumerate(TASK_PRIORITIES)}, value=Task.priority),
}


def _as_list(value) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v not in (None, "")]
    return [value]


def _day_start(d) -> datetime:
    return datetime.combine(d, time.min)


class TaskQueryBuilder:
    """Builds task queries for one project."""

    def __init__(self, project, actor_id: int | None = None, matcher: EntityMatcher | None = None):
        self.project = project
        self.actor_id = actor_id
        self.matcher = matcher or EntityMatcher(project, actor_id)

    def query(self, filters: dict | None):
        """SQLAlchemy query for ``filters``, or None when the result is provably empty."""
        filters = filters or {}
        q = Task.query.filter(Task.project_id == self.project.id)

        ids = []
        for raw in _as_list(filters.get("ids")):
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                continue
        if _as_list(filters.get("ids")) and not ids:
            return None
        if ids:
            q = q.filter(Task.id.in_(ids))

        hints = _as_list(filters.get("title_hints"))
        if hints:
            resolved = self.matcher.resolve_titles(hints)
            if not resolved:
                return None
            q = q.filter(Task.id.in_(resolved))

        title_terms = _as_list(filters.get("title_contains"))
        if title_terms:
            q = q.filter(or_(*[Task.title.icontains(t, autoescape=True) for t in title_terms]))
        desc_terms = _as_list(filters.get("description_contains"))
        if desc_terms:
            q = q.filter(or_(*[Task.description.icontains(t, autoescape=True) for t in desc_terms]))

        if filters.get("status"):
            q = q.filter(Task.status == filters["status"])
        if filters.get("priority"):
            q = q.filter(Task.priority == filters["priority"])

        if filters.get("overdue"):
            q = q.filter(
                Task.end_date.isnot(None),
                Task.end_date < utc_today(),
                Task.status.in_(OPEN_STATUSES),
            )
        if filters.get("unassigned"):
            q = q.filter(Task.assignee_id.is_(None))
        if filters.get("assigned_to_hint"):
            assignee_id = self.matcher.resolve_assignee(filters["assigned_to_hint"])
            if assignee_id is None:
                logger.info("Assignee hint %r unresolved; matching nothing",
                            filters["assigned_to_hint"])
                return None
            q = q.filter(Task.assignee_id == assignee_id)

        due_before = parse_relative_date(filters.get("due_before"))
        due_after = parse_relative_date(filters.get("due_after"))
        due_on = parse_relative_date(filters.get("due_on"))
        if due_before:
            q = q.filter(Task.end_date.isnot(None), Task.end_date <= due_before)
        if due_after:
            q = q.filter(Task.end_date.isnot(None), Task.end_date >= due_after)
        if due_on:
            q = q.filter(Task.end_date == due_on)

        created_before = parse_relative_date(filters.get("created_before"))
        created_after = parse_relative_date(filters.get("created_after"))
        if created_before:
            q = q.filter(Task.created_at < _day_start(created_before))
        if created_after:
            q = q.filter(Task.created_at >= _day_start(created_after))

        order_by = filters.get("order_by") or DEFAULT_ORDER_BY
        column = ORDERABLE_FIELDS.get(order_by, ORDERABLE_FIELDS[DEFAULT_ORDER_BY])
        descending = str(filters.get("order") or "asc").lower() == "desc"
        if descending:
            q = q.order_by(column.desc(), Task.id.desc())
        else:
            q = q.order_by(column.asc(), Task.id.asc())

        limit = filters.get("limit")
        if limit:
            try:
                q = q.limit(max(1, int(limit)))
            except (TypeError, ValueError):
                pass
        return q

    def build(self, filters: dict | None) -> list:
        q = self.query(filters)
        return [] if q is None else q.all()

    def count(self, filters: dict | None) -> int:
        return len(self.build(filters))


# ── Aggregates ────────────────────────────────────────────────────────────────

def count_tasks(project) -> int:
    return Task.query.filter_by(project_id=project.id).count()


def count_overdue(project) -> int:
    return Task.query.filter(
        Task.project_id == project.id,
        Task.status.in_(OPEN_STATUSES),
        Task.end_date.isnot(None),
        Task.end_date < utc_today(),
    ).count()


def count_due_between(project, start, end, *, open_only: bool = True) -> int:
    """Tasks with an end date in [start, end] (inclusive)."""
    q = Task.query.filter(
        Task.project_id == project.id,
        Task.end_date.isnot(None),
        Task.end_date >= start,
        Task.end_date <= end,
    )
    if open_only:
        q = q.filter(Task.status.in_(OPEN_STATUSES))
    return q.count()


def tasks_created_between(project, start, end) -> list:
    """Tasks created on days in [start, end] (inclusive), oldest first."""
    return (
        Task.query.filter(
            Task.project_id == project.id,
            Task.created_at >= _day_start(start),
            Task.created_at < _day_start(end + timedelta(days=1)),
        )
        .order_by(Task.created_at.asc(), Task.id.asc())
        .all()
    )


def build_snapshot(project) -> dict:
    """
    Aggregate view of the project's tasks, recomputed on every call.

    Returns:
        {"total", "by_status": {todo, inprogress, review, done},
         "by_priority": {low, medium, high, urgent}, "overdue"}
    """
    by_status = {s: 0 for s in TASK_STATUSES}
    for status, n in (
        db.session.query(Task.status, db.func.count(Task.id))
        .filter(Task.project_id == project.id)
        .group_by(Task.status)
        .all()
    ):
        if status in by_status:
            by_status[status] = n

    by_priority = {p: 0 for p in TASK_PRIORITIES}
    for priority, n in (
        db.session.query(Task.priority, db.func.count(Task.id))
        .filter(Task.project_id == project.id)
        .group_by(Task.priority)
        .all()
    ):
        if priority in by_priority:
            by_priority[priority] = n

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_priority": by_priority,
        "overdue": count_overdue(project),
    }
