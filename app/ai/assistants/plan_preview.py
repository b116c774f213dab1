"""
Project Task Assistant
Preview renderer.

preview(project, plan) → str

The confirmation text shown before anything is executed. Statuses are
rendered in the project's own phase vocabulary ("Verification" on a
waterfall board) and every bulk preview states how many tasks the plan
will touch, window (limit) included.
"""

from app.ai.assistants.entity_matcher import EntityMatcher
from app.ai.assistants.plan import Plan, PlanType
from app.ai.assistants.vocabulary import StatusVocabulary
from app.models import db
from app.models.task import Task
from app.services.task_query import TaskQueryBuilder, count_overdue, count_tasks

_HINT_LABELS = {"__me__": "you", "me": "you", "myself": "you", "__owner__": "the project owner"}


class PreviewRenderer:
    def __init__(self, project, actor_id: int | None = None, matcher: EntityMatcher | None = None):
        self.project = project
        self.vocab = StatusVocabulary.for_project(project)
        self.matcher = matcher or EntityMatcher(project, actor_id)
        self.query = TaskQueryBuilder(project, actor_id, self.matcher)

    # ── Fragments ─────────────────────────────────────────────────────────

    def _phase(self, status: str) -> str:
        return self.vocab.label(status)

    def _person(self, hint: str) -> str:
        label = _HINT_LABELS.get(str(hint).lower())
        if label:
            return label
        user_id = self.matcher.resolve_assignee(hint)
        return self.matcher.assignee_name(user_id) or str(hint)

    def _task_ref(self, task_id: int | None) -> str:
        task = db.session.get(Task, task_id) if task_id else None
        if task is None or task.project_id != self.project.id:
            return f"task #{task_id}"
        return f'task #{task.id} "{task.title}"'

    def describe_changes(self, changes: dict) -> str:
        pieces = []
        if changes.get("title"):
            pieces.append(f'rename to "{changes["title"]}"')
        if changes.get("status"):
            pieces.append(f'set status to "{self._phase(changes["status"])}"')
        if changes.get("priority"):
            pieces.append(f'set priority to {changes["priority"]}')
        if changes.get("assignee_hint"):
            pieces.append(f'assign to "{self._person(changes["assignee_hint"])}"')
        if changes.get("start_date"):
            pieces.append(f'set start date to {changes["start_date"]}')
        if changes.get("end_date"):
            pieces.append(f'set due date to {changes["end_date"]}')
        if changes.get("description"):
            pieces.append("update the description")
        return ", ".join(pieces) if pieces else "make changes"

    def describe_filters(self, filters: dict) -> str:
        parts = []
        if filters.get("ids"):
            parts.append("with ids " + ", ".join(f"#{i}" for i in filters["ids"]))
        if filters.get("title_hints"):
            parts.append("titled " + " or ".join(f'"{h}"' for h in filters["title_hints"]))
        if filters.get("title_contains"):
            parts.append("with " + " or ".join(f'"{t}"' for t in filters["title_contains"]) + " in the title")
        if filters.get("description_contains"):
            parts.append("with " + " or ".join(f'"{t}"' for t in filters["description_contains"])
                         + " in the description")
        if filters.get("status"):
            parts.append(f'in "{self._phase(filters["status"])}"')
        if filters.get("priority"):
            parts.append(f'with {filters["priority"]} priority')
        if filters.get("overdue"):
            parts.append("that are overdue")
        if filters.get("unassigned"):
            parts.append("that are unassigned")
        if filters.get("assigned_to_hint"):
            parts.append(f'assigned to "{self._person(filters["assigned_to_hint"])}"')
        if filters.get("due_on"):
            parts.append(f'due on {filters["due_on"]}')
        if filters.get("due_after") and filters.get("due_before"):
            parts.append(f'due between {filters["due_after"]} and {filters["due_before"]}')
        elif filters.get("due_before"):
            parts.append(f'due by {filters["due_before"]}')
        elif filters.get("due_after"):
            parts.append(f'due on or after {filters["due_after"]}')
        if filters.get("created_after"):
            parts.append(f'created since {filters["created_after"]}')
        if filters.get("created_before"):
            parts.append(f'created before {filters["created_before"]}')

        scope = f'({" and ".join(parts)})' if parts else ("on ALL tasks" if filters.get("all") else "")
        if filters.get("limit"):
            which = "last" if filters.get("order") == "desc" else "first"
            window = f'the {which} {filters["limit"]} by {filters.get("order_by", "created_at").replace("_", " ")}'
            scope = f"{scope}, {window}" if scope else window
        return scope

    def _bulk_head(self, filters: dict) -> str:
        count = self.query.count(filters)
        scope = self.describe_filters(filters)
        return f"This will apply to {count} task(s)" + (f" {scope}" if scope else "")

    # ── Per-type renderers ────────────────────────────────────────────────

    def _create(self, plan: Plan) -> str:
        payload = plan.payload
        text = f'Create a new task "{payload.get("title", "Untitled")}" in "{self._phase(payload.get("status", "todo"))}"'
        extras = []
        if payload.get("priority") and payload["priority"] != "medium":
            extras.append(f'{payload["priority"]} priority')
        if payload.get("end_date"):
            extras.append(f'due {payload["end_date"]}')
        if payload.get("assignee_hint"):
            extras.append(f'assigned to "{self._person(payload["assignee_hint"])}"')
        if extras:
            text += " with " + ", ".join(extras)
        return text + "."

    def _task_update(self, plan: Plan) -> str:
        return f"On {self._task_ref(plan.task_id)}: {self.describe_changes(plan.changes)}."

    def _task_delete(self, plan: Plan) -> str:
        return f"Permanently delete {self._task_ref(plan.task_id)}."

    def _bulk_update(self, plan: Plan) -> str:
        return f"{self._bulk_head(plan.filters)}: {self.describe_changes(plan.updates)}."

    def _bulk_assign(self, plan: Plan) -> str:
        return f'{self._bulk_head(plan.filters)}: assign to "{self._person(plan.assignee or "")}".'

    def _bulk_delete(self, plan: Plan) -> str:
        count = self.query.count(plan.filters)
        scope = self.describe_filters(plan.filters)
        return f"This will permanently delete {count} task(s)" + (f" {scope}" if scope else "") + "."

    def _bulk_delete_overdue(self, plan: Plan) -> str:
        return f"This will permanently delete {count_overdue(self.project)} overdue task(s)."

    def _bulk_delete_all(self, plan: Plan) -> str:
        return f"This will permanently delete ALL {count_tasks(self.project)} task(s) in this project."

    RENDERERS = {
        PlanType.CREATE_TASK: _create,
        PlanType.TASK_UPDATE: _task_update,
        PlanType.TASK_DELETE: _task_delete,
        PlanType.BULK_UPDATE: _bulk_update,
        PlanType.BULK_ASSIGN: _bulk_assign,
        PlanType.BULK_DELETE: _bulk_delete,
        PlanType.BULK_DELETE_OVERDUE: _bulk_delete_overdue,
        PlanType.BULK_DELETE_ALL: _bulk_delete_all,
    }

    def render(self, plan: Plan) -> str:
        return self.RENDERERS[plan.type](self, plan)


def preview(project, plan: Plan, actor_id: int | None = None) -> str:
    return PreviewRenderer(project, actor_id).render(plan)
