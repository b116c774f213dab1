"""
Plan execution service.

Applies a previously validated Plan to the task table and reports what
happened. This is the only write path of the assistant.

    PlanExecutor(project, actor_id).execute(plan)
        → {"type": "information" | "error", "message", "affected_count", "snapshot"}

Transaction policy differs from the rest of the services layer: every
affected row is committed on its own, so a bulk operation that fails half
way keeps the rows already written and says so in its message.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.ai.assistants.entity_matcher import EntityMatcher
from app.ai.assistants.plan import Plan, PlanType
from app.core.exceptions import NotFoundError, PlanExecutionError
from app.middleware.logging_config import log_context
from app.models import db
from app.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from app.services.task_query import TaskQueryBuilder, build_snapshot
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

MSG_GENERIC_FAILURE = "Something went wrong. Please adjust and try again."
MSG_NO_CHANGES = "No changes applied."

WRITABLE_FIELDS = ("title", "description", "status", "priority", "start_date", "end_date")


class PlanExecutor:
    """Executes plans for one project on behalf of one actor."""

    def __init__(self, project, actor_id: int | None, matcher: EntityMatcher | None = None):
        self.project = project
        self.actor_id = actor_id
        self.matcher = matcher or EntityMatcher(project, actor_id)
        self.query = TaskQueryBuilder(project, actor_id, self.matcher)

    # ── Field writes ──────────────────────────────────────────────────────

    def _resolve_assignee(self, hint: str) -> int:
        user_id = self.matcher.resolve_assignee(hint)
        if user_id is None:
            raise PlanExecutionError(f'Could not find a project member matching "{hint}".')
        return user_id

    def _values(self, fields: dict) -> dict:
        """Plan fields → column values; the assignee is resolved once, up front."""
        values = {}
        for name in WRITABLE_FIELDS:
            if name not in fields or fields[name] in (None, ""):
                continue
            value = fields[name]
            if name in ("start_date", "end_date"):
                value = parse_date(value)
                if value is None:
                    continue
            elif name == "status" and value not in TASK_STATUSES:
                continue
            elif name == "priority" and value not in TASK_PRIORITIES:
                continue
            values[name] = value
        if fields.get("assignee_hint"):
            values["assignee_id"] = self._resolve_assignee(fields["assignee_hint"])
        return values

    @staticmethod
    def _apply(task: Task, values: dict) -> bool:
        """Write the values that differ; True when anything changed."""
        changed = False
        for name, value in values.items():
            if getattr(task, name) != value:
                setattr(task, name, value)
                changed = True
        return changed

    def _owned_task(self, task_id: int | None) -> Task:
        task = db.session.get(Task, task_id) if task_id else None
        if task is None or task.project_id != self.project.id:
            raise NotFoundError(resource="Task", resource_id=task_id, project_id=self.project.id)
        return task

    def _for_each(self, tasks: list, action) -> tuple[int, int]:
        """Run ``action(task) -> bool`` per row with its own commit. Returns (changed, failed)."""
        changed = failed = 0
        ids = [task.id for task in tasks]
        for task_id, task in zip(ids, tasks):
            try:
                if action(task):
                    db.session.commit()
                    changed += 1
            except SQLAlchemyError:
                db.session.rollback()
                failed += 1
                logger.exception("Row %s failed during bulk execution", task_id,
                                 extra=log_context(project_id=self.project.id, stage="execute"))
        return changed, failed

    @staticmethod
    def _with_failures(message: str, failed: int) -> str:
        if failed:
            return f"{message} {failed} task(s) could not be processed."
        return message

    # ── Per-type executors ────────────────────────────────────────────────

    def _create(self, plan: Plan) -> tuple[str, int]:
        payload = plan.payload
        title = (payload.get("title") or "").strip()
        if not title:
            raise PlanExecutionError("A title is required to create a task.")
        values = self._values(payload)
        task = Task(
            project_id=self.project.id,
            creator_id=self.actor_id or self.project.owner_id,
            status=values.pop("status", "todo"),
            priority=values.pop("priority", "medium"),
        )
        self._apply(task, values)
        db.session.add(task)
        db.session.commit()
        return f'Task "{task.title}" created successfully.', 1

    def _task_update(self, plan: Plan) -> tuple[str, int]:
        task = self._owned_task(plan.task_id)
        values = self._values(plan.changes)
        if not self._apply(task, values):
            return MSG_NO_CHANGES, 0
        db.session.commit()
        return f"Task #{task.id} updated successfully.", 1

    def _task_delete(self, plan: Plan) -> tuple[str, int]:
        task = self._owned_task(plan.task_id)
        task_id, title = task.id, task.title
        db.session.delete(task)
        db.session.commit()
        return f'Task #{task_id} "{title}" deleted.', 1

    def _bulk_update(self, plan: Plan) -> tuple[str, int]:
        values = self._values(plan.updates)
        changed, failed = self._for_each(self.query.build(plan.filters),
                                         lambda task: self._apply(task, values))
        message = f"Updated {changed} task(s) successfully." if changed else MSG_NO_CHANGES
        return self._with_failures(message, failed), changed

    def _bulk_assign(self, plan: Plan) -> tuple[str, int]:
        # Unresolved assignee aborts before any row is touched
        user_id = self._resolve_assignee(plan.assignee or "")
        name = self.matcher.assignee_name(user_id) or plan.assignee
        changed, failed = self._for_each(self.query.build(plan.filters),
                                         lambda task: self._apply(task, {"assignee_id": user_id}))
        message = f"Assigned {changed} task(s) to {name}." if changed else MSG_NO_CHANGES
        return self._with_failures(message, failed), changed

    def _delete_rows(self, tasks: list) -> tuple[int, int]:
        def delete(task):
            db.session.delete(task)
            return True
        return self._for_each(tasks, delete)

    def _bulk_delete(self, plan: Plan) -> tuple[str, int]:
        deleted, failed = self._delete_rows(self.query.build(plan.filters))
        return self._with_failures(f"Deleted {deleted} task(s).", failed), deleted

    def _bulk_delete_overdue(self, plan: Plan) -> tuple[str, int]:
        deleted, failed = self._delete_rows(self.query.build({"overdue": True}))
        return self._with_failures(f"Deleted {deleted} overdue task(s).", failed), deleted

    def _bulk_delete_all(self, plan: Plan) -> tuple[str, int]:
        deleted, failed = self._delete_rows(self.query.build({"all": True}))
        return self._with_failures(f"Deleted ALL {deleted} task(s) in this project.", failed), deleted

    EXECUTORS = {
        PlanType.CREATE_TASK: _create,
        PlanType.TASK_UPDATE: _task_update,
        PlanType.TASK_DELETE: _task_delete,
        PlanType.BULK_UPDATE: _bulk_update,
        PlanType.BULK_ASSIGN: _bulk_assign,
        PlanType.BULK_DELETE: _bulk_delete,
        PlanType.BULK_DELETE_OVERDUE: _bulk_delete_overdue,
        PlanType.BULK_DELETE_ALL: _bulk_delete_all,
    }

    # ── Entry point ───────────────────────────────────────────────────────

    def execute(self, plan: Plan) -> dict:
        kind, affected = "information", 0
        try:
            message, affected = self.EXECUTORS[plan.type](self, plan)
        except NotFoundError:
            db.session.rollback()
            kind, message = "error", f"Task #{plan.task_id} was not found in this project."
        except PlanExecutionError as exc:
            db.session.rollback()
            kind, message, affected = "error", str(exc), exc.affected_count
        except Exception:
            db.session.rollback()
            logger.exception("Plan execution failed",
                             extra=log_context(project_id=self.project.id, stage="execute",
                                               plan_type=plan.type.value))
            kind, message = "error", MSG_GENERIC_FAILURE
        else:
            logger.info("Plan executed: %s affected=%d", plan.type.value, affected,
                        extra=log_context(project_id=self.project.id, stage="execute",
                                          plan_type=plan.type.value))
        return {
            "type": kind,
            "message": message,
            "affected_count": affected,
            "snapshot": build_snapshot(self.project),
        }


def execute(project, plan: Plan, actor_id: int | None) -> dict:
    return PlanExecutor(project, actor_id).execute(plan)
