"""
Project Task Assistant
Plan validator.

validate(project, plan) → ValidationResult(ok, reason)

Checks a normalized plan against the live project: the selected task
exists, the filters match something, the assignee resolves. The first
failing check wins. Never raises and never writes; ``reason`` is shown to
the user as-is.
"""

import logging

from app.ai.assistants.entity_matcher import EntityMatcher
from app.ai.assistants.plan import Plan, PlanType, ValidationResult
from app.middleware.logging_config import log_context
from app.models import db
from app.models.task import Task
from app.services.task_query import TaskQueryBuilder, count_overdue, count_tasks

logger = logging.getLogger(__name__)

MSG_UNINTELLIGIBLE = "I couldn't understand that command. Please be more specific."
MSG_ID_REQUIRED = "A specific task ID (e.g., #123) is required for this action."
MSG_TASK_NOT_FOUND = "Task #{id} was not found in this project."
MSG_NO_CHANGES = 'Please specify what to change (e.g., "set priority to high").'
MSG_NO_SCOPE = 'Please specify which tasks to affect (e.g., "all overdue tasks").'
MSG_NO_MATCH = "No tasks match the specified filters."
MSG_NO_UPDATES = 'Please specify what to update (e.g., "move to done").'
MSG_NO_ASSIGNEE = "Please specify who to assign the tasks to."
MSG_UNKNOWN_MEMBER = 'Could not find a project member matching "{hint}".'
MSG_NO_UNASSIGNED = "There are no unassigned tasks to assign."
MSG_NO_OVERDUE = "No overdue tasks found."
MSG_NOTHING_TO_DELETE = "No tasks to delete."
MSG_TITLE_REQUIRED = "A title is required to create a task."
MSG_RENAME_NEEDS_ONE = "Renaming requires exactly one matching task. Please narrow the selection."


class PlanValidator:
    """Executability checks for one project and actor."""

    def __init__(self, project, actor_id: int | None = None, matcher: EntityMatcher | None = None):
        self.project = project
        self.actor_id = actor_id
        self.matcher = matcher or EntityMatcher(project, actor_id)
        self.query = TaskQueryBuilder(project, actor_id, self.matcher)

    def _task_exists(self, task_id: int) -> bool:
        task = db.session.get(Task, task_id)
        return task is not None and task.project_id == self.project.id

    def _selected_task(self, plan: Plan) -> ValidationResult | None:
        if plan.task_id is None:
            return ValidationResult.failed(MSG_ID_REQUIRED)
        if not self._task_exists(plan.task_id):
            return ValidationResult.failed(MSG_TASK_NOT_FOUND.format(id=plan.task_id))
        return None

    def _assignee_resolves(self, hint: str | None) -> ValidationResult | None:
        if hint and self.matcher.resolve_assignee(hint) is None:
            return ValidationResult.failed(MSG_UNKNOWN_MEMBER.format(hint=hint))
        return None

    # ── Per-type checks ───────────────────────────────────────────────────

    def _check_create(self, plan: Plan) -> ValidationResult:
        if not (plan.payload.get("title") or "").strip():
            return ValidationResult.failed(MSG_TITLE_REQUIRED)
        return self._assignee_resolves(plan.payload.get("assignee_hint")) or ValidationResult.passed()

    def _check_task_update(self, plan: Plan) -> ValidationResult:
        failure = self._selected_task(plan)
        if failure:
            return failure
        if not plan.changes:
            return ValidationResult.failed(MSG_NO_CHANGES)
        return self._assignee_resolves(plan.changes.get("assignee_hint")) or ValidationResult.passed()

    def _check_task_delete(self, plan: Plan) -> ValidationResult:
        return self._selected_task(plan) or ValidationResult.passed()

    def _check_bulk_update(self, plan: Plan) -> ValidationResult:
        if not plan.filters:
            return ValidationResult.failed(MSG_NO_SCOPE)
        affected = self.query.count(plan.filters)
        if affected <= 0:
            return ValidationResult.failed(MSG_NO_MATCH)
        if not plan.updates:
            return ValidationResult.failed(MSG_NO_UPDATES)
        if "title" in plan.updates and affected != 1:
            return ValidationResult.failed(MSG_RENAME_NEEDS_ONE)
        return self._assignee_resolves(plan.updates.get("assignee_hint")) or ValidationResult.passed()

    def _check_bulk_assign(self, plan: Plan) -> ValidationResult:
        if not plan.filters:
            return ValidationResult.failed(MSG_NO_SCOPE)
        if not (plan.assignee or "").strip():
            return ValidationResult.failed(MSG_NO_ASSIGNEE)
        failure = self._assignee_resolves(plan.assignee)
        if failure:
            return failure
        if self.query.count(plan.filters) <= 0:
            if plan.filters.get("unassigned"):
                return ValidationResult.failed(MSG_NO_UNASSIGNED)
            return ValidationResult.failed(MSG_NO_MATCH)
        return ValidationResult.passed()

    def _check_bulk_delete(self, plan: Plan) -> ValidationResult:
        if not plan.filters:
            return ValidationResult.failed(MSG_NO_SCOPE)
        if self.query.count(plan.filters) <= 0:
            return ValidationResult.failed(MSG_NO_MATCH)
        return ValidationResult.passed()

    def _check_bulk_delete_overdue(self, plan: Plan) -> ValidationResult:
        if count_overdue(self.project) <= 0:
            return ValidationResult.failed(MSG_NO_OVERDUE)
        return ValidationResult.passed()

    def _check_bulk_delete_all(self, plan: Plan) -> ValidationResult:
        if count_tasks(self.project) <= 0:
            return ValidationResult.failed(MSG_NOTHING_TO_DELETE)
        return ValidationResult.passed()

    CHECKS = {
        PlanType.CREATE_TASK: _check_create,
        PlanType.TASK_UPDATE: _check_task_update,
        PlanType.TASK_DELETE: _check_task_delete,
        PlanType.BULK_UPDATE: _check_bulk_update,
        PlanType.BULK_ASSIGN: _check_bulk_assign,
        PlanType.BULK_DELETE: _check_bulk_delete,
        PlanType.BULK_DELETE_OVERDUE: _check_bulk_delete_overdue,
        PlanType.BULK_DELETE_ALL: _check_bulk_delete_all,
    }

    def validate(self, plan: Plan | None) -> ValidationResult:
        if plan is None:
            return ValidationResult.failed(MSG_UNINTELLIGIBLE)
        try:
            return self.CHECKS[plan.type](self, plan)
        except Exception:
            logger.exception("Plan validation failed unexpectedly",
                             extra=log_context(project_id=self.project.id, stage="validate",
                                               plan_type=plan.type.value))
            return ValidationResult.failed(MSG_UNINTELLIGIBLE)


def validate(project, plan: Plan | None, actor_id: int | None = None) -> ValidationResult:
    return PlanValidator(project, actor_id).validate(plan)
