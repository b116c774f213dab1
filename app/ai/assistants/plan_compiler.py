"""
Project Task Assistant
Plan compiler.

compile(message, history) → CompileResult(plan, error, source)

Deterministic rules first, first match wins:

    1. ordinal window ("only the first two") refines whatever the rest of
       the message (or the latest command in history) compiles to
    2. "move all tasks to the second stage"        → bulk_update
    3. "create task …" / "Task: …"                 → create_task
    4. delete verbs                                → task_delete / bulk_delete*
    5. "#id" + field changes                       → task_update
    6. filters + bulk field updates                → bulk_update
    7. "assign … to <hint>"                        → bulk_assign
    8. a bare status word                          → bulk_update over all tasks

Only when no rule applies is the LLM asked to synthesize a plan. The output
is a raw Plan; normalization and validation happen downstream.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date

from app.ai.assistants.command_parsing import (
    ASSIGN_VERB_RE,
    DELETE_VERB_RE,
    bare_status,
    extract_task_id,
    extract_task_ids,
    has_action_verb,
    parse_assign_target,
    parse_bulk_updates,
    parse_create,
    parse_filters,
    parse_ordinal_window,
    parse_stage_move,
    parse_task_changes,
    scoping_keys,
    strip_ordinal_window,
    strip_quoted,
)
from app.ai.assistants.plan import Plan, PlanType, SINGLE_TASK_TYPES
from app.ai.assistants.vocabulary import StatusVocabulary
from app.middleware.logging_config import log_context
from app.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from app.utils.helpers import utc_today

logger = logging.getLogger(__name__)

MSG_UNCLEAR_DELETE = ('Please specify which tasks to delete '
                      '(e.g., "delete #123", "delete all overdue tasks").')

DEFAULT_HISTORY_LOOKBACK = 5
RECENT_TASKS_IN_PROMPT = 30

# ── Prompts ──────────────────────────────────────────────────────────────────

PLAN_SCHEMA = (
    '{"type": "create_task|task_update|task_delete|bulk_update|bulk_assign|bulk_delete|'
    'bulk_delete_overdue|bulk_delete_all",\n'
    ' "selector": {"id": <int>},\n'
    ' "payload": {"title": str, "status": str, "priority": str, "end_date": "YYYY-MM-DD", '
    '"assignee_hint": str, "description": str},\n'
    ' "changes": {same fields as payload},\n'
    ' "filters": {"ids": [int], "title_hints": [str], "title_contains": [str], '
    '"description_contains": [str], "status": str, "priority": str, "overdue": bool, '
    '"unassigned": bool, "assigned_to_hint": str, "due_before": "YYYY-MM-DD", '
    '"due_after": "YYYY-MM-DD", "due_on": "YYYY-MM-DD", "created_before": "YYYY-MM-DD", '
    '"created_after": "YYYY-MM-DD", "all": bool, "limit": int, "order_by": str, '
    '"order": "asc|desc"},\n'
    ' "updates": {same fields as payload},\n'
    ' "assignee": str}'
)

PLAN_RULES = (
    f"- status must be one of: {', '.join(TASK_STATUSES)}\n"
    f"- priority must be one of: {', '.join(TASK_PRIORITIES)}\n"
    "- ordinal stages map by position: first stage=todo, second=inprogress, third=review, "
    "fourth/last=done\n"
    "- possessives (\"Alice's tasks\"), \"for Alice\" and \"@alice\" go to filters.assigned_to_hint\n"
    "- never set filters.all when filters.assigned_to_hint is set\n"
    "- \"only the first N\" means filters.limit=N, order_by=created_at, order=asc; "
    "\"last N\" uses order=desc\n"
    "- single-task operations need selector.id; include only fields the user asked to change\n"
    "- if the request is not a task command, return {\"type\": null}"
)

SYNTHESIZE_SYSTEM_PROMPT = (
    "You translate a project-management request into exactly one task command plan. "
    "Respond with a single JSON object and nothing else, using this shape "
    "(omit sections that do not apply):\n"
    f"{PLAN_SCHEMA}\n\nRules:\n{PLAN_RULES}"
)

REPAIR_SYSTEM_PROMPT = (
    "A task command plan failed validation. Produce a corrected plan for the same request. "
    "Respond with a single JSON object and nothing else, using this shape:\n"
    f"{PLAN_SCHEMA}\n\nRules:\n{PLAN_RULES}\n"
    "- fix the problem described in the failure reason; do not change what the user asked for"
)


@dataclass
class CompileResult:
    plan: Plan | None = None
    error: str | None = None
    source: str = "none"

    @property
    def ok(self) -> bool:
        return self.plan is not None


def _plan_from_llm(data: dict | None) -> Plan | None:
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("plan"), dict):
        data = data["plan"]
    return Plan.from_dict(data)


class PlanCompiler:
    """Compiles command messages for one project and actor."""

    def __init__(self, project, actor_id: int | None = None, llm=None, *,
                 history_lookback: int = DEFAULT_HISTORY_LOOKBACK, today: date | None = None):
        self.project = project
        self.actor_id = actor_id
        self.llm = llm
        self.history_lookback = max(0, int(history_lookback))
        self.today = today or utc_today()
        self.vocab = StatusVocabulary.for_project(project)

    # ── Entry points ──────────────────────────────────────────────────────

    def compile(self, message: str, history: list | None = None, *, synthesize: bool = True) -> CompileResult:
        text = (message or "").strip()
        if not text:
            return CompileResult()

        window = parse_ordinal_window(strip_quoted(text))
        base = strip_ordinal_window(text) if window else text

        result = self._compile_rules(base, window)
        if not result.ok and result.error is None and window and not has_action_verb(base):
            result = self._from_history(history)

        if result.ok:
            if window:
                result.plan = self._merge_window(result.plan, window)
            return result
        if result.error or not synthesize:
            return result
        return self.synthesize(text, history)

    def synthesize(self, message: str, history: list | None = None) -> CompileResult:
        """LLM fallback; CompileResult() when it is unavailable or unusable."""
        if self.llm is None or not self.llm.enabled:
            return CompileResult()
        messages = [
            {"role": "system", "content": SYNTHESIZE_SYSTEM_PROMPT},
            {"role": "user", "content": self._context_block(history) + f"\n\nRequest: {message}"},
        ]
        result = self.llm.classify_or_plan(messages, purpose="assistant_plan")
        if not result.ok:
            logger.info("Plan synthesis unavailable: %s", result.error,
                        extra=log_context(project_id=self.project.id, stage="synthesize"))
            return CompileResult()
        plan = _plan_from_llm(result.value)
        return CompileResult(plan=plan, source="llm") if plan else CompileResult()

    def repair(self, message: str, plan: Plan | None, reason: str) -> Plan | None:
        """One LLM attempt at fixing a plan that failed validation."""
        if self.llm is None or not self.llm.enabled:
            return None
        previous = json.dumps(plan.to_dict() if plan else {}, default=str)
        messages = [
            {"role": "system", "content": REPAIR_SYSTEM_PROMPT},
            {"role": "user", "content": (
                f"{self._context_block(None)}\n\nRequest: {message}\n"
                f"Previous plan: {previous}\nFailure reason: {reason}"
            )},
        ]
        result = self.llm.classify_or_plan(messages, purpose="assistant_repair")
        if not result.ok:
            return None
        return _plan_from_llm(result.value)

    # ── Deterministic rules ───────────────────────────────────────────────

    def _compile_rules(self, text: str, window: dict | None = None) -> CompileResult:
        vocab, today = self.vocab, self.today
        plain = strip_quoted(text)

        stage = parse_stage_move(plain)
        if stage:
            return self._rules(Plan(PlanType.BULK_UPDATE, filters={"all": True}, updates={"status": stage}))

        payload = parse_create(vocab, text, today)
        if payload is not None:
            return self._rules(Plan(PlanType.CREATE_TASK, payload=payload))

        if DELETE_VERB_RE.search(plain):
            return self._compile_delete(text, window)

        task_id = extract_task_id(text)
        if task_id is not None:
            changes = parse_task_changes(vocab, text, today)
            if changes or has_action_verb(plain):
                return self._rules(Plan(PlanType.TASK_UPDATE, selector={"id": task_id}, changes=changes))

        updates = parse_bulk_updates(vocab, text, today)
        if updates:
            filters = parse_filters(vocab, text, today)
            if not filters and window:
                filters = {"all": True}
            return self._rules(Plan(PlanType.BULK_UPDATE, filters=filters, updates=updates))

        if ASSIGN_VERB_RE.search(plain):
            return self._compile_assign(text, window)

        status = bare_status(vocab, plain)
        if status:
            return self._rules(Plan(PlanType.BULK_UPDATE, filters={"all": True}, updates={"status": status}))
        return CompileResult()

    @staticmethod
    def _rules(plan: Plan) -> CompileResult:
        return CompileResult(plan=plan, source="rules")

    def _compile_delete(self, text: str, window: dict | None) -> CompileResult:
        ids = extract_task_ids(text)
        if len(ids) == 1 and not window:
            return self._rules(Plan(PlanType.TASK_DELETE, selector={"id": ids[0]}))

        filters = parse_filters(self.vocab, text, self.today)
        scope = scoping_keys(filters)
        if scope == {"overdue"} and not window:
            return self._rules(Plan(PlanType.BULK_DELETE_OVERDUE))
        if not scope and filters.get("all") and not window:
            return self._rules(Plan(PlanType.BULK_DELETE_ALL))
        if scope:
            return self._rules(Plan(PlanType.BULK_DELETE, filters=filters))
        if window:
            return self._rules(Plan(PlanType.BULK_DELETE, filters={**filters, "all": True}))
        return CompileResult(error=MSG_UNCLEAR_DELETE, source="rules")

    def _compile_assign(self, text: str, window: dict | None) -> CompileResult:
        target, scope_text = parse_assign_target(text)
        filters = parse_filters(self.vocab, scope_text, self.today)
        if not filters and window:
            filters = {"all": True}

        if target:
            # "assign all review tasks to done" moves them; it never picks a user named "done"
            status = self.vocab.resolve(target)
            if status:
                return self._rules(Plan(PlanType.BULK_UPDATE, filters=filters, updates={"status": status}))
        return self._rules(Plan(PlanType.BULK_ASSIGN, filters=filters, assignee=target))

    # ── History lookback ──────────────────────────────────────────────────

    def _from_history(self, history: list | None) -> CompileResult:
        """Base plan from the latest compilable command among the last K user messages."""
        user_messages = [
            (m.get("content") or "") for m in (history or [])
            if isinstance(m, dict) and m.get("role") == "user"
        ]
        for content in list(reversed(user_messages))[: self.history_lookback]:
            if not has_action_verb(strip_quoted(content)):
                continue
            previous = self._compile_rules(strip_ordinal_window(content))
            if previous.ok:
                previous.source = "history"
                return previous
        return CompileResult()

    @staticmethod
    def _merge_window(plan: Plan, window: dict) -> Plan:
        if plan.type is PlanType.CREATE_TASK or plan.type in SINGLE_TASK_TYPES:
            return plan
        if plan.type is PlanType.BULK_DELETE_OVERDUE:
            plan = Plan(PlanType.BULK_DELETE, filters={"overdue": True})
        elif plan.type is PlanType.BULK_DELETE_ALL:
            plan = Plan(PlanType.BULK_DELETE, filters={"all": True})
        plan.filters.update(window)
        return plan

    # ── LLM context ───────────────────────────────────────────────────────

    def _context_block(self, history: list | None) -> str:
        project = self.project
        members = [u.name for u in project.member_users() if u.name]
        recent = (
            Task.query.filter_by(project_id=project.id)
            .order_by(Task.created_at.desc(), Task.id.desc())
            .limit(RECENT_TASKS_IN_PROMPT)
            .all()
        )
        context = {
            "today": self.today.isoformat(),
            "methodology": self.vocab.methodology,
            "phase_labels": {s: self.vocab.label(s) for s in TASK_STATUSES},
            "members": members,
            "recent_tasks": [{"id": t.id, "title": t.title, "status": t.status} for t in recent],
        }
        lines = [f"Project context: {json.dumps(context, default=str)}"]
        turns = [m for m in (history or []) if isinstance(m, dict)][-self.history_lookback:]
        if turns:
            lines.append("Recent conversation:")
            lines.extend(f"{m.get('role', 'user')}: {m.get('content', '')}" for m in turns)
        return "\n".join(lines)
