"""
Project Task Assistant
Plan normalizer.

normalize(project, raw) → Plan | None

Deterministic and LLM-produced plans both pass through here before
validation. The output only ever carries canonical statuses/priorities,
ISO dates and well-typed filters:

    - status / priority that do not resolve are dropped
      (create_task falls back to todo / medium instead)
    - filters.limit is clamped to ≥ 1, filters.order must be asc|desc
    - an assignee hint always removes filters.all

Pure: reads the project's methodology/overrides, never the task table.
"""

import logging

from app.ai.assistants.plan import Plan, PlanType
from app.ai.assistants.vocabulary import StatusVocabulary, resolve_priority
from app.services.task_query import ORDERABLE_FIELDS
from app.utils.helpers import parse_relative_date

logger = logging.getLogger(__name__)

# Accepted field spellings → canonical field names (payload / changes / updates)
FIELD_ALIASES = {
    "title": "title",
    "name": "title",
    "description": "description",
    "desc": "description",
    "status": "status",
    "state": "status",
    "priority": "priority",
    "assignee_hint": "assignee_hint",
    "assignee": "assignee_hint",
    "assigned_to": "assignee_hint",
    "start_date": "start_date",
    "start": "start_date",
    "end_date": "end_date",
    "due_date": "end_date",
    "due": "end_date",
    "deadline": "end_date",
}

DATE_FIELDS = ("start_date", "end_date")
LIST_FILTERS = ("title_hints", "title_contains", "description_contains")
FLAG_FILTERS = ("overdue", "unassigned", "all")
DATE_FILTERS = ("due_before", "due_after", "due_on", "created_before", "created_after")


def _as_flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value) -> int | None:
    try:
        return int(str(value).strip().lstrip("#"))
    except (TypeError, ValueError):
        return None


def _as_str_list(value) -> list[str]:
    if value in (None, ""):
        return []
    items = value if isinstance(value, (list, tuple, set)) else [value]
    return [str(v).strip() for v in items if str(v or "").strip()]


class PlanNormalizer:
    """Canonicalizes plans for one project."""

    def __init__(self, project):
        self.project = project
        self.vocab = StatusVocabulary.for_project(project)

    # ── Sections ──────────────────────────────────────────────────────────

    def _fields(self, raw: dict) -> dict:
        out = {}
        for key, value in (raw or {}).items():
            name = FIELD_ALIASES.get(str(key).lower())
            if name is None or value is None:
                continue
            if name == "status":
                value = self.vocab.resolve(value)
            elif name == "priority":
                value = resolve_priority(value)
            elif name in DATE_FIELDS:
                parsed = parse_relative_date(value)
                value = parsed.isoformat() if parsed else None
            else:
                value = str(value).strip()
            if value:
                out[name] = value
        return out

    def _filters(self, raw: dict) -> dict:
        out = {}
        raw = raw or {}

        ids = [i for i in (_as_int(v) for v in _as_str_list(raw.get("ids", raw.get("id")))) if i and i > 0]
        if ids:
            out["ids"] = list(dict.fromkeys(ids))
        for key in LIST_FILTERS:
            values = _as_str_list(raw.get(key))
            if values:
                out[key] = values

        if raw.get("status") not in (None, ""):
            status = self.vocab.resolve(raw["status"])
            if status:
                out["status"] = status
        if raw.get("priority") not in (None, ""):
            priority = resolve_priority(raw["priority"])
            if priority:
                out["priority"] = priority

        for key in FLAG_FILTERS:
            if key in raw and _as_flag(raw[key]):
                out[key] = True

        hint = str(raw.get("assigned_to_hint") or raw.get("assignee") or "").strip()
        if hint:
            out["assigned_to_hint"] = hint

        for key in DATE_FILTERS:
            if raw.get(key):
                parsed = parse_relative_date(raw[key])
                if parsed:
                    out[key] = parsed.isoformat()

        if raw.get("order_by") in ORDERABLE_FIELDS:
            out["order_by"] = raw["order_by"]
        order = str(raw.get("order") or "").strip().lower()
        if order in ("asc", "desc"):
            out["order"] = order
        if "limit" in raw and raw["limit"] not in (None, ""):
            limit = _as_int(raw["limit"])
            if limit is not None:
                out["limit"] = max(1, limit)

        # Explicit scoping always wins over "everything"
        if out.get("assigned_to_hint"):
            out.pop("all", None)
        return out

    # ── Per-type finishing ────────────────────────────────────────────────

    def _finish_create(self, plan: Plan) -> Plan:
        plan.payload.setdefault("status", "todo")
        plan.payload.setdefault("priority", "medium")
        return plan

    def _finish_task_update(self, plan: Plan) -> Plan:
        return plan

    def _finish_task_delete(self, plan: Plan) -> Plan:
        return plan

    def _finish_bulk_update(self, plan: Plan) -> Plan:
        return plan

    def _finish_bulk_assign(self, plan: Plan) -> Plan:
        if not plan.assignee and plan.updates.get("assignee_hint"):
            plan.assignee = plan.updates["assignee_hint"]
        return plan

    def _finish_bulk_delete(self, plan: Plan) -> Plan:
        return plan

    def _finish_bulk_delete_overdue(self, plan: Plan) -> Plan:
        return plan

    def _finish_bulk_delete_all(self, plan: Plan) -> Plan:
        return plan

    FINISHERS = {
        PlanType.CREATE_TASK: _finish_create,
        PlanType.TASK_UPDATE: _finish_task_update,
        PlanType.TASK_DELETE: _finish_task_delete,
        PlanType.BULK_UPDATE: _finish_bulk_update,
        PlanType.BULK_ASSIGN: _finish_bulk_assign,
        PlanType.BULK_DELETE: _finish_bulk_delete,
        PlanType.BULK_DELETE_OVERDUE: _finish_bulk_delete_overdue,
        PlanType.BULK_DELETE_ALL: _finish_bulk_delete_all,
    }

    def normalize(self, raw) -> Plan | None:
        plan = raw if isinstance(raw, Plan) else Plan.from_dict(raw)
        if plan is None:
            return None

        selector = {}
        task_id = _as_int(plan.selector.get("id", plan.selector.get("task_id")))
        if task_id and task_id > 0:
            selector["id"] = task_id

        normalized = Plan(
            type=plan.type,
            selector=selector,
            payload=self._fields(plan.payload),
            changes=self._fields(plan.changes),
            filters=self._filters(plan.filters),
            updates=self._fields(plan.updates),
            assignee=(plan.assignee or "").strip() or None,
        )
        return self.FINISHERS[normalized.type](self, normalized)


def normalize(project, raw) -> Plan | None:
    return PlanNormalizer(project).normalize(raw)
