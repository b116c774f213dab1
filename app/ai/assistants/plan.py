"""
Project Task Assistant
Plan: the command DSL.

A Plan is the canonical, transient description of one intended mutation.
``type`` decides which of the other fields are read:

    create_task           payload
    task_update           selector.id, changes
    task_delete           selector.id
    bulk_update           filters, updates
    bulk_assign           filters, assignee
    bulk_delete           filters
    bulk_delete_overdue   (none)
    bulk_delete_all       (none)

Unused fields are carried along untouched and never raise.
"""

import re
from dataclasses import dataclass, field
from enum import Enum


class PlanType(str, Enum):
    CREATE_TASK = "create_task"
    TASK_UPDATE = "task_update"
    TASK_DELETE = "task_delete"
    BULK_UPDATE = "bulk_update"
    BULK_ASSIGN = "bulk_assign"
    BULK_DELETE = "bulk_delete"
    BULK_DELETE_OVERDUE = "bulk_delete_overdue"
    BULK_DELETE_ALL = "bulk_delete_all"


BULK_FILTERED_TYPES = (PlanType.BULK_UPDATE, PlanType.BULK_ASSIGN, PlanType.BULK_DELETE)
SINGLE_TASK_TYPES = (PlanType.TASK_UPDATE, PlanType.TASK_DELETE)

# Loose spellings (LLM output, older clients) → canonical type.
# Keys are compared with separators removed.
TYPE_ALIASES = {
    "create": PlanType.CREATE_TASK,
    "createtask": PlanType.CREATE_TASK,
    "newtask": PlanType.CREATE_TASK,
    "addtask": PlanType.CREATE_TASK,
    "taskupdate": PlanType.TASK_UPDATE,
    "updatetask": PlanType.TASK_UPDATE,
    "edittask": PlanType.TASK_UPDATE,
    "movetask": PlanType.TASK_UPDATE,
    "update": PlanType.TASK_UPDATE,
    "taskdelete": PlanType.TASK_DELETE,
    "deletetask": PlanType.TASK_DELETE,
    "removetask": PlanType.TASK_DELETE,
    "delete": PlanType.TASK_DELETE,
    "bulkupdate": PlanType.BULK_UPDATE,
    "massupdate": PlanType.BULK_UPDATE,
    "bulkassign": PlanType.BULK_ASSIGN,
    "assignall": PlanType.BULK_ASSIGN,
    "assign": PlanType.BULK_ASSIGN,
    "bulkdelete": PlanType.BULK_DELETE,
    "deletefiltered": PlanType.BULK_DELETE,
    "bulkdeleteoverdue": PlanType.BULK_DELETE_OVERDUE,
    "deleteoverdue": PlanType.BULK_DELETE_OVERDUE,
    "bulkdeleteall": PlanType.BULK_DELETE_ALL,
    "deleteall": PlanType.BULK_DELETE_ALL,
    "clearall": PlanType.BULK_DELETE_ALL,
}


def coerce_plan_type(value) -> PlanType | None:
    """Any spelling of a plan type → PlanType, or None when unknown."""
    if isinstance(value, PlanType):
        return value
    raw = str(value or "").strip().lower()
    if not raw:
        return None
    try:
        return PlanType(raw)
    except ValueError:
        pass
    return TYPE_ALIASES.get(re.sub(r"[\s_\-]", "", raw))


def _dict_or_empty(value) -> dict:
    return dict(value) if isinstance(value, dict) else {}


@dataclass
class Plan:
    type: PlanType
    selector: dict = field(default_factory=dict)
    payload: dict = field(default_factory=dict)
    changes: dict = field(default_factory=dict)
    filters: dict = field(default_factory=dict)
    updates: dict = field(default_factory=dict)
    assignee: str | None = None

    @property
    def task_id(self) -> int | None:
        raw = self.selector.get("id")
        try:
            value = int(str(raw).lstrip("#"))
        except (TypeError, ValueError):
            return None
        return value if value > 0 else None

    @property
    def is_bulk(self) -> bool:
        return self.type not in (PlanType.CREATE_TASK,) + SINGLE_TASK_TYPES

    def to_dict(self) -> dict:
        """Compact JSON-safe form; empty sections are omitted."""
        data = {"type": self.type.value}
        for key in ("selector", "payload", "changes", "filters", "updates"):
            value = getattr(self, key)
            if value:
                data[key] = dict(value)
        if self.assignee:
            data["assignee"] = self.assignee
        return data

    @classmethod
    def from_dict(cls, data) -> "Plan | None":
        """Build a Plan from loose dict input; None when the type is unknown."""
        if not isinstance(data, dict):
            return None
        plan_type = coerce_plan_type(data.get("type"))
        if plan_type is None:
            return None
        assignee = data.get("assignee")
        return cls(
            type=plan_type,
            selector=_dict_or_empty(data.get("selector")),
            payload=_dict_or_empty(data.get("payload")),
            changes=_dict_or_empty(data.get("changes")),
            filters=_dict_or_empty(data.get("filters")),
            updates=_dict_or_empty(data.get("updates")),
            assignee=str(assignee).strip() if assignee not in (None, "") else None,
        )


@dataclass
class ValidationResult:
    ok: bool
    reason: str = ""

    @classmethod
    def passed(cls) -> "ValidationResult":
        return cls(True, "")

    @classmethod
    def failed(cls, reason: str) -> "ValidationResult":
        return cls(False, reason)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "reason": self.reason}
