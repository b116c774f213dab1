"""
Project Task Assistant
Question answering.

Read-only answers about a project. Heuristic counters cover the common
questions (owner, members, counts per status/priority, overdue, due windows,
task lists, a single task, overview). Anything else goes to the LLM with a
sanitized project context when one is configured, and to the help text
otherwise.

Never writes to the database.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta

from app.ai.assistants.command_parsing import extract_task_id, parse_filters, week_bounds
from app.ai.assistants.entity_matcher import EntityMatcher
from app.ai.assistants.vocabulary import StatusVocabulary, resolve_priority
from app.middleware.logging_config import log_context
from app.models import db
from app.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from app.services.task_query import (
    TaskQueryBuilder,
    build_snapshot,
    count_due_between,
    count_overdue,
    count_tasks,
)
from app.utils.helpers import utc_today

logger = logging.getLogger(__name__)

ANSWER_MAX_CHARS = 800
LIST_LIMIT = 10
CONTEXT_TASK_LIMIT = 50

HELP_TEXT = (
    "I can answer questions and make changes to this project's tasks.\n"
    "Questions: \"how many tasks are done?\", \"what is overdue?\", \"who owns this project?\", "
    "\"what is due this week?\", \"tell me about #12\".\n"
    "Commands: \"create task 'Write release notes' due friday\", \"move #12 to review\", "
    "\"assign Alice's overdue tasks to Bob\", \"set priority to high for #4\", "
    "\"delete overdue tasks\"."
)

SUGGESTIONS = [
    "move #12 to done",
    "create task \"Prepare demo\" with high priority due friday",
    "assign all unassigned tasks to me",
    "how many tasks are overdue?",
]

ANSWER_SYSTEM_PROMPT = (
    "You answer questions about a single project's task board using only the JSON context "
    "provided. Answer in plain sentences, at most 120 words. Do not output code, JSON, SQL "
    "or internal identifiers beyond task numbers like #12. If the context does not contain "
    "the answer, say so briefly."
)

_HELP_RE = re.compile(r"^\s*(help|\?|what can you do|how do i use (?:this|you))\W*$", re.IGNORECASE)
_LIST_RE = re.compile(r"\b(list|show|which|what\s+are|what's|what\s+is)\b", re.IGNORECASE)
_COUNT_RE = re.compile(r"\b(how\s+many|count|number\s+of)\b", re.IGNORECASE)
_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\n?|```")


@dataclass
class Answer:
    text: str
    source: str = "heuristic"


def sanitize_answer(text: str, max_chars: int = ANSWER_MAX_CHARS) -> str:
    """Strip code fences, collapse whitespace, hard-cap the length."""
    cleaned = _FENCE_RE.sub("", text or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if len(cleaned) > max_chars:
        cleaned = cleaned[: max_chars - 1].rstrip() + "…"
    return cleaned


class QuestionAnswerer:
    def __init__(self, project, actor_id: int | None = None, llm=None, *, today: date | None = None):
        self.project = project
        self.actor_id = actor_id
        self.llm = llm
        self.today = today or utc_today()
        self.vocab = StatusVocabulary.for_project(project)
        self.matcher = EntityMatcher(project, actor_id)
        self.query = TaskQueryBuilder(project, actor_id, self.matcher)

    def _phase(self, status: str) -> str:
        return self.vocab.label(status)

    def _task_line(self, task: Task) -> str:
        line = f'#{task.id} "{task.title}" ({self._phase(task.status)}, {task.priority})'
        if task.end_date:
            line += f", due {task.end_date.isoformat()}"
        return line

    def _listing(self, tasks: list, total: int) -> str:
        lines = "; ".join(self._task_line(t) for t in tasks[:LIST_LIMIT])
        more = f" and {total - LIST_LIMIT} more" if total > LIST_LIMIT else ""
        return f"{lines}{more}."

    # ── Heuristics ────────────────────────────────────────────────────────

    def _task_info(self, task_id: int) -> str:
        task = db.session.get(Task, task_id)
        if task is None or task.project_id != self.project.id:
            return f"Task #{task_id} was not found in this project."
        assignee = task.assignee.name if task.assignee else "nobody"
        text = (f'Task #{task.id} "{task.title}" is in "{self._phase(task.status)}" with '
                f"{task.priority} priority, assigned to {assignee}")
        if task.end_date:
            text += f", due {task.end_date.isoformat()}"
            if task.is_overdue(self.today):
                text += " (overdue)"
        return text + "."

    def _owner(self) -> str:
        owner = self.project.owner
        if owner is None:
            return "This project has no owner on record."
        return f"The project owner is {owner.name} ({owner.email})."

    def _members(self) -> str:
        users = self.project.member_users()
        names = ", ".join(u.name for u in users if u.name)
        return f"This project has {len(users)} member(s): {names}."

    def _due_window(self, text: str) -> tuple[date, date, str] | None:
        lowered = text.lower()
        if re.search(r"\bdue\s+today\b", lowered):
            return self.today, self.today, "today"
        if re.search(r"\bdue\s+tomorrow\b", lowered):
            tomorrow = self.today + timedelta(days=1)
            return tomorrow, tomorrow, "tomorrow"
        if re.search(r"\bdue\s+(?:this\s+week|soon)\b", lowered):
            _, end = week_bounds(self.today)
            return self.today, end, "this week"
        if re.search(r"\bdue\s+next\s+week\b", lowered):
            start, end = week_bounds(self.today, 1)
            return start, end, "next week"
        return None

    def _overview(self) -> str:
        snap = build_snapshot(self.project)
        parts = ", ".join(f'{snap["by_status"][s]} in "{self._phase(s)}"' for s in TASK_STATUSES)
        return (f'"{self.project.name}" ({self.vocab.methodology}) has {snap["total"]} task(s): '
                f'{parts}. {snap["overdue"]} overdue.')

    def heuristic(self, question: str) -> str | None:
        text = (question or "").strip()
        lowered = text.lower()
        if not text:
            return None
        if _HELP_RE.match(text):
            return HELP_TEXT

        task_id = extract_task_id(text)
        if task_id is not None:
            return self._task_info(task_id)

        if re.search(r"\b(owner|owns|in\s+charge)\b", lowered):
            return self._owner()
        if re.search(r"\b(members?|team|who\s+is\s+on|people)\b", lowered):
            return self._members()

        wants_list = bool(_LIST_RE.search(text)) and not _COUNT_RE.search(text)

        window = self._due_window(text)
        if window:
            start, end, label = window
            if wants_list:
                filters = {"due_after": start.isoformat(), "due_before": end.isoformat()}
                tasks = [t for t in self.query.build(filters) if t.status != "done"]
                if not tasks:
                    return f"Nothing open is due {label}."
                return f"Due {label}: " + self._listing(tasks, len(tasks))
            n = count_due_between(self.project, start, end)
            return f"{n} open task(s) are due {label}."

        if re.search(r"\b(overdue|late|past\s+due)\b", lowered):
            if wants_list:
                tasks = self.query.build({"overdue": True, "order_by": "end_date"})
                if not tasks:
                    return "No overdue tasks found."
                return "Overdue: " + self._listing(tasks, len(tasks))
            return f"There are {count_overdue(self.project)} overdue task(s)."

        if re.search(r"\b(overview|summary|summari[sz]e|status\s+report|how\s+is\s+the\s+project)\b", lowered):
            return self._overview()

        filters = parse_filters(self.vocab, text, self.today)
        filters.pop("all", None)
        if not filters.get("status"):
            status = self.vocab.extract_from_text(text)
            if status and re.search(r"\b(tasks?|items?|how\s+many|are|is)\b", lowered):
                filters["status"] = status
        if not filters.get("priority"):
            m = re.search(r"\b(low|medium|high|urgent|critical|blocker)\b", lowered)
            if m and "priority" in lowered:
                filters["priority"] = resolve_priority(m.group(1))

        if wants_list and re.search(r"\b(tasks?|items?|work)\b", lowered):
            tasks = self.query.build(filters)
            if not tasks:
                return "No tasks match."
            return self._listing(tasks, len(tasks))

        if _COUNT_RE.search(text) and re.search(r"\b(tasks?|items?|done|open)\b", lowered):
            if filters:
                n = self.query.count(filters)
                scope = []
                if filters.get("status"):
                    scope.append(f'in "{self._phase(filters["status"])}"')
                if filters.get("priority"):
                    scope.append(f'with {filters["priority"]} priority')
                if filters.get("assigned_to_hint"):
                    scope.append("for that assignee")
                return f"{n} task(s) " + (" ".join(scope) if scope else "match") + "."
            return f"This project has {count_tasks(self.project)} task(s)."
        return None

    # ── LLM path ──────────────────────────────────────────────────────────

    def sanitized_context(self) -> dict:
        project = self.project
        snap = build_snapshot(project)
        members = project.member_users()
        tasks = (
            Task.query.filter_by(project_id=project.id)
            .order_by(Task.created_at.desc(), Task.id.desc())
            .limit(CONTEXT_TASK_LIMIT)
            .all()
        )
        return {
            "project": {"id": project.id, "name": project.name, "methodology": self.vocab.methodology},
            "phase_labels": {s: self._phase(s) for s in TASK_STATUSES},
            "owner": project.owner.name if project.owner else None,
            "member_count": len(members),
            "members": [u.name for u in members if u.name],
            "task_counts": snap["by_status"],
            "priority_counts": {p: snap["by_priority"].get(p, 0) for p in TASK_PRIORITIES},
            "overdue": snap["overdue"],
            "today": self.today.isoformat(),
            "tasks": [
                {"id": t.id, "title": t.title, "status": t.status, "priority": t.priority}
                for t in tasks
            ],
        }

    def _llm_answer(self, question: str) -> str | None:
        if self.llm is None or not self.llm.enabled:
            return None
        messages = [
            {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
            {"role": "user", "content": (
                f"Context: {json.dumps(self.sanitized_context(), default=str)}\n\nQuestion: {question}"
            )},
        ]
        result = self.llm.answer_text(messages, max_chars=ANSWER_MAX_CHARS, purpose="assistant_answer")
        if not result.ok:
            logger.info("Answer LLM unavailable: %s", result.error,
                        extra=log_context(project_id=self.project.id, stage="answer"))
            return None
        return sanitize_answer(result.value) or None

    def answer(self, question: str) -> Answer:
        text = self.heuristic(question)
        if text:
            return Answer(text)
        text = self._llm_answer(question)
        if text:
            return Answer(text, source="llm")
        return Answer("I'm not sure how to answer that yet.\n" + HELP_TEXT, source="help")


def answer_question(project, question: str, actor_id: int | None = None, llm=None) -> Answer:
    return QuestionAnswerer(project, actor_id, llm).answer(question)
