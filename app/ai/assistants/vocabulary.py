"""
Project Task Assistant
Status / priority vocabulary.

Maps free-text tokens ("in progress", "code review", "second stage", "p1",
"blocker") onto the canonical vocabulary every other layer works with:

    statuses:   todo | inprogress | review | done
    priorities: low | medium | high | urgent

Each methodology contributes an ordered phrase table; a project's
``status_aliases`` are layered on top (last wins). Display goes the other
way through PHASE_LABELS, so a waterfall project sees "Verification" where
a kanban board sees "Review".
"""

import re

from app.models.project import DEFAULT_METHODOLOGY, METHODOLOGIES
from app.models.task import TASK_PRIORITIES, TASK_STATUSES

# ── Display labels per methodology ───────────────────────────────────────────

PHASE_LABELS = {
    "kanban": {"todo": "To Do", "inprogress": "In Progress", "review": "Review", "done": "Done"},
    "scrum": {"todo": "Backlog", "inprogress": "In Progress", "review": "Review", "done": "Done"},
    "agile": {"todo": "Backlog", "inprogress": "In Progress", "review": "Review", "done": "Done"},
    "waterfall": {
        "todo": "Requirements", "inprogress": "Design",
        "review": "Verification", "done": "Maintenance",
    },
    "lean": {"todo": "Backlog", "inprogress": "In Progress", "review": "Testing", "done": "Done"},
}

# ── Phrase → status tables (ordered; first listed phrase is the preferred one) ─

_SCRUM_TABLE = [
    ("product backlog", "todo"), ("sprint backlog", "todo"), ("backlog", "todo"), ("todo", "todo"),
    ("inprogress", "inprogress"), ("in progress", "inprogress"), ("doing", "inprogress"),
    ("wip", "inprogress"),
    ("review", "review"), ("code review", "review"), ("qa", "review"), ("testing", "review"),
    ("done", "done"), ("complete", "done"), ("finished", "done"),
]

PHASE_TABLES = {
    "kanban": [
        ("todo", "todo"), ("to do", "todo"), ("backlog", "todo"),
        ("inprogress", "inprogress"), ("in progress", "inprogress"), ("doing", "inprogress"),
        ("wip", "inprogress"),
        ("review", "review"), ("code review", "review"), ("qa", "review"), ("testing", "review"),
        ("done", "done"), ("complete", "done"), ("finished", "done"),
    ],
    "scrum": _SCRUM_TABLE,
    "agile": _SCRUM_TABLE,
    "waterfall": [
        ("requirements", "todo"), ("specification", "todo"), ("analysis", "todo"),
        ("design", "inprogress"), ("implementation", "inprogress"), ("construction", "inprogress"),
        ("verification", "review"), ("validation", "review"), ("testing phase", "review"),
        ("maintenance", "done"), ("done", "done"), ("complete", "done"),
    ],
    "lean": [
        ("backlog", "todo"), ("kanban backlog", "todo"),
        ("todo", "inprogress"), ("value stream", "inprogress"),
        ("testing", "review"), ("qa", "review"),
        ("done", "done"), ("complete", "done"),
    ],
}

# Synonyms understood on every board, consulted after the methodology table
STATUS_SYNONYMS = [
    ("not started", "todo"), ("open", "todo"), ("pending", "todo"), ("icebox", "todo"),
    ("ideas", "todo"), ("planning", "todo"), ("requirements", "todo"),
    ("active", "inprogress"), ("ongoing", "inprogress"), ("started", "inprogress"),
    ("work in progress", "inprogress"), ("progress", "inprogress"), ("development", "inprogress"),
    ("dev", "inprogress"), ("implementation", "inprogress"), ("building", "inprogress"),
    ("peer review", "review"), ("quality assurance", "review"), ("test", "review"),
    ("verification", "review"), ("validation", "review"), ("staging", "review"),
    ("approval", "review"), ("awaiting review", "review"), ("ready for review", "review"),
    ("completed", "done"), ("closed", "done"), ("resolved", "done"), ("shipped", "done"),
    ("deployed", "done"), ("released", "done"), ("accepted", "done"), ("live", "done"),
]

DIRECTIONAL_STATUS = {
    "first": "todo", "start": "todo", "leftmost": "todo", "beginning": "todo",
    "last": "done", "final": "done", "rightmost": "done", "end": "done",
}

ORDINAL_STAGES = {
    "first": 0, "1st": 0,
    "second": 1, "2nd": 1,
    "third": 2, "3rd": 2,
    "fourth": 3, "4th": 3,
}

PRIORITY_ALIASES = {
    "lowest": "low", "minor": "low", "trivial": "low", "p3": "low", "prio 3": "low",
    "normal": "medium", "moderate": "medium", "medium priority": "medium", "med": "medium",
    "p2": "medium", "prio 2": "medium",
    "higher": "high", "important": "high", "p1": "high", "prio 1": "high",
    "highest": "urgent", "critical": "urgent", "blocker": "urgent", "asap": "urgent",
    "p0": "urgent", "prio 0": "urgent",
}

_FILLER_WORDS = re.compile(r"\b(status|column|phase|stage|lane)\b")


def norm_token(value) -> str:
    """Lowercase, unify separators, drop filler words, collapse whitespace."""
    text = str(value or "").lower().replace("_", " ").replace("-", " ")
    text = _FILLER_WORDS.sub(" ", text)
    text = re.sub(r"[\"'`.,!?]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_methodology(value) -> str:
    m = str(value or "").strip().lower()
    return m if m in METHODOLOGIES else DEFAULT_METHODOLOGY


def pretty_phase(methodology, status: str) -> str:
    """Display label for a canonical status under a methodology."""
    labels = PHASE_LABELS[normalize_methodology(methodology)]
    return labels.get(status, str(status or "").title())


def stage_status(index: int) -> str | None:
    """Positional board stage (0-based) → canonical status."""
    if 0 <= index < len(TASK_STATUSES):
        return TASK_STATUSES[index]
    return None


class StatusVocabulary:
    """Resolves status tokens for one methodology plus optional project overrides."""

    def __init__(self, methodology=None, overrides: dict | None = None):
        self.methodology = normalize_methodology(methodology)
        self._table = {}
        for phrase, status in PHASE_TABLES[self.methodology]:
            self._table.setdefault(norm_token(phrase), status)
        self._synonyms = {}
        for phrase, status in STATUS_SYNONYMS:
            self._synonyms.setdefault(norm_token(phrase), status)
        # Project overrides: label → any token the chain above understands.
        for label, target in (overrides or {}).items():
            key = norm_token(label)
            if not key:
                continue
            resolved = self._resolve_chain(norm_token(target))
            if resolved:
                self._table[key] = resolved

    @classmethod
    def for_project(cls, project) -> "StatusVocabulary":
        if project is None:
            return cls()
        if isinstance(project, str):
            return cls(project)
        return cls(getattr(project, "methodology", None), getattr(project, "status_aliases", None))

    def _resolve_chain(self, token: str) -> str | None:
        if not token:
            return None
        compact = token.replace(" ", "")
        if compact in TASK_STATUSES:
            return compact
        if token in DIRECTIONAL_STATUS:
            return DIRECTIONAL_STATUS[token]
        if token in self._table:
            return self._table[token]
        if token in self._synonyms:
            return self._synonyms[token]
        if token in ORDINAL_STAGES:
            return stage_status(ORDINAL_STAGES[token])
        return None

    def resolve(self, value) -> str | None:
        """Free-text status token → canonical status, or None (never guessed)."""
        return self._resolve_chain(norm_token(value))

    def label(self, status: str) -> str:
        return pretty_phase(self.methodology, status)

    def phrases(self) -> list[tuple[str, str]]:
        """All known (phrase, status) pairs, longest phrase first."""
        pairs = dict(self._synonyms)
        pairs.update(self._table)
        # Canonical spellings win over any table entry
        pairs.update({s: s for s in TASK_STATUSES})
        pairs.update({"in progress": "inprogress", "to do": "todo"})
        return sorted(pairs.items(), key=lambda kv: len(kv[0]), reverse=True)

    def extract_from_text(self, text: str) -> str | None:
        """First recognisable status phrase in free text; longer phrases win."""
        lowered = " " + norm_token(text) + " "
        for phrase, status in self.phrases():
            if re.search(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])", lowered):
                return status
        return None


def resolve_status(project, token) -> str | None:
    return StatusVocabulary.for_project(project).resolve(token)


def extract_status_from_text(project, text: str) -> str | None:
    return StatusVocabulary.for_project(project).extract_from_text(text)


def resolve_priority(token) -> str | None:
    """Free-text priority token → canonical priority, or None."""
    p = str(token or "").lower().replace("_", " ").replace("-", " ")
    p = re.sub(r"\s+", " ", p).strip()
    if not p:
        return None
    for candidate in (p, re.sub(r"\s*priority$", "", p).strip()):
        if candidate in TASK_PRIORITIES:
            return candidate
        if candidate in PRIORITY_ALIASES:
            return PRIORITY_ALIASES[candidate]
    return None
