"""
Project Task Assistant
Command phrase extraction.

Small, independent extractors the plan compiler composes:

    parse_ordinal_window   "only the first two" → {limit, order_by, order}
    parse_stage_move       "move all tasks to the second stage" → status
    parse_create           "create task 'Write docs' with high priority" → payload
    parse_task_changes     "#12 to review, priority p1, due friday" → changes
    parse_bulk_updates     "... set priority to urgent" → updates
    parse_filters          "Alice's overdue high priority tasks" → filters
    parse_assign_target    "assign ... to bob" → ("bob", scope text)

Every extractor takes lowercase-insensitive free text and returns plain
dicts with canonical values. Dates are ISO strings so a plan stays JSON-safe.
Anything that does not resolve is left out, never guessed.
"""

import re
from datetime import date, timedelta

from app.ai.assistants.vocabulary import (
    DIRECTIONAL_STATUS,
    ORDINAL_STAGES,
    StatusVocabulary,
    resolve_priority,
    stage_status,
)
from app.utils.helpers import WEEKDAYS, parse_relative_date, utc_today

# ── Verb / keyword patterns ──────────────────────────────────────────────────

STRONG_VERB_RE = re.compile(
    r"\b(create|add|make|delete|remove|destroy|purge|erase|update|change|modify|edit"
    r"|move|shift|transfer|put|assign|reassign|delegate|set|mark|clear|rename|retitle)\b",
    re.IGNORECASE,
)
DELETE_VERB_RE = re.compile(r"\b(delete|remove|destroy|purge|drop)\b", re.IGNORECASE)
ASSIGN_VERB_RE = re.compile(r"\b(assign|reassign|delegate|allocate)\b", re.IGNORECASE)
STATUS_VERB_RE = re.compile(r"\b(move|set|mark|put|shift|transfer|change|status|send|drag)\b",
                            re.IGNORECASE)

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
_NUM = r"(\d+|" + "|".join(_NUMBER_WORDS) + r")"

ORDINAL_WINDOW_RE = re.compile(
    r"\b(first|last|top|bottom|oldest|newest|latest|earliest)\s+" + _NUM + r"\b(?!\s+(?:days?|weeks?|months?)\b)",
    re.IGNORECASE,
)
_WINDOW_DESC = {"last", "bottom", "newest", "latest"}

STAGE_MOVE_RE = re.compile(
    r"\b(?:move|add|put|set|shift|send)\s+(?:all\s+)?(?:of\s+)?(?:the\s+)?(?:tasks?|everything)\s+"
    r"(?:to|into|in)\s+(?:the\s+)?(first|second|third|fourth|1st|2nd|3rd|4th|last|final)\s+"
    r"(?:stage|column|phase|lane)\b",
    re.IGNORECASE,
)

CREATE_RE = re.compile(
    r"(?:\b(?:create|add|make)\s+(?:a\s+|an\s+)?(?:new\s+)?|^\s*(?:a\s+)?new\s+)task\b\s*"
    r"(?:called\s+|named\s+|titled\s+|:\s*)?(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)
TASK_LINE_RE = re.compile(r"^\s*task\s*:\s*(?P<rest>.+)$", re.IGNORECASE | re.MULTILINE)

TASK_ID_RE = re.compile(r"#(\d+)\b|\btask\s+(?:#|id\s+|number\s+|no\.?\s*)?(\d+)\b|\bid\s*#?(\d+)\b",
                        re.IGNORECASE)

QUOTED_RE = re.compile(r"\"([^\"]+)\"|“([^”]+)”|(?<![A-Za-z])'([^']+)'(?![A-Za-z])")

# Words that never name a person when they follow "for" / "to"
_NOT_A_PERSON = {
    "all", "any", "every", "everyone", "everything", "the", "a", "an", "this", "that", "these",
    "those", "them", "it", "task", "tasks", "today", "tomorrow", "yesterday", "tonight",
    "next", "last", "now", "later", "review", "status", "priority", "project",
    "done", "todo", "week", "month", "due", "each",
} | set(WEEKDAYS)

_DATE_STOP_RE = re.compile(r"\s+(?:and|with|priority|assign(?:ed)?|for|status|to)\b.*$",
                           re.IGNORECASE)


# ── Small helpers ────────────────────────────────────────────────────────────

def has_action_verb(text: str) -> bool:
    return bool(STRONG_VERB_RE.search(text or ""))


def strip_quoted(text: str) -> str:
    """Blank out quoted spans so keywords inside titles do not leak into parsing."""
    return QUOTED_RE.sub(" ", text or "")


def quoted_strings(text: str) -> list[str]:
    out = []
    for m in QUOTED_RE.finditer(text or ""):
        value = next((g for g in m.groups() if g), "").strip()
        if value:
            out.append(value)
    return out


def _number(raw: str) -> int | None:
    raw = (raw or "").lower()
    if raw.isdigit():
        return int(raw)
    return _NUMBER_WORDS.get(raw)


def resolve_status_prefix(vocab: StatusVocabulary, phrase: str, max_words: int = 4) -> str | None:
    """Resolve the longest leading word run of ``phrase`` that names a status."""
    words = re.sub(r"^(?:the|a)\s+", "", (phrase or "").strip().lower()).split()
    for n in range(min(max_words, len(words)), 0, -1):
        status = vocab.resolve(" ".join(words[:n]))
        if status:
            return status
    return None


def resolve_priority_prefix(phrase: str, max_words: int = 3) -> str | None:
    words = (phrase or "").strip().lower().split()
    for n in range(min(max_words, len(words)), 0, -1):
        priority = resolve_priority(" ".join(words[:n]))
        if priority:
            return priority
    return None


def parse_date_phrase(phrase: str, today: date | None = None) -> date | None:
    """Longest leading run of words that parses as a (relative) date."""
    cleaned = _DATE_STOP_RE.sub("", (phrase or "").strip().rstrip(".!?,;"))
    words = cleaned.split()
    for n in range(min(4, len(words)), 0, -1):
        parsed = parse_relative_date(" ".join(words[:n]).strip(",."), today=today)
        if parsed:
            return parsed
    return None


def week_bounds(today: date | None = None, offset: int = 0) -> tuple[date, date]:
    """Monday..Sunday of the current week (offset=0) or a following one."""
    today = today or utc_today()
    monday = today - timedelta(days=today.weekday()) + timedelta(weeks=offset)
    return monday, monday + timedelta(days=6)


def extract_task_id(text: str) -> int | None:
    """The single task id a message refers to; None for zero or several ids."""
    ids = extract_task_ids(text)
    return ids[0] if len(ids) == 1 else None


def extract_task_ids(text: str) -> list[int]:
    ids = []
    for m in TASK_ID_RE.finditer(strip_quoted(text)):
        raw = next((g for g in m.groups() if g), None)
        if raw and int(raw) not in ids:
            ids.append(int(raw))
    return ids


def _person_hint(raw: str) -> str | None:
    hint = (raw or "").strip().strip(".,;:!?").lstrip("@")
    if not hint or hint.lower() in _NOT_A_PERSON:
        return None
    if resolve_priority(hint):
        return None
    return hint


# ── Extractors ───────────────────────────────────────────────────────────────

def parse_ordinal_window(text: str) -> dict | None:
    """"only the first two" / "last 3" / "top five" → window filter fragment."""
    m = ORDINAL_WINDOW_RE.search(text or "")
    if not m:
        return None
    n = _number(m.group(2))
    if not n or n <= 0:
        return None
    order = "desc" if m.group(1).lower() in _WINDOW_DESC else "asc"
    return {"limit": n, "order_by": "created_at", "order": order}


def strip_ordinal_window(text: str) -> str:
    stripped = re.sub(r",?\s*\b(?:but\s+)?(?:only\s+)?(?:the\s+)?(?:first|last|top|bottom|oldest"
                      r"|newest|latest|earliest)\s+" + _NUM + r"\b(\s+(?:ones?|tasks?))?",
                      " ", text or "", flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", stripped).strip(" ,.")


def parse_stage_move(text: str) -> str | None:
    m = STAGE_MOVE_RE.search(text or "")
    if not m:
        return None
    word = m.group(1).lower()
    if word in DIRECTIONAL_STATUS:
        return DIRECTIONAL_STATUS[word]
    return stage_status(ORDINAL_STAGES[word])


def _cut_at_first(text: str, patterns: list) -> str:
    cut = len(text)
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            cut = min(cut, m.start())
    return text[:cut]


_CREATE_TAIL_PATTERNS = [
    re.compile(r"\s+with\s+(?:a\s+)?\w+(?:\s+\w+)?\s+priority\b", re.IGNORECASE),
    re.compile(r"\s+(?:with\s+)?priority\b", re.IGNORECASE),
    re.compile(r"[,\s]+\b(?:lowest|low|medium|normal|high|highest|urgent|critical|p[0-3])\s+priority\b",
               re.IGNORECASE),
    re.compile(r"[,\s]+\b(?:due|deadline|by)\b\s+\S+", re.IGNORECASE),
    re.compile(r"[,\s]+\bstart(?:s|ing)?\s+(?:on|from)\b", re.IGNORECASE),
    re.compile(r"[,\s]+\b(?:assign(?:ed)?\s+to|for\s+@)", re.IGNORECASE),
    re.compile(r"[,\s]+\b(?:in|into|to)\s+(?:the\s+)?\w+(?:\s+\w+)?\s+(?:column|stage|lane|phase)\b",
               re.IGNORECASE),
    re.compile(r"[,\s]+\b(?:with\s+)?description\b", re.IGNORECASE),
]


def parse_create(vocab: StatusVocabulary, text: str, today: date | None = None) -> dict | None:
    """Create-task payload from "create task ..." or a "Task: <title>" line."""
    m = CREATE_RE.search(text or "") or TASK_LINE_RE.search(text or "")
    if not m:
        return None
    rest = m.group("rest").strip()
    if re.match(r"(?:#|id\s*)?\d+\b", rest, re.IGNORECASE):
        # "make task #3 urgent" edits an existing task
        return None
    quotes = quoted_strings(rest)
    if quotes and rest.lstrip().startswith(("\"", "“", "'")):
        title = quotes[0]
        extras = rest
    else:
        title = _cut_at_first(rest, _CREATE_TAIL_PATTERNS)
        extras = rest[len(title):]
        title = title.strip().strip("\"'“”").strip()
    title = re.sub(r"\s+", " ", title).strip(" .,:;")
    if not title:
        return {"title": ""}

    payload = {"title": title, "status": "todo", "priority": "medium"}
    scan = strip_quoted(extras)
    pm = re.search(r"\b(lowest|low|medium|normal|high|highest|urgent|critical|blocker|p[0-3])\s+priority\b",
                   scan, re.IGNORECASE) or re.search(r"\bpriority\s*(?:of|to|as|=|:)?\s*(\w+(?:\s+\w+)?)",
                                                     scan, re.IGNORECASE)
    if pm:
        priority = resolve_priority_prefix(pm.group(1))
        if priority:
            payload["priority"] = priority
    dm = re.search(r"\b(?:due|deadline|by)\s+(?:on\s+|date\s+)?(.+)$", scan, re.IGNORECASE)
    if dm:
        due = parse_date_phrase(dm.group(1), today)
        if due:
            payload["end_date"] = due.isoformat()
    sm = re.search(r"\bstart(?:s|ing)?\s+(?:on|from)\s+(.+)$", scan, re.IGNORECASE)
    if sm:
        start = parse_date_phrase(sm.group(1), today)
        if start:
            payload["start_date"] = start.isoformat()
    am = re.search(r"\bassign(?:ed)?\s+to\s+(@?[\w.@\-]+(?:\s+[A-Z][\w\-]*)?)", extras) \
        or re.search(r"\bfor\s+@([\w.\-]+)", extras)
    if am:
        hint = _person_hint(am.group(1))
        if hint:
            payload["assignee_hint"] = hint
    cm = re.search(r"\b(?:in|into|to)\s+(?:the\s+)?(\w+(?:\s+\w+)?)\s+(?:column|stage|lane|phase)\b",
                   scan, re.IGNORECASE)
    if cm:
        status = vocab.resolve(cm.group(1))
        if status:
            payload["status"] = status
    desc = re.search(r"\bdescription\s*(?:is|:|=|of)?\s*[\"“'](.+?)[\"”']", extras, re.IGNORECASE)
    if desc:
        payload["description"] = desc.group(1).strip()
    return payload


def _parse_status_target(vocab: StatusVocabulary, text: str) -> str | None:
    """Status named after "to/into/as/in" following a move-like verb."""
    verb = STATUS_VERB_RE.search(text)
    if not verb:
        return None
    for m in re.finditer(r"\b(?:to|into|as|in)\s+([a-z][a-z\- ]*)", text[verb.start():], re.IGNORECASE):
        status = resolve_status_prefix(vocab, m.group(1))
        if status:
            return status
    return None


def _parse_priority_change(text: str, loose: bool = False) -> str | None:
    m = re.search(r"\bpriority\s*(?:to|as|=|:|of)?\s*([a-z0-9][a-z0-9 ]*)", text, re.IGNORECASE)
    if m:
        priority = resolve_priority_prefix(m.group(1))
        if priority:
            return priority
    m = re.search(r"\b(?:to|as)\s+(?:a\s+)?(lowest|low|medium|normal|high|highest|urgent|critical"
                  r"|blocker|p[0-3])\b(?:\s+priority)?", text, re.IGNORECASE)
    if m:
        return resolve_priority(m.group(1))
    m = re.search(r"\b(lowest|low|medium|normal|high|highest|urgent|critical|p[0-3])\s+priority\b",
                  text, re.IGNORECASE)
    if m and loose and re.search(r"\b(set|make|mark|change|update|give|bump|raise|lower)\b",
                                 text, re.IGNORECASE):
        return resolve_priority(m.group(1))
    return None


def _parse_due_change(text: str, today: date | None) -> date | None:
    m = re.search(r"\b(?:due|deadline|end)(?:\s+date)?\s*(?:on|by|at|to|for|is|as|=|:)?\s+(.+)$",
                  text, re.IGNORECASE)
    if m:
        due = parse_date_phrase(m.group(1), today)
        if due:
            return due
    m = re.search(r"\b(?:postpone|push|defer|reschedule|extend)\b.*?\b(?:to|until|till)\s+(.+)$",
                  text, re.IGNORECASE)
    if m:
        return parse_date_phrase(m.group(1), today)
    return None


def _parse_start_change(text: str, today: date | None) -> date | None:
    m = re.search(r"\bstart(?:s|ing)?(?:\s+date)?\s*(?:on|to|at|from|as|=|:)\s*(.+)$", text, re.IGNORECASE)
    if m:
        return parse_date_phrase(m.group(1), today)
    return None


_QUOTED_GROUP = r"(?:\"([^\"]+)\"|“([^”]+)”|(?<![A-Za-z])'([^']+)'(?![A-Za-z]))"


def _parse_title_change(text: str) -> str | None:
    """Quoted new title: 'rename "Old" to "New"' → New, 'rename #4 "New"' → New."""
    for pattern in (r"\b(?:rename|retitle)\b.*?\bto\s+" + _QUOTED_GROUP,
                    r"\btitle\s+(?:to|as|:|=)?\s*" + _QUOTED_GROUP,
                    r"\b(?:rename|retitle)\b.*?" + _QUOTED_GROUP):
        m = re.search(pattern, text or "", re.IGNORECASE)
        if m:
            return next(g for g in m.groups() if g).strip()
    return None


def _parse_description_change(text: str) -> str | None:
    m = re.search(r"\bdescription\s*(?:of\s+(?:task\s+)?#?\d+\s+)?(?:to|as|:|=)\s*(.+)$",
                  text, re.IGNORECASE | re.DOTALL)
    if not m:
        return None
    value = m.group(1).strip()
    quoted = quoted_strings(value)
    if quoted and value[:1] in "\"“'":
        return quoted[0]
    return value.strip(" \"'“”") or None


ASSIGN_TARGET_RE = re.compile(
    r"\b(?:assign|reassign|delegate|allocate)\b(?P<scope>.*?)\bto\s+(?P<target>@?[\w.@'’\-]+(?:\s+[\w.@'’\-]+){0,2})",
    re.IGNORECASE,
)
_TARGET_STOP_RE = re.compile(
    r"\s+(?:and|with|due|by|priority|please|now|instead|as|from|in|on|so|then)\b.*$", re.IGNORECASE
)


def parse_assign_target(text: str) -> tuple[str | None, str]:
    """
    "assign Alice's overdue tasks to Bob" → ("Bob", "Alice's overdue tasks").

    The second element is the text that scopes *which* tasks are assigned,
    with the target clause removed so it never doubles as a filter.
    """
    cleaned = strip_quoted(text or "")
    m = ASSIGN_TARGET_RE.search(cleaned)
    if not m:
        # "assign bob to #3"
        alt = re.search(r"\b(?:assign|reassign)\s+(@?[\w.@\-]+)\s+to\s+(#\d+|task\s+#?\d+)", cleaned,
                        re.IGNORECASE)
        if alt:
            return alt.group(1).lstrip("@"), alt.group(2)
        return None, cleaned
    target = _TARGET_STOP_RE.sub("", m.group("target")).strip().strip(".,;:!?")
    target = target.lstrip("@")
    if target.lower() in {"them", "it", "these", "those"}:
        target = ""
    return (target or None), m.group("scope")


def parse_task_changes(vocab: StatusVocabulary, text: str, today: date | None = None) -> dict:
    """Field changes for a single-task update ("#12 ...")."""
    changes = {}
    plain = strip_quoted(text)

    title = _parse_title_change(text)
    if title:
        changes["title"] = title
    description = _parse_description_change(text)
    if description:
        changes["description"] = description

    # Assign targets that name a status are a status change, never a user
    assign_target = None
    if ASSIGN_VERB_RE.search(plain):
        target, _ = parse_assign_target(plain)
        if target:
            status = vocab.resolve(target)
            if status:
                changes["status"] = status
            else:
                assign_target = target

    without_desc = re.sub(r"\bdescription\b.*$", "", plain, flags=re.IGNORECASE | re.DOTALL)
    if "status" not in changes:
        status = _parse_status_target(vocab, without_desc)
        if status:
            changes["status"] = status

    priority = _parse_priority_change(without_desc, loose=True)
    if priority:
        changes["priority"] = priority

    due = _parse_due_change(without_desc, today)
    if due:
        changes["end_date"] = due.isoformat()
    start = _parse_start_change(without_desc, today)
    if start:
        changes["start_date"] = start.isoformat()

    if assign_target:
        changes["assignee_hint"] = assign_target
    return changes


def parse_bulk_updates(vocab: StatusVocabulary, text: str, today: date | None = None) -> dict:
    """Field updates for a bulk update; assignment is handled separately."""
    updates = {}
    plain = strip_quoted(text)
    if ASSIGN_VERB_RE.search(plain):
        return updates

    without_desc = re.sub(r"\bdescription\b.*$", "", plain, flags=re.IGNORECASE | re.DOTALL)
    status = _parse_status_target(vocab, _strip_status_scope(without_desc))
    if status:
        updates["status"] = status

    priority = _parse_priority_change(without_desc)
    if priority:
        updates["priority"] = priority

    if re.search(r"\b(update|set|change|move|push|postpone|extend|reschedule)\b", plain, re.IGNORECASE):
        m = re.search(r"\b(?:due|deadline|end)(?:\s+date)?\b.*\b(?:to|until)\s+([^.]+)$", plain, re.IGNORECASE)
        if m:
            due = parse_date_phrase(m.group(1), today)
            if due:
                updates["end_date"] = due.isoformat()
        elif re.search(r"\b(?:postpone|push|defer|reschedule|extend)\b", plain, re.IGNORECASE):
            due = _parse_due_change(plain, today)
            if due:
                updates["end_date"] = due.isoformat()

    title = _parse_title_change(text)
    if title:
        updates["title"] = title
    description = _parse_description_change(text)
    if description:
        updates["description"] = description
    return updates


def _strip_status_scope(text: str) -> str:
    """Drop "in review" / "from review" scoping so it is not read as the target."""
    text = re.sub(r"\btasks?\s+(?:in|from)\s+(?:the\s+)?[a-z\-]+(?:\s+(?:column|stage|phase|lane))?",
                  "tasks", text, flags=re.IGNORECASE)
    return re.sub(r"\bfrom\s+(?:the\s+)?[a-z\- ]+?\s+(?=to\b)", "", text, flags=re.IGNORECASE)


def _status_filter(vocab: StatusVocabulary, text: str) -> str | None:
    m = re.search(r"\bstatus\s+(?:is\s+|=\s*|of\s+)?([a-z][a-z\- ]*)", text, re.IGNORECASE)
    if m:
        status = resolve_status_prefix(vocab, m.group(1))
        if status:
            return status
    m = re.search(r"\bfrom\s+(?:the\s+)?([a-z][a-z\- ]*?)\s+(?:column\s+|stage\s+|lane\s+)?to\b",
                  text, re.IGNORECASE)
    if m:
        status = resolve_status_prefix(vocab, m.group(1))
        if status:
            return status
    m = re.search(r"\btasks?\s+(?:that\s+are\s+|which\s+are\s+)?(?:in|from)\s+(?:the\s+)?([a-z][a-z\- ]*)",
                  text, re.IGNORECASE)
    if m:
        status = resolve_status_prefix(vocab, m.group(1))
        if status:
            return status
    for m in re.finditer(r"(?<!to )(?<!as )\b([a-z\-]+(?:\s[a-z\-]+)?)\s+(?:tasks?|items?|cards?)\b",
                         text, re.IGNORECASE):
        words = m.group(1).lower().split()
        for candidate in (" ".join(words), words[-1]):
            token = candidate.split()[-1]
            if token in DIRECTIONAL_STATUS or token in ORDINAL_STAGES:
                continue
            status = vocab.resolve(candidate)
            if status:
                return status
    return None


def _priority_filter(text: str) -> str | None:
    m = re.search(r"(?<!to )(?<!as )\b(lowest|low|medium|normal|high|highest|urgent|critical|blocker|p[0-3])"
                  r"[\s\-]+priority\b", text, re.IGNORECASE)
    if m:
        return resolve_priority(m.group(1))
    m = re.search(r"\bpriority\s+(?:is\s+|=\s*|of\s+)([a-z0-9]+)", text, re.IGNORECASE)
    if m:
        return resolve_priority(m.group(1))
    m = re.search(r"(?<!to )(?<!as )\b(low|medium|high|urgent|critical|blocker)\s+(?:tasks?|items?)\b",
                  text, re.IGNORECASE)
    if m:
        return resolve_priority(m.group(1))
    return None


def _assignee_filter(vocab: StatusVocabulary, text: str) -> str | None:
    if re.search(r"\bowner['’]?s\b", text, re.IGNORECASE):
        return "__owner__"
    m = re.search(r"\bassigned\s+to\s+(@?[\w.@\-]+)", text, re.IGNORECASE)
    if m:
        word = m.group(1).lower()
        if word in ("me", "myself"):
            return "__me__"
        hint = _person_hint(m.group(1))
        if hint:
            return hint
    if re.search(r"\b(my|mine)\b", text, re.IGNORECASE):
        return "__me__"
    m = re.search(r"\b([A-Za-z][\w.\-]*)['’]s\s+(?:[\w\-]+\s+){0,3}(?:tasks?|items?|cards?|work)\b", text)
    if m:
        hint = _person_hint(m.group(1))
        if hint:
            return hint
    m = re.search(r"(?:^|\s)@([\w.\-]{2,40})", text)
    if m:
        return m.group(1)
    m = re.search(r"\bfor\s+([a-z][\w.\-]{1,39})\b(?!\s+priority)", text, re.IGNORECASE)
    if m:
        hint = _person_hint(m.group(1))
        if hint and not vocab.resolve(hint):
            return hint
    return None


def _date_filters(text: str, today: date | None) -> dict:
    today = today or utc_today()
    out = {}
    m = re.search(r"\bdue\s+(?:before|by|until)\s+(.+)$", text, re.IGNORECASE)
    if m:
        d = parse_date_phrase(m.group(1), today)
        if d:
            out["due_before"] = d.isoformat()
    m = re.search(r"\bdue\s+after\s+(.+)$", text, re.IGNORECASE)
    if m:
        d = parse_date_phrase(m.group(1), today)
        if d:
            out["due_after"] = d.isoformat()
    m = re.search(r"\bdue\s+(this|next)\s+week\b", text, re.IGNORECASE)
    if m:
        start, end = week_bounds(today, 0 if m.group(1).lower() == "this" else 1)
        if m.group(1).lower() == "this":
            start = today
        out["due_after"], out["due_before"] = start.isoformat(), end.isoformat()
    elif not out:
        m = re.search(r"\bdue\s+(?:on\s+)?(today|tomorrow|yesterday|(?:next\s+|this\s+)?(?:"
                      + "|".join(WEEKDAYS) + r")|\d{4}-\d{2}-\d{2}|\d{1,2}\.\d{1,2}\.\d{4})\b",
                      text, re.IGNORECASE)
        if m:
            d = parse_relative_date(m.group(1), today=today)
            if d:
                out["due_on"] = d.isoformat()

    m = re.search(r"\bcreated\s+(?:before)\s+(.+)$", text, re.IGNORECASE)
    if m:
        d = parse_date_phrase(m.group(1), today)
        if d:
            out["created_before"] = d.isoformat()
    m = re.search(r"\bcreated\s+(?:after|since)\s+(.+)$", text, re.IGNORECASE)
    if m:
        d = parse_date_phrase(m.group(1), today)
        if d:
            out["created_after"] = d.isoformat()
    m = re.search(r"\bcreated\s+(?:on\s+)?(today|yesterday)\b", text, re.IGNORECASE)
    if m:
        d = parse_relative_date(m.group(1), today=today)
        out["created_after"] = d.isoformat()
        out["created_before"] = (d + timedelta(days=1)).isoformat()
    m = re.search(r"\bcreated\s+this\s+week\b", text, re.IGNORECASE)
    if m:
        start, _ = week_bounds(today)
        out["created_after"] = start.isoformat()
    return out


def parse_filters(vocab: StatusVocabulary, text: str, today: date | None = None) -> dict:
    """Scope filters for bulk operations. Empty dict when nothing scopes the set."""
    filters = {}
    raw = text or ""
    plain = strip_quoted(raw)

    ids = extract_task_ids(plain)
    if ids:
        filters["ids"] = ids

    m = re.search(r"\b(?:titled|named|called|with\s+title|title\s+contains|containing)\s+"
                  r"(?:\"([^\"]+)\"|“([^”]+)”|'([^']+)')", raw, re.IGNORECASE)
    if m:
        filters["title_contains"] = [next(g for g in m.groups() if g).strip()]
    m = re.search(r"\bdescription\s+(?:contains|mentions|includes|with)\s+"
                  r"(?:\"([^\"]+)\"|“([^”]+)”|'([^']+)')", raw, re.IGNORECASE)
    if m:
        filters["description_contains"] = [next(g for g in m.groups() if g).strip()]
    if not filters.get("title_contains") and not filters.get("description_contains"):
        claimed = {_parse_title_change(raw), _parse_description_change(raw)}
        hints = [q for q in quoted_strings(raw) if q not in claimed]
        if hints:
            filters["title_hints"] = hints

    status = _status_filter(vocab, plain)
    if status:
        filters["status"] = status
    priority = _priority_filter(plain)
    if priority:
        filters["priority"] = priority

    if re.search(r"\b(overdue|late|past\s+due)\b", plain, re.IGNORECASE):
        filters["overdue"] = True
    if re.search(r"\b(unassigned|not\s+assigned|without\s+(?:an\s+)?assignee|nobody['’]?s)\b",
                 plain, re.IGNORECASE):
        filters["unassigned"] = True
    else:
        hint = _assignee_filter(vocab, plain)
        if hint:
            filters["assigned_to_hint"] = hint

    filters.update(_date_filters(plain, today))

    if re.search(r"\b(newest|latest|most\s+recent)\b", plain, re.IGNORECASE):
        filters.setdefault("order_by", "created_at")
        filters.setdefault("order", "desc")
    m = re.search(r"\b(?:sorted|ordered|sort|order)\s+by\s+(priority|due\s+date|title|creation|created|status)",
                  plain, re.IGNORECASE)
    if m:
        key = m.group(1).lower()
        filters["order_by"] = {"due date": "end_date", "creation": "created_at", "created": "created_at"}.get(
            re.sub(r"\s+", " ", key), key)

    if re.search(r"\b(all|every)\s+(?:of\s+)?(?:the\s+)?(?:\w+\s+){0,3}?tasks?\b|\beverything\b|\ball\s+of\s+them\b",
                 plain, re.IGNORECASE):
        filters["all"] = True
    return filters


def scoping_keys(filters: dict) -> set:
    """Filter keys that narrow the task set (ordering/window/all excluded)."""
    return {k for k, v in (filters or {}).items()
            if v not in (None, "", [], False) and k not in ("all", "order_by", "order", "limit")}


def bare_status(vocab: StatusVocabulary, text: str) -> str | None:
    """A message that is nothing but a status word ("done", "in progress")."""
    cleaned = re.sub(r"^(?:mark\s+(?:all\s+)?(?:as\s+)?|to\s+)", "", (text or "").strip().lower())
    cleaned = cleaned.strip(" .!?")
    if not cleaned or len(cleaned.split()) > 3:
        return None
    return vocab.resolve(cleaned)
