"""
Project Task Assistant
Fuzzy entity matcher.

Turns free-text hints into concrete ids:
    - task titles:  exact → substring → edit-distance similarity (≥ threshold)
    - assignees:    pronoun / owner / id / email / name, members only

A hint that does not clear a tier is dropped, never guessed.
"""

import logging
import re

from email_validator import EmailNotValidError, validate_email

from app.models import db
from app.models.auth import User
from app.models.task import Task

logger = logging.getLogger(__name__)

TITLE_MATCH_THRESHOLD = 0.55

SELF_HINTS = {"me", "myself", "i", "__me__"}
OWNER_HINTS = {"owner", "project owner", "the owner", "the project owner", "__owner__"}


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - normalised edit distance, boosted when one string contains the other."""
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    score = 1.0 - min(1.0, levenshtein(a, b) / longest)
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if shorter and shorter in longer:
        score = max(score, len(shorter) / longest)
    return score


def clean_assignee_hint(hint) -> str:
    """Strip a leading @, a possessive 's and surrounding quotes/whitespace."""
    text = str(hint or "").strip().strip("\"'")
    text = text.lstrip("@")
    text = re.sub(r"['’]s$", "", text)
    return re.sub(r"\s+", " ", text).strip()


def is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class EntityMatcher:
    """Resolves title and assignee hints within one project."""

    def __init__(self, project, actor_id: int | None = None,
                 threshold: float = TITLE_MATCH_THRESHOLD):
        self.project = project
        self.actor_id = actor_id
        self.threshold = threshold

    # ── Titles ────────────────────────────────────────────────────────────

    def resolve_title(self, hint: str, tasks: list | None = None) -> int | None:
        needle = (hint or "").strip().lower()
        if not needle:
            return None
        if tasks is None:
            tasks = Task.query.filter_by(project_id=self.project.id).order_by(Task.id).all()

        for task in tasks:
            if (task.title or "").strip().lower() == needle:
                return task.id
        for task in tasks:
            if needle in (task.title or "").lower():
                return task.id

        best_id, best_score = None, 0.0
        for task in tasks:
            score = similarity(task.title or "", needle)
            if score > best_score:
                best_id, best_score = task.id, score
        if best_id is not None and best_score >= self.threshold:
            return best_id
        logger.debug("Title hint %r unresolved (best=%.2f)", hint, best_score)
        return None

    def resolve_titles(self, hints) -> list[int]:
        """Resolve every hint; unresolved hints are dropped. Order kept, ids unique."""
        tasks = Task.query.filter_by(project_id=self.project.id).order_by(Task.id).all()
        ids = []
        for hint in hints or []:
            task_id = self.resolve_title(hint, tasks)
            if task_id is not None and task_id not in ids:
                ids.append(task_id)
        return ids

    # ── Assignees ─────────────────────────────────────────────────────────

    def resolve_assignee(self, hint) -> int | None:
        """Hint → member user id, or None. Callers must surface None as an error."""
        text = clean_assignee_hint(hint)
        if not text:
            return None
        lowered = text.lower()

        if lowered in SELF_HINTS:
            return self.actor_id
        if lowered in OWNER_HINTS:
            return self.project.owner_id

        if text.isdigit():
            user = db.session.get(User, int(text))
            return user.id if user and self.project.is_member(user.id) else None

        if "@" in text and is_email(text):
            user = User.query.filter(db.func.lower(User.email) == lowered).first()
            return user.id if user and self.project.is_member(user.id) else None

        candidates = self.project.member_users()
        for user in candidates:
            if (user.name or "").lower() == lowered:
                return user.id
        tokens = lowered.split()
        if len(tokens) > 1:
            for user in candidates:
                name = (user.name or "").lower()
                if all(t in name for t in tokens):
                    return user.id
        for user in candidates:
            if lowered in (user.name or "").lower():
                return user.id
        return None

    def assignee_name(self, user_id: int | None) -> str | None:
        if user_id is None:
            return None
        user = db.session.get(User, user_id)
        return user.name if user else None
