"""Shared utility functions.

get_or_404:          tuple-return lookup for blueprints (NOT abort)
parse_date:          ISO / DD.MM.YYYY parsing, returns None on bad input
parse_relative_date: "tomorrow", "next friday", "in 3 days", ... on top of parse_date
utc_today:           the date every overdue / due-window comparison uses
db_commit_or_error:  commit helper returning an error tuple on failure
"""
import logging
import re
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, api_error(E.NOT_FOUND, ...))

        obj, err = get_or_404(Project, pid)
        if err:
            return err
    """
    obj = db.session.get(model, pk)
    if obj is None:
        return None, api_error(E.NOT_FOUND, f"{label or model.__name__} not found")
    return obj, None


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_relative_date(value, today: date | None = None):
    """Resolve a relative or absolute date phrase to a date.

    Understands today / tomorrow / yesterday, "next week", "in N days",
    "+N weeks", weekday names (nearest upcoming, today included) and
    "next <weekday>" (strictly after today), then falls back to parse_date.
    Returns None when nothing matches.
    """
    if not value:
        return None
    if isinstance(value, date):
        return parse_date(value)
    today = today or utc_today()
    text = re.sub(r"\s+", " ", str(value).strip().lower())

    if text in ("today", "tonight", "eod", "end of day"):
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    if text == "yesterday":
        return today - timedelta(days=1)
    if text == "next week":
        return today + timedelta(days=7)
    if text == "next month":
        return today + timedelta(days=30)

    m = re.fullmatch(r"(?:in|\+)\s*(\d+|[a-z]+)\s*(day|days|week|weeks)", text)
    if m:
        raw = m.group(1)
        n = int(raw) if raw.isdigit() else _NUMBER_WORDS.get(raw)
        if n is not None:
            days = n * 7 if m.group(2).startswith("week") else n
            return today + timedelta(days=days)

    m = re.fullmatch(r"(next|this|on)?\s*(" + "|".join(WEEKDAYS) + r")", text)
    if m:
        target = WEEKDAYS.index(m.group(2))
        delta = (target - today.weekday()) % 7
        if m.group(1) == "next" and delta == 0:
            delta = 7
        return today + timedelta(days=delta)

    return parse_date(text)


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the session; on failure roll back and return an error tuple.

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409, any other SQLAlchemyError → 500.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        return api_error(E.DATABASE, "Database error")
    return None
