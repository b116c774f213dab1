"""
Project Task Assistant
Intent router.

route(message, history) → RouteDecision(kind, question, plan, source)

The LLM classifier is tried first when one is configured. On timeout,
malformed output or no LLM at all the regex heuristic decides:

    interrogative and no strong verb   → question
    action verb                        → command
    anything else                      → command

Defaulting to "command" means an unrecognised instruction ends in a
"didn't understand" reply instead of being answered as if it were a question.
"""

import logging
import re
from dataclasses import dataclass

from app.ai.assistants.command_parsing import CREATE_RE, STRONG_VERB_RE, strip_quoted
from app.ai.assistants.plan import Plan
from app.ai.assistants.plan_compiler import PLAN_RULES, PLAN_SCHEMA
from app.middleware.logging_config import log_context

logger = logging.getLogger(__name__)

QUESTION = "question"
COMMAND = "command"

INTERROGATIVE_RE = re.compile(
    r"^\s*(who|what|whats|what's|when|where|which|why|how|is|are|does|do|can|could|should|"
    r"tell\s+me|give\s+me|count)\b"
    r"|\?\s*$"
    r"|\bhow\s+many\b|\blist\b|\bshow\b|\bsummar(?:y|ize|ise)\b|\boverview\b|\bstatus\s+report\b",
    re.IGNORECASE,
)

ROUTER_SYSTEM_PROMPT = (
    "You route messages sent to a project task assistant. Decide whether the message asks a "
    "read-only question about the project or requests a change to its tasks. "
    "Respond with a single JSON object and nothing else:\n"
    '{"kind": "question" | "command", "question": str, "plan": <plan or null>}\n'
    "For a question, copy the question into \"question\" and set \"plan\" to null. "
    "For a command, describe it in \"plan\" using this shape:\n"
    f"{PLAN_SCHEMA}\n\nRules:\n{PLAN_RULES}"
)


@dataclass
class RouteDecision:
    kind: str
    question: str | None = None
    plan: Plan | None = None
    source: str = "heuristic"

    @property
    def is_question(self) -> bool:
        return self.kind == QUESTION


def heuristic_kind(message: str) -> str:
    text = strip_quoted(message or "")
    if INTERROGATIVE_RE.search(text) and not (STRONG_VERB_RE.search(text) or CREATE_RE.search(text)):
        return QUESTION
    return COMMAND


class IntentRouter:
    def __init__(self, llm=None, *, project_id: int | None = None):
        self.llm = llm
        self.project_id = project_id

    def route(self, message: str, history: list | None = None) -> RouteDecision:
        decision = self._route_llm(message, history)
        if decision is not None:
            return decision
        kind = heuristic_kind(message)
        return RouteDecision(kind=kind, question=message if kind == QUESTION else None)

    def _route_llm(self, message: str, history: list | None) -> RouteDecision | None:
        if self.llm is None or not self.llm.enabled:
            return None
        messages = [{"role": "system", "content": ROUTER_SYSTEM_PROMPT}]
        for turn in (history or [])[-4:]:
            if isinstance(turn, dict) and turn.get("role") in ("user", "assistant"):
                messages.append({"role": turn["role"], "content": str(turn.get("content") or "")})
        messages.append({"role": "user", "content": message})

        result = self.llm.classify_or_plan(messages, purpose="assistant_route")
        if not result.ok:
            logger.info("Router LLM fell back to heuristics: %s", result.error,
                        extra=log_context(project_id=self.project_id, stage="route"))
            return None

        data = result.value
        kind = str(data.get("kind") or "").strip().lower()
        if kind == QUESTION:
            question = str(data.get("question") or "").strip() or message
            return RouteDecision(kind=QUESTION, question=question, source="llm")
        if kind == COMMAND:
            # A command without a usable plan still goes through the deterministic compiler
            return RouteDecision(kind=COMMAND, plan=Plan.from_dict(data.get("plan")), source="llm")
        logger.info("Router LLM returned unknown kind %r", kind,
                    extra=log_context(project_id=self.project_id, stage="route"))
        return None


def route(message: str, history: list | None = None, llm=None) -> RouteDecision:
    return IntentRouter(llm).route(message, history)
