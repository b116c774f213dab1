"""
Project Task Assistant
Project assistant: the two-phase compile / execute entry points.

    compile(message, history) → {kind, message, plan?, plan_token?,
                                 requires_confirmation, suggestions?, meta}
    execute(plan)             → {type, message, affected_count, snapshot}

Flow for one message:

    secret filter → route → question → answer
                          → command  → compile → normalize → validate
                                       → (one LLM repair on failure)
                                       → preview + signed plan token

compile never writes tasks. execute re-normalizes and re-validates the
confirmed plan before handing it to the executor.
"""

import logging

from flask import current_app

from app.ai.assistants.entity_matcher import TITLE_MATCH_THRESHOLD, EntityMatcher
from app.ai.assistants.intent_router import IntentRouter
from app.ai.assistants.plan import Plan
from app.ai.assistants.plan_compiler import DEFAULT_HISTORY_LOOKBACK, CompileResult, PlanCompiler
from app.ai.assistants.plan_normalizer import PlanNormalizer
from app.ai.assistants.plan_preview import PreviewRenderer
from app.ai.assistants.plan_validator import MSG_UNINTELLIGIBLE, PlanValidator
from app.ai.assistants.question_answering import SUGGESTIONS, QuestionAnswerer
from app.ai.gateway import AssistantLLM
from app.middleware.logging_config import log_context
from app.services.plan_executor import MSG_GENERIC_FAILURE, PlanExecutor
from app.services.plan_token import issue_plan_token
from app.services.task_query import build_snapshot

logger = logging.getLogger(__name__)

MSG_SECRET_REFUSAL = ("I can't process content that looks like secrets or credentials. "
                      "Please remove them and try again.")
MSG_EMPTY = "Please type a question or a command."

SECRET_NEEDLES = (
    "api_key", "api-key", "apikey", "secret=", "password=", "pwd=", "token=", "bearer ",
    "ghp_", "-----begin ", "private key", "aws_access_key_id", "aws_secret_access_key",
)


def looks_like_secret(text: str) -> bool:
    lowered = (text or "").lower()
    return any(needle in lowered for needle in SECRET_NEEDLES)


def get_assistant_llm() -> AssistantLLM:
    """Lazy per-app AssistantLLM (test-isolation safe)."""
    if not hasattr(current_app, "_assistant_llm"):
        current_app._assistant_llm = AssistantLLM.from_config(current_app.config)
    return current_app._assistant_llm


class ProjectAssistant:
    """Assistant bound to one project and one acting user."""

    def __init__(self, project, actor_id: int | None = None, llm: AssistantLLM | None = None, *,
                 history_lookback: int = DEFAULT_HISTORY_LOOKBACK,
                 fuzzy_threshold: float = TITLE_MATCH_THRESHOLD, today=None):
        self.project = project
        self.actor_id = actor_id
        self.llm = llm
        self.matcher = EntityMatcher(project, actor_id, threshold=fuzzy_threshold)
        self.router = IntentRouter(llm, project_id=project.id)
        self.compiler = PlanCompiler(project, actor_id, llm, history_lookback=history_lookback, today=today)
        self.normalizer = PlanNormalizer(project)
        self.validator = PlanValidator(project, actor_id, self.matcher)
        self.previewer = PreviewRenderer(project, actor_id, self.matcher)
        self.answerer = QuestionAnswerer(project, actor_id, llm, today=today)

    @classmethod
    def for_request(cls, project, actor_id: int | None = None) -> "ProjectAssistant":
        config = current_app.config
        return cls(
            project,
            actor_id,
            get_assistant_llm(),
            history_lookback=int(config.get("ASSISTANT_HISTORY_LOOKBACK", DEFAULT_HISTORY_LOOKBACK)),
            fuzzy_threshold=float(config.get("ASSISTANT_FUZZY_THRESHOLD", TITLE_MATCH_THRESHOLD)),
        )

    def _log_failure(self, message: str, stage: str):
        logger.exception("Assistant %s failed for message %r", stage, (message or "")[:200],
                         extra=log_context(project_id=self.project.id, stage=stage))

    # ── Phase 1: compile ──────────────────────────────────────────────────

    def compile(self, message: str, history: list | None = None) -> dict:
        text = (message or "").strip()
        if not text:
            return _reply("error", MSG_EMPTY)
        if looks_like_secret(text):
            logger.warning("Rejected secret-like input", extra=log_context(project_id=self.project.id,
                                                                           stage="security"))
            return _reply("error", MSG_SECRET_REFUSAL, meta={"stage": "security"})

        stage = "route"
        try:
            decision = self.router.route(text, history)
            if decision.is_question:
                stage = "answer"
                answer = self.answerer.answer(decision.question or text)
                return _reply("information", answer.text,
                              meta={"route": decision.source, "answer": answer.source})
            stage = "compile"
            return self._compile_command(text, history, decision.plan, decision.source)
        except Exception:
            self._log_failure(text, stage)
            return _reply("error", MSG_GENERIC_FAILURE, meta={"stage": stage})

    def _compile_command(self, text: str, history: list | None, routed_plan: Plan | None,
                         route_source: str) -> dict:
        meta = {"route": route_source, "repaired": False}

        result = self.compiler.compile(text, history, synthesize=routed_plan is None)
        if not result.ok and result.error is None and routed_plan is not None:
            result = CompileResult(plan=routed_plan, source="llm")
        meta["compile"] = result.source
        if result.error:
            return _reply("error", result.error, meta=meta)

        plan = self.normalizer.normalize(result.plan) if result.ok else None
        if plan is None:
            return _reply("information", MSG_UNINTELLIGIBLE, suggestions=SUGGESTIONS, meta=meta)

        verdict = self.validator.validate(plan)
        if not verdict.ok:
            repaired = self.compiler.repair(text, plan, verdict.reason)
            repaired = self.normalizer.normalize(repaired) if repaired is not None else None
            if repaired is not None:
                second = self.validator.validate(repaired)
                if second.ok:
                    plan, verdict = repaired, second
                    meta["repaired"] = True
        if not verdict.ok:
            meta["plan_type"] = plan.type.value
            return _reply("error", verdict.reason, meta=meta)

        meta["plan_type"] = plan.type.value
        logger.info("Compiled %s plan (%s)", plan.type.value, result.source,
                    extra=log_context(project_id=self.project.id, stage="compile",
                                      plan_type=plan.type.value))
        return _reply(
            "command",
            self.previewer.render(plan),
            plan=plan.to_dict(),
            plan_token=issue_plan_token(plan, self.project.id, self.actor_id),
            requires_confirmation=True,
            meta=meta,
        )

    # ── Phase 2: execute ──────────────────────────────────────────────────

    def execute(self, plan) -> dict:
        """Run a confirmed plan. The plan is re-checked against current data first."""
        try:
            normalized = self.normalizer.normalize(plan)
            verdict = self.validator.validate(normalized)
            if not verdict.ok:
                return {
                    "type": "error",
                    "message": verdict.reason,
                    "affected_count": 0,
                    "snapshot": build_snapshot(self.project),
                }
            executor = PlanExecutor(self.project, self.actor_id, self.matcher)
            return executor.execute(normalized)
        except Exception:
            self._log_failure(str(getattr(plan, "type", "")), "execute")
            return {
                "type": "error",
                "message": MSG_GENERIC_FAILURE,
                "affected_count": 0,
                "snapshot": build_snapshot(self.project),
            }


def _reply(kind: str, message: str, *, plan: dict | None = None, plan_token: str | None = None,
           requires_confirmation: bool = False, suggestions: list | None = None,
           meta: dict | None = None) -> dict:
    reply = {
        "kind": kind,
        "message": message,
        "requires_confirmation": requires_confirmation,
        "meta": meta or {},
    }
    if plan is not None:
        reply["plan"] = plan
    if plan_token is not None:
        reply["plan_token"] = plan_token
    if suggestions:
        reply["suggestions"] = list(suggestions)
    return reply
