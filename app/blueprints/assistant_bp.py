"""
Project Task Assistant
Assistant Blueprint.

Endpoints:
    COMPILE   /api/v1/projects/<pid>/assistant/compile    POST  question → answer,
                                                                command → preview + plan_token
    EXECUTE   /api/v1/projects/<pid>/assistant/execute    POST  confirmed plan_token → result
    HISTORY   /api/v1/projects/<pid>/assistant/history    GET   ?session_id=
    SNAPSHOT  /api/v1/projects/<pid>/assistant/snapshot   GET
"""

from flask import Blueprint, current_app, jsonify, request

from app.ai.assistants.project_assistant import ProjectAssistant, looks_like_secret
from app.ai.conversation import MAX_HISTORY_MESSAGES, ConversationManager
from app.core.exceptions import ValidationError
from app.models.project import Project
from app.services.plan_token import read_plan_token
from app.services.task_query import build_snapshot
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, get_or_404

assistant_bp = Blueprint("assistant", __name__, url_prefix="/api/v1/projects/<int:pid>/assistant")

# ── Rate limiting ─────────────────────────────────────────────────────────
from app import limiter  # noqa: E402

_assistant_compile_limit = limiter.shared_limit("30/minute", scope="assistant_compile")

MAX_MESSAGE_LENGTH = 2000
REDACTED = "[message removed: looked like a credential]"


def _actor_id(data: dict, project: Project):
    """(actor_id, error_response). A given actor must belong to the project."""
    raw = data.get("actor_id")
    if raw in (None, ""):
        return None, None
    try:
        actor_id = int(raw)
    except (TypeError, ValueError):
        return None, api_error(E.VALIDATION_INVALID, "actor_id must be an integer")
    if not project.is_member(actor_id):
        return None, api_error(E.FORBIDDEN, "actor is not a member of this project")
    return actor_id, None


def _conversation(pid: int, session_id) -> ConversationManager:
    limit = current_app.config.get("ASSISTANT_HISTORY_LIMIT", MAX_HISTORY_MESSAGES)
    return ConversationManager(pid, str(session_id) if session_id else None, max_history=limit)


@assistant_bp.route("/compile", methods=["POST"])
@_assistant_compile_limit
def compile_message(pid):
    """
    Route and compile one message. Never changes tasks.

    Body: {message, actor_id?, session_id?, history?: [{role, content}]}
    Returns: {kind, message, requires_confirmation, plan?, plan_token?, suggestions?, meta}
    """
    project, err = get_or_404(Project, pid)
    if err:
        return err
    data = request.get_json(silent=True) or {}

    message = (data.get("message") or "").strip()
    if not message:
        return api_error(E.VALIDATION_REQUIRED, "message is required")
    if len(message) > MAX_MESSAGE_LENGTH:
        return api_error(E.VALIDATION_INVALID, f"message must be ≤ {MAX_MESSAGE_LENGTH} characters")
    actor_id, err = _actor_id(data, project)
    if err:
        return err

    conversation = _conversation(pid, data.get("session_id"))
    history = data.get("history")
    if not isinstance(history, list):
        history = conversation.recent_history()

    result = ProjectAssistant.for_request(project, actor_id).compile(message, history)

    stored = REDACTED if looks_like_secret(message) else message
    conversation.record("user", stored, user_id=actor_id)
    conversation.record("assistant", result["message"], kind=result["kind"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200


@assistant_bp.route("/execute", methods=["POST"])
def execute_plan(pid):
    """
    Execute a previously compiled and confirmed plan.

    Body: {plan_token, actor_id?, session_id?}
    Returns: {type, message, affected_count, snapshot}; 422 when the plan is
    no longer executable, 409 when the token is expired or not for this project/actor.
    """
    project, err = get_or_404(Project, pid)
    if err:
        return err
    data = request.get_json(silent=True) or {}

    token = (data.get("plan_token") or "").strip()
    if not token:
        return api_error(E.VALIDATION_REQUIRED, "plan_token is required")
    actor_id, err = _actor_id(data, project)
    if err:
        return err

    try:
        plan = read_plan_token(token, project.id, actor_id)
    except ValidationError as e:
        return api_error(E.PLAN_TOKEN_INVALID, str(e))

    result = ProjectAssistant.for_request(project, actor_id).execute(plan)

    conversation = _conversation(pid, data.get("session_id"))
    conversation.record("assistant", result["message"],
                        kind="information" if result["type"] == "information" else "error")
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), (200 if result["type"] == "information" else 422)


@assistant_bp.route("/history", methods=["GET"])
def get_history(pid):
    """Stored turns for one session, oldest first."""
    _, err = get_or_404(Project, pid)
    if err:
        return err
    items = _conversation(pid, request.args.get("session_id")).list_messages()
    return jsonify({"items": items, "total": len(items)}), 200


@assistant_bp.route("/snapshot", methods=["GET"])
def get_snapshot(pid):
    """Task counts by status and priority plus overdue, computed now."""
    project, err = get_or_404(Project, pid)
    if err:
        return err
    return jsonify(build_snapshot(project)), 200
