"""
Project Task Assistant
Tests — assistant blueprint (compile / execute / history / snapshot).

Covers:
    - compile never changes tasks and returns a signed plan token
    - execute runs the confirmed plan; stale, tampered or foreign tokens → 409
    - request validation (400 / 403 / 404)
    - credential-looking messages are refused and stored redacted
"""

import pytest

from app.ai.assistants.project_assistant import MSG_SECRET_REFUSAL
from app.blueprints.assistant_bp import MAX_MESSAGE_LENGTH, REDACTED
from app.models import db
from app.models.task import Task
from app.services.plan_token import MSG_TOKEN_EXPIRED, MSG_TOKEN_INVALID


def _url(project, action):
    return f"/api/v1/projects/{project.id}/assistant/{action}"


def _compile(client, project, message, **extra):
    return client.post(_url(project, "compile"), json={"message": message, **extra})


def _execute(client, project, token, **extra):
    return client.post(_url(project, "execute"), json={"plan_token": token, **extra})


@pytest.fixture()
def board(make_task):
    """#1 todo, #2 review "Deploy staging", #3 done."""
    return [
        make_task("Write docs"),
        make_task("Deploy staging", status="review"),
        make_task("Kickoff", status="done"),
    ]


# ═════════════════════════════════════════════════════════════════════════════
# COMPILE → EXECUTE
# ═════════════════════════════════════════════════════════════════════════════

class TestCompileAndExecute:
    def test_move_task_to_done(self, client, project, board):
        deploy = board[1]
        res = _compile(client, project, f"move #{deploy.id} to done")
        assert res.status_code == 200
        body = res.get_json()
        assert body["kind"] == "command"
        assert body["requires_confirmation"] is True
        assert body["plan"] == {"type": "task_update", "selector": {"id": deploy.id},
                                "changes": {"status": "done"}}
        assert body["plan_token"]
        assert db.session.get(Task, deploy.id).status == "review"

        res = _execute(client, project, body["plan_token"])
        assert res.status_code == 200
        result = res.get_json()
        assert result["type"] == "information"
        assert result["message"] == f"Task #{deploy.id} updated successfully."
        assert result["affected_count"] == 1
        assert result["snapshot"]["by_status"] == {"todo": 1, "inprogress": 0, "review": 0, "done": 2}

    def test_window_applies_to_first_two(self, client, project, board):
        body = _compile(client, project, "move all tasks to second stage, only the first two").get_json()
        assert body["plan"]["filters"] == {"all": True, "limit": 2, "order_by": "created_at", "order": "asc"}

        result = _execute(client, project, body["plan_token"]).get_json()
        assert result["message"] == "Updated 2 task(s) successfully."
        statuses = [db.session.get(Task, t.id).status for t in board]
        assert statuses == ["inprogress", "inprogress", "done"]

    def test_window_follow_up_uses_stored_history(self, client, project, board):
        _compile(client, project, "move all tasks to second stage")
        body = _compile(client, project, "only the first two").get_json()
        assert body["kind"] == "command"
        assert body["meta"]["compile"] == "history"
        assert body["plan"]["updates"] == {"status": "inprogress"}
        assert body["plan"]["filters"]["limit"] == 2

    def test_plan_rejected_when_task_disappears(self, client, project, board):
        doomed = board[0]
        body = _compile(client, project, f"move #{doomed.id} to review").get_json()
        db.session.delete(doomed)
        db.session.commit()

        res = _execute(client, project, body["plan_token"])
        assert res.status_code == 422
        assert res.get_json()["message"] == f"Task #{doomed.id} was not found in this project."

    def test_field_edit_never_deletes(self, client, project, board):
        task = board[0]
        for message in (f"clear the due date of #{task.id}", f"erase the description of #{task.id}"):
            body = _compile(client, project, message).get_json()
            assert body.get("plan", {}).get("type") != "task_delete"
        assert db.session.get(Task, task.id) is not None

    def test_bulk_move_by_task_numbers(self, client, project, board):
        first, second = board[0], board[1]
        body = _compile(client, project, f"move task {first.id} and task {second.id} to done").get_json()
        assert body["plan"]["filters"] == {"ids": [first.id, second.id]}

        result = _execute(client, project, body["plan_token"]).get_json()
        assert result["affected_count"] == 2
        assert {db.session.get(Task, t.id).status for t in board} == {"done"}

    def test_zero_matches_has_no_token(self, client, project, board):
        body = _compile(client, project, "delete all high priority tasks").get_json()
        assert body["kind"] == "error"
        assert "plan_token" not in body
        assert Task.query.count() == 3

    def test_compile_does_not_mutate(self, client, project, board):
        for message in ("delete all tasks", "move all tasks to done", "assign all tasks to bob"):
            assert _compile(client, project, message).get_json()["kind"] == "command"
        assert [t.status for t in Task.query.order_by(Task.id)] == ["todo", "review", "done"]
        assert Task.query.filter(Task.assignee_id.isnot(None)).count() == 0

    def test_question_is_answered(self, client, project, board):
        body = _compile(client, project, "how many tasks are done?").get_json()
        assert body["kind"] == "information"
        assert body["requires_confirmation"] is False
        assert body["message"] == '1 task(s) in "Done".'


# ═════════════════════════════════════════════════════════════════════════════
# PLAN TOKENS
# ═════════════════════════════════════════════════════════════════════════════

class TestPlanToken:
    def _token(self, client, project, task, **extra):
        return _compile(client, project, f"move #{task.id} to done", **extra).get_json()["plan_token"]

    def test_actor_mismatch(self, client, project, alice, bob, board):
        token = self._token(client, project, board[0], actor_id=alice.id)
        res = _execute(client, project, token, actor_id=bob.id)
        assert res.status_code == 409
        assert res.get_json()["code"] == "PLAN_TOKEN_INVALID"
        assert db.session.get(Task, board[0].id).status == "todo"

    def test_tampered_token(self, client, project, board):
        token = self._token(client, project, board[0])
        res = _execute(client, project, token[:-4] + "abcd")
        assert res.status_code == 409
        assert res.get_json()["error"] == MSG_TOKEN_INVALID

    def test_token_for_another_project(self, client, project, owner, board, make_project):
        token = self._token(client, project, board[0])
        other = make_project(owner, name="Other")
        assert _execute(client, other, token).status_code == 409

    def test_expired_token(self, app, client, project, board, monkeypatch):
        monkeypatch.setitem(app.config, "PLAN_TOKEN_EXPIRES", -1)
        token = self._token(client, project, board[0])
        res = _execute(client, project, token)
        assert res.status_code == 409
        assert res.get_json()["error"] == MSG_TOKEN_EXPIRED

    def test_missing_token(self, client, project):
        assert _execute(client, project, "").status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# REQUEST VALIDATION
# ═════════════════════════════════════════════════════════════════════════════

class TestRequestValidation:
    def test_missing_message(self, client, project):
        res = client.post(_url(project, "compile"), json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_message_too_long(self, client, project):
        assert _compile(client, project, "x" * (MAX_MESSAGE_LENGTH + 1)).status_code == 400

    def test_unknown_project(self, client):
        res = client.post("/api/v1/projects/999/assistant/compile", json={"message": "help"})
        assert res.status_code == 404
        assert res.get_json() == {"error": "Project not found", "code": "ERR_NOT_FOUND"}

    def test_body_must_be_json(self, client, project):
        res = client.post(_url(project, "compile"), data="message=help", content_type="text/plain")
        assert res.status_code == 415

    def test_app_level_errors_carry_a_code(self, client, project):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json() == {"error": "Not found", "code": "ERR_NOT_FOUND",
                                  "details": {"path": "/api/v1/nowhere"}}

        res = client.get(_url(project, "compile"))
        assert res.status_code == 405
        assert res.get_json() == {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}

        res = client.post(_url(project, "compile"), data="message=help", content_type="text/plain")
        assert res.get_json()["code"] == "ERR_UNSUPPORTED_MEDIA_TYPE"

    def test_request_id_and_timing_headers(self, client, project):
        res = client.post(_url(project, "compile"), json={"message": "help"}, headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_non_member_actor(self, client, project, make_user):
        stranger = make_user("Sam Stranger")
        res = _compile(client, project, "help", actor_id=stranger.id)
        assert res.status_code == 403

    def test_non_integer_actor(self, client, project):
        assert _compile(client, project, "help", actor_id="alice").status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY / SNAPSHOT
# ═════════════════════════════════════════════════════════════════════════════

class TestHistoryAndSnapshot:
    def test_secret_is_refused_and_redacted(self, client, project):
        body = _compile(client, project, "remember my api_key=sk-123456 for later", session_id="s1").get_json()
        assert body["kind"] == "error"
        assert body["message"] == MSG_SECRET_REFUSAL

        history = client.get(_url(project, "history") + "?session_id=s1").get_json()
        assert history["total"] == 2
        assert history["items"][0]["content"] == REDACTED
        assert "sk-123456" not in str(history)

    def test_history_is_per_session(self, client, project):
        _compile(client, project, "help", session_id="a")
        _compile(client, project, "help", session_id="b")
        items = client.get(_url(project, "history") + "?session_id=a").get_json()["items"]
        assert [m["role"] for m in items] == ["user", "assistant"]
        assert items[1]["kind"] == "information"

    def test_snapshot(self, client, project, board):
        res = client.get(_url(project, "snapshot"))
        assert res.status_code == 200
        snapshot = res.get_json()
        assert snapshot["total"] == 3
        assert snapshot["by_status"]["review"] == 1
        assert snapshot["overdue"] == 0
