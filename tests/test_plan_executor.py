"""
Project Task Assistant
Tests — plan execution (the only write path).

Covers per-type results, per-row commits with partial failure,
assignee resolution before any write, and error mapping.
"""

from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from app.ai.assistants.plan import Plan, PlanType
from app.models import db
from app.models.task import Task
from app.services.plan_executor import MSG_GENERIC_FAILURE, MSG_NO_CHANGES, PlanExecutor
from app.utils.helpers import utc_today


def _status_of(task_id):
    return db.session.get(Task, task_id).status


class TestSingleTask:
    def test_create_uses_actor_as_creator(self, project, alice):
        result = PlanExecutor(project, alice.id).execute(Plan(
            PlanType.CREATE_TASK,
            payload={"title": "Write docs", "status": "review", "priority": "high",
                     "end_date": "2030-03-08", "assignee_hint": "bob"},
        ))
        assert result["type"] == "information"
        assert result["message"] == 'Task "Write docs" created successfully.'
        assert result["affected_count"] == 1
        task = Task.query.filter_by(title="Write docs").one()
        assert task.creator_id == alice.id
        assert task.status == "review"
        assert task.assignee.name == "Bob Jones"
        assert task.end_date.isoformat() == "2030-03-08"
        assert result["snapshot"]["by_status"]["review"] == 1

    def test_create_without_actor_is_credited_to_owner(self, project, owner):
        PlanExecutor(project, None).execute(Plan(PlanType.CREATE_TASK, payload={"title": "Orphan"}))
        task = Task.query.filter_by(title="Orphan").one()
        assert task.creator_id == owner.id
        assert (task.status, task.priority) == ("todo", "medium")

    def test_update(self, project, make_task):
        task = make_task("Deploy staging", status="review")
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.TASK_UPDATE, selector={"id": task.id}, changes={"status": "done"})
        )
        assert result["message"] == f"Task #{task.id} updated successfully."
        assert result["affected_count"] == 1
        assert _status_of(task.id) == "done"

    def test_update_without_difference(self, project, make_task):
        task = make_task("Deploy staging", status="done")
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.TASK_UPDATE, selector={"id": task.id}, changes={"status": "done"})
        )
        assert result["type"] == "information"
        assert result["message"] == MSG_NO_CHANGES
        assert result["affected_count"] == 0

    def test_delete(self, project, make_task):
        task = make_task("Obsolete")
        task_id = task.id
        result = PlanExecutor(project, None).execute(Plan(PlanType.TASK_DELETE, selector={"id": task_id}))
        assert result["message"] == f'Task #{task_id} "Obsolete" deleted.'
        assert db.session.get(Task, task_id) is None

    def test_missing_task(self, project):
        result = PlanExecutor(project, None).execute(Plan(PlanType.TASK_DELETE, selector={"id": 999}))
        assert result["type"] == "error"
        assert result["message"] == "Task #999 was not found in this project."
        assert result["affected_count"] == 0

    def test_task_of_another_project_is_not_found(self, project, owner, make_task, make_project):
        foreign = make_task("Theirs", target=make_project(owner, name="Other"))
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.TASK_UPDATE, selector={"id": foreign.id}, changes={"status": "done"})
        )
        assert result["type"] == "error"
        assert _status_of(foreign.id) == "todo"


class TestBulk:
    def test_counts_only_changed_rows(self, project, make_task):
        make_task("A")
        make_task("B", status="done")
        make_task("C", status="review")
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.BULK_UPDATE, filters={"all": True}, updates={"status": "done"})
        )
        assert result["message"] == "Updated 2 task(s) successfully."
        assert result["affected_count"] == 2
        assert result["snapshot"]["by_status"]["done"] == 3

    def test_window_limits_rows(self, project, make_task):
        a = make_task("A")
        b = make_task("B", status="review")
        c = make_task("C")
        result = PlanExecutor(project, None).execute(Plan(
            PlanType.BULK_UPDATE,
            filters={"all": True, "limit": 2, "order_by": "created_at", "order": "asc"},
            updates={"status": "inprogress"},
        ))
        assert result["affected_count"] == 2
        assert [_status_of(t.id) for t in (a, b, c)] == ["inprogress", "inprogress", "todo"]

    def test_assign(self, project, alice, make_task):
        make_task("A")
        make_task("B")
        make_task("C", assignee=alice)
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.BULK_ASSIGN, filters={"unassigned": True}, assignee="bob")
        )
        assert result["message"] == "Assigned 2 task(s) to Bob Jones."
        assert Task.query.filter(Task.assignee_id.is_(None)).count() == 0

    def test_unresolved_assignee_touches_nothing(self, project, make_task):
        make_task("A")
        make_task("B")
        result = PlanExecutor(project, None).execute(
            Plan(PlanType.BULK_ASSIGN, filters={"all": True}, assignee="zelda")
        )
        assert result["type"] == "error"
        assert result["message"] == 'Could not find a project member matching "zelda".'
        assert result["affected_count"] == 0
        assert Task.query.filter(Task.assignee_id.isnot(None)).count() == 0

    def test_deletes(self, project, make_task):
        late = utc_today() - timedelta(days=1)
        make_task("Late 1", end_date=late)
        make_task("Late 2", end_date=late, status="done")
        make_task("Fine")
        executor = PlanExecutor(project, None)

        result = executor.execute(Plan(PlanType.BULK_DELETE_OVERDUE))
        assert result["message"] == "Deleted 1 overdue task(s)."

        result = executor.execute(Plan(PlanType.BULK_DELETE, filters={"status": "done"}))
        assert result["message"] == "Deleted 1 task(s)."

        result = executor.execute(Plan(PlanType.BULK_DELETE_ALL))
        assert result["message"] == "Deleted ALL 1 task(s) in this project."
        assert result["snapshot"]["total"] == 0

    def test_partial_failure_keeps_committed_rows(self, project, make_task):
        tasks = [make_task(title) for title in ("A", "B", "C")]
        ids = [t.id for t in tasks]
        real_commit = db.session.commit
        calls = {"n": 0}

        def flaky_commit():
            calls["n"] += 1
            if calls["n"] == 2:
                raise SQLAlchemyError("disk I/O error")
            real_commit()

        with patch.object(db.session, "commit", side_effect=flaky_commit):
            result = PlanExecutor(project, None).execute(
                Plan(PlanType.BULK_UPDATE, filters={"all": True}, updates={"status": "done"})
            )

        assert result["type"] == "information"
        assert result["affected_count"] == 2
        assert result["message"] == "Updated 2 task(s) successfully. 1 task(s) could not be processed."
        assert [_status_of(i) for i in ids] == ["done", "todo", "done"]


class TestFailures:
    def test_unexpected_error_is_generic(self, project):
        with patch.object(PlanExecutor, "_values", side_effect=RuntimeError("boom")):
            result = PlanExecutor(project, None).execute(
                Plan(PlanType.CREATE_TASK, payload={"title": "Write docs"})
            )
        assert result["type"] == "error"
        assert result["message"] == MSG_GENERIC_FAILURE
        assert "boom" not in result["message"]
        assert Task.query.count() == 0
