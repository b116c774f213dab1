"""
Project Task Assistant
Tests — task query service (filters, ordering, windows, snapshot).
"""

from datetime import date, timedelta

from app.services.task_query import (
    TaskQueryBuilder,
    build_snapshot,
    count_due_between,
    count_overdue,
    count_tasks,
    tasks_created_between,
)
from app.utils.helpers import utc_today


def _titles(tasks):
    return [t.title for t in tasks]


class TestFilters:
    """Each filter narrows the project's task set."""

    def test_no_filters_is_whole_project_oldest_first(self, project, make_task):
        make_task("A")
        make_task("B")
        make_task("C")
        assert _titles(TaskQueryBuilder(project).build({})) == ["A", "B", "C"]

    def test_other_projects_never_leak(self, project, owner, make_task, make_project):
        other = make_project(owner, name="Elsewhere")
        make_task("Mine")
        make_task("Theirs", target=other)
        assert _titles(TaskQueryBuilder(project).build({"all": True})) == ["Mine"]

    def test_ids(self, project, make_task):
        make_task("A")
        b = make_task("B")
        assert _titles(TaskQueryBuilder(project).build({"ids": [b.id, 9999]})) == ["B"]

    def test_garbage_ids_match_nothing(self, project, make_task):
        make_task("A")
        assert TaskQueryBuilder(project).build({"ids": ["x"]}) == []

    def test_status_and_priority(self, project, make_task):
        make_task("A", status="review", priority="high")
        make_task("B", status="review", priority="low")
        make_task("C", status="done", priority="high")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"status": "review"})) == ["A", "B"]
        assert _titles(q.build({"status": "review", "priority": "high"})) == ["A"]

    def test_title_and_description_contains(self, project, make_task):
        make_task("Fix login page", description="users cannot sign in")
        make_task("Update docs", description="mention LOGIN flow")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"title_contains": ["LOGIN"]})) == ["Fix login page"]
        assert _titles(q.build({"description_contains": ["login"]})) == ["Update docs"]

    def test_contains_terms_match_wildcards_literally(self, project, make_task):
        make_task("Raise coverage to 80%", description="tracked in ci_report")
        make_task("Raise coverage to 800", description="tracked in ci report")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"title_contains": ["80%"]})) == ["Raise coverage to 80%"]
        assert _titles(q.build({"title_contains": ["%"]})) == ["Raise coverage to 80%"]
        assert _titles(q.build({"description_contains": ["ci_report"]})) == ["Raise coverage to 80%"]

    def test_title_hints_are_fuzzy(self, project, make_task):
        make_task("Deploy staging")
        make_task("Write docs")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"title_hints": ["deploy stagign"]})) == ["Deploy staging"]

    def test_unresolved_title_hints_match_nothing(self, project, make_task):
        make_task("Deploy staging")
        assert TaskQueryBuilder(project).build({"title_hints": ["quarterly budget"], "all": True}) == []

    def test_overdue_is_past_due_and_open(self, project, make_task):
        yesterday = utc_today() - timedelta(days=1)
        make_task("Late", end_date=yesterday)
        make_task("Late but done", end_date=yesterday, status="done")
        make_task("Due today", end_date=utc_today())
        make_task("No date")
        assert _titles(TaskQueryBuilder(project).build({"overdue": True})) == ["Late"]

    def test_unassigned(self, project, alice, make_task):
        make_task("Taken", assignee=alice)
        make_task("Free")
        assert _titles(TaskQueryBuilder(project).build({"unassigned": True})) == ["Free"]

    def test_assignee_hint(self, project, alice, bob, make_task):
        make_task("For Alice", assignee=alice)
        make_task("For Bob", assignee=bob)
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"assigned_to_hint": "alice"})) == ["For Alice"]
        assert _titles(q.build({"assigned_to_hint": "Bob Jones", "all": True})) == ["For Bob"]

    def test_me_hint_uses_actor(self, project, bob, make_task):
        make_task("Mine", assignee=bob)
        make_task("Unowned")
        assert _titles(TaskQueryBuilder(project, actor_id=bob.id).build({"assigned_to_hint": "__me__"})) == ["Mine"]

    def test_unresolved_assignee_hint_matches_nothing(self, project, alice, make_task):
        make_task("For Alice", assignee=alice)
        assert TaskQueryBuilder(project).build({"assigned_to_hint": "zelda", "all": True}) == []

    def test_due_bounds_are_inclusive(self, project, make_task):
        make_task("Mon", end_date=date(2030, 3, 4))
        make_task("Wed", end_date=date(2030, 3, 6))
        make_task("Fri", end_date=date(2030, 3, 8))
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"due_before": "2030-03-06"})) == ["Mon", "Wed"]
        assert _titles(q.build({"due_after": "2030-03-06"})) == ["Wed", "Fri"]
        assert _titles(q.build({"due_on": "2030-03-08"})) == ["Fri"]

    def test_created_window(self, project, make_task):
        # make_task stamps created_at on 2024-01-01
        make_task("A")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"created_after": "2024-01-01"})) == ["A"]
        assert q.build({"created_after": "2024-01-02"}) == []
        assert q.build({"created_before": "2024-01-01"}) == []
        assert _titles(q.build({"created_before": "2024-01-02"})) == ["A"]


class TestOrderingAndWindow:
    def test_first_n(self, project, make_task):
        for title in ("A", "B", "C", "D"):
            make_task(title)
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"all": True, "limit": 2, "order_by": "created_at", "order": "asc"})) == ["A", "B"]

    def test_last_n(self, project, make_task):
        for title in ("A", "B", "C", "D"):
            make_task(title)
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"all": True, "limit": 2, "order": "desc"})) == ["D", "C"]

    def test_window_applies_after_filters(self, project, make_task):
        make_task("A", status="review")
        make_task("B")
        make_task("C", status="review")
        make_task("D", status="review")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"status": "review", "limit": 2})) == ["A", "C"]

    def test_unknown_order_by_falls_back_to_created(self, project, make_task):
        make_task("B")
        make_task("A")
        assert _titles(TaskQueryBuilder(project).build({"order_by": "nonsense"})) == ["B", "A"]

    def test_order_by_priority_uses_rank(self, project, make_task):
        make_task("Urgent", priority="urgent")
        make_task("Low", priority="low")
        make_task("High", priority="high")
        q = TaskQueryBuilder(project)
        assert _titles(q.build({"order_by": "priority"})) == ["Low", "High", "Urgent"]

    def test_count_matches_window(self, project, make_task):
        for title in ("A", "B", "C"):
            make_task(title)
        assert TaskQueryBuilder(project).count({"all": True, "limit": 2}) == 2


class TestAggregates:
    def test_snapshot(self, project, make_task):
        yesterday = utc_today() - timedelta(days=1)
        make_task("A", status="todo", priority="high", end_date=yesterday)
        make_task("B", status="done", priority="high", end_date=yesterday)
        make_task("C", status="review", priority="low")
        snap = build_snapshot(project)
        assert snap["total"] == 3
        assert snap["by_status"] == {"todo": 1, "inprogress": 0, "review": 1, "done": 1}
        assert snap["by_priority"] == {"low": 1, "medium": 0, "high": 2, "urgent": 0}
        assert snap["overdue"] == 1

    def test_snapshot_of_empty_project(self, project):
        snap = build_snapshot(project)
        assert snap["total"] == 0
        assert set(snap["by_status"]) == {"todo", "inprogress", "review", "done"}
        assert snap["overdue"] == 0

    def test_counters(self, project, make_task):
        today = utc_today()
        make_task("Today", end_date=today)
        make_task("In two days", end_date=today + timedelta(days=2))
        make_task("Done today", end_date=today, status="done")
        make_task("Late", end_date=today - timedelta(days=3))
        assert count_tasks(project) == 4
        assert count_overdue(project) == 1
        assert count_due_between(project, today, today + timedelta(days=2)) == 2
        assert count_due_between(project, today, today, open_only=False) == 2

    def test_tasks_created_between(self, project, make_task):
        make_task("A")
        make_task("B")
        created = tasks_created_between(project, date(2024, 1, 1), date(2024, 1, 1))
        assert _titles(created) == ["A", "B"]
        assert tasks_created_between(project, date(2024, 1, 2), date(2024, 1, 3)) == []
