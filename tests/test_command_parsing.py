"""
Project Task Assistant
Tests — command phrase extraction and relative dates.

All date expectations are relative to a fixed Wednesday, 2030-03-06.
"""

from datetime import date

import pytest

from app.ai.assistants.command_parsing import (
    bare_status,
    extract_task_id,
    extract_task_ids,
    parse_assign_target,
    parse_bulk_updates,
    parse_create,
    parse_filters,
    parse_ordinal_window,
    parse_stage_move,
    parse_task_changes,
    scoping_keys,
    strip_ordinal_window,
    week_bounds,
)
from app.ai.assistants.vocabulary import StatusVocabulary
from app.utils.helpers import parse_relative_date

TODAY = date(2030, 3, 6)


@pytest.fixture()
def vocab():
    return StatusVocabulary("kanban")


class TestRelativeDates:
    @pytest.mark.parametrize("phrase,expected", [
        ("today", date(2030, 3, 6)),
        ("tomorrow", date(2030, 3, 7)),
        ("yesterday", date(2030, 3, 5)),
        ("friday", date(2030, 3, 8)),
        ("wednesday", date(2030, 3, 6)),
        ("next wednesday", date(2030, 3, 13)),
        ("monday", date(2030, 3, 11)),
        ("in 3 days", date(2030, 3, 9)),
        ("in two weeks", date(2030, 3, 20)),
        ("+2 days", date(2030, 3, 8)),
        ("next week", date(2030, 3, 13)),
        ("2030-04-01", date(2030, 4, 1)),
        ("15.03.2030", date(2030, 3, 15)),
    ])
    def test_phrases(self, phrase, expected):
        assert parse_relative_date(phrase, today=TODAY) == expected

    def test_garbage(self):
        assert parse_relative_date("someday", today=TODAY) is None
        assert parse_relative_date("", today=TODAY) is None

    def test_week_bounds(self):
        assert week_bounds(TODAY) == (date(2030, 3, 4), date(2030, 3, 10))
        assert week_bounds(TODAY, 1) == (date(2030, 3, 11), date(2030, 3, 17))


class TestWindowsAndStages:
    def test_first_n(self):
        text = "move all tasks to second stage, only the first two"
        assert parse_ordinal_window(text) == {"limit": 2, "order_by": "created_at", "order": "asc"}
        assert strip_ordinal_window(text) == "move all tasks to second stage"

    def test_last_n_is_descending(self):
        assert parse_ordinal_window("delete the last 3 tasks")["order"] == "desc"

    def test_durations_are_not_windows(self):
        assert parse_ordinal_window("postpone for the first 3 days") is None

    def test_stage_moves(self):
        assert parse_stage_move("move all tasks to the second stage") == "inprogress"
        assert parse_stage_move("put everything in the last column") == "done"
        assert parse_stage_move("move all tasks to the 3rd lane") == "review"
        assert parse_stage_move("move #4 to the second stage") is None


class TestTaskIds:
    def test_single_and_multiple(self):
        assert extract_task_id("move #2 to done") == 2
        assert extract_task_id("update task 7 please") == 7
        assert extract_task_id("move #2 and #3") is None
        assert extract_task_ids("move #2 and #3 and #2") == [2, 3]

    def test_ids_inside_quotes_are_ignored(self):
        assert extract_task_id('create task "Follow up on #12"') is None


class TestCreate:
    def test_quoted_title_with_extras(self, vocab):
        payload = parse_create(vocab, "create task 'Write docs' with high priority due friday", TODAY)
        assert payload == {
            "title": "Write docs",
            "status": "todo",
            "priority": "high",
            "end_date": "2030-03-08",
        }

    def test_unquoted_title_stops_at_extras(self, vocab):
        payload = parse_create(vocab, "create task Prepare demo due tomorrow assigned to Alice", TODAY)
        assert payload["title"] == "Prepare demo"
        assert payload["end_date"] == "2030-03-07"
        assert payload["assignee_hint"] == "Alice"

    def test_target_column(self, vocab):
        payload = parse_create(vocab, 'add a new task "Smoke test" in the review column', TODAY)
        assert payload["title"] == "Smoke test"
        assert payload["status"] == "review"

    def test_task_line(self, vocab):
        assert parse_create(vocab, "Task: Write release notes", TODAY)["title"] == "Write release notes"

    def test_existing_task_is_not_a_create(self, vocab):
        assert parse_create(vocab, "make task #3 urgent", TODAY) is None

    def test_missing_title(self, vocab):
        assert parse_create(vocab, "create task", TODAY) == {"title": ""}

    def test_not_a_create(self, vocab):
        assert parse_create(vocab, "move #2 to done", TODAY) is None


class TestTaskChanges:
    def test_status_move(self, vocab):
        assert parse_task_changes(vocab, "move #2 to done", TODAY) == {"status": "done"}

    def test_assign_to_a_status_is_a_status_change(self, vocab):
        assert parse_task_changes(vocab, "assign #2 to review", TODAY) == {"status": "review"}

    def test_assign_to_a_person(self, vocab):
        assert parse_task_changes(vocab, "assign #5 to Bob", TODAY) == {"assignee_hint": "Bob"}

    def test_priority_and_due(self, vocab):
        changes = parse_task_changes(vocab, "#4 priority p1, due friday", TODAY)
        assert changes == {"priority": "high", "end_date": "2030-03-08"}

    def test_rename(self, vocab):
        assert parse_task_changes(vocab, 'rename #4 to "Ship it"', TODAY) == {"title": "Ship it"}

    def test_methodology_labels(self):
        waterfall = StatusVocabulary("waterfall")
        assert parse_task_changes(waterfall, "move #9 to verification", TODAY) == {"status": "review"}


class TestBulk:
    def test_bulk_priority_update(self, vocab):
        text = "set priority to urgent for all review tasks"
        assert parse_bulk_updates(vocab, text, TODAY) == {"priority": "urgent"}
        assert parse_filters(vocab, text, TODAY) == {"status": "review", "all": True}

    def test_assign_verbs_have_no_bulk_updates(self, vocab):
        assert parse_bulk_updates(vocab, "assign all tasks to bob", TODAY) == {}

    def test_possessive_overdue_priority(self, vocab):
        filters = parse_filters(vocab, "Alice's overdue high priority tasks", TODAY)
        assert filters == {"priority": "high", "overdue": True, "assigned_to_hint": "Alice"}

    def test_unassigned_due_before(self, vocab):
        filters = parse_filters(vocab, "unassigned tasks due before friday", TODAY)
        assert filters == {"unassigned": True, "due_before": "2030-03-08"}

    def test_status_and_for_person(self, vocab):
        assert parse_filters(vocab, "tasks in review for bob", TODAY) == {
            "status": "review",
            "assigned_to_hint": "bob",
        }

    def test_my_tasks(self, vocab):
        assert parse_filters(vocab, "my tasks", TODAY) == {"assigned_to_hint": "__me__"}

    def test_due_this_week_starts_today(self, vocab):
        filters = parse_filters(vocab, "tasks due this week", TODAY)
        assert filters == {"due_after": "2030-03-06", "due_before": "2030-03-10"}

    def test_quoted_titles_become_hints(self, vocab):
        filters = parse_filters(vocab, 'delete "Deploy staging" and "Write docs"', TODAY)
        assert filters["title_hints"] == ["Deploy staging", "Write docs"]

    def test_task_ids_of_every_spelling_scope_the_set(self, vocab):
        assert parse_filters(vocab, "move task 1 and task 2 to done", TODAY) == {"ids": [1, 2]}
        assert parse_filters(vocab, "delete #3, id 4 and task #3", TODAY) == {"ids": [3, 4]}

    def test_scoping_keys_ignore_window_and_all(self):
        filters = {"all": True, "limit": 2, "order_by": "created_at", "order": "asc", "status": "review"}
        assert scoping_keys(filters) == {"status"}
        assert scoping_keys({"all": True}) == set()


class TestAssignTarget:
    def test_scope_excludes_target(self):
        target, scope = parse_assign_target("assign Alice's overdue tasks to Bob")
        assert target == "Bob"
        assert scope.strip() == "Alice's overdue tasks"

    def test_target_stops_at_trailing_clause(self):
        target, _ = parse_assign_target("assign all unassigned tasks to me please")
        assert target == "me"

    def test_person_to_task(self):
        assert parse_assign_target("assign bob to #3") == ("bob", "#3")

    def test_no_target(self):
        target, _ = parse_assign_target("assign the overdue ones")
        assert target is None


class TestBareStatus:
    def test_status_words(self, vocab):
        assert bare_status(vocab, "done") == "done"
        assert bare_status(vocab, "mark as done") == "done"
        assert bare_status(vocab, "In progress!") == "inprogress"

    def test_long_messages_are_not_bare(self, vocab):
        assert bare_status(vocab, "please do the thing now") is None
