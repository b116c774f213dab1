"""
Project Task Assistant
Tests — status / priority vocabulary.
"""

import pytest

from app.ai.assistants.vocabulary import (
    PHASE_LABELS,
    PHASE_TABLES,
    StatusVocabulary,
    extract_status_from_text,
    norm_token,
    pretty_phase,
    resolve_priority,
    resolve_status,
)
from app.models.project import METHODOLOGIES
from app.models.task import TASK_STATUSES


class TestStatusResolution:
    """Free-text status tokens → canonical statuses."""

    @pytest.mark.parametrize("methodology", METHODOLOGIES)
    @pytest.mark.parametrize("status", TASK_STATUSES)
    def test_canonical_is_idempotent(self, methodology, status):
        assert resolve_status(methodology, status) == status

    @pytest.mark.parametrize("methodology", METHODOLOGIES)
    def test_phase_labels_round_trip(self, methodology):
        for status, label in PHASE_LABELS[methodology].items():
            resolved = resolve_status(methodology, label)
            assert resolved == status
            assert pretty_phase(methodology, resolved) == label

    @pytest.mark.parametrize("methodology", METHODOLOGIES)
    def test_table_phrases_resolve_to_one_status(self, methodology):
        vocab = StatusVocabulary(methodology)
        for phrase, _ in PHASE_TABLES[methodology]:
            assert vocab.resolve(phrase) in TASK_STATUSES

    def test_waterfall_phases(self):
        vocab = StatusVocabulary("waterfall")
        assert vocab.resolve("Requirements") == "todo"
        assert vocab.resolve("design") == "inprogress"
        assert vocab.resolve("verification") == "review"
        assert vocab.resolve("Maintenance") == "done"

    def test_scrum_phases(self):
        vocab = StatusVocabulary("scrum")
        assert vocab.resolve("sprint backlog") == "todo"
        assert vocab.resolve("WIP") == "inprogress"
        assert vocab.resolve("qa") == "review"
        assert vocab.resolve("complete") == "done"

    def test_directional_words(self):
        vocab = StatusVocabulary("kanban")
        assert vocab.resolve("leftmost column") == "todo"
        assert vocab.resolve("final stage") == "done"
        assert vocab.resolve("rightmost") == "done"

    def test_ordinal_stages(self):
        vocab = StatusVocabulary("kanban")
        assert vocab.resolve("second stage") == "inprogress"
        assert vocab.resolve("3rd column") == "review"
        assert vocab.resolve("fourth") == "done"

    def test_cross_methodology_synonyms(self):
        vocab = StatusVocabulary("kanban")
        assert vocab.resolve("not started") == "todo"
        assert vocab.resolve("peer review") == "review"
        assert vocab.resolve("shipped") == "done"
        assert vocab.resolve("development") == "inprogress"

    def test_project_overrides_last_wins(self):
        vocab = StatusVocabulary("kanban", {"Ready for QA": "review", "Parking": "backlog"})
        assert vocab.resolve("ready for qa") == "review"
        assert vocab.resolve("parking") == "todo"

    def test_override_to_unknown_target_is_ignored(self):
        vocab = StatusVocabulary("kanban", {"Limbo": "nowhere"})
        assert vocab.resolve("limbo") is None

    def test_unknown_token_never_guessed(self):
        assert resolve_status("kanban", "banana") is None
        assert resolve_status("kanban", "") is None

    def test_for_project_uses_methodology_and_aliases(self, project):
        project.methodology = "waterfall"
        project.status_aliases = {"Sign-off": "verification"}
        vocab = StatusVocabulary.for_project(project)
        assert vocab.label("review") == "Verification"
        assert vocab.resolve("sign off") == "review"

    def test_extract_from_text_prefers_longer_phrase(self):
        vocab = StatusVocabulary("kanban")
        assert vocab.extract_from_text("how many are in code review?") == "review"
        assert vocab.extract_from_text("anything in progress") == "inprogress"

    def test_extract_status_from_text_uses_project_labels(self, project):
        project.methodology = "waterfall"
        assert extract_status_from_text(project, "what is stuck in verification?") == "review"
        assert extract_status_from_text(project, "nothing here") is None

    def test_norm_token_strips_fillers(self):
        assert norm_token("In-Progress  Column") == "in progress"

    def test_unknown_methodology_falls_back_to_kanban(self):
        assert pretty_phase("mystery", "todo") == "To Do"


class TestPriorityResolution:
    """Free-text priority tokens → canonical priorities."""

    @pytest.mark.parametrize("token,expected", [
        ("high", "high"),
        ("P0", "urgent"),
        ("prio 1", "high"),
        ("blocker", "urgent"),
        ("critical", "urgent"),
        ("normal", "medium"),
        ("lowest", "low"),
        ("high priority", "high"),
    ])
    def test_aliases(self, token, expected):
        assert resolve_priority(token) == expected

    def test_unknown(self):
        assert resolve_priority("whenever") is None
        assert resolve_priority(None) is None
