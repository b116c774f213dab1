"""
Project Task Assistant
Tests — fuzzy title / assignee resolution.
"""

from app.ai.assistants.entity_matcher import (
    EntityMatcher,
    clean_assignee_hint,
    levenshtein,
    similarity,
)


class TestSimilarity:
    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_similarity_bounds(self):
        assert similarity("Deploy", "deploy") == 1.0
        assert similarity("", "") == 1.0
        assert 0.0 <= similarity("abc", "xyz") < 0.5

    def test_containment_boost(self):
        assert similarity("login", "fix login page bug") >= len("login") / len("fix login page bug")

    def test_clean_assignee_hint(self):
        assert clean_assignee_hint("@alice") == "alice"
        assert clean_assignee_hint("Alice's") == "Alice"
        assert clean_assignee_hint("  'Bob Jones' ") == "Bob Jones"


class TestTitleResolution:
    """exact → substring → edit distance, threshold 0.55."""

    def test_exact_beats_substring(self, project, make_task):
        make_task("Write docs for API")
        exact = make_task("Write docs")
        assert EntityMatcher(project).resolve_title("write docs") == exact.id

    def test_substring(self, project, make_task):
        task = make_task("Migrate billing database")
        assert EntityMatcher(project).resolve_title("billing") == task.id

    def test_typo_within_threshold(self, project, make_task):
        task = make_task("Deploy staging")
        assert EntityMatcher(project).resolve_title("deploy stagign") == task.id

    def test_below_threshold_is_dropped(self, project, make_task):
        make_task("Deploy staging")
        assert EntityMatcher(project).resolve_title("quarterly budget") is None

    def test_other_projects_are_invisible(self, project, owner, make_task, make_project):
        other = make_project(owner, name="Other")
        make_task("Secret roadmap", target=other)
        assert EntityMatcher(project).resolve_title("Secret roadmap") is None

    def test_resolve_titles_keeps_order_and_drops_misses(self, project, make_task):
        a = make_task("Alpha release")
        b = make_task("Beta release")
        ids = EntityMatcher(project).resolve_titles(["beta release", "nothing like it", "alpha release"])
        assert ids == [b.id, a.id]


class TestAssigneeResolution:
    def test_me_is_the_actor(self, project, alice):
        assert EntityMatcher(project, actor_id=alice.id).resolve_assignee("me") == alice.id

    def test_owner(self, project, owner):
        assert EntityMatcher(project).resolve_assignee("project owner") == owner.id

    def test_digits_require_membership(self, project, alice, make_user):
        outsider = make_user("Mallory", "mallory@example.com")
        matcher = EntityMatcher(project)
        assert matcher.resolve_assignee(str(alice.id)) == alice.id
        assert matcher.resolve_assignee(str(outsider.id)) is None

    def test_email_requires_membership(self, project, bob, make_user):
        make_user("Mallory", "mallory@example.com")
        matcher = EntityMatcher(project)
        assert matcher.resolve_assignee("BOB@example.com") == bob.id
        assert matcher.resolve_assignee("mallory@example.com") is None

    def test_name_exact_then_substring(self, project, alice, bob):
        matcher = EntityMatcher(project)
        assert matcher.resolve_assignee("Alice Smith") == alice.id
        assert matcher.resolve_assignee("@bob") == bob.id
        assert matcher.resolve_assignee("Alice's") == alice.id

    def test_unresolved_is_none(self, project):
        assert EntityMatcher(project).resolve_assignee("review") is None
        assert EntityMatcher(project).resolve_assignee("") is None

    def test_owner_counts_as_member_without_membership_row(self, project, owner):
        assert EntityMatcher(project).resolve_assignee("Olivia") == owner.id
