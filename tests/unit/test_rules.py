"""Unit tests for the static rule engine."""

import pytest

from ccyolo import rules
from ccyolo.models import Operation
from ccyolo.profiles import BALANCED, PERMISSIVE, STRICT, Profile
from ccyolo.rules import Rule, WildcardPattern, match_subject


def make_profile(deny=(), allow=()):
    return Profile(
        name="custom",
        description="test",
        deny=tuple(deny),
        allow=tuple(allow),
        prompt="be careful",
    )


# ---------------------------------------------------------------------------
# WildcardPattern
# ---------------------------------------------------------------------------

class TestWildcardPattern:
    """Tests for the five supported pattern forms."""

    @pytest.mark.parametrize("value", ["", "anything", "rm -rf /"])
    def test_star_matches_everything(self, value):
        assert WildcardPattern("*").matches(value) is True

    def test_prefix(self):
        assert WildcardPattern("git *").matches("git status") is True
        assert WildcardPattern("git *").matches("legit status") is False

    def test_suffix(self):
        assert WildcardPattern("*.env").matches("/project/.env") is True
        assert WildcardPattern("*.env").matches("/project/.env.example") is False

    def test_substring(self):
        assert WildcardPattern("*prod*").matches("psql -h prod-db") is True
        assert WildcardPattern("*prod*").matches("psql -h staging") is False

    def test_exact(self):
        assert WildcardPattern("git status").matches("git status") is True
        assert WildcardPattern("git status").matches("git status -s") is False

    def test_inner_star_is_literal(self):
        """A star in the middle is not a wildcard.

        >>> from ccyolo.rules import WildcardPattern
        >>> WildcardPattern("a*b").matches("a*b")
        True
        """
        assert WildcardPattern("a*b").matches("axb") is False
        assert WildcardPattern("a*b").matches("a*b") is True

    def test_double_star_is_substring_of_empty(self):
        assert WildcardPattern("**").matches("") is True

    def test_empty_pattern_matches_only_empty(self):
        assert WildcardPattern("").matches("") is True
        assert WildcardPattern("").matches("x") is False


# ---------------------------------------------------------------------------
# match_subject
# ---------------------------------------------------------------------------

class TestMatchSubject:
    """Tests for choosing the string a rule is matched against."""

    def test_bash_command(self):
        assert match_subject("Bash", {"command": "npm test"}) == "npm test"

    def test_bash_missing_command(self):
        assert match_subject("Bash", {}) == ""

    def test_file_path_preferred_over_path(self):
        assert match_subject("Write", {"file_path": "/a", "path": "/b"}) == "/a"

    def test_notebook_path(self):
        assert match_subject("NotebookEdit", {"notebook_path": "/n.ipynb"}) == "/n.ipynb"

    def test_search_prefers_path(self):
        assert match_subject("Grep", {"pattern": "TODO", "path": "/project"}) == "/project"

    def test_search_falls_back_to_pattern(self):
        assert match_subject("Glob", {"pattern": "**/*.ts"}) == "**/*.ts"

    def test_non_string_values_ignored(self):
        assert match_subject("Read", {"file_path": 42}) == ""

    def test_unknown_tool_has_empty_subject(self):
        assert match_subject("WebFetch", {"url": "https://example.com"}) == ""


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------

class TestEvaluate:
    """Tests for deny-then-allow evaluation."""

    def test_allow_match(self):
        profile = make_profile(allow=[Rule("Read", "*")])
        assert rules.evaluate(Operation("Read", {"file_path": "/x"}), profile) is True

    def test_deny_match(self):
        profile = make_profile(deny=[Rule("Bash", "sudo *")])
        assert rules.evaluate(Operation("Bash", {"command": "sudo ls"}), profile) is False

    def test_no_match_returns_none(self):
        profile = make_profile(allow=[Rule("Read", "*")])
        assert rules.evaluate(Operation("Bash", {"command": "ls"}), profile) is None

    def test_deny_wins_over_allow(self):
        profile = make_profile(
            deny=[Rule("Bash", "*prod*")],
            allow=[Rule("Bash", "psql *")],
        )
        op = Operation("Bash", {"command": "psql -h prod-db"})
        assert rules.evaluate(op, profile) is False

    def test_wildcard_tool_rule(self):
        profile = make_profile(deny=[Rule("*", "*.env")])
        assert rules.evaluate(Operation("Read", {"file_path": "/p/.env"}), profile) is False
        assert rules.evaluate(Operation("Read", {"file_path": "/p/a.py"}), profile) is None

    def test_tool_name_must_match_exactly(self):
        profile = make_profile(allow=[Rule("Read", "*")])
        assert rules.evaluate(Operation("read", {"file_path": "/x"}), profile) is None

    def test_star_rule_matches_empty_subject(self):
        profile = make_profile(allow=[Rule("WebFetch", "*")])
        assert rules.evaluate(Operation("WebFetch", {"url": "https://x"}), profile) is True

    def test_empty_profile(self):
        assert rules.evaluate(Operation("Read", {"file_path": "/x"}), make_profile()) is None


class TestBuiltinRules:
    """Rule layer of the built-in presets."""

    @pytest.mark.parametrize("profile", [STRICT, BALANCED, PERMISSIVE])
    def test_sudo_denied_everywhere(self, profile):
        op = Operation("Bash", {"command": "sudo apt install nginx"}, profile.name)
        assert rules.evaluate(op, profile) is False

    @pytest.mark.parametrize("profile", [STRICT, BALANCED, PERMISSIVE])
    def test_reads_allowed_everywhere(self, profile):
        op = Operation("Read", {"file_path": "/etc/hosts"}, profile.name)
        assert rules.evaluate(op, profile) is True

    def test_only_permissive_allows_writes_by_rule(self):
        op = Operation("Write", {"file_path": "/project/src/app.js"})
        assert rules.evaluate(op, PERMISSIVE) is True
        assert rules.evaluate(op, BALANCED) is None
        assert rules.evaluate(op, STRICT) is None

    def test_bash_falls_through_in_balanced(self):
        op = Operation("Bash", {"command": "npm test"})
        assert rules.evaluate(op, BALANCED) is None
