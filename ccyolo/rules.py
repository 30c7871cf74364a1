"""Static rule engine.

Matches one operation against a profile's ordered deny and allow lists.
Deny rules always run first, so an operation matching both lists defers.
Pure and synchronous: no I/O, no config reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ccyolo.normalize import (
    EXEC_TOOLS,
    FILE_PATH_KEYS,
    FILE_TOOLS,
    SEARCH_KEYS,
    SEARCH_TOOLS,
    first_string,
)

if TYPE_CHECKING:
    from ccyolo.models import Operation
    from ccyolo.profiles import Profile


class WildcardPattern:
    """Minimal wildcard matcher. NOT a glob or regex engine.

    Supported forms:
      ``*``          anything
      ``*middle*``   substring
      ``prefix*``    prefix
      ``*suffix``    suffix
      ``exact``      equality

    A ``*`` in the middle of a pattern is literal. A leading or trailing
    ``*`` in the matched value itself is indistinguishable from a wildcard
    marker in the pattern; that is a known limitation of the grammar.

    >>> WildcardPattern("sudo *").matches("sudo apt install nginx")
    True
    >>> WildcardPattern("*.env").matches("/project/.env")
    True
    >>> WildcardPattern("*secret*").matches("/home/me/secrets.json")
    True
    >>> WildcardPattern("git status").matches("git status --short")
    False
    >>> WildcardPattern("a*b").matches("axxb")
    False
    """

    __slots__ = ("pattern",)

    def __init__(self, pattern: str):
        self.pattern = pattern

    def matches(self, value: str) -> bool:
        pattern = self.pattern
        if pattern == "*":
            return True
        if len(pattern) >= 2 and pattern.startswith("*") and pattern.endswith("*"):
            return pattern[1:-1] in value
        if pattern.endswith("*"):
            return value.startswith(pattern[:-1])
        if pattern.startswith("*"):
            return value.endswith(pattern[1:])
        return value == pattern

    def __repr__(self) -> str:
        return f"WildcardPattern({self.pattern!r})"


@dataclass(frozen=True)
class Rule:
    """One rule: tool name (or ``*`` for any tool) plus a wildcard pattern."""

    tool: str
    pattern: str

    def applies_to(self, tool_name: str, subject: str) -> bool:
        if self.tool != "*" and self.tool != tool_name:
            return False
        return WildcardPattern(self.pattern).matches(subject)


def match_subject(tool_name: str, tool_input: dict) -> str:
    """Pick the single string rules are matched against.

    >>> match_subject("Bash", {"command": "ls -la"})
    'ls -la'
    >>> match_subject("Read", {"path": "/a/b.py"})
    '/a/b.py'
    >>> match_subject("Grep", {"pattern": "TODO"})
    'TODO'
    >>> match_subject("WebFetch", {"url": "https://example.com"})
    ''
    """
    if tool_name in EXEC_TOOLS:
        return first_string(tool_input, ("command",))
    if tool_name in FILE_TOOLS:
        return first_string(tool_input, FILE_PATH_KEYS)
    if tool_name in SEARCH_TOOLS:
        return first_string(tool_input, SEARCH_KEYS)
    return ""


def evaluate(operation: Operation, profile: Profile) -> Optional[bool]:
    """Check static rules.

    Returns False on the first deny match, True on the first allow match,
    None when no rule applies and the caller should keep going.
    """
    subject = match_subject(operation.tool_name, operation.tool_input)

    for rule in profile.deny:
        if rule.applies_to(operation.tool_name, subject):
            return False

    for rule in profile.allow:
        if rule.applies_to(operation.tool_name, subject):
            return True

    return None
