"""Core value types: the operation being judged and the decision variant."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Operation:
    """One permission request: a tool call under the active preset."""

    tool_name: str
    tool_input: dict = field(default_factory=dict)
    profile_id: str = "balanced"


@dataclass(frozen=True)
class Allow:
    """Skip the interactive prompt. ``reason`` names the deciding layer."""

    reason: str


@dataclass(frozen=True)
class Defer:
    """Fall through to Claude Code's normal permission prompt."""


# No Deny variant: every negative outcome is a Defer.
Decision = Union[Allow, Defer]

DEFER = Defer()
