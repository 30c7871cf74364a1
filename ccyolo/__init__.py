"""
ccyolo - Smart permission filter for Claude Code.

Auto-approves safe tool calls using static rules, a local decision cache,
and a Claude safety evaluation. Everything it is unsure about falls
through to Claude Code's normal permission prompt.
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
