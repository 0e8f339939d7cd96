"""Policy data models: execution modes and the actions taken per connection."""

from __future__ import annotations

import enum


class ExecutionMode(enum.Enum):
    """How newly observed connections are handled for the whole run."""

    NORMAL = "normal"
    EXIT_FIRST = "exit-first"
    BLOCK_AND_CONTINUE = "block"

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]


_MODE_LABELS = {
    ExecutionMode.NORMAL: "Monitor Only",
    ExecutionMode.EXIT_FIRST: "Exit on First Connection",
    ExecutionMode.BLOCK_AND_CONTINUE: "Block Connections",
}


class PolicyAction(enum.Enum):
    """What was done about a single observed connection."""

    ALLOWED = "allowed"
    BLOCKED = "blocked"
    KILLED = "killed"
