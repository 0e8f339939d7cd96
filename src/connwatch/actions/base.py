"""Action handler protocol: what happens once a connection has been judged."""

from __future__ import annotations

from typing import Protocol

from connwatch.session.models import ConnectionEvent


class ActionHandler(Protocol):
    """Protocol for connection response actions."""

    def execute(self, event: ConnectionEvent) -> bool:
        """Execute the action. Returns True if action was successful."""
        ...
