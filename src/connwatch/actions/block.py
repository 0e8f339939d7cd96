"""Block action: flags connections as blocked and counts them.

Nothing is filtered at the kernel level; the connection still goes through.
"""

from __future__ import annotations

import logging

from connwatch.session.models import ConnectionEvent
from connwatch.stats import ConnectionStats

logger = logging.getLogger(__name__)


class BlockAction:
    """Records a connection as blocked in the run's statistics."""

    def __init__(self, stats: ConnectionStats) -> None:
        self._stats = stats

    @property
    def blocked_count(self) -> int:
        return self._stats.blocked

    def execute(self, event: ConnectionEvent) -> bool:
        self._stats.record_blocked()
        logger.info(
            "BLOCKED %s (%s), %d so far",
            event.endpoint,
            event.domain or "unresolved",
            self._stats.blocked,
        )
        return True
