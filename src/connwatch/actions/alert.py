"""Alert action: logs connections without interfering."""

from __future__ import annotations

import logging

from connwatch.session.models import ConnectionEvent

logger = logging.getLogger(__name__)


class AlertAction:
    """Reports a connection and lets it through."""

    def execute(self, event: ConnectionEvent) -> bool:
        logger.info(
            "CONNECTION %s (%s)",
            event.endpoint,
            event.domain or "unresolved",
        )
        return True
