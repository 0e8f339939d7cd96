"""Kill action: terminate the monitored process and its descendants."""

from __future__ import annotations

import logging
from typing import Protocol

import psutil

from connwatch.session.models import ConnectionEvent

logger = logging.getLogger(__name__)


class Killable(Protocol):
    pid: int

    def kill(self) -> None: ...


class KillAction:
    """Terminates the child process that opened a connection.

    With *include_descendants* the child's process tree is killed first, so a
    grandchild that made the connection is not left running as an orphan.
    """

    def __init__(self, child: Killable, include_descendants: bool = False) -> None:
        self._child = child
        self._include_descendants = include_descendants

    def execute(self, event: ConnectionEvent) -> bool:
        pid = self._child.pid
        logger.critical(
            "KILLING process %d: connection to %s (%s)",
            pid,
            event.endpoint,
            event.domain or "unresolved",
        )

        if self._include_descendants:
            self._kill_descendants(pid)

        try:
            self._child.kill()
            logger.info("Process %d killed", pid)
            return True
        except ProcessLookupError:
            logger.warning("Process %d already exited", pid)
            return True
        except PermissionError:
            logger.warning("Permission denied killing process %d", pid)
            return False
        except OSError as exc:
            logger.warning("Failed to kill process %d: %s", pid, exc)
            return False

    def _kill_descendants(self, pid: int) -> None:
        try:
            descendants = psutil.Process(pid).children(recursive=True)
        except psutil.NoSuchProcess:
            return
        except psutil.AccessDenied:
            logger.warning("Permission denied listing children of process %d", pid)
            return

        for proc in descendants:
            try:
                proc.kill()
                logger.info("Descendant process %d killed", proc.pid)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning("Permission denied killing descendant process %d", proc.pid)
