"""Unprivileged enumeration backend using psutil to read process connections."""

from __future__ import annotations

import logging

import psutil

from connwatch.capture.base import ACTIVE_STATES, EnumerationError, is_reportable
from connwatch.session.models import Endpoint

logger = logging.getLogger(__name__)


class PsutilEnumerator:
    """Lists remote endpoints via ``psutil.Process.net_connections()``.

    With ``include_children`` the process tree is walked recursively, so a
    command launched through a shell wrapper is still covered.
    """

    name = "psutil"

    def __init__(self, include_children: bool = True) -> None:
        self._include_children = include_children

    def enumerate(self, pid: int) -> set[Endpoint]:
        try:
            proc = psutil.Process(pid)
        except psutil.NoSuchProcess as exc:
            raise EnumerationError(f"process {pid} no longer exists") from exc

        procs: list[psutil.Process] = [proc]
        if self._include_children:
            try:
                procs.extend(proc.children(recursive=True))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

        endpoints: set[Endpoint] = set()
        for p in procs:
            try:
                conns = p.net_connections(kind="tcp")
            except (psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
                if p.pid == pid:
                    raise EnumerationError(f"process {pid} exited mid-read") from exc
                continue
            except psutil.AccessDenied as exc:
                if p.pid == pid:
                    raise EnumerationError(f"access denied reading {pid}") from exc
                logger.debug("Access denied reading connections of child %d", p.pid)
                continue

            for conn in conns:
                if not conn.raddr or conn.status not in ACTIVE_STATES:
                    continue
                if not is_reportable(conn.raddr.ip, conn.raddr.port):
                    continue
                try:
                    endpoints.add(Endpoint.of(conn.raddr.ip, conn.raddr.port))
                except ValueError:
                    logger.debug("Skipping unparsable address %r", conn.raddr)

        return endpoints
