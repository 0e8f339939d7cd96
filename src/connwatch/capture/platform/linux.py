"""Linux enumeration backend reading the kernel's /proc connection tables."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from connwatch.capture.base import ACTIVE_STATES, EnumerationError, is_reportable
from connwatch.session.models import Endpoint

logger = logging.getLogger(__name__)

_TCP_STATES = {
    "01": "ESTABLISHED",
    "02": "SYN_SENT",
    "03": "SYN_RECV",
    "04": "FIN_WAIT1",
    "05": "FIN_WAIT2",
    "06": "TIME_WAIT",
    "07": "CLOSE",
    "08": "CLOSE_WAIT",
    "09": "LAST_ACK",
    "0A": "LISTEN",
    "0B": "CLOSING",
}


class ProcNetEnumerator:
    """Reads ``/proc/<pid>/net/tcp`` and ``tcp6``.

    Those tables cover the whole network namespace, so rows are kept only
    when their socket inode is held open by the process (or, with
    ``include_children``, by one of its descendants).
    """

    name = "proc"

    def __init__(
        self, proc_root: Path = Path("/proc"), include_children: bool = True
    ) -> None:
        self._proc_root = proc_root
        self._include_children = include_children

    def enumerate(self, pid: int) -> set[Endpoint]:
        inodes = self._socket_inodes(pid)
        if not inodes:
            return set()

        endpoints: set[Endpoint] = set()
        for table in ("tcp", "tcp6"):
            path = self._proc_root / str(pid) / "net" / table
            try:
                content = path.read_text()
            except FileNotFoundError:
                if table == "tcp6":
                    # IPv6 disabled on this host
                    continue
                raise EnumerationError(f"{path} disappeared") from None
            except OSError as exc:
                raise EnumerationError(f"cannot read {path}: {exc}") from exc

            for line in content.splitlines()[1:]:  # skip header
                endpoint = _parse_row(line, inodes)
                if endpoint is not None:
                    endpoints.add(endpoint)

        return endpoints

    def _socket_inodes(self, pid: int) -> set[str]:
        inodes: set[str] = set()
        for proc_pid in self._process_tree(pid):
            fd_dir = self._proc_root / str(proc_pid) / "fd"
            try:
                fds = list(fd_dir.iterdir())
            except OSError as exc:
                if proc_pid == pid:
                    raise EnumerationError(f"cannot list {fd_dir}: {exc}") from exc
                continue

            for fd in fds:
                try:
                    target = os.readlink(fd)
                except OSError:
                    # fd closed between listing and readlink
                    continue
                if target.startswith("socket:["):
                    inodes.add(target[len("socket:[") : -1])
        return inodes

    def _process_tree(self, pid: int) -> list[int]:
        if not self._include_children:
            return [pid]

        tree: list[int] = []
        pending = [pid]
        while pending:
            current = pending.pop()
            if current in tree:
                continue
            tree.append(current)
            pending.extend(self._children(current))
        return tree

    def _children(self, pid: int) -> list[int]:
        task_dir = self._proc_root / str(pid) / "task"
        children: list[int] = []
        try:
            tasks = list(task_dir.iterdir())
        except OSError:
            return children
        for task in tasks:
            try:
                text = (task / "children").read_text()
            except OSError:
                continue
            children.extend(int(child) for child in text.split())
        return children


def _parse_row(line: str, inodes: set[str]) -> Endpoint | None:
    """Turn one ``net/tcp{,6}`` row into an endpoint, or None to skip it."""
    parts = line.split()
    if len(parts) < 10:
        return None
    if parts[9] not in inodes:
        return None
    if _TCP_STATES.get(parts[3].upper()) not in ACTIVE_STATES:
        return None

    remote = _parse_hex_addr(parts[2])
    if remote is None:
        return None
    ip, port = remote
    if not is_reportable(ip, port):
        return None
    try:
        return Endpoint.of(ip, port)
    except ValueError:
        return None


def _parse_hex_addr(hex_addr: str) -> tuple[str, int] | None:
    """Parse a /proc address like '0100007F:1F90'.

    IPv4 addresses are one little-endian 32-bit word; IPv6 addresses are four
    of them.
    """
    try:
        addr_hex, port_hex = hex_addr.split(":")
        port = int(port_hex, 16)
        raw = bytes.fromhex(addr_hex)
    except ValueError:
        return None

    if len(raw) == 4:
        return ".".join(str(b) for b in reversed(raw)), port
    if len(raw) == 16:
        words = b"".join(raw[i : i + 4][::-1] for i in range(0, 16, 4))
        groups = [words[i : i + 2].hex() for i in range(0, 16, 2)]
        return ":".join(groups), port
    return None
