"""macOS enumeration backend built on ``lsof``."""

from __future__ import annotations

import logging
import subprocess

from connwatch.capture.base import ACTIVE_STATES, EnumerationError, is_reportable
from connwatch.session.models import Endpoint

logger = logging.getLogger(__name__)

# Timeout in seconds for the lsof subprocess.
_LSOF_TIMEOUT = 5


class LsofEnumerator:
    """Lists connections with ``lsof -i -n -P -a -p <pid>``."""

    name = "lsof"

    def enumerate(self, pid: int) -> set[Endpoint]:
        try:
            result = subprocess.run(
                ["lsof", "-i", "-n", "-P", "-a", "-p", str(pid)],
                capture_output=True,
                text=True,
                timeout=_LSOF_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
            raise EnumerationError(f"lsof failed: {exc}") from exc

        # lsof exits 1 when nothing matched; that is an empty table, not an error.
        return parse_lsof(result.stdout)


def parse_lsof(output: str) -> set[Endpoint]:
    """Extract active remote endpoints from ``lsof -i`` output."""
    endpoints: set[Endpoint] = set()
    for line in output.splitlines()[1:]:  # skip header
        parts = line.split()
        if len(parts) < 9:
            continue

        state = parts[-1].strip("()") if parts[-1].startswith("(") else ""
        if state not in ACTIVE_STATES:
            continue

        name_field = next((p for p in parts if "->" in p), None)
        if name_field is None:
            continue
        _local, remote = name_field.split("->", 1)

        try:
            ip, port = _parse_addr(remote)
        except ValueError:
            logger.debug("Skipping unparsable lsof address %r", remote)
            continue
        if not is_reportable(ip, port):
            continue
        try:
            endpoints.add(Endpoint.of(ip, port))
        except ValueError:
            continue
    return endpoints


def _parse_addr(addr: str) -> tuple[str, int]:
    """Parse 'ip:port' or '[ipv6]:port' string."""
    if addr.startswith("["):
        # IPv6: [::1]:8080
        bracket_end = addr.index("]")
        ip = addr[1:bracket_end]
        port = int(addr[bracket_end + 2 :])
    else:
        ip, _, port_text = addr.rpartition(":")
        port = int(port_text)
    return ip, port
