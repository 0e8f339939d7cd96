"""EndpointEnumerator protocol: all enumeration backends must satisfy this."""

from __future__ import annotations

import ipaddress
from typing import Protocol, runtime_checkable

from connwatch.session.models import Endpoint

# TCP states that mean an outbound connection is up or being set up.
ACTIVE_STATES = frozenset({"ESTABLISHED", "SYN_SENT"})


class EnumerationError(OSError):
    """The connection table could not be read for this poll."""


@runtime_checkable
class EndpointEnumerator(Protocol):
    """Protocol for per-process remote endpoint listing."""

    name: str

    def enumerate(self, pid: int) -> set[Endpoint]:
        """Return the remote endpoints the process is currently connected to.

        Raises EnumerationError on a transient read failure.
        """
        ...


class NullEnumerator:
    """Fallback for platforms without a backend: never sees a connection."""

    name = "none"

    def enumerate(self, pid: int) -> set[Endpoint]:
        return set()


def is_reportable(ip: str, port: int) -> bool:
    """Whether a remote address identifies a real peer (not a wildcard)."""
    if port == 0:
        return False
    try:
        return not ipaddress.ip_address(ip.split("%", 1)[0]).is_unspecified
    except ValueError:
        return False
