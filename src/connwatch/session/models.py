"""Session data models: endpoints, connection events, and monitor outcomes."""

from __future__ import annotations

import enum
import ipaddress
import time
from dataclasses import dataclass, field

from connwatch.policy.models import PolicyAction
from connwatch.stats import StatsSnapshot


@dataclass(frozen=True, order=True)
class Endpoint:
    """A remote ``ip:port`` pair.

    Build instances with :meth:`of` or :meth:`parse` so the address is in
    canonical form; two endpoints are equal exactly when their text is.
    """

    ip: str
    port: int

    @classmethod
    def of(cls, ip: str, port: int) -> Endpoint:
        """Create an endpoint from a raw address, normalising the IP."""
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        return cls(normalize_ip(ip), port)

    @classmethod
    def parse(cls, text: str) -> Endpoint:
        """Parse ``'1.2.3.4:80'`` or ``'[2001:db8::1]:443'``."""
        text = text.strip()
        if text.startswith("["):
            host, sep, port = text[1:].partition("]:")
            if not sep:
                raise ValueError(f"malformed endpoint: {text!r}")
        else:
            host, sep, port = text.rpartition(":")
            if not sep or not host:
                raise ValueError(f"malformed endpoint: {text!r}")
        try:
            return cls.of(host, int(port))
        except ValueError as exc:
            raise ValueError(f"malformed endpoint: {text!r}") from exc

    @property
    def is_ipv6(self) -> bool:
        return ":" in self.ip

    def __str__(self) -> str:
        if self.is_ipv6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


def normalize_ip(ip: str) -> str:
    """Return the canonical text of an IP, unwrapping IPv4-mapped IPv6."""
    addr = ipaddress.ip_address(ip.split("%", 1)[0])
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return str(addr.ipv4_mapped)
    return str(addr)


class MonitorState(enum.Enum):
    """Lifecycle state of the monitoring loop."""

    STARTING = "starting"
    POLLING = "polling"
    INTERVENING = "intervening"
    DRAINING = "draining"
    EXITED = "exited"
    KILLED = "killed"


@dataclass(frozen=True)
class ConnectionEvent:
    """A newly observed connection and the policy action taken for it."""

    endpoint: str
    domain: str | None
    action: PolicyAction
    pid: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MonitorOutcome:
    """Terminal result of a monitoring run."""

    state: MonitorState
    exit_code: int
    stats: StatsSnapshot
    events: tuple[ConnectionEvent, ...] = ()

    @property
    def killed(self) -> bool:
        return self.state is MonitorState.KILLED
