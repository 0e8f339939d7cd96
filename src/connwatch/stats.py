"""Connection statistics accumulated over a monitoring run."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from connwatch.session.models import Endpoint


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time read of :class:`ConnectionStats`."""

    total: int = 0
    ips: dict[str, int] = field(default_factory=dict)
    domains: dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0
    blocked: int = 0

    @property
    def unique_ips(self) -> int:
        return len(self.ips)

    @property
    def unique_domains(self) -> int:
        return len(self.domains)

    def top_domains(self, limit: int | None = None) -> tuple[list[tuple[str, int]], int]:
        """Rank domains by count, highest first.

        Returns the (possibly truncated) ranking and how many domains were
        left out of it.
        """
        ranking = sorted(self.domains.items(), key=lambda item: item[1], reverse=True)
        if limit is None or limit >= len(ranking):
            return ranking, 0
        return ranking[:limit], len(ranking) - limit


class ConnectionStats:
    """Cumulative connection counters for one monitored process.

    Counters only grow. The monitor loop is the sole writer; readers take a
    :meth:`snapshot`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.start_time = clock()
        self.total = 0
        self.blocked = 0
        self.ips: dict[str, int] = {}
        self.domains: dict[str, int] = {}

    def record(self, endpoint: Endpoint | str, domain: str | None = None) -> None:
        """Count one new connection to *endpoint*, resolved to *domain* if known."""
        self.total += 1
        ip = endpoint if isinstance(endpoint, str) else str(endpoint)
        ip = _strip_port(ip)
        self.ips[ip] = self.ips.get(ip, 0) + 1
        if domain:
            self.domains[domain] = self.domains.get(domain, 0) + 1

    def record_blocked(self) -> None:
        self.blocked += 1

    @property
    def elapsed(self) -> float:
        return self._clock() - self.start_time

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            total=self.total,
            ips=dict(self.ips),
            domains=dict(self.domains),
            elapsed=self.elapsed,
            blocked=self.blocked,
        )


def _strip_port(endpoint: str) -> str:
    """'1.2.3.4:80' -> '1.2.3.4', '[::1]:443' -> '::1'."""
    if endpoint.startswith("["):
        return endpoint[1:].split("]", 1)[0]
    host, sep, _port = endpoint.rpartition(":")
    if not sep or ":" in host:
        # Bare address without a port
        return endpoint
    return host
