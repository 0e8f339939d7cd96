"""Reverse-DNS resolution of connection endpoints.

Lookups are bounded by a deadline: each cache miss runs
``socket.gethostbyaddr()`` on its own daemon thread and the caller waits at
most ``timeout_ms`` for the answer. Results, including failures and timeouts,
are cached per IP for a TTL so an unreachable resolver is not hammered on
every poll.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from connwatch.session.models import Endpoint

logger = logging.getLogger(__name__)

# Default lifetime of a cached answer, in seconds.
DEFAULT_CACHE_TTL = 300.0

# Default time to wait for a reverse lookup, in milliseconds.
DEFAULT_TIMEOUT_MS = 1000


@dataclass(frozen=True)
class CacheEntry:
    """A cached lookup result. ``hostname`` is None for a failed lookup."""

    hostname: str | None
    observed_at: float


@dataclass(frozen=True)
class ResolvedName:
    """An endpoint in canonical text form and its hostname, if any."""

    endpoint: str
    hostname: str | None = None


class DnsCache:
    """IP -> hostname cache with a fixed TTL.

    Safe to share between threads; the lock covers a single get or set.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, ip: str) -> CacheEntry | None:
        """Return the live entry for *ip*, or None on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(ip)
            if entry is None:
                return None
            if self._clock() - entry.observed_at >= self._ttl:
                del self._entries[ip]
                return None
            return entry

    def set(self, ip: str, hostname: str | None) -> None:
        with self._lock:
            self._entries[ip] = CacheEntry(hostname=hostname, observed_at=self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def reverse_dns(ip: str) -> str | None:
    """Perform a PTR lookup for the given IP."""
    try:
        hostname, _aliases, _addrs = socket.gethostbyaddr(ip)
        return hostname or None
    except (socket.herror, socket.gaierror, OSError):
        return None


class NameResolver:
    """Resolves endpoints to hostnames with a deadline and a shared cache."""

    def __init__(
        self,
        cache: DnsCache | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        lookup: Callable[[str], str | None] = reverse_dns,
    ) -> None:
        self._cache = cache if cache is not None else DnsCache()
        self._timeout_ms = timeout_ms
        self._lookup = lookup

    @property
    def cache(self) -> DnsCache:
        return self._cache

    def resolve(
        self, endpoint: Endpoint | str, timeout_ms: int | None = None
    ) -> ResolvedName:
        """Resolve *endpoint* to a hostname. Never raises for lookup failures."""
        if isinstance(endpoint, str):
            try:
                endpoint = Endpoint.parse(endpoint)
            except ValueError:
                logger.debug("Cannot parse endpoint %r, skipping lookup", endpoint)
                return ResolvedName(endpoint=endpoint)

        ip = endpoint.ip
        cached = self._cache.get(ip)
        if cached is not None:
            return ResolvedName(endpoint=str(endpoint), hostname=cached.hostname)

        timeout = self._timeout_ms if timeout_ms is None else timeout_ms
        hostname = self._lookup_with_deadline(ip, timeout / 1000.0)
        self._cache.set(ip, hostname)
        return ResolvedName(endpoint=str(endpoint), hostname=hostname)

    def _lookup_with_deadline(self, ip: str, timeout: float) -> str | None:
        # One slot per lookup: a late answer lands here after the caller has
        # given up and is dropped with the queue.
        answer: queue.Queue[str | None] = queue.Queue(maxsize=1)

        def worker() -> None:
            try:
                hostname = self._lookup(ip)
            except Exception:
                logger.debug("Reverse lookup for %s raised", ip, exc_info=True)
                hostname = None
            answer.put_nowait(hostname)

        thread = threading.Thread(
            target=worker, name=f"connwatch-dns-{ip}", daemon=True
        )
        thread.start()

        try:
            return answer.get(timeout=max(timeout, 0.0))
        except queue.Empty:
            logger.debug("Reverse lookup for %s timed out after %.3fs", ip, timeout)
            return None
