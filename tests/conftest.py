"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from connwatch.capture.base import EnumerationError
from connwatch.config import ConnWatchConfig
from connwatch.resolve import DnsCache, NameResolver
from connwatch.session.models import Endpoint


class FakeChild:
    """Stand-in for ``subprocess.Popen`` that exits after a number of polls."""

    def __init__(self, pid: int = 4242, exit_after: int | None = None, returncode: int = 0):
        self.pid = pid
        self.returncode: int | None = None
        self._exit_after = exit_after
        self._final_code = returncode
        self.polls = 0
        self.killed = 0
        self.terminated = 0
        self.kill_error: BaseException | None = None
        self.wait_error: BaseException | None = None

    def poll(self) -> int | None:
        self.polls += 1
        if self.returncode is None and self._exit_after is not None:
            if self.polls > self._exit_after:
                self.returncode = self._final_code
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if self.wait_error is not None:
            raise self.wait_error
        if self.returncode is None:
            self.returncode = self._final_code
        return self.returncode

    def kill(self) -> None:
        self.killed += 1
        if self.kill_error is not None:
            raise self.kill_error
        self.returncode = -9

    def terminate(self) -> None:
        self.terminated += 1
        self.returncode = -15


class ScriptedEnumerator:
    """Returns a pre-set endpoint set per tick; raises for exception entries."""

    name = "scripted"

    def __init__(self, ticks: Iterable[set[str] | BaseException]):
        self._ticks = list(ticks)
        self.calls = 0

    def enumerate(self, pid: int) -> set[Endpoint]:
        self.calls += 1
        if self.calls > len(self._ticks):
            return set()
        tick = self._ticks[self.calls - 1]
        if isinstance(tick, BaseException):
            raise tick
        return {Endpoint.parse(text) for text in tick}


@pytest.fixture
def fake_child_cls() -> type[FakeChild]:
    return FakeChild


@pytest.fixture
def scripted_enumerator_cls() -> type[ScriptedEnumerator]:
    return ScriptedEnumerator


@pytest.fixture
def enumeration_error() -> EnumerationError:
    return EnumerationError("table unreadable")


@pytest.fixture
def fast_config() -> ConnWatchConfig:
    return ConnWatchConfig(
        poll_interval=0.001, startup_delay=0.0, kill_wait=0.1, include_children=False
    )


@pytest.fixture
def hostnames() -> dict[str, str]:
    return {"1.2.3.4": "a.com", "9.9.9.9": "dns.quad9.net"}


@pytest.fixture
def stub_resolver(hostnames: dict[str, str]) -> NameResolver:
    return NameResolver(DnsCache(), timeout_ms=500, lookup=hostnames.get)
