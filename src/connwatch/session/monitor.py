"""Connection monitor: spawns a command and runs the poll→resolve→decide loop."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from connwatch.actions.alert import AlertAction
from connwatch.actions.base import ActionHandler
from connwatch.actions.block import BlockAction
from connwatch.actions.kill import KillAction
from connwatch.capture import get_enumerator
from connwatch.capture.base import EndpointEnumerator, EnumerationError
from connwatch.config import ConnWatchConfig
from connwatch.policy.engine import PolicyEngine, Verdict
from connwatch.policy.models import PolicyAction
from connwatch.resolve import DnsCache, NameResolver
from connwatch.session.models import (
    ConnectionEvent,
    Endpoint,
    MonitorOutcome,
    MonitorState,
)
from connwatch.stats import ConnectionStats, StatsSnapshot

logger = logging.getLogger(__name__)

# Exit code reported when the policy killed the child.
POLICY_KILL_EXIT_CODE = 124

# Exit code used when the child's own status is unknown or it died by signal.
DEFAULT_FAILURE_EXIT_CODE = 1


class SpawnError(RuntimeError):
    """The command to monitor could not be started."""


class ChildProcess(Protocol):
    """The subset of ``subprocess.Popen`` the monitor drives."""

    pid: int

    def poll(self) -> int | None: ...

    def wait(self, timeout: float | None = None) -> int: ...

    def kill(self) -> None: ...

    def terminate(self) -> None: ...


class ConnectionMonitor:
    """Watches one child process: enumerate → diff → resolve → record → decide.

    The loop runs on the calling thread and ends when the child exits or the
    exit-first policy kills it.
    """

    def __init__(
        self,
        config: ConnWatchConfig,
        enumerator: EndpointEnumerator | None = None,
        resolver: NameResolver | None = None,
        on_event: Callable[[ConnectionEvent], None] | None = None,
        on_state: Callable[[MonitorState], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._enumerator = enumerator or get_enumerator(
            config.backend, include_children=config.include_children
        )
        self._resolver = resolver or NameResolver(
            DnsCache(ttl=config.dns_cache_ttl), timeout_ms=config.dns_timeout_ms
        )
        self._engine = PolicyEngine(config.mode)
        self._on_event = on_event
        self._on_state = on_state
        self._sleep = sleep
        self._clock = clock
        self._stats = ConnectionStats(clock)
        self._events: list[ConnectionEvent] = []
        self._state = MonitorState.STARTING
        self._child: ChildProcess | None = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def stats(self) -> StatsSnapshot:
        """Live statistics for the current run."""
        return self._stats.snapshot()

    @property
    def enumerator(self) -> EndpointEnumerator:
        return self._enumerator

    def spawn(self, command: Sequence[str]) -> subprocess.Popen[bytes]:
        """Start *command* with the caller's stdio."""
        if not command:
            raise SpawnError("No command given")
        try:
            child = subprocess.Popen(list(command))
        except OSError as exc:
            raise SpawnError(f"Failed to execute command: {exc}") from exc
        logger.info("Started '%s' (PID %d)", " ".join(command), child.pid)
        return child

    def run(self, command: Sequence[str]) -> MonitorOutcome:
        """Launch *command* and monitor it until it ends."""
        return self.monitor(self.spawn(command))

    def monitor(self, child: ChildProcess) -> MonitorOutcome:
        """Blocking poll loop over an already running child."""
        self._child = child
        self._stats = ConnectionStats(self._clock)
        self._events = []
        actions: dict[PolicyAction, ActionHandler] = {
            PolicyAction.ALLOWED: AlertAction(),
            PolicyAction.BLOCKED: BlockAction(self._stats),
            PolicyAction.KILLED: KillAction(
                child, include_descendants=self._config.include_children
            ),
        }

        self._set_state(MonitorState.STARTING)
        # Give the process a moment to open its first sockets
        self._sleep(self._config.startup_delay)
        self._set_state(MonitorState.POLLING)

        known: set[Endpoint] = set()
        while child.poll() is None:
            try:
                current = self._enumerator.enumerate(child.pid)
            except EnumerationError as exc:
                logger.debug("Skipping poll, enumeration failed: %s", exc)
            else:
                for endpoint in sorted(current - known):
                    event, verdict = self._observe(endpoint, child.pid)
                    if verdict.terminal:
                        self._set_state(MonitorState.INTERVENING)
                    actions[verdict.action].execute(event)
                    if verdict.terminal:
                        # Other endpoints first seen in this tick are dropped.
                        return self._finish_killed(child)
                known = current
            self._sleep(self._config.poll_interval)

        return self._drain(child)

    def terminate_child(self) -> None:
        """Ask the running child to exit; the loop then drains as usual."""
        child = self._child
        if child is None or child.poll() is not None:
            return
        try:
            child.terminate()
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.warning("Failed to terminate process %d: %s", child.pid, exc)

    def _observe(
        self, endpoint: Endpoint, pid: int
    ) -> tuple[ConnectionEvent, Verdict]:
        resolved = self._resolver.resolve(endpoint)
        self._stats.record(resolved.endpoint, resolved.hostname)
        logger.debug("New connection detected to %s", resolved.endpoint)

        verdict = self._engine.evaluate(resolved.endpoint)
        event = ConnectionEvent(
            endpoint=resolved.endpoint,
            domain=resolved.hostname,
            action=verdict.action,
            pid=pid,
        )
        self._events.append(event)
        if self._on_event:
            self._on_event(event)
        return event, verdict

    def _finish_killed(self, child: ChildProcess) -> MonitorOutcome:
        try:
            child.wait(timeout=self._config.kill_wait)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Process %d still running %.1fs after kill", child.pid, self._config.kill_wait
            )
        except OSError as exc:
            logger.warning("Could not reap process %d: %s", child.pid, exc)

        self._set_state(MonitorState.KILLED)
        logger.info("Process %d terminated due to network activity", child.pid)
        return self._outcome(POLICY_KILL_EXIT_CODE)

    def _drain(self, child: ChildProcess) -> MonitorOutcome:
        self._set_state(MonitorState.DRAINING)
        try:
            returncode: int | None = child.wait()
        except OSError as exc:
            logger.error("Could not collect exit status of %d: %s", child.pid, exc)
            returncode = None

        if returncode is None or returncode < 0:
            exit_code = DEFAULT_FAILURE_EXIT_CODE
        else:
            exit_code = returncode
        logger.info("Process %d exited with code %s", child.pid, returncode)

        self._set_state(MonitorState.EXITED)
        return self._outcome(exit_code)

    def _outcome(self, exit_code: int) -> MonitorOutcome:
        return MonitorOutcome(
            state=self._state,
            exit_code=exit_code,
            stats=self._stats.snapshot(),
            events=tuple(self._events),
        )

    def _set_state(self, state: MonitorState) -> None:
        self._state = state
        if self._on_state:
            self._on_state(state)
