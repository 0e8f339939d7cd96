"""Run configuration: CLI flags, environment overrides, defaults."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any

from connwatch.capture import BACKENDS
from connwatch.policy.models import ExecutionMode


@dataclass
class ConnWatchConfig:
    """Settings for one monitoring run."""

    exit_first: bool = False
    block: bool = False
    dns_timeout_ms: int = 1000
    verbose: bool = False
    quiet: bool = False
    poll_interval: float = 0.1
    startup_delay: float = 0.1
    dns_cache_ttl: float = 300.0
    kill_wait: float = 2.0
    include_children: bool = True
    backend: str = "auto"
    top_domains: int = 5

    @property
    def mode(self) -> ExecutionMode:
        if self.exit_first:
            return ExecutionMode.EXIT_FIRST
        if self.block:
            return ExecutionMode.BLOCK_AND_CONTINUE
        return ExecutionMode.NORMAL

    def validate(self) -> None:
        """Raise ValueError for contradictory or out-of-range settings."""
        if self.exit_first and self.block:
            raise ValueError("exit_first and block are mutually exclusive")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.startup_delay < 0:
            raise ValueError(f"startup_delay must not be negative, got {self.startup_delay}")
        if self.dns_timeout_ms < 0:
            raise ValueError(f"dns_timeout_ms must not be negative, got {self.dns_timeout_ms}")
        if self.dns_cache_ttl < 0:
            raise ValueError(f"dns_cache_ttl must not be negative, got {self.dns_cache_ttl}")
        if self.backend not in BACKENDS:
            raise ValueError(
                f"unknown backend {self.backend!r}, expected one of: {', '.join(BACKENDS)}"
            )

    @classmethod
    def load(cls, **overrides: Any) -> ConnWatchConfig:
        """Load config from environment variables, then apply *overrides*.

        Overrides whose value is None are ignored so unset CLI options fall
        through to the environment or the defaults. A malformed numeric environment value raises ValueError.
        """
        config = cls()

        env_interval = _env_number("CONNWATCH_POLL_INTERVAL", float)
        if env_interval is not None:
            config.poll_interval = env_interval

        env_timeout = _env_number("CONNWATCH_DNS_TIMEOUT_MS", int)
        if env_timeout is not None:
            config.dns_timeout_ms = env_timeout

        env_ttl = _env_number("CONNWATCH_DNS_CACHE_TTL", float)
        if env_ttl is not None:
            config.dns_cache_ttl = env_ttl

        env_backend = os.environ.get("CONNWATCH_BACKEND")
        if env_backend:
            config.backend = env_backend

        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"unknown config option: {key}")
            if value is not None:
                setattr(config, key, value)

        return config


def _env_number(name: str, convert: Callable[[str], Any]) -> Any:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return convert(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
