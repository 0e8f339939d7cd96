"""Endpoint enumeration backends and runtime backend selection."""

from __future__ import annotations

import psutil

from connwatch.capture.base import (
    EndpointEnumerator,
    EnumerationError,
    NullEnumerator,
)
from connwatch.capture.platform.linux import ProcNetEnumerator
from connwatch.capture.platform.macos import LsofEnumerator
from connwatch.capture.psutil_ import PsutilEnumerator

__all__ = [
    "BACKENDS",
    "EndpointEnumerator",
    "EnumerationError",
    "LsofEnumerator",
    "NullEnumerator",
    "ProcNetEnumerator",
    "PsutilEnumerator",
    "get_enumerator",
]

BACKENDS = ("auto", "psutil", "proc", "lsof", "none")


def get_enumerator(name: str = "auto", include_children: bool = True) -> EndpointEnumerator:
    """Build the enumeration backend called *name*.

    ``auto`` picks lsof on macOS, psutil on the other platforms psutil can
    read per-process sockets on, and the null backend everywhere else.
    """
    if name == "auto":
        if psutil.MACOS:
            return LsofEnumerator()
        if psutil.LINUX or psutil.WINDOWS or psutil.BSD or psutil.SUNOS or psutil.AIX:
            return PsutilEnumerator(include_children=include_children)
        return NullEnumerator()
    if name == "psutil":
        return PsutilEnumerator(include_children=include_children)
    if name == "proc":
        return ProcNetEnumerator(include_children=include_children)
    if name == "lsof":
        return LsofEnumerator()
    if name == "none":
        return NullEnumerator()
    raise ValueError(f"unknown enumeration backend: {name!r} (choose from {', '.join(BACKENDS)})")
