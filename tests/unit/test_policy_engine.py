"""Tests for the policy engine and execution modes."""

from __future__ import annotations

import pytest

from connwatch.policy.engine import PolicyEngine
from connwatch.policy.models import ExecutionMode, PolicyAction


@pytest.mark.parametrize(
    ("mode", "action", "terminal"),
    [
        (ExecutionMode.NORMAL, PolicyAction.ALLOWED, False),
        (ExecutionMode.BLOCK_AND_CONTINUE, PolicyAction.BLOCKED, False),
        (ExecutionMode.EXIT_FIRST, PolicyAction.KILLED, True),
    ],
)
def test_verdict_per_mode(mode: ExecutionMode, action: PolicyAction, terminal: bool):
    verdict = PolicyEngine(mode).evaluate("1.2.3.4:80")
    assert verdict.action is action
    assert verdict.terminal is terminal


def test_mode_labels():
    assert ExecutionMode.NORMAL.label == "Monitor Only"
    assert ExecutionMode.EXIT_FIRST.label == "Exit on First Connection"
    assert ExecutionMode.BLOCK_AND_CONTINUE.label == "Block Connections"
