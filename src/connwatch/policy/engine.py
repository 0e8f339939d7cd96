"""Policy engine: maps the execution mode to a verdict for each new connection."""

from __future__ import annotations

from dataclasses import dataclass

from connwatch.policy.models import ExecutionMode, PolicyAction


@dataclass(frozen=True)
class Verdict:
    """The policy decision for one connection.

    ``terminal`` means monitoring ends once the action has run.
    """

    action: PolicyAction
    terminal: bool = False


_VERDICTS = {
    ExecutionMode.NORMAL: Verdict(PolicyAction.ALLOWED),
    ExecutionMode.BLOCK_AND_CONTINUE: Verdict(PolicyAction.BLOCKED),
    ExecutionMode.EXIT_FIRST: Verdict(PolicyAction.KILLED, terminal=True),
}


class PolicyEngine:
    """Decides what happens to each newly observed endpoint."""

    def __init__(self, mode: ExecutionMode) -> None:
        self._mode = mode

    @property
    def mode(self) -> ExecutionMode:
        return self._mode

    def evaluate(self, endpoint: str) -> Verdict:
        # Every endpoint gets the same treatment; the mode is fixed for the run.
        return _VERDICTS[self._mode]
