"""Mapping of aggregate outcomes to controller requeue actions.

Actions, from least to most urgent:
- DONE: converged or not configured; wait for the next spec change
- TERMINAL: the remote cannot perform the operation; no automatic retry
- SHORT_DELAY: waiting on asynchronous remote provisioning; fixed requeue
- BACKOFF: transient or validation failure; exponential backoff requeue

Across categories the most urgent action governs the cycle, so a terminal
category never suppresses the retry another category still needs.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .state import Outcome

# Fixed requeue while remote provisioning is in progress
DEFAULT_SHORT_DELAY_SECONDS = 10

# Exponential backoff bounds for failures
DEFAULT_BACKOFF_BASE_SECONDS = 5
DEFAULT_BACKOFF_MAX_SECONDS = 300

# Jitter applied to backoff delays (fraction of the delay)
BACKOFF_JITTER_FRACTION = 0.1


class RetryAction(str, Enum):
    """Controller action after a reconciliation cycle."""

    DONE = "done"
    TERMINAL = "terminal"
    SHORT_DELAY = "short-delay"
    BACKOFF = "backoff"


_SEVERITY: dict[RetryAction, int] = {
    RetryAction.DONE: 0,
    RetryAction.TERMINAL: 1,
    RetryAction.SHORT_DELAY: 2,
    RetryAction.BACKOFF: 3,
}

_OUTCOME_ACTIONS: dict[Outcome, RetryAction] = {
    Outcome.UNSET: RetryAction.DONE,
    Outcome.READY: RetryAction.DONE,
    Outcome.PENDING: RetryAction.SHORT_DELAY,
    Outcome.FAILED: RetryAction.BACKOFF,
    Outcome.UNSUPPORTED: RetryAction.TERMINAL,
}


@dataclass(frozen=True)
class RequeueDecision:
    """Action for a cycle and the delay before the next attempt (None = no requeue)."""

    action: RetryAction
    delay_seconds: float | None


@dataclass(frozen=True)
class RetryPolicy:
    """Turns category outcomes into one requeue decision."""

    short_delay_seconds: float = DEFAULT_SHORT_DELAY_SECONDS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS
    jitter: bool = True

    @staticmethod
    def action_for(outcome: Outcome) -> RetryAction:
        return _OUTCOME_ACTIONS[outcome]

    @staticmethod
    def worst(actions: Iterable[RetryAction]) -> RetryAction:
        """Most urgent action (DONE when there are none)."""
        return max(actions, key=_SEVERITY.__getitem__, default=RetryAction.DONE)

    def backoff_delay(self, consecutive_failures: int) -> float:
        """Exponential backoff for the n-th consecutive failing cycle (n >= 1)."""
        exponent = max(consecutive_failures - 1, 0)
        delay = min(self.backoff_base_seconds * (2**exponent), self.backoff_max_seconds)
        if self.jitter:
            delay += random.uniform(0, delay * BACKOFF_JITTER_FRACTION)
        return delay

    def decide(self, outcomes: Iterable[Outcome], consecutive_failures: int = 1) -> RequeueDecision:
        """Decide the requeue for a cycle from every category outcome.

        Args:
            outcomes: One outcome per category processed in the cycle.
            consecutive_failures: Failing cycles in a row, this one included.

        Returns:
            The governing action and its delay.
        """
        action = self.worst(self.action_for(outcome) for outcome in outcomes)
        match action:
            case RetryAction.BACKOFF:
                return RequeueDecision(action, self.backoff_delay(consecutive_failures))
            case RetryAction.SHORT_DELAY:
                return RequeueDecision(action, self.short_delay_seconds)
            case _:
                return RequeueDecision(action, None)
