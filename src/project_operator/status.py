"""Aggregation of per-item statuses into one readiness condition per category.

Rules:
- True iff the number of ready items equals the desired count and no item
  failed
- Nothing desired and no remnant remote state: Unset ("not configured" is
  distinct from "configured and empty")
- Every item error is joined into the condition message, not just the first
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .models import Condition
from .state import ConditionStatus, ConditionType, Outcome, Readiness, Reason

logger = logging.getLogger(__name__)

ERROR_SEPARATOR = "; "


class Tracked(Protocol):
    """Anything whose readiness is aggregated (item statuses, service views)."""

    identity: str
    error_message: str
    terminal: bool

    @property
    def readiness(self) -> Readiness: ...


@dataclass(frozen=True)
class Aggregate:
    """Condition and outcome derived for one category."""

    condition: Condition
    outcome: Outcome

    @property
    def is_ok(self) -> bool:
        return self.outcome in (Outcome.READY, Outcome.UNSET)


@dataclass
class CategoryReport:
    """What a converger produced for one category in one cycle.

    Attributes:
        statuses: Item statuses, replacing the persisted list wholesale.
        desired_count: Number of items the project spec declares.
        remnant: Remote state this category still tracks (e.g. items closing).
        errors: Category-level errors not tied to one status item.
        pending_message: Message to report while waiting on the remote side.
        unsupported: Category-level failure the remote cannot resolve.
    """

    statuses: Sequence[Tracked] = field(default_factory=list)
    desired_count: int = 0
    remnant: bool = False
    errors: list[str] = field(default_factory=list)
    pending_message: str = ""
    unsupported: bool = False

    def fail(self, message: str) -> None:
        self.errors.append(message)


def join_errors(messages: Iterable[str]) -> str:
    """Join non-empty messages, dropping exact duplicates, keeping order."""
    seen: dict[str, None] = {}
    for message in messages:
        if message:
            seen.setdefault(message, None)
    return ERROR_SEPARATOR.join(seen)


class StatusAggregator:
    """Derives a category condition from its item statuses."""

    def aggregate(
        self,
        condition_type: ConditionType,
        reason: Reason,
        report: CategoryReport,
        *,
        failure_prefix: str = "",
        default_pending_message: str = "",
    ) -> Aggregate:
        """Aggregate one category report.

        Args:
            condition_type: Condition this category reports.
            reason: Reason used for every non-True condition.
            report: Statuses and errors from the converger.
            failure_prefix: Prefix placed before the joined error message.
            default_pending_message: Message when items are still provisioning.

        Returns:
            Aggregate condition and outcome.
        """
        statuses = list(report.statuses)
        ready = [s for s in statuses if s.readiness == Readiness.READY]
        failed = [s for s in statuses if s.readiness == Readiness.FAILED]

        if report.desired_count == 0 and not statuses and not report.remnant and not report.errors:
            return Aggregate(
                condition=Condition(type=condition_type, status=ConditionStatus.UNSET),
                outcome=Outcome.UNSET,
            )

        errors = [*report.errors, *(s.error_message or s.identity for s in failed)]
        if errors:
            # Only structurally unsupported failures stop automatic retries
            terminal = report.unsupported or (
                bool(failed) and not report.errors and all(s.terminal for s in failed)
            )
            message = join_errors(errors)
            if failure_prefix:
                message = f"{failure_prefix}{message}"
            return Aggregate(
                condition=Condition(
                    type=condition_type,
                    status=ConditionStatus.FALSE,
                    reason=Reason.UNSUPPORTED_FEATURE.value if terminal else reason.value,
                    message=message,
                ),
                outcome=Outcome.UNSUPPORTED if terminal else Outcome.FAILED,
            )

        if len(ready) == report.desired_count and not report.remnant:
            return Aggregate(
                condition=Condition(type=condition_type, status=ConditionStatus.TRUE),
                outcome=Outcome.READY,
            )

        return Aggregate(
            condition=Condition(
                type=condition_type,
                status=ConditionStatus.FALSE,
                reason=reason.value,
                message=report.pending_message or default_pending_message,
            ),
            outcome=Outcome.PENDING,
        )


def overall_ready(conditions: Sequence[Condition]) -> Condition:
    """Derive the project Ready condition from category conditions."""
    not_ready = [
        c
        for c in conditions
        if c.type != ConditionType.READY and c.status == ConditionStatus.FALSE
    ]
    if not_ready:
        first = not_ready[0]
        return Condition(
            type=ConditionType.READY,
            status=ConditionStatus.FALSE,
            reason=first.reason,
            message=first.message,
        )
    return Condition(type=ConditionType.READY, status=ConditionStatus.TRUE)
