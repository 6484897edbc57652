"""Reconciliation provenance for audit.

Every project reconciliation cycle is stamped with one structured record
answering:
- "What did the operator do to project P at time T?"
- "Which categories were converged, pending or failing?"
- "What version of the operator/specs was running?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
OPERATOR_VERSION = os.environ.get("OPERATOR_VERSION", "dev")


@dataclass
class CategoryProvenance:
    """Outcome of one category within a cycle."""

    condition_type: str
    outcome: str
    message: str = ""


@dataclass
class ReconcileProvenance:
    """Provenance record of one project reconciliation cycle."""

    # Timestamp
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    project: str = ""
    project_id: str = ""
    operator_version: str = OPERATOR_VERSION
    operator_instance_id: str = ""

    # Git source of truth
    git_commit_sha: str = ""

    # Outcome
    categories: list[CategoryProvenance] = field(default_factory=list)
    action: str = ""
    requeue_after_seconds: float | None = None
    ownership_recorded: bool = False
    remote_calls: int = 0

    # Timing
    duration_seconds: float = 0.0

    # Error tracking
    error: str | None = None
    error_type: str | None = None

    @property
    def failed_categories(self) -> list[str]:
        return [c.condition_type for c in self.categories if c.outcome in ("Failed", "Unsupported")]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Logs provenance records to the structured logger."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._instance_id = os.environ.get("CONTAINER_INSTANCE_ID", "")

    def create_provenance(self, project: str, project_id: str) -> ReconcileProvenance:
        """Create a new provenance record for a reconciliation cycle."""
        return ReconcileProvenance(
            project=project,
            project_id=project_id,
            operator_version=OPERATOR_VERSION,
            operator_instance_id=self._instance_id,
            git_commit_sha=self._git_commit_sha,
        )

    def log_provenance(self, provenance: ReconcileProvenance) -> None:
        """Log a completed provenance record.

        Level follows the outcome: ERROR for an aborted cycle, WARNING when a
        category failed, INFO otherwise.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.failed_categories:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Reconciliation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "project": provenance.project,
                "project_id": provenance.project_id,
                "action": provenance.action,
                "failed_categories": provenance.failed_categories,
                "ownership_recorded": provenance.ownership_recorded,
                "git_commit": provenance.git_commit_sha,
                "operator_version": provenance.operator_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


# Global singleton for provenance logging
_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
