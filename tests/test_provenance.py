"""Tests for reconciliation provenance tracking."""

from __future__ import annotations

import os
from datetime import UTC
from unittest.mock import patch

import pytest

from project_operator.provenance import (
    OPERATOR_VERSION,
    CategoryProvenance,
    ProvenanceLogger,
    ReconcileProvenance,
    get_provenance_logger,
)


class TestReconcileProvenance:
    """Tests for ReconcileProvenance dataclass."""

    def test_default_values(self) -> None:
        """Default provenance has expected values."""
        provenance = ReconcileProvenance()
        assert provenance.project == ""
        assert provenance.operator_version == OPERATOR_VERSION
        assert provenance.categories == []
        assert provenance.ownership_recorded is False
        assert provenance.error is None

    def test_timestamp_is_utc(self) -> None:
        provenance = ReconcileProvenance()
        assert provenance.timestamp.tzinfo == UTC

    def test_failed_categories(self) -> None:
        """Failed and unsupported categories are reported, pending ones are not."""
        provenance = ReconcileProvenance(
            categories=[
                CategoryProvenance("NetworkPeerReady", "Pending"),
                CategoryProvenance("CustomRolesReady", "Failed", "boom"),
                CategoryProvenance("PrivateEndpointReady", "Unsupported"),
                CategoryProvenance("TeamsReady", "Ready"),
            ]
        )

        assert provenance.failed_categories == ["CustomRolesReady", "PrivateEndpointReady"]

    def test_to_dict(self) -> None:
        provenance = ReconcileProvenance(
            project="team-a/my-project",
            action="short-delay",
            requeue_after_seconds=10,
            categories=[CategoryProvenance("NetworkPeerReady", "Pending", "not ready")],
        )

        result = provenance.to_dict()

        assert result["project"] == "team-a/my-project"
        assert result["action"] == "short-delay"
        assert result["requeue_after_seconds"] == 10
        assert isinstance(result["timestamp"], str)
        assert result["categories"] == [
            {"condition_type": "NetworkPeerReady", "outcome": "Pending", "message": "not ready"}
        ]


class TestProvenanceLogger:
    """Tests for ProvenanceLogger."""

    def test_create_provenance_basic(self) -> None:
        provenance = ProvenanceLogger().create_provenance(
            project="team-a/my-project", project_id="5f3c"
        )

        assert provenance.project == "team-a/my-project"
        assert provenance.project_id == "5f3c"
        assert provenance.operator_version == OPERATOR_VERSION

    @patch.dict(os.environ, {"GIT_COMMIT_SHA": "abc123", "CONTAINER_INSTANCE_ID": "pod-7"})
    def test_create_provenance_with_git_info(self) -> None:
        provenance = ProvenanceLogger().create_provenance(project="p", project_id="id")

        assert provenance.git_commit_sha == "abc123"
        assert provenance.operator_instance_id == "pod-7"

    def test_log_provenance_success(self, caplog: pytest.LogCaptureFixture) -> None:
        provenance = ReconcileProvenance(
            project="p", categories=[CategoryProvenance("TeamsReady", "Ready")]
        )

        with caplog.at_level("INFO"):
            ProvenanceLogger().log_provenance(provenance)

        assert "Reconciliation provenance" in caplog.text
        assert caplog.records[-1].levelname == "INFO"

    def test_log_provenance_error(self, caplog: pytest.LogCaptureFixture) -> None:
        provenance = ReconcileProvenance(project="p", error="deadline exceeded")

        with caplog.at_level("ERROR"):
            ProvenanceLogger().log_provenance(provenance)

        assert len(caplog.records) > 0
        assert caplog.records[-1].levelname == "ERROR"

    def test_log_provenance_failed_category(self, caplog: pytest.LogCaptureFixture) -> None:
        provenance = ReconcileProvenance(
            project="p", categories=[CategoryProvenance("CustomRolesReady", "Failed")]
        )

        with caplog.at_level("WARNING"):
            ProvenanceLogger().log_provenance(provenance)

        assert caplog.records[-1].levelname == "WARNING"
        assert caplog.records[-1].failed_categories == ["CustomRolesReady"]


class TestGetProvenanceLogger:
    """Tests for the global provenance logger."""

    def test_returns_logger(self) -> None:
        assert isinstance(get_provenance_logger(), ProvenanceLogger)

    def test_singleton_pattern(self) -> None:
        assert get_provenance_logger() is get_provenance_logger()
