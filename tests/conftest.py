"""Pytest configuration and fixtures."""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for atlas_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from atlas_mock import MockAtlasClient, MockAtlasState  # noqa: E402

from project_operator.context import ReconcileContext  # noqa: E402
from project_operator.models import ManagedProject  # noqa: E402

PROJECT_ID = "5f3c0ffee0000000000000aa"
ORG_ID = "5f3c0ffee0000000000000bb"


@pytest.fixture
def atlas_state() -> MockAtlasState:
    """Fresh in-memory remote state."""
    return MockAtlasState()


@pytest.fixture
def atlas_client(atlas_state: MockAtlasState) -> MockAtlasClient:
    """Mock client operating on atlas_state."""
    return MockAtlasClient(atlas_state)


@pytest.fixture
def make_project() -> Callable[..., ManagedProject]:
    """Factory for managed projects; keyword arguments become spec fields."""

    def factory(annotations: dict[str, str] | None = None, **spec: Any) -> ManagedProject:
        return ManagedProject.model_validate(
            {
                "metadata": {
                    "name": "my-project",
                    "namespace": "team-a",
                    "annotations": annotations or {},
                },
                "spec": {"name": "my-project", "projectId": PROJECT_ID, "orgId": ORG_ID, **spec},
            }
        )

    return factory


@pytest.fixture
def make_ctx(
    make_project: Callable[..., ManagedProject],
) -> Callable[..., ReconcileContext]:
    """Factory for reconcile contexts (no deadline) around a fresh project."""

    def factory(project: ManagedProject | None = None, **spec: Any) -> ReconcileContext:
        return ReconcileContext.for_project(
            project or make_project(**spec), logging.getLogger("tests")
        )

    return factory
