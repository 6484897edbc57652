"""Persistence of project annotations and status between cycles.

Desired specs live in read-only YAML files (synced by a git-sync sidecar).
What the operator writes back, the annotations carrying the ownership snapshot
and the status block, is kept in one JSON document per project:

    <state_dir>/<namespace>.<name>.json

and merged onto the project each time it is loaded.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import MAX_STATE_FILE_SIZE_BYTES
from .models import ManagedProject, ProjectStatus
from .spec_loader import SpecLoadError, discover_projects, load_project

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when persisted project state cannot be read or written."""

    pass


class ProjectStore:
    """Loads projects from the specs directory and persists what cycles write."""

    def __init__(self, specs_dir: Path, state_dir: Path) -> None:
        self._specs_dir = specs_dir
        self._state_dir = state_dir

    @property
    def specs_dir(self) -> Path:
        return self._specs_dir

    def state_path(self, project: ManagedProject) -> Path:
        meta = project.metadata
        return self._state_dir / f"{meta.namespace}.{meta.name}.json"

    def load(self, path: Path) -> ManagedProject:
        """Load one project file and merge its persisted state.

        Raises:
            SpecLoadError: If the project file is invalid.
            StateStoreError: If the persisted state is corrupt.
        """
        project = load_project(path)
        state = self._read_state(self.state_path(project))
        if state is None:
            return project

        annotations = state.get("annotations") or {}
        if not isinstance(annotations, dict):
            raise StateStoreError(f"annotations must be a mapping in {self.state_path(project)}")
        # Annotations declared in the file win over persisted ones
        project.metadata.annotations = {
            **{str(k): str(v) for k, v in annotations.items()},
            **project.metadata.annotations,
        }
        try:
            project.status = ProjectStatus.model_validate(state.get("status") or {})
        except ValidationError as e:
            raise StateStoreError(
                f"invalid status in {self.state_path(project)}: {e}"
            ) from e
        return project

    def load_all(self) -> list[ManagedProject]:
        """Load every project in the specs directory.

        Files that fail to load are logged and skipped so one broken project
        never blocks the others.
        """
        projects: list[ManagedProject] = []
        for path in discover_projects(self._specs_dir):
            try:
                projects.append(self.load(path))
            except (SpecLoadError, StateStoreError) as e:
                logger.error("Skipping project file", extra={"path": str(path), "error": str(e)})
        return projects

    def persist(self, project: ManagedProject) -> None:
        """Write the project's annotations and status.

        The document is written to a temporary file and renamed into place so
        a crash never leaves a truncated state file behind.

        Raises:
            StateStoreError: If the state cannot be written.
        """
        path = self.state_path(project)
        document = {
            "annotations": project.metadata.annotations,
            "status": project.status.model_dump(mode="json", by_alias=True, exclude_defaults=True),
        }
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StateStoreError(f"Failed to persist state to {path}: {e}") from e
        logger.debug("Persisted project state", extra={"project": project.metadata.key})

    def _read_state(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            if path.stat().st_size > MAX_STATE_FILE_SIZE_BYTES:
                raise StateStoreError(
                    f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: {path}"
                )
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StateStoreError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise StateStoreError(f"State file must contain a JSON object: {path}")
        return data
