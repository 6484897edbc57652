"""Project file loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import ManagedProject

logger = logging.getLogger(__name__)

PROJECT_FILE_SUFFIXES = (".yaml", ".yml")


class SpecLoadError(Exception):
    """Raised when project loading or validation fails."""

    pass


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors one per line as '  - loc: msg'."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        lines.append(f"  - {loc}: {item['msg']}")
    return "\n".join(lines)


def discover_projects(specs_dir: Path) -> list[Path]:
    """Project files in a directory, sorted by name (hidden files skipped)."""
    if not specs_dir.is_dir():
        raise SpecLoadError(f"Specs directory not found: {specs_dir}")
    return sorted(
        path
        for path in specs_dir.iterdir()
        if path.is_file()
        and path.suffix in PROJECT_FILE_SUFFIXES
        and not path.name.startswith(".")
    )


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise SpecLoadError(f"Project file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat project file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Project file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read project file {path}: {e}") from e

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e


def load_project(path: Path) -> ManagedProject:
    """Load and validate a managed project from YAML.

    The file holds a Kubernetes-style object (apiVersion, kind, metadata,
    spec). A file without metadata is accepted as a bare spec and named after
    the file stem in the default namespace.

    Args:
        path: Project file.

    Returns:
        Validated project, with an empty status.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    raw_data = _read_yaml(path)
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Project file must contain a YAML mapping: {path}")

    if "spec" in raw_data:
        data = {key: value for key, value in raw_data.items() if key != "status"}
        if not isinstance(data.get("spec"), dict):
            raise SpecLoadError(f"Spec section must be a mapping: {path}")
        data.setdefault("metadata", {"name": path.stem})
    else:
        # Flat format: the file holds the project spec itself
        data = {"metadata": {"name": path.stem}, "spec": raw_data}

    try:
        project = ManagedProject.model_validate(data)
    except ValidationError as e:
        raise SpecLoadError(
            f"Validation failed for {path}:\n{format_validation_error(e)}"
        ) from e

    logger.info(
        "Loaded project '%s' from %s",
        project.metadata.key,
        path,
    )
    return project
