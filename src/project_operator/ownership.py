"""Ownership tracking through the last-applied configuration annotation.

After a fully successful reconciliation cycle the complete desired spec is
serialized into an annotation on the managed project. The next cycle parses it
back to learn which remote items this operator created or adopted: only those
may ever be deleted.

SAFETY:
- No annotation (first run, adopted project) yields an empty ownership set
- Malformed annotations are a hard error, never silently treated as empty
- The annotation is rewritten only after every category reported OK
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from .models import ManagedProject, ProjectSpec

logger = logging.getLogger(__name__)

LAST_APPLIED_ANNOTATION = "mongodb.com/last-applied-configuration"


class OwnershipSnapshotError(Exception):
    """Raised when the last-applied annotation cannot be parsed."""

    pass


def owned(annotations: dict[str, str] | None) -> ProjectSpec:
    """Recover the desired spec recorded after the last successful cycle.

    Args:
        annotations: Annotations of the managed project (may be None).

    Returns:
        The recorded spec, or an empty spec when no snapshot exists.

    Raises:
        OwnershipSnapshotError: If the snapshot is present but malformed.
    """
    blob = (annotations or {}).get(LAST_APPLIED_ANNOTATION)
    if not blob:
        return ProjectSpec()

    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise OwnershipSnapshotError(f"error reading project spec from annotation: {e}") from e

    if not isinstance(data, dict):
        raise OwnershipSnapshotError(
            "error reading project spec from annotation: snapshot must be a JSON object"
        )

    try:
        return ProjectSpec.model_validate(data)
    except ValidationError as e:
        raise OwnershipSnapshotError(f"error reading project spec from annotation: {e}") from e


def snapshot(spec: ProjectSpec) -> str:
    """Serialize a desired spec into the annotation format."""
    return json.dumps(
        spec.model_dump(mode="json", by_alias=True, exclude_defaults=True),
        sort_keys=True,
        separators=(",", ":"),
    )


def record(project: ManagedProject) -> None:
    """Record the project's current spec as the ownership snapshot.

    Callers must only invoke this once the whole cycle has converged.
    """
    project.metadata.annotations[LAST_APPLIED_ANNOTATION] = snapshot(project.spec)
    logger.info(
        "Recorded last-applied configuration",
        extra={"project": project.metadata.key},
    )
