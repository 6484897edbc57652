"""Secret retrieval by name, namespace and field.

Secrets are mounted as files, one directory per secret:

    <root>/<namespace>/<name>/<field>

Three failure conditions are reported separately so users can tell them apart:
- the secret does not exist (or cannot be read)
- the secret exists but lacks the requested field
- the field exists but is empty
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .models import ResourceRef

logger = logging.getLogger(__name__)

# Mounted secret values are small; refuse anything larger
MAX_SECRET_FIELD_BYTES = 64 * 1024


class SecretError(Exception):
    """Base class of secret retrieval failures."""

    pass


class SecretNotFoundError(SecretError):
    """Raised when the referenced secret cannot be read."""

    pass


class SecretFieldMissingError(SecretError):
    """Raised when the secret does not contain the requested field."""

    pass


class SecretFieldEmptyError(SecretError):
    """Raised when the requested field holds an empty value."""

    pass


class SecretStore(Protocol):
    """Source of secret data."""

    def read(self, namespace: str, name: str) -> dict[str, str]:
        """Return all fields of a secret.

        Raises:
            SecretNotFoundError: If the secret does not exist.
        """
        ...


class DirectorySecretStore:
    """Secrets mounted as directories of field files."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def read(self, namespace: str, name: str) -> dict[str, str]:
        secret_dir = self._root / namespace / name
        if not secret_dir.is_dir():
            raise SecretNotFoundError(f"secret '{namespace}/{name}' not found")

        data: dict[str, str] = {}
        try:
            for entry in sorted(secret_dir.iterdir()):
                # Kubernetes projects ..data symlinks next to the field files
                if entry.name.startswith(".") or not entry.is_file():
                    continue
                if entry.stat().st_size > MAX_SECRET_FIELD_BYTES:
                    raise SecretNotFoundError(
                        f"secret '{namespace}/{name}' field '{entry.name}' exceeds "
                        f"{MAX_SECRET_FIELD_BYTES} bytes"
                    )
                data[entry.name] = entry.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise SecretNotFoundError(f"failed to read secret '{namespace}/{name}': {e}") from e
        return data


def read_secret_field(
    store: SecretStore,
    ref: ResourceRef,
    default_namespace: str,
    field: str,
) -> str:
    """Read one field of a referenced secret.

    Args:
        store: Secret source.
        ref: Secret reference; an empty namespace means default_namespace.
        default_namespace: Namespace of the managed project.
        field: Field name inside the secret.

    Returns:
        The non-empty field value.

    Raises:
        SecretNotFoundError: The secret cannot be read.
        SecretFieldMissingError: The field is absent.
        SecretFieldEmptyError: The field is empty.
    """
    namespace = ref.namespace or default_namespace
    data = store.read(namespace, ref.name)
    if field not in data:
        raise SecretFieldMissingError(
            f"secret '{namespace}/{ref.name}' doesn't contain '{field}' parameter"
        )
    value = data[field]
    if not value:
        raise SecretFieldEmptyError(
            f"secret '{namespace}/{ref.name}' contains an empty value for '{field}' parameter"
        )
    return value
