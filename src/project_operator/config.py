"""Configuration management with validation.

Bounds are enforced at configuration load time so a misconfigured operator
fails at startup rather than mid-reconciliation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_ATLAS_BASE_URL = "https://cloud.mongodb.com"

DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
MIN_RECONCILE_INTERVAL_SECONDS = 10
MAX_RECONCILE_INTERVAL_SECONDS = 3600

DEFAULT_WORKER_POOL_SIZE = 4
MAX_WORKER_POOL_SIZE = 64

DEFAULT_SHORT_REQUEUE_SECONDS = 10
DEFAULT_BACKOFF_BASE_SECONDS = 5
DEFAULT_BACKOFF_MAX_SECONDS = 300
MAX_BACKOFF_SECONDS = 3600

# Deadline of one project reconciliation (all categories)
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 600
MAX_RECONCILE_TIMEOUT_SECONDS = 3600

# Remote calls in flight within one parallel batch
DEFAULT_MAX_PARALLEL_CALLS = 8
MAX_PARALLEL_CALLS = 32

# Security constraints - enforced limits to prevent abuse
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max project file
MAX_STATE_FILE_SIZE_BYTES = 4 * 1024 * 1024  # 4MB max persisted state

# Input validation patterns
VALID_SECRET_REF_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?/[a-z0-9]([-.a-z0-9]*[a-z0-9])?$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Remote API
    atlas_base_url: str = DEFAULT_ATLAS_BASE_URL
    credentials_secret: str = ""

    # Paths
    specs_dir: Path = field(default_factory=lambda: Path("/specs"))
    state_dir: Path = field(default_factory=lambda: Path("/state"))
    secrets_dir: Path = field(default_factory=lambda: Path("/secrets"))

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    short_requeue_seconds: int = DEFAULT_SHORT_REQUEUE_SECONDS
    backoff_base_seconds: int = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: int = DEFAULT_BACKOFF_MAX_SECONDS
    reconcile_timeout_seconds: int = DEFAULT_RECONCILE_TIMEOUT_SECONDS

    # Concurrency
    worker_pool_size: int = DEFAULT_WORKER_POOL_SIZE
    max_parallel_calls: int = DEFAULT_MAX_PARALLEL_CALLS

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        SECURITY: All inputs are validated at the boundary (fail-fast).
        """
        import re

        errors: list[str] = []

        if not self.atlas_base_url.startswith(("https://", "http://")):
            errors.append(f"ATLAS_BASE_URL must be an http(s) URL: {self.atlas_base_url}")

        if not self.credentials_secret:
            errors.append("CREDENTIALS_SECRET is required")
        elif not re.match(VALID_SECRET_REF_PATTERN, self.credentials_secret):
            errors.append(
                f"CREDENTIALS_SECRET must have the form namespace/name: {self.credentials_secret}"
            )

        # Timing validation
        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        if self.short_requeue_seconds < 1:
            errors.append("SHORT_REQUEUE_SECONDS must be at least 1")

        if self.backoff_base_seconds < 1:
            errors.append("BACKOFF_BASE_SECONDS must be at least 1")
        if not (self.backoff_base_seconds <= self.backoff_max_seconds <= MAX_BACKOFF_SECONDS):
            errors.append(
                f"BACKOFF_MAX_SECONDS must be between BACKOFF_BASE_SECONDS "
                f"and {MAX_BACKOFF_SECONDS} seconds"
            )

        if not (1 <= self.reconcile_timeout_seconds <= MAX_RECONCILE_TIMEOUT_SECONDS):
            errors.append(
                f"RECONCILE_TIMEOUT must be between 1 and {MAX_RECONCILE_TIMEOUT_SECONDS} seconds"
            )

        # Concurrency validation
        if not (1 <= self.worker_pool_size <= MAX_WORKER_POOL_SIZE):
            errors.append(f"WORKER_POOL_SIZE must be between 1 and {MAX_WORKER_POOL_SIZE}")

        if not (1 <= self.max_parallel_calls <= MAX_PARALLEL_CALLS):
            errors.append(f"MAX_PARALLEL_CALLS must be between 1 and {MAX_PARALLEL_CALLS}")

        # Path validation
        if not self.specs_dir.exists():
            errors.append(f"Specs directory does not exist: {self.specs_dir}")

        if not self.secrets_dir.exists():
            errors.append(f"Secrets directory does not exist: {self.secrets_dir}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def credentials_namespace(self) -> str:
        return self.credentials_secret.partition("/")[0]

    @property
    def credentials_name(self) -> str:
        return self.credentials_secret.partition("/")[2]

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            ATLAS_BASE_URL: Root URL of the remote API (default: https://cloud.mongodb.com)
            CREDENTIALS_SECRET: namespace/name of the secret holding the API token
            SPECS_DIR: Path to project YAML files (default: /specs)
            STATE_DIR: Path to persisted annotations and status (default: /state)
            SECRETS_DIR: Path to mounted secrets (default: /secrets)
            RECONCILE_INTERVAL: Seconds between directory scans (default: 300)
            WORKER_POOL_SIZE: Projects reconciled concurrently (default: 4)
            SHORT_REQUEUE_SECONDS: Requeue while remote provisioning runs (default: 10)
            BACKOFF_BASE_SECONDS: First failure backoff (default: 5)
            BACKOFF_MAX_SECONDS: Backoff ceiling (default: 300)
            RECONCILE_TIMEOUT: Deadline of one project reconciliation (default: 600)
            MAX_PARALLEL_CALLS: Remote calls in flight per batch (default: 8)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        return cls(
            atlas_base_url=os.environ.get("ATLAS_BASE_URL", DEFAULT_ATLAS_BASE_URL),
            credentials_secret=os.environ.get("CREDENTIALS_SECRET", ""),
            specs_dir=Path(os.environ.get("SPECS_DIR", "/specs")),
            state_dir=Path(os.environ.get("STATE_DIR", "/state")),
            secrets_dir=Path(os.environ.get("SECRETS_DIR", "/secrets")),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            short_requeue_seconds=get_int("SHORT_REQUEUE_SECONDS", DEFAULT_SHORT_REQUEUE_SECONDS),
            backoff_base_seconds=get_int("BACKOFF_BASE_SECONDS", DEFAULT_BACKOFF_BASE_SECONDS),
            backoff_max_seconds=get_int("BACKOFF_MAX_SECONDS", DEFAULT_BACKOFF_MAX_SECONDS),
            reconcile_timeout_seconds=get_int(
                "RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS
            ),
            worker_pool_size=get_int("WORKER_POOL_SIZE", DEFAULT_WORKER_POOL_SIZE),
            max_parallel_calls=get_int("MAX_PARALLEL_CALLS", DEFAULT_MAX_PARALLEL_CALLS),
        )
