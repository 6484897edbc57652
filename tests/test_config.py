"""Tests for configuration loading."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from project_operator.config import Config, ConfigurationError


@pytest.fixture
def dirs(tmp_path: Path) -> dict[str, Path]:
    specs_dir = tmp_path / "specs"
    secrets_dir = tmp_path / "secrets"
    specs_dir.mkdir()
    secrets_dir.mkdir()
    return {"specs_dir": specs_dir, "secrets_dir": secrets_dir, "state_dir": tmp_path / "state"}


class TestConfig:
    """Tests for Config class."""

    def test_valid_config(self, dirs: dict[str, Path]) -> None:
        """Test creating a valid configuration."""
        config = Config(credentials_secret="operator/atlas-credentials", **dirs)

        assert config.credentials_namespace == "operator"
        assert config.credentials_name == "atlas-credentials"
        assert config.reconcile_interval_seconds == 300
        assert config.worker_pool_size == 4

    def test_missing_credentials_secret(self, dirs: dict[str, Path]) -> None:
        """Test that a missing credentials secret raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(**dirs)

        assert "CREDENTIALS_SECRET is required" in str(exc_info.value)

    def test_malformed_credentials_secret(self, dirs: dict[str, Path]) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Config(credentials_secret="no-namespace", **dirs)

        assert "namespace/name" in str(exc_info.value)

    def test_invalid_reconcile_interval(self, dirs: dict[str, Path]) -> None:
        """Test that out-of-range reconcile interval raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(credentials_secret="operator/atlas", reconcile_interval_seconds=5, **dirs)

        assert "RECONCILE_INTERVAL must be between" in str(exc_info.value)

    def test_invalid_worker_pool_size(self, dirs: dict[str, Path]) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Config(credentials_secret="operator/atlas", worker_pool_size=0, **dirs)

        assert "WORKER_POOL_SIZE must be between" in str(exc_info.value)

    def test_backoff_ceiling_below_base(self, dirs: dict[str, Path]) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Config(
                credentials_secret="operator/atlas",
                backoff_base_seconds=60,
                backoff_max_seconds=30,
                **dirs,
            )

        assert "BACKOFF_MAX_SECONDS" in str(exc_info.value)

    def test_missing_directories(self, tmp_path: Path) -> None:
        """Test that every problem is reported at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(
                credentials_secret="operator/atlas",
                specs_dir=tmp_path / "absent-specs",
                secrets_dir=tmp_path / "absent-secrets",
            )

        message = str(exc_info.value)
        assert "Specs directory does not exist" in message
        assert "Secrets directory does not exist" in message


class TestConfigFromEnv:
    """Tests for loading from environment variables."""

    def test_from_env(self, dirs: dict[str, Path]) -> None:
        env = {
            "CREDENTIALS_SECRET": "operator/atlas",
            "SPECS_DIR": str(dirs["specs_dir"]),
            "SECRETS_DIR": str(dirs["secrets_dir"]),
            "STATE_DIR": str(dirs["state_dir"]),
            "RECONCILE_INTERVAL": "60",
            "WORKER_POOL_SIZE": "8",
            "MAX_PARALLEL_CALLS": "16",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.reconcile_interval_seconds == 60
        assert config.worker_pool_size == 8
        assert config.max_parallel_calls == 16
        assert config.state_dir == dirs["state_dir"]
        assert config.atlas_base_url == "https://cloud.mongodb.com"

    def test_non_integer_value(self, dirs: dict[str, Path]) -> None:
        env = {
            "CREDENTIALS_SECRET": "operator/atlas",
            "SPECS_DIR": str(dirs["specs_dir"]),
            "SECRETS_DIR": str(dirs["secrets_dir"]),
            "WORKER_POOL_SIZE": "many",
        }
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError, match="WORKER_POOL_SIZE must be an integer: many"):
                Config.from_env()
