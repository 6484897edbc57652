"""Tests for credential handling.

These tests verify that the operator refuses credentials in the environment
and only obtains its API token from the mounted secret.
"""

from __future__ import annotations

import os
from unittest import mock

import pytest
from atlas_mock import InMemorySecretStore
from azure.core.credentials import AzureKeyCredential

from project_operator.models import ResourceRef
from project_operator.secret_store import SecretFieldMissingError
from project_operator.security import (
    FORBIDDEN_CREDENTIAL_ENV_VARS,
    InlineCredentialError,
    enforce_no_inline_credentials,
    load_api_credential,
)

CREDENTIALS = ResourceRef(name="atlas-credentials", namespace="operator")


class TestInlineCredentialEnforcement:
    """Tests for rejecting credentials in the environment."""

    def test_clean_environment_passes(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            # Should not raise
            enforce_no_inline_credentials()

    @pytest.mark.parametrize("env_var", FORBIDDEN_CREDENTIAL_ENV_VARS)
    def test_forbidden_env_var_raises(self, env_var: str) -> None:
        with mock.patch.dict(os.environ, {env_var: "some-secret-value"}):
            with pytest.raises(InlineCredentialError) as exc_info:
                enforce_no_inline_credentials()

            assert env_var in str(exc_info.value)
            assert "some-secret-value" not in str(exc_info.value)

    def test_empty_variable_is_ignored(self) -> None:
        with mock.patch.dict(os.environ, {"ATLAS_ACCESS_TOKEN": ""}, clear=True):
            enforce_no_inline_credentials()


class TestLoadApiCredential:
    """Tests for reading the token from its secret."""

    def test_reads_token(self) -> None:
        store = InMemorySecretStore({("operator", "atlas-credentials"): {"accessToken": "tok"}})

        with mock.patch.dict(os.environ, {}, clear=True):
            credential = load_api_credential(store, CREDENTIALS)

        assert isinstance(credential, AzureKeyCredential)
        assert credential.key == "tok"

    def test_missing_token_field(self) -> None:
        store = InMemorySecretStore({("operator", "atlas-credentials"): {"token": "tok"}})

        with mock.patch.dict(os.environ, {}, clear=True):
            with pytest.raises(SecretFieldMissingError):
                load_api_credential(store, CREDENTIALS)

    def test_environment_checked_first(self) -> None:
        store = InMemorySecretStore({("operator", "atlas-credentials"): {"accessToken": "tok"}})

        with mock.patch.dict(os.environ, {"ATLAS_PRIVATE_KEY": "k"}):
            with pytest.raises(InlineCredentialError):
                load_api_credential(store, CREDENTIALS)

    def test_token_is_not_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        store = InMemorySecretStore({("operator", "atlas-credentials"): {"accessToken": "s3cr3t"}})

        with mock.patch.dict(os.environ, {}, clear=True), caplog.at_level("DEBUG"):
            load_api_credential(store, CREDENTIALS)

        assert "s3cr3t" not in caplog.text
        assert "Security audit: credential_loaded" in caplog.text
