"""Credential handling for the remote API.

The API access token is read from a mounted secret only. Tokens in
environment variables leak through process listings, crash dumps and child
processes, so their presence blocks startup.

SECURITY INVARIANTS:
1. No API credential may be present in the environment
2. The token is wrapped in an AzureKeyCredential and only ever sent as a
   bearer header by the client pipeline
3. Token values are never logged
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import AzureKeyCredential

from .models import ResourceRef
from .secret_store import SecretStore, read_secret_field

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "ATLAS_PRIVATE_KEY",
    "ATLAS_PUBLIC_KEY",
    "ATLAS_ACCESS_TOKEN",
    "MCLI_PRIVATE_API_KEY",
)

# Field of the credentials secret holding the API token
CREDENTIAL_TOKEN_FIELD = "accessToken"

INLINE_CREDENTIAL_MESSAGE = (
    "Detected {env_var} in the environment. API credentials must be provided "
    "through the mounted secret named by CREDENTIALS_SECRET; remove the variable."
)


class InlineCredentialError(Exception):
    """Raised when an API credential is found in the environment.

    This is a fatal security error that prevents operator startup.
    """

    pass


def enforce_no_inline_credentials() -> None:
    """Refuse to start with credentials in the environment.

    Raises:
        InlineCredentialError: If any forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Inline credential detected",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise InlineCredentialError(INLINE_CREDENTIAL_MESSAGE.format(env_var=env_var))

    logger.info(
        "No inline credentials found",
        extra={"security_event": "environment_verified"},
    )


def load_api_credential(store: SecretStore, ref: ResourceRef) -> AzureKeyCredential:
    """Read the API token from its secret after verifying the environment.

    This is the only way to obtain a credential in this codebase.

    Raises:
        InlineCredentialError: If credential environment variables are set.
        SecretError: If the secret or its token field cannot be read.
    """
    enforce_no_inline_credentials()
    token = read_secret_field(store, ref, ref.namespace, CREDENTIAL_TOKEN_FIELD)
    log_security_audit_event(
        "credential_loaded",
        target_resource=ref.key(),
        action="read_secret",
        result="success",
    )
    return AzureKeyCredential(token)


def log_security_audit_event(
    event_type: str,
    target_resource: str | None = None,
    action: str | None = None,
    result: str | None = None,
) -> None:
    """Log a security-relevant audit event.

    Args:
        event_type: Type of security event (credential_loaded, ...).
        target_resource: Object being accessed.
        action: Action being performed.
        result: Result of the action (success, failure, denied).
    """
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "target_resource": target_resource,
            "action": action,
            "result": result,
        },
    )
