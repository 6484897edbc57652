"""Third-party integration convergence.

A project holds at most one integration per type, so the type is the identity.
Credentials come from referenced secrets and are redacted by the remote API,
which makes content comparison impossible: every declared integration that
already exists is re-sent (PUT) each cycle.
"""

from __future__ import annotations

from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import collapse, compute_diff
from .models import Integration, IntegrationStatus, IntegrationType, RemoteIntegration
from .paging import list_all
from .secret_store import SecretError, SecretNotFoundError, SecretStore, read_secret_field
from .state import ApplyPhase
from .status import CategoryReport

SECRET_FIELD = "password"

# Plain request fields per type: (model attribute, remote field)
INTEGRATION_FIELDS: dict[IntegrationType, tuple[tuple[str, str], ...]] = {
    IntegrationType.DATADOG: (("region", "region"),),
    IntegrationType.MICROSOFT_TEAMS: (
        ("microsoft_teams_webhook_url", "microsoftTeamsWebhookUrl"),
    ),
    IntegrationType.NEW_RELIC: (("account_id", "accountId"),),
    IntegrationType.OPS_GENIE: (("region", "region"),),
    IntegrationType.PAGER_DUTY: (("region", "region"),),
    IntegrationType.PROMETHEUS: (
        ("user_name", "username"),
        ("service_discovery", "serviceDiscovery"),
        ("enabled", "enabled"),
    ),
    IntegrationType.SLACK: (("channel_name", "channelName"), ("team_name", "teamName")),
    IntegrationType.VICTOR_OPS: (),
    IntegrationType.WEBHOOK: (("url", "url"),),
}

# Secret-backed request fields per type: (ref attribute, remote field, description)
INTEGRATION_SECRETS: dict[IntegrationType, tuple[tuple[str, str, str], ...]] = {
    IntegrationType.DATADOG: (("api_key_ref", "apiKey", "API key"),),
    IntegrationType.MICROSOFT_TEAMS: (),
    IntegrationType.NEW_RELIC: (
        ("license_key_ref", "licenseKey", "license key"),
        ("read_token_ref", "readToken", "read token"),
        ("write_token_ref", "writeToken", "write token"),
    ),
    IntegrationType.OPS_GENIE: (("api_key_ref", "apiKey", "API key"),),
    IntegrationType.PAGER_DUTY: (("service_key_ref", "serviceKey", "service key"),),
    IntegrationType.PROMETHEUS: (("password_ref", "password", "password"),),
    IntegrationType.SLACK: (("api_token_ref", "apiToken", "API token"),),
    IntegrationType.VICTOR_OPS: (
        ("api_key_ref", "apiKey", "API key"),
        ("routing_key_ref", "routingKey", "routing key"),
    ),
    IntegrationType.WEBHOOK: (("secret_ref", "secret", "secret"),),
}

DISPLAY_NAMES: dict[IntegrationType, str] = {
    IntegrationType.DATADOG: "Datadog",
    IntegrationType.MICROSOFT_TEAMS: "Microsoft Teams",
    IntegrationType.NEW_RELIC: "New Relic",
    IntegrationType.OPS_GENIE: "OpsGenie",
    IntegrationType.PAGER_DUTY: "PagerDuty",
    IntegrationType.PROMETHEUS: "Prometheus",
    IntegrationType.SLACK: "Slack",
    IntegrationType.VICTOR_OPS: "VictorOps",
    IntegrationType.WEBHOOK: "Webhook",
}


def integration_type(integration: Integration) -> str:
    return integration.type.value


def integration_request(
    integration: Integration, store: SecretStore, namespace: str
) -> dict[str, Any]:
    """Build the remote request for an integration, reading its secrets.

    Raises:
        SecretError: If a required secret reference is unset or unreadable.
            The message names the credential and the integration type.
    """
    request: dict[str, Any] = {"type": integration.type.value}
    for attribute, remote_field in INTEGRATION_FIELDS[integration.type]:
        value = getattr(integration, attribute)
        if value or isinstance(value, bool):
            request[remote_field] = value
    for attribute, remote_field, description in INTEGRATION_SECRETS[integration.type]:
        ref = getattr(integration, attribute)
        try:
            if not ref.is_set:
                raise SecretNotFoundError("secret reference is not set")
            request[remote_field] = read_secret_field(store, ref, namespace, SECRET_FIELD)
        except SecretError as e:
            name = DISPLAY_NAMES[integration.type]
            raise type(e)(f"failed to read {description} for {name} integration: {e}") from e
    return request


async def sync_integrations(
    ctx: ReconcileContext,
    client: AtlasClient,
    store: SecretStore,
    desired: list[Integration],
    owned: list[Integration],
) -> CategoryReport:
    """Converge third-party integrations.

    Args:
        ctx: Reconciliation context.
        client: Remote API client.
        store: Source of integration credentials.
        desired: Integrations declared in the project spec.
        owned: Integrations recorded by the last successful cycle.

    Returns:
        Category report with one status per declared integration type.
    """
    if not desired and not owned:
        return CategoryReport()

    try:
        observed: list[RemoteIntegration] = await list_all(
            lambda page: ctx.call(client.list_integrations, ctx.project_id, page)
        )
    except AzureError as e:
        ctx.log.error("Failed to list integrations", extra={"error": str(e)})
        return CategoryReport(
            statuses=list(ctx.project.status.integrations),
            desired_count=len(desired),
            errors=[f"failed to list integrations: {e}"],
        )

    diff = compute_diff(
        desired,
        observed,
        owned,
        matches=lambda integration, remote: integration.type.value == remote.type,
        identity=integration_type,
        needs_update=lambda _remote, _integration: True,
    )
    ctx.log.info("Integration diff", extra=diff.summary())
    report = CategoryReport(desired_count=len(diff.to_create) + len(diff.matched))

    for remote in diff.to_delete:
        try:
            await ctx.call(client.delete_integration, ctx.project_id, remote.type)
            ctx.log.info("Integration deleted", extra={"type": remote.type})
        except ResourceNotFoundError:
            continue
        except AzureError as e:
            ctx.log.error("Failed to delete integration", extra={"type": remote.type, "error": str(e)})
            report.fail(f"failed to remove integration {remote.type}: {e}")

    statuses: dict[str, IntegrationStatus] = {}
    for integration in diff.to_create:
        statuses[integration_type(integration)] = await _apply(ctx, client, store, integration, False)
    for _remote, integration in diff.to_update:
        statuses[integration_type(integration)] = await _apply(ctx, client, store, integration, True)

    report.statuses = [
        statuses[integration_type(entry.item)] for entry in collapse(desired, integration_type)
    ]
    return report


def _status(integration: Integration, phase: ApplyPhase, error: str = "") -> IntegrationStatus:
    status = IntegrationStatus(identity=integration.type.value, type=integration.type.value)
    status.advance(phase, error)
    return status


async def _apply(
    ctx: ReconcileContext,
    client: AtlasClient,
    store: SecretStore,
    integration: Integration,
    exists: bool,
) -> IntegrationStatus:
    kind = integration.type.value
    try:
        request = integration_request(integration, store, ctx.namespace)
    except SecretError as e:
        ctx.log.error("Failed to read integration secret", extra={"type": kind, "error": str(e)})
        return _status(integration, ApplyPhase.FAILED, str(e))

    action = "update" if exists else "create"
    try:
        if exists:
            await ctx.call(client.update_integration, ctx.project_id, kind, request)
        else:
            await ctx.call(client.create_integration, ctx.project_id, kind, request)
    except AzureError as e:
        ctx.log.error(f"Failed to {action} integration", extra={"type": kind, "error": str(e)})
        return _status(integration, ApplyPhase.FAILED, f"failed to {action} integration {kind}: {e}")

    ctx.log.info(f"Integration {action}d", extra={"type": kind})
    return _status(integration, ApplyPhase.OK)
