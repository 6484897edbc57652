"""Cloud provider access role convergence.

Roles are created empty and authorized once the user has set up the
provider-side role and declared its ARN. Until then a desired entry without an
ARN is a keyless placeholder, paired positionally with keyless remote roles in
ascending role id order.

Each role walks the integration state machine:
- New / FailedToCreate: create the role
- Created / FailedToAuthorize: authorize it (the ARN is always resubmitted)
- Authorized: nothing to do
- DeAuthorize: remove it (owned roles no longer desired)
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import match_positional
from .models import (
    CloudProviderIntegration,
    CloudProviderIntegrationStatus,
    FeatureUsage,
    ProviderName,
    RemoteCloudProviderRole,
)
from .state import IntegrationPhase
from .status import CategoryReport

NOT_AUTHORIZED_MESSAGE = "not all entries are authorized"
FAILURE_PREFIX = "not all items were synchronized successfully: "


def integration_key(integration: CloudProviderIntegration) -> tuple[ProviderName, str]:
    return (integration.provider_name, integration.iam_assumed_role_arn)


def role_key(role: RemoteCloudProviderRole) -> tuple[ProviderName, str]:
    return (role.provider_name, role.iam_assumed_role_arn)


def feature_usages(role: RemoteCloudProviderRole) -> list[FeatureUsage]:
    """Feature usages with composite ids rendered as groupId.bucketName."""
    usages: list[FeatureUsage] = []
    for usage in role.feature_usages:
        feature_id: Any = usage.get("featureId", "")
        if isinstance(feature_id, dict):
            feature_id = f"{feature_id.get('groupId', '')}.{feature_id.get('bucketName', '')}"
        usages.append(FeatureUsage(feature_type=usage.get("featureType", ""), feature_id=feature_id))
    return usages


def copy_remote(status: CloudProviderIntegrationStatus, role: RemoteCloudProviderRole) -> None:
    """Copy remote role data onto a status and derive Created/Authorized."""
    status.role_id = role.role_id
    status.atlas_aws_account_arn = role.atlas_aws_account_arn
    status.atlas_assumed_role_external_id = role.atlas_assumed_role_external_id
    status.created_date = role.created_date
    status.authorized_date = role.authorized_date
    status.feature_usages = feature_usages(role)
    if role.iam_assumed_role_arn and not status.iam_assumed_role_arn:
        status.iam_assumed_role_arn = role.iam_assumed_role_arn

    target = IntegrationPhase.AUTHORIZED if role.authorized_date else IntegrationPhase.CREATED
    if target == IntegrationPhase.AUTHORIZED and status.phase in (
        IntegrationPhase.NEW,
        IntegrationPhase.FAILED_TO_CREATE,
    ):
        status.advance(IntegrationPhase.CREATED)
    status.advance(target)
    status.identity = _identity(status)


def _identity(status: CloudProviderIntegrationStatus) -> str:
    return f"{status.provider_name.value}/{status.iam_assumed_role_arn or status.role_id}"


def plan_integrations(
    desired: list[CloudProviderIntegration],
    observed: list[RemoteCloudProviderRole],
    owned: list[CloudProviderIntegration],
) -> list[CloudProviderIntegrationStatus]:
    """Build the status list for this pass: desired entries, then removals.

    Entries with an ARN first match remote roles by provider and ARN. Every
    entry still without a role (keyless placeholders, and ARNs declared for a
    role created earlier as a placeholder) then pairs positionally with the
    keyless remote roles of its provider.

    Remote roles left over are marked DeAuthorize only when owned: keyed roles
    when their key was recorded, keyless roles only for the surplus of recorded
    keyless entries over entries still waiting for a role.
    """
    statuses: list[CloudProviderIntegrationStatus] = []
    seen: set[tuple[ProviderName, str]] = set()
    for integration in desired:
        key = integration_key(integration)
        if integration.iam_assumed_role_arn:
            if key in seen:
                continue
            seen.add(key)
        status = CloudProviderIntegrationStatus(
            provider_name=integration.provider_name,
            iam_assumed_role_arn=integration.iam_assumed_role_arn,
        )
        status.identity = _identity(status)
        statuses.append(status)

    remaining = list(observed)
    for status in statuses:
        if not status.iam_assumed_role_arn:
            continue
        for role in remaining:
            if role_key(role) == (status.provider_name, status.iam_assumed_role_arn):
                copy_remote(status, role)
                remaining.remove(role)
                break

    owned_keys = {integration_key(o) for o in owned if o.iam_assumed_role_arn}
    owned_keyless = Counter(o.provider_name for o in owned if not o.iam_assumed_role_arn)
    removals: list[CloudProviderIntegrationStatus] = []

    for provider in ProviderName:
        waiting = [s for s in statuses if s.provider_name == provider and not s.role_id]
        candidates = [
            r for r in remaining if r.provider_name == provider and not r.iam_assumed_role_arn
        ]
        pairs, _unpaired, leftovers = match_positional(waiting, candidates, lambda r: r.role_id)
        for role, status in pairs:
            copy_remote(status, role)

        surplus = max(owned_keyless[provider] - len(waiting), 0)
        removals.extend(_deauthorize_status(role) for role in leftovers[:surplus])

    for role in remaining:
        if role.iam_assumed_role_arn and role_key(role) in owned_keys:
            removals.append(_deauthorize_status(role))

    return statuses + removals


def _deauthorize_status(role: RemoteCloudProviderRole) -> CloudProviderIntegrationStatus:
    status = CloudProviderIntegrationStatus(
        provider_name=role.provider_name, iam_assumed_role_arn=role.iam_assumed_role_arn
    )
    copy_remote(status, role)
    status.advance(IntegrationPhase.DEAUTHORIZE)
    return status


async def sync_cloud_provider_integrations(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[CloudProviderIntegration],
    owned: list[CloudProviderIntegration],
) -> CategoryReport:
    """Converge cloud provider access roles.

    Returns:
        Category report; removed roles are not part of the persisted statuses.
    """
    if not desired and not owned:
        return CategoryReport()

    try:
        observed = await ctx.call(client.list_cloud_provider_roles, ctx.project_id)
    except AzureError as e:
        ctx.log.error("Failed to list cloud provider access roles", extra={"error": str(e)})
        return CategoryReport(
            statuses=list(ctx.project.status.cloud_provider_integrations),
            desired_count=len(desired),
            errors=[f"unable to fetch cloud provider access from Atlas: {e}"],
        )

    report = CategoryReport(pending_message=NOT_AUTHORIZED_MESSAGE)
    kept: list[CloudProviderIntegrationStatus] = []
    for status in plan_integrations(desired, observed, owned):
        match status.phase:
            case IntegrationPhase.NEW | IntegrationPhase.FAILED_TO_CREATE:
                await _create(ctx, client, status)
            case IntegrationPhase.CREATED | IntegrationPhase.FAILED_TO_AUTHORIZE:
                if status.iam_assumed_role_arn:
                    await _authorize(ctx, client, status)
            case IntegrationPhase.DEAUTHORIZE | IntegrationPhase.FAILED_TO_DEAUTHORIZE:
                await _deauthorize(ctx, client, status, report)
                continue
        kept.append(status)

    report.statuses = kept
    report.desired_count = len(kept)
    return report


async def _create(
    ctx: ReconcileContext, client: AtlasClient, status: CloudProviderIntegrationStatus
) -> None:
    try:
        role = await ctx.call(
            client.create_cloud_provider_role, ctx.project_id, status.provider_name
        )
    except AzureError as e:
        ctx.log.error("Failed to start new cloud provider access", extra={"error": str(e)})
        status.advance(IntegrationPhase.FAILED_TO_CREATE, str(e))
        return
    copy_remote(status, role)
    ctx.log.info("Created cloud provider access role", extra={"role_id": status.role_id})


async def _authorize(
    ctx: ReconcileContext, client: AtlasClient, status: CloudProviderIntegrationStatus
) -> None:
    try:
        role = await ctx.call(
            client.authorize_cloud_provider_role,
            ctx.project_id,
            status.role_id,
            status.provider_name,
            status.iam_assumed_role_arn,
        )
    except AzureError as e:
        ctx.log.error(
            "Failed to authorize cloud provider access",
            extra={"role_id": status.role_id, "error": str(e)},
        )
        status.advance(IntegrationPhase.FAILED_TO_AUTHORIZE, str(e))
        return
    copy_remote(status, role)
    ctx.log.info("Authorized cloud provider access role", extra={"role_id": status.role_id})


async def _deauthorize(
    ctx: ReconcileContext,
    client: AtlasClient,
    status: CloudProviderIntegrationStatus,
    report: CategoryReport,
) -> None:
    try:
        await ctx.call(
            client.deauthorize_cloud_provider_role,
            ctx.project_id,
            status.provider_name,
            status.role_id,
        )
        ctx.log.info("Deauthorized cloud provider access role", extra={"role_id": status.role_id})
    except ResourceNotFoundError:
        return
    except AzureError as e:
        ctx.log.error(
            "Failed to delete cloud provider access",
            extra={"role_id": status.role_id, "error": str(e)},
        )
        status.advance(IntegrationPhase.FAILED_TO_DEAUTHORIZE, str(e))
        report.fail(f"failed to deauthorize role {status.role_id}: {e}")
