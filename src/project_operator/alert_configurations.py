"""Alert configuration convergence.

Alert configurations have no user-facing key: a remote configuration matches a
desired one when their content agrees. Fields the desired configuration leaves
unset are not compared, so server-side defaults never force a re-create.

Notification credentials are resolved from referenced secrets right before a
request is sent. The remote API redacts them on read, so configurations
carrying secret-backed notifications are always re-sent (PUT) to keep the
credentials current.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import collapse, compute_diff
from .models import (
    NOTIFICATION_SECRET_FIELDS,
    AlertConfiguration,
    AlertConfigurationStatus,
    Matcher,
    Notification,
    RemoteAlertConfiguration,
)
from .paging import list_all
from .secret_store import SecretError, SecretStore, read_secret_field
from .state import ApplyPhase
from .status import CategoryReport

FAILURE_PREFIX = "failed to create alert configuration: "


# =============================================================================
# Matching
# =============================================================================


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def thresholds_match(desired: Any, remote: dict[str, Any] | None, fields: tuple[str, ...]) -> bool:
    """Compare a desired threshold model against its remote mapping.

    The threshold value is a decimal string locally and a number remotely.
    """
    if desired is None:
        return not remote
    if not remote:
        return False
    for name in fields:
        if name == "threshold":
            local = _as_float(desired.threshold)
            if local is None or local != _as_float(remote.get("threshold")):
                return False
            continue
        field_info = type(desired).model_fields[name]
        value = getattr(desired, name)
        if value and value != remote.get(field_info.alias or name):
            return False
    return True


def notification_body(notification: Notification) -> dict[str, Any]:
    """Request body of a notification without secret references."""
    return notification.model_dump(
        mode="json",
        by_alias=True,
        exclude_defaults=True,
        exclude_none=True,
        exclude=set(NOTIFICATION_SECRET_FIELDS),
    )


def notification_matches(desired: Notification, remote: dict[str, Any]) -> bool:
    for key, value in notification_body(desired).items():
        if key == "roles":
            if Counter(value) != Counter(remote.get("roles") or []):
                return False
        elif remote.get(key) != value:
            return False
    return True


def matcher_matches(desired: Matcher, remote: Matcher) -> bool:
    return (
        desired.field_name == remote.field_name
        and desired.operator == remote.operator
        and desired.value == remote.value
    )


def alerts_match(desired: AlertConfiguration, remote: RemoteAlertConfiguration) -> bool:
    """Whether a remote configuration has the desired content."""
    if desired.event_type_name != remote.event_type_name:
        return False
    if desired.severity_override != remote.severity_override:
        return False
    if remote.enabled is None or desired.enabled != remote.enabled:
        return False
    if not thresholds_match(desired.threshold, remote.threshold, ("operator", "units", "threshold")):
        return False
    if not thresholds_match(
        desired.metric_threshold,
        remote.metric_threshold,
        ("metric_name", "operator", "threshold", "units", "mode"),
    ):
        return False
    if len(desired.notifications) != len(remote.notifications):
        return False
    if not all(
        any(notification_matches(n, r) for r in remote.notifications)
        for n in desired.notifications
    ):
        return False
    if len(desired.matchers) != len(remote.matchers):
        return False
    return all(any(matcher_matches(m, r) for r in remote.matchers) for m in desired.matchers)


def alert_identity(alert: AlertConfiguration) -> str:
    return json.dumps(alert.model_dump(mode="json", by_alias=True), sort_keys=True)


def has_secrets(alert: AlertConfiguration) -> bool:
    return any(n.has_secrets for n in alert.notifications)


# =============================================================================
# Requests
# =============================================================================


def resolve_notification_secrets(
    store: SecretStore, notification: Notification, namespace: str
) -> dict[str, str]:
    """Read every secret-backed credential of a notification.

    Raises:
        SecretError: If a referenced secret or field cannot be read.
    """
    values: dict[str, str] = {}
    for attribute, fields in NOTIFICATION_SECRET_FIELDS.items():
        ref = getattr(notification, attribute)
        if not ref.is_set:
            continue
        for remote_field, secret_key in fields:
            values[remote_field] = read_secret_field(store, ref, namespace, secret_key)
    return values


def _threshold_body(model: Any) -> dict[str, Any] | None:
    if model is None:
        return None
    body = model.model_dump(mode="json", by_alias=True, exclude_defaults=True)
    try:
        body["threshold"] = float(model.threshold)
    except ValueError as e:
        raise ValueError(f"failed to parse threshold value: {e}. should be float") from e
    return body


def alert_request(
    alert: AlertConfiguration, store: SecretStore, namespace: str
) -> dict[str, Any]:
    """Build the remote request for an alert configuration.

    Raises:
        SecretError: If a notification credential cannot be read.
        ValueError: If a threshold is not a decimal number.
    """
    request: dict[str, Any] = {
        "enabled": alert.enabled,
        "eventTypeName": alert.event_type_name,
        "matchers": [m.model_dump(by_alias=True) for m in alert.matchers],
        "notifications": [
            {**notification_body(n), **resolve_notification_secrets(store, n, namespace)}
            for n in alert.notifications
        ],
    }
    if alert.severity_override:
        request["severityOverride"] = alert.severity_override
    threshold = _threshold_body(alert.threshold)
    if threshold is not None:
        request["threshold"] = threshold
    metric_threshold = _threshold_body(alert.metric_threshold)
    if metric_threshold is not None:
        request["metricThreshold"] = metric_threshold
    return request


# =============================================================================
# Convergence
# =============================================================================


async def sync_alert_configurations(
    ctx: ReconcileContext,
    client: AtlasClient,
    store: SecretStore,
    desired: list[AlertConfiguration],
    owned: list[AlertConfiguration],
    *,
    enabled: bool,
) -> CategoryReport:
    """Converge alert configurations when sync is enabled for the project.

    Args:
        ctx: Reconciliation context.
        client: Remote API client.
        store: Source of notification credentials.
        desired: Configurations declared in the project spec.
        owned: Configurations recorded by the last successful cycle.
        enabled: The project's alert configuration sync flag.

    Returns:
        Category report (empty, i.e. unset, while sync is disabled).
    """
    if not enabled:
        ctx.log.debug("Alert configuration sync is disabled")
        return CategoryReport()
    if not desired and not owned:
        return CategoryReport()

    try:
        observed = await list_all(
            lambda page: ctx.call(client.list_alert_configurations, ctx.project_id, page)
        )
    except AzureError as e:
        ctx.log.error("Failed to list alert configurations", extra={"error": str(e)})
        return CategoryReport(
            statuses=list(ctx.project.status.alert_configurations),
            desired_count=len(desired),
            errors=[f"failed to list alert configurations: {e}"],
        )

    diff = compute_diff(
        desired,
        observed,
        owned,
        matches=alerts_match,
        identity=alert_identity,
        needs_update=lambda _remote, alert: has_secrets(alert),
    )
    ctx.log.info("Alert configuration diff", extra=diff.summary())
    report = CategoryReport(desired_count=len(diff.to_create) + len(diff.matched))

    for remote in diff.to_delete:
        try:
            await ctx.call(client.delete_alert_configuration, ctx.project_id, remote.id)
            ctx.log.info("Alert configuration deleted", extra={"alert_id": remote.id})
        except ResourceNotFoundError:
            continue
        except AzureError as e:
            ctx.log.error(
                "Failed to delete alert configuration", extra={"alert_id": remote.id, "error": str(e)}
            )
            report.fail(f"failed to delete alert configurations: {e}")

    statuses: dict[str, AlertConfigurationStatus] = {}
    for alert in diff.to_create:
        statuses[alert_identity(alert)] = await _apply(ctx, client, store, alert, None)
    for remote, alert in diff.to_update:
        statuses[alert_identity(alert)] = await _apply(ctx, client, store, alert, remote)
    for remote, alert in diff.in_sync:
        statuses[alert_identity(alert)] = _status(alert, ApplyPhase.OK, remote)

    report.statuses = [
        statuses[alert_identity(entry.item)] for entry in collapse(desired, alert_identity)
    ]
    return report


def _status(
    alert: AlertConfiguration,
    phase: ApplyPhase,
    remote: RemoteAlertConfiguration | None = None,
    error: str = "",
) -> AlertConfigurationStatus:
    status = AlertConfigurationStatus(
        identity=remote.id if remote and remote.id else alert.event_type_name,
        id=remote.id if remote else "",
        event_type_name=alert.event_type_name,
        enabled=alert.enabled,
    )
    status.advance(phase, error)
    return status


async def _apply(
    ctx: ReconcileContext,
    client: AtlasClient,
    store: SecretStore,
    alert: AlertConfiguration,
    remote: RemoteAlertConfiguration | None,
) -> AlertConfigurationStatus:
    """Create an alert configuration, or re-send it when remote is given."""
    try:
        request = alert_request(alert, store, ctx.namespace)
    except SecretError as e:
        ctx.log.error("Failed to read notification secret", extra={"error": str(e)})
        return _status(alert, ApplyPhase.FAILED, remote, str(e))
    except ValueError as e:
        return _status(
            alert, ApplyPhase.FAILED, remote, f"failed to parse atlas alert configuration: {e}"
        )

    try:
        if remote is None:
            result = await ctx.call(client.create_alert_configuration, ctx.project_id, request)
        else:
            result = await ctx.call(
                client.update_alert_configuration, ctx.project_id, remote.id, request
            )
    except AzureError as e:
        ctx.log.error(
            "Failed to apply alert configuration",
            extra={"event_type": alert.event_type_name, "error": str(e)},
        )
        return _status(
            alert, ApplyPhase.FAILED, remote, f"failed to create atlas alert configuration: {e}"
        )

    ctx.log.info("Alert configuration applied", extra={"alert_id": result.id})
    return _status(alert, ApplyPhase.OK, result)
