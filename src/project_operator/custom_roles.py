"""Custom database role convergence.

Roles are identified by name. A matched role is updated when its inherited
roles or actions differ, with empty and missing lists treated as equal.
"""

from __future__ import annotations

from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import Diff, compute_diff
from .models import CustomRole, CustomRoleStatus, RemoteCustomRole
from .state import ApplyPhase
from .status import CategoryReport

FAILURE_PREFIX = "failed to apply changes to custom roles: "


def role_body(role: CustomRole) -> dict[str, Any]:
    """Comparable request body: unset, empty and default values are dropped."""
    return CustomRole.model_validate(role.model_dump()).model_dump(
        mode="json", by_alias=True, exclude_defaults=True, exclude_none=True
    )


def role_needs_update(observed: RemoteCustomRole, desired: CustomRole) -> bool:
    return role_body(observed) != role_body(desired)


def diff_custom_roles(
    desired: list[CustomRole],
    observed: list[RemoteCustomRole],
    owned: list[CustomRole],
) -> Diff[CustomRole, RemoteCustomRole]:
    return compute_diff(
        desired,
        observed,
        owned,
        matches=lambda d, o: d.name == o.name,
        identity=lambda d: d.name,
        needs_update=role_needs_update,
    )


async def sync_custom_roles(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[CustomRole],
    owned: list[CustomRole],
) -> CategoryReport:
    """Create, update and delete custom roles; one status per desired role."""
    if not desired and not owned:
        return CategoryReport()

    try:
        observed = await ctx.call(client.list_custom_roles, ctx.project_id)
    except AzureError as e:
        ctx.log.error("Failed to list custom roles", extra={"error": str(e)})
        return CategoryReport(
            statuses=list(ctx.project.status.custom_roles),
            desired_count=len(desired),
            errors=[str(e)],
        )

    diff = diff_custom_roles(desired, observed, owned)
    ctx.log.info("Custom role diff", extra=diff.summary())
    report = CategoryReport(desired_count=len(diff.to_create) + len(diff.matched))

    for role in diff.to_delete:
        try:
            await ctx.call(client.delete_custom_role, ctx.project_id, role.name)
            ctx.log.info("Deleted custom role", extra={"role": role.name})
        except ResourceNotFoundError:
            continue
        except AzureError as e:
            ctx.log.warning("Failed to delete custom role", extra={"role": role.name, "error": str(e)})
            report.fail(f"failed to delete custom role {role.name}: {e}")

    statuses: dict[str, CustomRoleStatus] = {}
    for role in diff.to_create:
        statuses[role.name] = await _apply(
            ctx, client.create_custom_role, ctx.project_id, role_body(role), role=role
        )
    for _observed, role in diff.to_update:
        statuses[role.name] = await _apply(
            ctx,
            client.update_custom_role,
            ctx.project_id,
            role.name,
            role_body(role),
            role=role,
        )
    for _observed, role in diff.in_sync:
        statuses[role.name] = _status(role, ApplyPhase.OK)

    # Persisted statuses follow declaration order
    report.statuses = [statuses[name] for name in dict.fromkeys(r.name for r in desired)]
    return report


def _status(role: CustomRole, phase: ApplyPhase, error: str = "") -> CustomRoleStatus:
    status = CustomRoleStatus(identity=role.name, name=role.name)
    status.advance(phase, error)
    return status


async def _apply(ctx: ReconcileContext, fn: Any, *args: Any, role: CustomRole) -> CustomRoleStatus:
    try:
        await ctx.call(fn, *args)
    except AzureError as e:
        ctx.log.warning("Failed to apply custom role", extra={"role": role.name, "error": str(e)})
        return _status(role, ApplyPhase.FAILED, str(e))
    ctx.log.info("Applied custom role", extra={"role": role.name})
    return _status(role, ApplyPhase.OK)
