"""Organization team convergence and project assignment.

Each declared team is ensured to exist in the project's organization, then its
membership is synced against the declared usernames:

1. Remove users no longer declared (parallel batch)
2. Resolve declared usernames that are not members yet (parallel batch, results
   accumulated under a lock)
3. Add the resolved users in one call

Finally the project's team assignments are converged: unassigned teams are
assigned with their roles in one call, assigned teams whose roles differ are
updated, and teams this operator assigned that are no longer declared are
unassigned. Teams are organization-level objects shared with other projects,
so a team dropped from the project spec is unassigned but never deleted.
"""

from __future__ import annotations

import asyncio

from azure.core.exceptions import AzureError, ResourceNotFoundError

from .batch import DEFAULT_BATCH_LIMIT, run_batch
from .client import AtlasClient
from .context import ReconcileContext
from .diff import collapse, compute_diff
from .models import RemoteProjectTeam, RemoteTeam, RemoteUser, Team, TeamStatus
from .paging import list_all
from .state import ApplyPhase
from .status import CategoryReport

MISSING_ORG_MESSAGE = "orgId is required to manage teams"


async def sync_teams(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[Team],
    owned: list[Team],
    *,
    org_id: str,
    max_parallel: int = DEFAULT_BATCH_LIMIT,
) -> CategoryReport:
    """Ensure every declared team, its membership and its project roles.

    Args:
        ctx: Reconciliation context.
        client: Remote API client.
        desired: Teams declared in the project spec.
        owned: Teams recorded by the last successful cycle.
        org_id: Organization owning the teams.
        max_parallel: Bound on concurrent membership calls per team.

    Returns:
        Category report with one status per declared team.
    """
    if not desired and not owned:
        return CategoryReport()
    if not org_id:
        return CategoryReport(desired_count=len(desired), errors=[MISSING_ORG_MESSAGE])

    teams = [entry.item for entry in collapse(desired, lambda t: t.name)]
    report = CategoryReport(desired_count=len(teams))
    report.statuses = [
        await _sync_team(ctx, client, team, org_id, max_parallel) for team in teams
    ]
    await _sync_assignments(ctx, client, teams, owned, org_id, report)
    return report


async def _ensure_team(
    ctx: ReconcileContext, client: AtlasClient, team: Team, org_id: str
) -> tuple[RemoteTeam, bool]:
    """Return the team and whether it was just created (with its members)."""
    try:
        return await ctx.call(client.get_team_by_name, org_id, team.name), False
    except ResourceNotFoundError:
        created = await ctx.call(client.create_team, org_id, team.name, list(team.usernames))
        ctx.log.info("Created team", extra={"team": team.name, "team_id": created.id})
        return created, True


async def _sync_team(
    ctx: ReconcileContext,
    client: AtlasClient,
    team: Team,
    org_id: str,
    max_parallel: int,
) -> TeamStatus:
    status = TeamStatus(identity=team.name, name=team.name)
    try:
        remote, created = await _ensure_team(ctx, client, team, org_id)
    except AzureError as e:
        ctx.log.error("Failed to ensure team", extra={"team": team.name, "error": str(e)})
        status.advance(ApplyPhase.FAILED, f"failed to ensure team {team.name}: {e}")
        return status

    status.team_id = remote.id
    if created:
        status.member_count = len(team.usernames)
        status.advance(ApplyPhase.OK)
        return status

    try:
        error = await sync_team_users(ctx, client, org_id, remote.id, team.usernames, max_parallel)
    except AzureError as e:
        error = str(e)
    if error:
        ctx.log.warning("Failed to sync team users", extra={"team": team.name, "error": error})
        status.advance(ApplyPhase.FAILED, f"failed to sync users of team {team.name}: {error}")
        return status

    status.member_count = len(team.usernames)
    status.advance(ApplyPhase.OK)
    return status


async def sync_team_users(
    ctx: ReconcileContext,
    client: AtlasClient,
    org_id: str,
    team_id: str,
    usernames: list[str],
    max_parallel: int = DEFAULT_BATCH_LIMIT,
) -> str:
    """Sync a team's members with the declared usernames.

    Returns:
        The first failure message, or an empty string on success.

    Raises:
        AzureError: If the current members cannot be listed or the final add
            call fails.
    """
    members: list[RemoteUser] = await list_all(
        lambda page: ctx.call(client.list_team_users, org_id, team_id, page)
    )
    wanted = set(usernames)
    current = {m.username for m in members}

    removals = [m for m in members if m.username not in wanted]
    removed = await run_batch(
        (
            lambda user=user: ctx.call(client.remove_team_user, org_id, team_id, user.id)
            for user in removals
        ),
        limit=max_parallel,
    )
    if removed.first_failure is not None:
        return str(removed.first_failure)

    to_add: list[str] = []
    lock = asyncio.Lock()

    async def resolve(username: str) -> None:
        user = await ctx.call(client.get_user_by_name, username)
        async with lock:
            to_add.append(user.id)

    resolved = await run_batch(
        (
            lambda username=username: resolve(username)
            for username in usernames
            if username not in current
        ),
        limit=max_parallel,
    )
    if resolved.first_failure is not None:
        return str(resolved.first_failure)

    if to_add:
        await ctx.call(client.add_team_users, org_id, team_id, sorted(to_add))
        ctx.log.info("Added team users", extra={"team_id": team_id, "count": len(to_add)})
    return ""


async def _resolve_team_ids(
    ctx: ReconcileContext,
    client: AtlasClient,
    teams: list[Team],
    owned: list[Team],
    org_id: str,
    report: CategoryReport,
) -> dict[str, str]:
    """Team ids by name: declared teams from their statuses, owned ones looked up."""
    ids = {s.name: s.team_id for s in report.statuses if isinstance(s, TeamStatus) and s.team_id}
    declared = {team.name for team in teams}
    for team in owned:
        if team.name in declared or team.name in ids:
            continue
        try:
            remote = await ctx.call(client.get_team_by_name, org_id, team.name)
        except ResourceNotFoundError:
            continue
        except AzureError as e:
            report.fail(f"failed to find team {team.name}: {e}")
            continue
        ids[team.name] = remote.id
    return ids


async def _sync_assignments(
    ctx: ReconcileContext,
    client: AtlasClient,
    teams: list[Team],
    owned: list[Team],
    org_id: str,
    report: CategoryReport,
) -> None:
    """Assign, re-role and unassign project teams; failures land on statuses."""
    ids = await _resolve_team_ids(ctx, client, teams, owned, org_id, report)
    try:
        assigned: list[RemoteProjectTeam] = await list_all(
            lambda page: ctx.call(client.list_project_teams, ctx.project_id, page)
        )
    except AzureError as e:
        ctx.log.error("Failed to list project teams", extra={"error": str(e)})
        report.fail(f"failed to list project teams: {e}")
        return

    # A team without an id never matches, so its assignment is never removed
    diff = compute_diff(
        teams,
        assigned,
        owned,
        matches=lambda team, remote: ids.get(team.name) == remote.team_id,
        identity=lambda team: team.name,
        needs_update=lambda remote, team: sorted(set(remote.role_names)) != team.role_values,
    )
    ctx.log.info("Project team diff", extra=diff.summary())
    statuses = {s.name: s for s in report.statuses if isinstance(s, TeamStatus)}

    for remote in diff.to_delete:
        try:
            await ctx.call(client.unassign_project_team, ctx.project_id, remote.team_id)
            ctx.log.info("Unassigned team from project", extra={"team_id": remote.team_id})
        except ResourceNotFoundError:
            continue
        except AzureError as e:
            ctx.log.warning(
                "Failed to unassign team", extra={"team_id": remote.team_id, "error": str(e)}
            )
            report.fail(f"failed to remove team {remote.team_id} from project: {e}")

    for _remote, team in diff.to_update:
        status = statuses[team.name]
        if status.phase != ApplyPhase.OK:
            continue
        try:
            await ctx.call(
                client.update_project_team_roles, ctx.project_id, status.team_id, team.role_values
            )
        except AzureError as e:
            ctx.log.warning("Failed to update team roles", extra={"team": team.name, "error": str(e)})
            status.advance(ApplyPhase.FAILED, f"failed to update roles of team {team.name}: {e}")
            continue
        status.role_names = team.role_values

    for _remote, team in diff.in_sync:
        statuses[team.name].role_names = team.role_values

    to_assign = [statuses[t.name] for t in diff.to_create if statuses[t.name].phase == ApplyPhase.OK]
    if not to_assign:
        return
    roles = {team.name: team.role_values for team in diff.to_create}
    try:
        await ctx.call(
            client.assign_project_teams,
            ctx.project_id,
            [{"teamId": s.team_id, "roleNames": roles[s.name]} for s in to_assign],
        )
    except AzureError as e:
        ctx.log.warning("Failed to assign teams", extra={"error": str(e)})
        for status in to_assign:
            status.advance(ApplyPhase.FAILED, f"failed to assign team {status.name} to project: {e}")
        return
    ctx.log.info("Assigned teams to project", extra={"count": len(to_assign)})
    for status in to_assign:
        status.role_names = roles[status.name]
