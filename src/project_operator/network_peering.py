"""Network peering convergence.

A peering connection depends on a network container (the remote-side network
with its CIDR block) that must exist before the connection can reference it.

PROTOCOL:
1. List peers and containers for every provider (paged)
2. Diff desired against observed, deletions gated by ownership
3. Delete removed peers (closing peers are skipped, not-found is success)
4. For each new peer: validate, ensure its container, then create the peer
5. Refresh status of matched peers from their remote state
6. Remove owned containers no longer referenced by any peer

Every item is attempted even when a sibling fails.
"""

from __future__ import annotations

from collections.abc import Hashable

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import Diff, compute_diff
from .models import NetworkPeer, NetworkPeerStatus, RemoteContainer, RemotePeer
from .paging import list_all
from .providers import PROVIDERS, ProviderStrategy, get_provider, normalize_peer
from .state import PEER_READINESS, PeerPhase, Readiness, classify
from .status import CategoryReport

NOT_READY_MESSAGE = "not all network peers are ready"


class ContainerError(Exception):
    """Raised when a peer's parent container cannot be ensured."""

    pass


# =============================================================================
# Matching
# =============================================================================


def peer_identity(peer: NetworkPeer) -> Hashable:
    strategy = get_provider(peer.provider_name)
    return (strategy.name, peer.container_id, peer.atlas_cidr_block, *strategy.key(peer))


def peers_match(
    desired: NetworkPeer,
    observed: RemotePeer,
    containers: dict[str, RemoteContainer],
) -> bool:
    """Whether an observed (normalized) peer is the desired one.

    Container id and CIDR block are compared only when declared; a peer record
    without a CIDR block is resolved through its container.
    """
    if observed.provider_name != desired.provider_name:
        return False
    if desired.container_id and desired.container_id != observed.container_id:
        return False
    if desired.atlas_cidr_block:
        cidr = observed.atlas_cidr_block
        if not cidr:
            container = containers.get(observed.container_id)
            cidr = container.atlas_cidr_block if container else ""
        if cidr != desired.atlas_cidr_block:
            return False
    strategy = get_provider(desired.provider_name)
    return strategy.key(desired) == strategy.key(observed)


def is_closing(peer: RemotePeer) -> bool:
    return classify(PEER_READINESS, peer.state) == Readiness.CLOSING


def diff_peers(
    desired: list[NetworkPeer],
    observed: list[RemotePeer],
    owned: list[NetworkPeer],
    containers: dict[str, RemoteContainer],
) -> Diff[NetworkPeer, RemotePeer]:
    """Compute the peering diff. Matched peers never need an update call."""
    return compute_diff(
        desired,
        [normalize_peer(peer) for peer in observed],
        owned,
        matches=lambda d, o: peers_match(d, o, containers),
        identity=peer_identity,
        is_closing=is_closing,
    )


# =============================================================================
# Listing
# =============================================================================


async def list_peers(ctx: ReconcileContext, client: AtlasClient) -> list[RemotePeer]:
    """List peers of every provider."""
    peers: list[RemotePeer] = []
    for provider in PROVIDERS:
        peers.extend(
            await list_all(
                lambda page, p=provider: ctx.call(client.list_peers, ctx.project_id, p, page)
            )
        )
    return peers


async def list_containers(ctx: ReconcileContext, client: AtlasClient) -> list[RemoteContainer]:
    """List containers of every provider."""
    containers: list[RemoteContainer] = []
    for provider in PROVIDERS:
        containers.extend(
            await list_all(
                lambda page, p=provider: ctx.call(client.list_containers, ctx.project_id, p, page)
            )
        )
    return containers


# =============================================================================
# Convergence
# =============================================================================


async def sync_network_peers(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[NetworkPeer],
    owned: list[NetworkPeer],
) -> CategoryReport:
    """Converge the project's peering connections.

    Args:
        ctx: Reconciliation context.
        client: Remote API client.
        desired: Peers declared in the project spec.
        owned: Peers recorded by the last successful cycle.

    Returns:
        Category report with one status per desired peer.
    """
    if not desired and not owned:
        return CategoryReport()

    try:
        observed = await list_peers(ctx, client)
        container_list = await list_containers(ctx, client)
    except AzureError as e:
        ctx.log.error("Failed to list network peers", extra={"error": str(e)})
        return CategoryReport(
            statuses=list(ctx.project.status.network_peers),
            desired_count=len(desired),
            errors=["failed to get all network peers"],
        )

    containers = {c.id: c for c in container_list}
    diff = diff_peers(desired, observed, owned, containers)
    ctx.log.info("Network peer diff", extra=diff.summary())

    report = CategoryReport(
        desired_count=len(diff.to_create) + len(diff.matched),
        pending_message=NOT_READY_MESSAGE,
    )

    for peer in diff.to_delete:
        await _delete_peer(ctx, client, peer, report)
        report.remnant = True

    # Owned peers still closing keep the category pending until they vanish
    for peer in observed:
        remote = normalize_peer(peer)
        if is_closing(remote) and any(peers_match(o, remote, containers) for o in owned):
            report.remnant = True

    statuses: list[NetworkPeerStatus] = []
    for item in diff.to_create:
        statuses.append(await _create_peer(ctx, client, item, containers, container_list))
    for observed_peer, item in diff.matched:
        statuses.append(await _refresh_peer(ctx, client, observed_peer, item, containers))
    report.statuses = statuses

    if owned:
        await _delete_unused_containers(ctx, client, desired, owned, statuses, container_list, report)

    return report


async def _delete_peer(
    ctx: ReconcileContext, client: AtlasClient, peer: RemotePeer, report: CategoryReport
) -> None:
    try:
        await ctx.call(client.delete_peer, ctx.project_id, peer.id)
        ctx.log.info("Deleted network peer", extra={"peer_id": peer.id})
    except ResourceNotFoundError:
        ctx.log.debug("Network peer already gone", extra={"peer_id": peer.id})
    except AzureError as e:
        ctx.log.error("Failed to delete network peer", extra={"peer_id": peer.id, "error": str(e)})
        report.fail(f"failed to delete network peer {peer.id}: {e}")


def _new_status(strategy: ProviderStrategy, peer: NetworkPeer) -> NetworkPeerStatus:
    return NetworkPeerStatus(
        identity=f"{strategy.name.value}:{strategy.format(peer)}",
        provider_name=strategy.name,
        vpc=strategy.format(peer),
        container_id=peer.container_id,
    )


async def _create_peer(
    ctx: ReconcileContext,
    client: AtlasClient,
    peer: NetworkPeer,
    containers: dict[str, RemoteContainer],
    container_list: list[RemoteContainer],
) -> NetworkPeerStatus:
    strategy = get_provider(peer.provider_name)
    status = _new_status(strategy, peer)

    errors = strategy.validate(peer)
    if errors:
        status.advance(PeerPhase.FAILED, f"failed to validate network peer: {'; '.join(errors)}")
        ctx.log.error("Invalid network peer", extra={"peer": status.identity, "errors": errors})
        return status

    try:
        container = await _ensure_container(ctx, client, strategy, peer, containers, container_list)
    except (ContainerError, AzureError) as e:
        status.advance(PeerPhase.FAILED, f"failed to create container for network peer: {e}")
        ctx.log.error(
            "Failed to ensure network container", extra={"peer": status.identity, "error": str(e)}
        )
        return status
    status.container_id = container.id
    if not peer.container_id:
        status.advance(PeerPhase.CONTAINER_CREATED)

    try:
        remote = await ctx.call(
            client.create_peer, ctx.project_id, strategy.to_remote_request(peer, container.id)
        )
    except AzureError as e:
        status.advance(PeerPhase.FAILED, strategy.create_error_message(e))
        ctx.log.error("Failed to create network peer", extra={"peer": status.identity, "error": str(e)})
        return status

    ctx.log.info("Created network peer", extra={"peer": status.identity, "peer_id": remote.id})
    status.advance(PeerPhase.PEER_CREATED)
    _apply_remote_state(status, strategy, normalize_peer(remote), container)
    return status


async def _refresh_peer(
    ctx: ReconcileContext,
    client: AtlasClient,
    observed: RemotePeer,
    peer: NetworkPeer,
    containers: dict[str, RemoteContainer],
) -> NetworkPeerStatus:
    strategy = get_provider(peer.provider_name)
    status = _new_status(strategy, peer)
    status.advance(PeerPhase.PEER_CREATED)
    container = containers.get(observed.container_id)
    if container is None and observed.container_id:
        try:
            container = await ctx.call(client.get_container, ctx.project_id, observed.container_id)
        except AzureError as e:
            status.id = observed.id
            status.advance(PeerPhase.FAILED, f"failed to get container {observed.container_id}: {e}")
            return status
    _apply_remote_state(status, strategy, observed, container)
    return status


def _apply_remote_state(
    status: NetworkPeerStatus,
    strategy: ProviderStrategy,
    remote: RemotePeer,
    container: RemoteContainer | None,
) -> None:
    status.id = remote.id
    status.status = remote.state
    status.container_id = remote.container_id or status.container_id
    if container is not None:
        status.atlas_gcp_project_id = container.gcp_project_id
        status.atlas_network_name = container.network_name

    readiness = classify(PEER_READINESS, remote.state)
    if readiness == Readiness.FAILED:
        message = remote.error_message or remote.error_state_name or f"network peer {remote.id} failed"
        status.advance(PeerPhase.FAILED, message)
    elif readiness == Readiness.READY and strategy.is_ready(remote, container):
        status.advance(PeerPhase.AVAILABLE)


async def _ensure_container(
    ctx: ReconcileContext,
    client: AtlasClient,
    strategy: ProviderStrategy,
    peer: NetworkPeer,
    containers: dict[str, RemoteContainer],
    container_list: list[RemoteContainer],
) -> RemoteContainer:
    """Return the peer's parent container, creating it when missing.

    A creation conflict means a matching container already exists: the
    provider's containers are re-listed and the one matching the declared CIDR
    block and region is adopted.

    Raises:
        ContainerError: If the container cannot be found or adopted.
        AzureError: For remote failures other than the handled conflict.
    """
    if peer.container_id:
        container = containers.get(peer.container_id)
        if container is not None:
            return container
        try:
            return await ctx.call(client.get_container, ctx.project_id, peer.container_id)
        except ResourceNotFoundError as e:
            raise ContainerError(f"container {peer.container_id} not found") from e

    for container in container_list:
        if container.provider_name == strategy.name and strategy.matches_container(container, peer):
            return container

    try:
        created = await ctx.call(
            client.create_container, ctx.project_id, strategy.container_request(peer)
        )
    except ResourceExistsError:
        ctx.log.info(
            "Container already exists, adopting",
            extra={"provider": strategy.name.value, "cidr": peer.atlas_cidr_block},
        )
        relisted = await list_all(
            lambda page: ctx.call(client.list_containers, ctx.project_id, strategy.name, page)
        )
        for container in relisted:
            if strategy.matches_container(container, peer):
                containers[container.id] = container
                container_list.append(container)
                return container
        raise ContainerError(
            f"container for {peer.atlas_cidr_block} conflicts but no matching container was found"
        ) from None

    ctx.log.info("Created network container", extra={"container_id": created.id})
    containers[created.id] = created
    container_list.append(created)
    return created


async def _delete_unused_containers(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[NetworkPeer],
    owned: list[NetworkPeer],
    statuses: list[NetworkPeerStatus],
    container_list: list[RemoteContainer],
    report: CategoryReport,
) -> None:
    """Delete owned containers that no peer references any more.

    A container is owned when an owned peer declared its id or its CIDR block.
    Provisioned containers (in use by clusters) are always kept, and a conflict
    on delete means the container is still in use.
    """
    in_use = {s.container_id for s in statuses if s.container_id}
    in_use.update(p.container_id for p in desired if p.container_id)
    owned_ids = {p.container_id for p in owned if p.container_id}
    owned_cidrs = {p.atlas_cidr_block for p in owned if p.atlas_cidr_block}
    desired_cidrs = {p.atlas_cidr_block for p in desired if p.atlas_cidr_block}

    for container in container_list:
        if container.provisioned or container.id in in_use:
            continue
        if container.atlas_cidr_block in desired_cidrs:
            continue
        if container.id not in owned_ids and container.atlas_cidr_block not in owned_cidrs:
            continue
        try:
            await ctx.call(client.delete_container, ctx.project_id, container.id)
            ctx.log.info("Deleted unused network container", extra={"container_id": container.id})
        except (ResourceExistsError, ResourceNotFoundError):
            continue
        except AzureError as e:
            report.fail(f"failed to delete unused containers: {e}")
