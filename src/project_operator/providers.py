"""Provider strategies for network peering.

Every provider-specific rule (identity fields, required fields, request shape,
display name, container matching) lives in one strategy per provider. Callers
select a strategy through the registry instead of branching on provider names.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol

from .models import NetworkPeer, ProviderName, RemoteContainer, RemotePeer
from .state import PEER_READINESS, Readiness, classify

logger = logging.getLogger(__name__)

AZURE_PEER_ERROR_PREFIX = "maybe its needed to setup Azure virtual network. error: "


class UnsupportedProviderError(Exception):
    """Raised when no strategy is registered for a provider name."""

    pass


class _PeerFields(Protocol):
    """Fields shared by desired and remote peering records."""

    vpc_id: str
    aws_account_id: str
    route_table_cidr_block: str
    accepter_region_name: str
    gcp_project_id: str
    network_name: str
    azure_subscription_id: str
    azure_directory_id: str
    resource_group_name: str
    vnet_name: str


class ProviderStrategy(ABC):
    """Capability interface implemented once per cloud provider."""

    name: ProviderName

    # Desired fields that must be set to create a peer, as (attribute, label)
    required_fields: tuple[tuple[str, str], ...] = ()

    @abstractmethod
    def key(self, peer: _PeerFields) -> tuple[str, ...]:
        """Identity-relevant fields of a desired or remote peer."""

    @abstractmethod
    def format(self, peer: _PeerFields) -> str:
        """Network display name (VPC, network or VNet) of a peer."""

    def validate(self, peer: NetworkPeer) -> list[str]:
        """Return validation errors for creating this peer (empty when valid)."""
        errors: list[str] = []
        if not peer.container_id and not peer.atlas_cidr_block:
            errors.append("containerId or atlasCidrBlock must be specified")
        for attribute, label in self.required_fields:
            if not getattr(peer, attribute):
                errors.append(f"{label} is required for {self.name.value} network peer")
        return errors

    def to_remote_request(self, peer: NetworkPeer, container_id: str) -> dict[str, Any]:
        """Build the remote create request for a peer under a container."""
        request: dict[str, Any] = {"providerName": self.name.value, "containerId": container_id}
        for attribute, _label in self.required_fields:
            field_info = NetworkPeer.model_fields[attribute]
            request[field_info.alias or attribute] = getattr(peer, attribute)
        return request

    def container_request(self, peer: NetworkPeer) -> dict[str, Any]:
        """Build the remote create request for the peer's parent container."""
        return {"providerName": self.name.value, "atlasCidrBlock": peer.atlas_cidr_block}

    def matches_container(self, container: RemoteContainer, peer: NetworkPeer) -> bool:
        """Whether an existing container can host this peer (conflict adoption)."""
        return container.atlas_cidr_block == peer.atlas_cidr_block

    def create_error_message(self, error: Exception) -> str:
        return f"failed to create network peer: {error}"

    def is_ready(self, peer: RemotePeer, container: RemoteContainer | None) -> bool:
        """Whether a remote peer counts as ready for this provider."""
        return classify(PEER_READINESS, peer.state) == Readiness.READY


class AWSStrategy(ProviderStrategy):
    name = ProviderName.AWS
    required_fields = (
        ("accepter_region_name", "accepterRegionName"),
        ("aws_account_id", "awsAccountId"),
        ("route_table_cidr_block", "routeTableCidrBlock"),
        ("vpc_id", "vpcId"),
    )

    def key(self, peer: _PeerFields) -> tuple[str, ...]:
        return (peer.vpc_id, peer.aws_account_id, peer.route_table_cidr_block)

    def format(self, peer: _PeerFields) -> str:
        return peer.vpc_id

    @staticmethod
    def region_name(region: str) -> str:
        """AWS containers store regions as e.g. US_EAST_1."""
        return region.replace("-", "_").upper()

    def container_request(self, peer: NetworkPeer) -> dict[str, Any]:
        request = super().container_request(peer)
        if peer.region:
            request["regionName"] = self.region_name(peer.region)
        return request

    def matches_container(self, container: RemoteContainer, peer: NetworkPeer) -> bool:
        return container.atlas_cidr_block == peer.atlas_cidr_block and (
            container.region_name == self.region_name(peer.region)
        )


class GCPStrategy(ProviderStrategy):
    name = ProviderName.GCP
    required_fields = (
        ("gcp_project_id", "gcpProjectId"),
        ("network_name", "networkName"),
    )

    def key(self, peer: _PeerFields) -> tuple[str, ...]:
        return (peer.gcp_project_id, peer.network_name)

    def format(self, peer: _PeerFields) -> str:
        return peer.network_name

    def is_ready(self, peer: RemotePeer, container: RemoteContainer | None) -> bool:
        # Atlas-side network details are needed by users to finish the peering
        if classify(PEER_READINESS, peer.state) != Readiness.READY or container is None:
            return False
        return bool(container.network_name and container.gcp_project_id)


class AzureStrategy(ProviderStrategy):
    name = ProviderName.AZURE
    required_fields = (
        ("azure_directory_id", "azureDirectoryId"),
        ("azure_subscription_id", "azureSubscriptionId"),
        ("resource_group_name", "resourceGroupName"),
        ("vnet_name", "vnetName"),
    )

    def key(self, peer: _PeerFields) -> tuple[str, ...]:
        return (
            peer.azure_subscription_id,
            peer.azure_directory_id,
            peer.resource_group_name,
            peer.vnet_name,
        )

    def format(self, peer: _PeerFields) -> str:
        return peer.vnet_name

    def container_request(self, peer: NetworkPeer) -> dict[str, Any]:
        request = super().container_request(peer)
        if peer.region:
            request["region"] = peer.region
        return request

    def matches_container(self, container: RemoteContainer, peer: NetworkPeer) -> bool:
        return (
            container.atlas_cidr_block == peer.atlas_cidr_block
            and container.region == peer.region
        )

    def create_error_message(self, error: Exception) -> str:
        return f"failed to create network peer: {AZURE_PEER_ERROR_PREFIX}{error}"


PROVIDERS: dict[ProviderName, ProviderStrategy] = {
    strategy.name: strategy for strategy in (AWSStrategy(), GCPStrategy(), AzureStrategy())
}


def get_provider(name: ProviderName | str | None) -> ProviderStrategy:
    """Look up the strategy for a provider (AWS when unset).

    Raises:
        UnsupportedProviderError: If the provider is unknown.
    """
    if not name:
        return PROVIDERS[ProviderName.AWS]
    try:
        return PROVIDERS[ProviderName(name)]
    except ValueError as e:
        raise UnsupportedProviderError(f"unsupported provider: {name}") from e


def infer_provider(peer: RemotePeer) -> ProviderName:
    """Infer a remote peer's provider from which identity fields are set.

    A single remote record shape represents every provider; the populated
    account/subscription/project field decides. Defaults to AWS.
    """
    if peer.aws_account_id:
        return ProviderName.AWS
    if peer.azure_subscription_id:
        return ProviderName.AZURE
    if peer.gcp_project_id:
        return ProviderName.GCP
    return peer.provider_name or ProviderName.AWS


def normalize_peer(peer: RemotePeer) -> RemotePeer:
    """Return a copy of the remote peer with its provider filled in."""
    return peer.model_copy(update={"provider_name": infer_provider(peer)})
