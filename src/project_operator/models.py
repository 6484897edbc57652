"""Pydantic models for managed projects, remote records and persisted status.

These models provide:
1. Type-safe YAML parsing of the desired project spec
2. Validation at the boundary (fail fast, fail loudly)
3. Typed views of remote API records
4. The persisted status block (item statuses and conditions)

All models accept camelCase aliases and python field names, and ignore unknown
fields so that remote API additions never break parsing.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from .state import (
    APPLY_MACHINE,
    ENDPOINT_MACHINE,
    INTEGRATION_MACHINE,
    PEER_MACHINE,
    ApplyPhase,
    ConditionStatus,
    ConditionType,
    EndpointPhase,
    IntegrationPhase,
    PeerPhase,
    Readiness,
    StateMachine,
)

MODEL_CONFIG: Any = {"extra": "ignore", "populate_by_name": True}


class ProviderName(str, Enum):
    """Cloud providers hosting project sub-resources."""

    AWS = "AWS"
    GCP = "GCP"
    AZURE = "AZURE"


# =============================================================================
# Shared
# =============================================================================


class ResourceRef(BaseModel):
    """Reference to a named object, optionally in another namespace."""

    model_config = MODEL_CONFIG

    name: str = ""
    namespace: str = ""

    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_set(self) -> bool:
        return bool(self.name)


# =============================================================================
# Network Peering
# =============================================================================


class NetworkPeer(BaseModel):
    """Desired network peering connection.

    Which identity fields apply depends on the provider:
    - AWS: vpcId, awsAccountId, routeTableCidrBlock, accepterRegionName
    - GCP: gcpProjectId, networkName
    - AZURE: azureSubscriptionId, azureDirectoryId, resourceGroupName, vnetName
    """

    model_config = MODEL_CONFIG

    provider_name: ProviderName = Field(ProviderName.AWS, alias="providerName")
    container_id: str = Field("", alias="containerId")
    container_region: str = Field("", alias="containerRegion")
    atlas_cidr_block: str = Field("", alias="atlasCidrBlock")

    accepter_region_name: str = Field("", alias="accepterRegionName")
    aws_account_id: str = Field("", alias="awsAccountId")
    route_table_cidr_block: str = Field("", alias="routeTableCidrBlock")
    vpc_id: str = Field("", alias="vpcId")

    azure_directory_id: str = Field("", alias="azureDirectoryId")
    azure_subscription_id: str = Field("", alias="azureSubscriptionId")
    resource_group_name: str = Field("", alias="resourceGroupName")
    vnet_name: str = Field("", alias="vnetName")

    gcp_project_id: str = Field("", alias="gcpProjectId")
    network_name: str = Field("", alias="networkName")

    @property
    def region(self) -> str:
        """Region of the parent container (falls back to the accepter region)."""
        return self.container_region or self.accepter_region_name


class RemotePeer(BaseModel):
    """Peering connection as reported by the remote API.

    AWS records report their state in statusName; GCP and Azure in status.
    """

    model_config = MODEL_CONFIG

    id: str = ""
    provider_name: ProviderName | None = Field(None, alias="providerName")
    container_id: str = Field("", alias="containerId")
    status_name: str = Field("", alias="statusName")
    status: str = ""
    error_state_name: str = Field("", alias="errorStateName")
    error_message: str = Field("", alias="errorMessage")

    accepter_region_name: str = Field("", alias="accepterRegionName")
    aws_account_id: str = Field("", alias="awsAccountId")
    route_table_cidr_block: str = Field("", alias="routeTableCidrBlock")
    vpc_id: str = Field("", alias="vpcId")
    connection_id: str = Field("", alias="connectionId")
    atlas_cidr_block: str = Field("", alias="atlasCidrBlock")

    azure_directory_id: str = Field("", alias="azureDirectoryId")
    azure_subscription_id: str = Field("", alias="azureSubscriptionId")
    resource_group_name: str = Field("", alias="resourceGroupName")
    vnet_name: str = Field("", alias="vnetName")

    gcp_project_id: str = Field("", alias="gcpProjectId")
    network_name: str = Field("", alias="networkName")

    @property
    def state(self) -> str:
        if self.provider_name in (ProviderName.GCP, ProviderName.AZURE):
            return self.status
        return self.status_name or self.status


class RemoteContainer(BaseModel):
    """Network container (parent of peering connections)."""

    model_config = MODEL_CONFIG

    id: str = ""
    provider_name: ProviderName | None = Field(None, alias="providerName")
    atlas_cidr_block: str = Field("", alias="atlasCidrBlock")
    region_name: str = Field("", alias="regionName")
    region: str = ""
    provisioned: bool = False
    gcp_project_id: str = Field("", alias="gcpProjectId")
    network_name: str = Field("", alias="networkName")
    vnet_name: str = Field("", alias="vnetName")


# =============================================================================
# Private Endpoints
# =============================================================================


class GCPEndpoint(BaseModel):
    """One forwarding rule of a GCP endpoint group."""

    model_config = MODEL_CONFIG

    endpoint_name: str = Field("", alias="endpointName")
    ip_address: str = Field("", alias="ipAddress")


class PrivateEndpoint(BaseModel):
    """Desired private endpoint: a service per provider/region plus an interface."""

    model_config = MODEL_CONFIG

    provider: ProviderName
    region: Annotated[str, Field(min_length=1)]
    id: str = ""
    ip: str = ""
    gcp_project_id: str = Field("", alias="gcpProjectId")
    endpoint_group_name: str = Field("", alias="endpointGroupName")
    endpoints: list[GCPEndpoint] = Field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        """True when the cloud-side interface endpoint has been declared."""
        return bool(self.id or self.endpoint_group_name)


class RemoteEndpointService(BaseModel):
    """Private endpoint service as reported by the remote API."""

    model_config = MODEL_CONFIG

    id: str = ""
    cloud_provider: ProviderName | None = Field(None, alias="cloudProvider")
    region_name: str = Field("", alias="regionName")
    status: str = ""
    error_message: str = Field("", alias="errorMessage")
    endpoint_service_name: str = Field("", alias="endpointServiceName")
    interface_endpoints: list[str] = Field(default_factory=list, alias="interfaceEndpoints")
    private_endpoints: list[str] = Field(default_factory=list, alias="privateEndpoints")
    endpoint_group_names: list[str] = Field(default_factory=list, alias="endpointGroupNames")
    private_link_service_name: str = Field("", alias="privateLinkServiceName")
    private_link_service_resource_id: str = Field("", alias="privateLinkServiceResourceId")
    service_attachment_names: list[str] = Field(
        default_factory=list, alias="serviceAttachmentNames"
    )

    def interface_endpoint_ids(self) -> list[str]:
        """Interface ids, whichever provider-specific list carries them."""
        return list(
            self.interface_endpoints or self.private_endpoints or self.endpoint_group_names
        )


class RemoteGCPEndpoint(BaseModel):
    """Forwarding rule state inside a GCP interface endpoint."""

    model_config = MODEL_CONFIG

    status: str = ""
    endpoint_name: str = Field("", alias="endpointName")
    ip_address: str = Field("", alias="ipAddress")


class RemoteInterfaceEndpoint(BaseModel):
    """Interface endpoint attached to a private endpoint service."""

    model_config = MODEL_CONFIG

    id: str = ""
    status: str = ""
    connection_status: str = Field("", alias="connectionStatus")
    error_message: str = Field("", alias="errorMessage")
    endpoints: list[RemoteGCPEndpoint] = Field(default_factory=list)


# =============================================================================
# Cloud Provider Integration
# =============================================================================


class CloudProviderIntegration(BaseModel):
    """Desired cloud provider access role.

    An empty iamAssumedRoleArn is a placeholder requesting a new role; the ARN
    is only known after the provider-side role has been set up.
    """

    model_config = MODEL_CONFIG

    provider_name: ProviderName = Field(ProviderName.AWS, alias="providerName")
    iam_assumed_role_arn: str = Field("", alias="iamAssumedRoleArn")


class FeatureUsage(BaseModel):
    """A remote feature that depends on a cloud provider role."""

    model_config = MODEL_CONFIG

    feature_type: str = Field("", alias="featureType")
    feature_id: str = Field("", alias="featureId")


class RemoteCloudProviderRole(BaseModel):
    """Cloud provider access role as reported by the remote API."""

    model_config = MODEL_CONFIG

    role_id: str = Field("", alias="roleId")
    provider_name: ProviderName = Field(ProviderName.AWS, alias="providerName")
    iam_assumed_role_arn: str = Field("", alias="iamAssumedRoleArn")
    atlas_aws_account_arn: str = Field("", alias="atlasAWSAccountArn")
    atlas_assumed_role_external_id: str = Field("", alias="atlasAssumedRoleExternalId")
    created_date: str = Field("", alias="createdDate")
    authorized_date: str = Field("", alias="authorizedDate")
    feature_usages: list[dict[str, Any]] = Field(default_factory=list, alias="featureUsages")


# =============================================================================
# Custom Roles
# =============================================================================


class RoleResource(BaseModel):
    """Scope of a custom role action."""

    model_config = MODEL_CONFIG

    cluster: bool | None = None
    database: str | None = Field(None, alias="db")
    collection: str | None = None


class CustomRoleAction(BaseModel):
    """A privilege granted by a custom role."""

    model_config = MODEL_CONFIG

    name: str = Field(alias="action")
    resources: list[RoleResource] = Field(default_factory=list)


class InheritedRole(BaseModel):
    """A role inherited by a custom role."""

    model_config = MODEL_CONFIG

    name: str = Field(alias="role")
    database: str = Field(alias="db")


class CustomRole(BaseModel):
    """Desired custom database role, identified by name."""

    model_config = MODEL_CONFIG

    name: str = Field(alias="roleName", min_length=1)
    inherited_roles: list[InheritedRole] = Field(default_factory=list, alias="inheritedRoles")
    actions: list[CustomRoleAction] = Field(default_factory=list)


class RemoteCustomRole(CustomRole):
    """Custom role as reported by the remote API (same shape as desired)."""

    pass


# =============================================================================
# Alert Configurations
# =============================================================================


class Matcher(BaseModel):
    """Target filter of an alert configuration."""

    model_config = MODEL_CONFIG

    field_name: str = Field("", alias="fieldName")
    operator: str = ""
    value: str = ""


class Threshold(BaseModel):
    """Threshold that triggers an alert. Values are decimal strings."""

    model_config = MODEL_CONFIG

    operator: str = ""
    units: str = ""
    threshold: str = ""


class MetricThreshold(BaseModel):
    """Metric threshold that triggers an alert."""

    model_config = MODEL_CONFIG

    metric_name: str = Field("", alias="metricName")
    operator: str = ""
    threshold: str = ""
    units: str = ""
    mode: str = ""


# Secret-backed notification fields: attribute of the ref -> (remote field, secret key)
NOTIFICATION_SECRET_FIELDS: dict[str, tuple[tuple[str, str], ...]] = {
    "api_token_ref": (("apiToken", "APIToken"),),
    "datadog_api_key_ref": (("datadogApiKey", "DatadogAPIKey"),),
    "flowdock_api_token_ref": (("flowdockApiToken", "FlowdockAPIToken"),),
    "ops_genie_api_key_ref": (("opsGenieApiKey", "OpsGenieAPIKey"),),
    "service_key_ref": (("serviceKey", "ServiceKey"),),
    "victor_ops_secret_ref": (
        ("victorOpsApiKey", "VictorOpsAPIKey"),
        ("victorOpsRoutingKey", "VictorOpsRoutingKey"),
    ),
}


class Notification(BaseModel):
    """Alert notification channel. Credentials are referenced, never inlined."""

    model_config = MODEL_CONFIG

    type_name: str = Field("", alias="typeName")
    channel_name: str = Field("", alias="channelName")
    datadog_region: str = Field("", alias="datadogRegion")
    delay_min: int | None = Field(None, alias="delayMin")
    email_address: str = Field("", alias="emailAddress")
    email_enabled: bool | None = Field(None, alias="emailEnabled")
    flow_name: str = Field("", alias="flowName")
    interval_min: int = Field(0, alias="intervalMin")
    mobile_number: str = Field("", alias="mobileNumber")
    ops_genie_region: str = Field("", alias="opsGenieRegion")
    org_name: str = Field("", alias="orgName")
    sms_enabled: bool | None = Field(None, alias="smsEnabled")
    team_id: str = Field("", alias="teamId")
    team_name: str = Field("", alias="teamName")
    username: str = ""
    roles: list[str] = Field(default_factory=list)

    api_token_ref: ResourceRef = Field(default_factory=ResourceRef, alias="apiTokenRef")
    datadog_api_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="datadogAPIKeyRef")
    flowdock_api_token_ref: ResourceRef = Field(
        default_factory=ResourceRef, alias="flowdockApiTokenRef"
    )
    ops_genie_api_key_ref: ResourceRef = Field(
        default_factory=ResourceRef, alias="opsGenieApiKeyRef"
    )
    service_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="serviceKeyRef")
    victor_ops_secret_ref: ResourceRef = Field(
        default_factory=ResourceRef, alias="victorOpsSecretRef"
    )

    @property
    def has_secrets(self) -> bool:
        return any(getattr(self, attr).is_set for attr in NOTIFICATION_SECRET_FIELDS)


class AlertConfiguration(BaseModel):
    """Desired alert configuration."""

    model_config = MODEL_CONFIG

    enabled: bool = False
    event_type_name: str = Field("", alias="eventTypeName")
    severity_override: str = Field("", alias="severityOverride")
    matchers: list[Matcher] = Field(default_factory=list)
    threshold: Threshold | None = None
    metric_threshold: MetricThreshold | None = Field(None, alias="metricThreshold")
    notifications: list[Notification] = Field(default_factory=list)


class RemoteAlertConfiguration(BaseModel):
    """Alert configuration as reported by the remote API.

    Threshold values are numbers remotely; secrets in notifications come back
    redacted, so notifications are kept as raw mappings.
    """

    model_config = MODEL_CONFIG

    id: str = ""
    enabled: bool | None = None
    event_type_name: str = Field("", alias="eventTypeName")
    severity_override: str = Field("", alias="severityOverride")
    matchers: list[Matcher] = Field(default_factory=list)
    threshold: dict[str, Any] | None = None
    metric_threshold: dict[str, Any] | None = Field(None, alias="metricThreshold")
    notifications: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Third-Party Integrations
# =============================================================================


class IntegrationType(str, Enum):
    """Third-party services a project can integrate with (one of each)."""

    DATADOG = "DATADOG"
    MICROSOFT_TEAMS = "MICROSOFT_TEAMS"
    NEW_RELIC = "NEW_RELIC"
    OPS_GENIE = "OPS_GENIE"
    PAGER_DUTY = "PAGER_DUTY"
    PROMETHEUS = "PROMETHEUS"
    SLACK = "SLACK"
    VICTOR_OPS = "VICTOR_OPS"
    WEBHOOK = "WEBHOOK"


class Integration(BaseModel):
    """Desired third-party integration.

    Which fields apply depends on the type; credentials are referenced
    secrets (field ``password``), never inlined.
    """

    model_config = MODEL_CONFIG

    type: IntegrationType
    region: str = ""
    account_id: str = Field("", alias="accountId")
    channel_name: str = Field("", alias="channelName")
    team_name: str = Field("", alias="teamName")
    microsoft_teams_webhook_url: str = Field("", alias="microsoftTeamsWebhookUrl")
    url: str = ""
    user_name: str = Field("", alias="username")
    enabled: bool = False
    service_discovery: str = Field("", alias="serviceDiscovery")

    api_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="apiKeyRef")
    api_token_ref: ResourceRef = Field(default_factory=ResourceRef, alias="apiTokenRef")
    license_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="licenseKeyRef")
    read_token_ref: ResourceRef = Field(default_factory=ResourceRef, alias="readTokenRef")
    write_token_ref: ResourceRef = Field(default_factory=ResourceRef, alias="writeTokenRef")
    routing_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="routingKeyRef")
    service_key_ref: ResourceRef = Field(default_factory=ResourceRef, alias="serviceKeyRef")
    password_ref: ResourceRef = Field(default_factory=ResourceRef, alias="passwordRef")
    secret_ref: ResourceRef = Field(default_factory=ResourceRef, alias="secretRef")


class RemoteIntegration(BaseModel):
    """Third-party integration as reported by the remote API (secrets redacted)."""

    model_config = MODEL_CONFIG

    id: str = ""
    type: str = ""


# =============================================================================
# Teams
# =============================================================================


class TeamRole(str, Enum):
    """Project roles a team can be granted."""

    GROUP_OWNER = "GROUP_OWNER"
    GROUP_CLUSTER_MANAGER = "GROUP_CLUSTER_MANAGER"
    GROUP_DATA_ACCESS_ADMIN = "GROUP_DATA_ACCESS_ADMIN"
    GROUP_DATA_ACCESS_READ_WRITE = "GROUP_DATA_ACCESS_READ_WRITE"
    GROUP_DATA_ACCESS_READ_ONLY = "GROUP_DATA_ACCESS_READ_ONLY"
    GROUP_READ_ONLY = "GROUP_READ_ONLY"


class Team(BaseModel):
    """Desired organization team, its members (by username) and its project roles."""

    model_config = MODEL_CONFIG

    name: Annotated[str, Field(min_length=1)]
    usernames: list[str] = Field(default_factory=list)
    role_names: list[TeamRole] = Field(alias="roleNames", min_length=1)

    @field_validator("usernames")
    @classmethod
    def validate_unique_usernames(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("usernames must be unique")
        return v

    @property
    def role_values(self) -> list[str]:
        return sorted({role.value for role in self.role_names})


class RemoteTeam(BaseModel):
    """Organization team as reported by the remote API."""

    model_config = MODEL_CONFIG

    id: str = ""
    name: str = ""


class RemoteProjectTeam(BaseModel):
    """A team's assignment to the project, with its project roles."""

    model_config = MODEL_CONFIG

    team_id: str = Field("", alias="teamId")
    role_names: list[str] = Field(default_factory=list, alias="roleNames")


class RemoteUser(BaseModel):
    """Organization user as reported by the remote API."""

    model_config = MODEL_CONFIG

    id: str = ""
    username: str = ""


# =============================================================================
# Project
# =============================================================================


class ProjectSpec(BaseModel):
    """Desired state of every sub-resource category of one project."""

    model_config = MODEL_CONFIG

    name: str = ""
    project_id: str = Field("", alias="projectId")
    org_id: str = Field("", alias="orgId")

    private_endpoints: list[PrivateEndpoint] = Field(default_factory=list, alias="privateEndpoints")
    cloud_provider_integrations: list[CloudProviderIntegration] = Field(
        default_factory=list, alias="cloudProviderIntegrations"
    )
    network_peers: list[NetworkPeer] = Field(default_factory=list, alias="networkPeers")
    alert_configurations: list[AlertConfiguration] = Field(
        default_factory=list, alias="alertConfigurations"
    )
    alert_configuration_sync_enabled: bool = Field(False, alias="alertConfigurationSyncEnabled")
    integrations: list[Integration] = Field(default_factory=list)
    custom_roles: list[CustomRole] = Field(default_factory=list, alias="customRoles")
    teams: list[Team] = Field(default_factory=list)


class ObjectMeta(BaseModel):
    """Identity and annotations of a managed project object."""

    model_config = MODEL_CONFIG

    name: Annotated[str, Field(min_length=1, max_length=253)]
    namespace: str = "default"
    annotations: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


# =============================================================================
# Status
# =============================================================================


class Condition(BaseModel):
    """Typed, reasoned readiness signal for one category."""

    model_config = MODEL_CONFIG

    type: ConditionType
    status: ConditionStatus
    reason: str = ""
    message: str = ""


class ItemStatus(BaseModel):
    """Base of every persisted per-item status.

    Subclasses bind ``phase`` to their category enum and declare the state
    machine that classifies it.
    """

    model_config = MODEL_CONFIG
    machine: ClassVar[StateMachine[Any]]

    identity: str = ""
    phase: Any
    error_message: str = Field("", alias="errorMessage")
    terminal: bool = False

    @property
    def readiness(self) -> Readiness:
        return self.machine.readiness_of(self.phase)

    def advance(self, target: Any, error_message: str = "") -> None:
        """Move the phase along a declared transition."""
        self.phase = self.machine.transition(self.phase, target)
        self.error_message = error_message


class NetworkPeerStatus(ItemStatus):
    """Persisted status of one peering connection."""

    machine: ClassVar[StateMachine[Any]] = PEER_MACHINE

    phase: PeerPhase = PeerPhase.NEW
    id: str = ""
    provider_name: ProviderName = Field(ProviderName.AWS, alias="providerName")
    vpc: str = ""
    container_id: str = Field("", alias="containerId")
    status: str = ""
    atlas_gcp_project_id: str = Field("", alias="atlasGcpProjectId")
    atlas_network_name: str = Field("", alias="atlasNetworkName")


class PrivateEndpointStatus(ItemStatus):
    """Persisted status of one private endpoint interface on its service."""

    machine: ClassVar[StateMachine[Any]] = ENDPOINT_MACHINE

    phase: EndpointPhase = EndpointPhase.NEW
    id: str = ""
    provider: ProviderName = ProviderName.AWS
    region: str = ""
    service_name: str = Field("", alias="serviceName")
    service_resource_id: str = Field("", alias="serviceResourceId")
    interface_endpoint_id: str = Field("", alias="interfaceEndpointId")
    service_attachment_names: list[str] = Field(
        default_factory=list, alias="serviceAttachmentNames"
    )
    endpoints: list[RemoteGCPEndpoint] = Field(default_factory=list)


class CloudProviderIntegrationStatus(ItemStatus):
    """Persisted status of one cloud provider access role."""

    machine: ClassVar[StateMachine[Any]] = INTEGRATION_MACHINE

    phase: IntegrationPhase = IntegrationPhase.NEW
    role_id: str = Field("", alias="roleId")
    provider_name: ProviderName = Field(ProviderName.AWS, alias="providerName")
    iam_assumed_role_arn: str = Field("", alias="iamAssumedRoleArn")
    atlas_aws_account_arn: str = Field("", alias="atlasAWSAccountArn")
    atlas_assumed_role_external_id: str = Field("", alias="atlasAssumedRoleExternalId")
    created_date: str = Field("", alias="createdDate")
    authorized_date: str = Field("", alias="authorizedDate")
    feature_usages: list[FeatureUsage] = Field(default_factory=list, alias="featureUsages")


class CustomRoleStatus(ItemStatus):
    """Persisted status of one custom role."""

    machine: ClassVar[StateMachine[Any]] = APPLY_MACHINE

    phase: ApplyPhase = ApplyPhase.PENDING
    name: str = ""


class AlertConfigurationStatus(ItemStatus):
    """Persisted status of one alert configuration."""

    machine: ClassVar[StateMachine[Any]] = APPLY_MACHINE

    phase: ApplyPhase = ApplyPhase.PENDING
    id: str = ""
    event_type_name: str = Field("", alias="eventTypeName")
    enabled: bool | None = None


class TeamStatus(ItemStatus):
    """Persisted status of one team: membership and project assignment."""

    machine: ClassVar[StateMachine[Any]] = APPLY_MACHINE

    phase: ApplyPhase = ApplyPhase.PENDING
    team_id: str = Field("", alias="teamId")
    name: str = ""
    member_count: int = Field(0, alias="memberCount")
    role_names: list[str] = Field(default_factory=list, alias="roleNames")


class IntegrationStatus(ItemStatus):
    """Persisted status of one third-party integration."""

    machine: ClassVar[StateMachine[Any]] = APPLY_MACHINE

    phase: ApplyPhase = ApplyPhase.PENDING
    type: str = ""


class ProjectStatus(BaseModel):
    """Status block: one ordered item list and condition per category."""

    model_config = MODEL_CONFIG

    conditions: list[Condition] = Field(default_factory=list)
    network_peers: list[NetworkPeerStatus] = Field(default_factory=list, alias="networkPeers")
    private_endpoints: list[PrivateEndpointStatus] = Field(
        default_factory=list, alias="privateEndpoints"
    )
    cloud_provider_integrations: list[CloudProviderIntegrationStatus] = Field(
        default_factory=list, alias="cloudProviderIntegrations"
    )
    custom_roles: list[CustomRoleStatus] = Field(default_factory=list, alias="customRoles")
    alert_configurations: list[AlertConfigurationStatus] = Field(
        default_factory=list, alias="alertConfigurations"
    )
    integrations: list[IntegrationStatus] = Field(default_factory=list)
    teams: list[TeamStatus] = Field(default_factory=list)

    def get_condition(self, condition_type: ConditionType) -> Condition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition(self, condition: Condition) -> None:
        """Replace the condition of the same type. UNSET removes it."""
        remaining = [c for c in self.conditions if c.type != condition.type]
        if condition.status != ConditionStatus.UNSET:
            remaining.append(condition)
        self.conditions = remaining


class ManagedProject(BaseModel):
    """A managed project object: metadata, desired spec and observed status."""

    model_config = MODEL_CONFIG

    api_version: str = Field("atlas.mongodb.com/v1", alias="apiVersion")
    kind: str = "AtlasProject"
    metadata: ObjectMeta
    spec: ProjectSpec
    status: ProjectStatus = Field(default_factory=ProjectStatus)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v != "AtlasProject":
            raise ValueError("kind must be AtlasProject")
        return v
