"""Enumerated states, condition types and per-category transition tables.

Remote provisioning states arrive as raw strings. They are parsed once into
enums here, and every category declares one exhaustive table that classifies
each remote state into a readiness class. Item phases move only along the
transitions declared for their category.

DESIGN PHILOSOPHY:
- Unknown remote strings parse to UNKNOWN and classify as PROVISIONING
- Classification tables cover every enum member (checked at import time)
- Phase transitions are explicit; an undeclared move raises
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

E = TypeVar("E", bound=Enum)


class InvalidTransitionError(Exception):
    """Raised when an item phase moves along an undeclared transition."""

    pass


# =============================================================================
# Conditions
# =============================================================================


class ConditionStatus(str, Enum):
    """Tri-state condition status. UNSET conditions are removed from status."""

    TRUE = "True"
    FALSE = "False"
    UNSET = "Unset"


class ConditionType(str, Enum):
    """Condition types reported on the managed project."""

    READY = "Ready"
    NETWORK_PEER_READY = "NetworkPeerReady"
    PRIVATE_ENDPOINT_SERVICE_READY = "PrivateEndpointServiceReady"
    PRIVATE_ENDPOINT_READY = "PrivateEndpointReady"
    CLOUD_PROVIDER_INTEGRATION_READY = "CloudProviderIntegrationReady"
    CUSTOM_ROLES_READY = "ProjectCustomRolesReady"
    ALERT_CONFIGURATION_READY = "AlertConfigurationReady"
    INTEGRATION_READY = "IntegrationReady"
    TEAMS_READY = "ProjectTeamsReady"


class Reason(str, Enum):
    """Machine-readable condition reasons."""

    NETWORK_PEER_NOT_READY = "ProjectNetworkPeerIsNotReadyInAtlas"
    PE_SERVICE_NOT_READY = "ProjectPEServiceIsNotReadyInAtlas"
    PE_INTERFACE_NOT_READY = "ProjectPEInterfaceIsNotReadyInAtlas"
    CLOUD_INTEGRATIONS_NOT_READY = "ProjectCloudIntegrationsIsNotReadyInAtlas"
    ALERT_CONFIGURATION_NOT_READY = "ProjectAlertConfigurationIsNotReadyInAtlas"
    INTEGRATION_NOT_READY = "ProjectIntegrationRequestError"
    CUSTOM_ROLES_NOT_READY = "ProjectCustomRolesReady"
    TEAMS_NOT_READY = "TeamUsersNotReady"
    OWNERSHIP_SNAPSHOT_INVALID = "ProjectAnnotationInvalid"
    UNSUPPORTED_FEATURE = "AtlasUnsupportedFeature"
    INTERNAL = "InternalError"


class Readiness(str, Enum):
    """Readiness class of a remote state or item phase."""

    PROVISIONING = "Provisioning"
    READY = "Ready"
    FAILED = "Failed"
    CLOSING = "Closing"


class Outcome(str, Enum):
    """Aggregate outcome of one category for one cycle."""

    UNSET = "Unset"
    READY = "Ready"
    PENDING = "Pending"
    FAILED = "Failed"
    UNSUPPORTED = "Unsupported"


# =============================================================================
# Remote States
# =============================================================================


class RemoteState(str, Enum):
    """Provisioning states reported by the remote control plane.

    One vocabulary is shared by peers, containers, endpoint services and
    interface endpoints. Each category classifies it with its own table.
    """

    INITIATING = "INITIATING"
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    FINALIZING = "FINALIZING"
    ADDING_PEER = "ADDING_PEER"
    WAITING_FOR_USER = "WAITING_FOR_USER"
    PENDING = "PENDING"
    PENDING_ACCEPTANCE_AZURE = "PENDING_ACCEPTANCE_AZURE"
    AVAILABLE = "AVAILABLE"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    DELETING = "DELETING"
    TERMINATING = "TERMINATING"
    DELETED = "DELETED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> RemoteState:
        """Parse a remote state string, mapping unrecognized values to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


def _classify_all(overrides: Mapping[RemoteState, Readiness]) -> dict[RemoteState, Readiness]:
    table = {state: Readiness.PROVISIONING for state in RemoteState}
    table.update(overrides)
    return table


PEER_READINESS: dict[RemoteState, Readiness] = _classify_all(
    {
        RemoteState.AVAILABLE: Readiness.READY,
        RemoteState.FAILED: Readiness.FAILED,
        RemoteState.REJECTED: Readiness.FAILED,
        RemoteState.DELETING: Readiness.CLOSING,
        RemoteState.TERMINATING: Readiness.CLOSING,
        RemoteState.DELETED: Readiness.CLOSING,
    }
)

ENDPOINT_READINESS: dict[RemoteState, Readiness] = _classify_all(
    {
        RemoteState.AVAILABLE: Readiness.READY,
        RemoteState.ACTIVE: Readiness.READY,
        RemoteState.FAILED: Readiness.FAILED,
        RemoteState.REJECTED: Readiness.FAILED,
        RemoteState.DELETING: Readiness.CLOSING,
    }
)


def classify(table: Mapping[RemoteState, Readiness], value: str | None) -> Readiness:
    """Classify a raw remote state string with a category table."""
    return table[RemoteState.parse(value)]


# =============================================================================
# Item Phases
# =============================================================================


class PeerPhase(str, Enum):
    """Lifecycle of one network peering connection."""

    NEW = "New"
    CONTAINER_CREATED = "ContainerCreated"
    PEER_CREATED = "PeerCreated"
    AVAILABLE = "Available"
    FAILED = "Failed"


class EndpointPhase(str, Enum):
    """Lifecycle of one private endpoint (service plus interface)."""

    NEW = "New"
    SERVICE_CREATED = "ServiceCreated"
    SERVICE_AVAILABLE = "ServiceAvailable"
    INTERFACE_CREATED = "InterfaceCreated"
    AVAILABLE = "Available"
    FAILED = "Failed"


class IntegrationPhase(str, Enum):
    """Lifecycle of one cloud provider access role."""

    NEW = "New"
    FAILED_TO_CREATE = "FailedToCreate"
    CREATED = "Created"
    FAILED_TO_AUTHORIZE = "FailedToAuthorize"
    AUTHORIZED = "Authorized"
    DEAUTHORIZE = "DeAuthorize"
    FAILED_TO_DEAUTHORIZE = "FailedToDeAuthorize"


class ApplyPhase(str, Enum):
    """Outcome of a one-shot apply (custom roles, alert configurations, teams)."""

    PENDING = "Pending"
    OK = "OK"
    FAILED = "Failed"


@dataclass(frozen=True)
class StateMachine(Generic[E]):
    """Declared phase transitions and readiness of one item category."""

    name: str
    transitions: Mapping[E, frozenset[E]]
    readiness: Mapping[E, Readiness]

    def __post_init__(self) -> None:
        members = set(type(next(iter(self.readiness))))
        missing = members - set(self.readiness)
        if missing:
            raise ValueError(f"{self.name}: readiness table misses {sorted(m.value for m in missing)}")
        undeclared = members - set(self.transitions)
        if undeclared:
            raise ValueError(
                f"{self.name}: transition table misses {sorted(m.value for m in undeclared)}"
            )

    def can_transition(self, current: E, target: E) -> bool:
        return current == target or target in self.transitions[current]

    def transition(self, current: E, target: E) -> E:
        """Move from current to target.

        Raises:
            InvalidTransitionError: If the transition is not declared.
        """
        if not self.can_transition(current, target):
            raise InvalidTransitionError(
                f"{self.name}: transition {current.value} -> {target.value} is not allowed"
            )
        return target

    def readiness_of(self, phase: E) -> Readiness:
        return self.readiness[phase]


PEER_MACHINE: StateMachine[PeerPhase] = StateMachine(
    name="network-peer",
    transitions={
        PeerPhase.NEW: frozenset(
            {PeerPhase.CONTAINER_CREATED, PeerPhase.PEER_CREATED, PeerPhase.AVAILABLE, PeerPhase.FAILED}
        ),
        PeerPhase.CONTAINER_CREATED: frozenset({PeerPhase.PEER_CREATED, PeerPhase.FAILED}),
        PeerPhase.PEER_CREATED: frozenset({PeerPhase.AVAILABLE, PeerPhase.FAILED}),
        PeerPhase.AVAILABLE: frozenset({PeerPhase.PEER_CREATED, PeerPhase.FAILED}),
        PeerPhase.FAILED: frozenset({PeerPhase.NEW, PeerPhase.PEER_CREATED, PeerPhase.AVAILABLE}),
    },
    readiness={
        PeerPhase.NEW: Readiness.PROVISIONING,
        PeerPhase.CONTAINER_CREATED: Readiness.PROVISIONING,
        PeerPhase.PEER_CREATED: Readiness.PROVISIONING,
        PeerPhase.AVAILABLE: Readiness.READY,
        PeerPhase.FAILED: Readiness.FAILED,
    },
)

ENDPOINT_MACHINE: StateMachine[EndpointPhase] = StateMachine(
    name="private-endpoint",
    transitions={
        EndpointPhase.NEW: frozenset(
            {
                EndpointPhase.SERVICE_CREATED,
                EndpointPhase.SERVICE_AVAILABLE,
                EndpointPhase.INTERFACE_CREATED,
                EndpointPhase.AVAILABLE,
                EndpointPhase.FAILED,
            }
        ),
        EndpointPhase.SERVICE_CREATED: frozenset(
            {EndpointPhase.SERVICE_AVAILABLE, EndpointPhase.FAILED}
        ),
        EndpointPhase.SERVICE_AVAILABLE: frozenset(
            {EndpointPhase.INTERFACE_CREATED, EndpointPhase.AVAILABLE, EndpointPhase.FAILED}
        ),
        EndpointPhase.INTERFACE_CREATED: frozenset({EndpointPhase.AVAILABLE, EndpointPhase.FAILED}),
        EndpointPhase.AVAILABLE: frozenset(
            {EndpointPhase.INTERFACE_CREATED, EndpointPhase.FAILED}
        ),
        EndpointPhase.FAILED: frozenset(
            {
                EndpointPhase.NEW,
                EndpointPhase.SERVICE_AVAILABLE,
                EndpointPhase.INTERFACE_CREATED,
                EndpointPhase.AVAILABLE,
            }
        ),
    },
    readiness={
        EndpointPhase.NEW: Readiness.PROVISIONING,
        EndpointPhase.SERVICE_CREATED: Readiness.PROVISIONING,
        EndpointPhase.SERVICE_AVAILABLE: Readiness.PROVISIONING,
        EndpointPhase.INTERFACE_CREATED: Readiness.PROVISIONING,
        EndpointPhase.AVAILABLE: Readiness.READY,
        EndpointPhase.FAILED: Readiness.FAILED,
    },
)

INTEGRATION_MACHINE: StateMachine[IntegrationPhase] = StateMachine(
    name="cloud-provider-integration",
    transitions={
        IntegrationPhase.NEW: frozenset(
            {IntegrationPhase.CREATED, IntegrationPhase.FAILED_TO_CREATE}
        ),
        IntegrationPhase.FAILED_TO_CREATE: frozenset(
            {IntegrationPhase.CREATED, IntegrationPhase.NEW}
        ),
        IntegrationPhase.CREATED: frozenset(
            {
                IntegrationPhase.AUTHORIZED,
                IntegrationPhase.FAILED_TO_AUTHORIZE,
                IntegrationPhase.DEAUTHORIZE,
            }
        ),
        IntegrationPhase.FAILED_TO_AUTHORIZE: frozenset(
            {IntegrationPhase.AUTHORIZED, IntegrationPhase.CREATED, IntegrationPhase.DEAUTHORIZE}
        ),
        IntegrationPhase.AUTHORIZED: frozenset({IntegrationPhase.DEAUTHORIZE}),
        IntegrationPhase.DEAUTHORIZE: frozenset({IntegrationPhase.FAILED_TO_DEAUTHORIZE}),
        IntegrationPhase.FAILED_TO_DEAUTHORIZE: frozenset({IntegrationPhase.DEAUTHORIZE}),
    },
    readiness={
        IntegrationPhase.NEW: Readiness.PROVISIONING,
        IntegrationPhase.FAILED_TO_CREATE: Readiness.FAILED,
        IntegrationPhase.CREATED: Readiness.PROVISIONING,
        IntegrationPhase.FAILED_TO_AUTHORIZE: Readiness.FAILED,
        IntegrationPhase.AUTHORIZED: Readiness.READY,
        IntegrationPhase.DEAUTHORIZE: Readiness.CLOSING,
        IntegrationPhase.FAILED_TO_DEAUTHORIZE: Readiness.FAILED,
    },
)

APPLY_MACHINE: StateMachine[ApplyPhase] = StateMachine(
    name="apply",
    transitions={
        ApplyPhase.PENDING: frozenset({ApplyPhase.OK, ApplyPhase.FAILED}),
        ApplyPhase.OK: frozenset({ApplyPhase.FAILED}),
        ApplyPhase.FAILED: frozenset({ApplyPhase.OK}),
    },
    readiness={
        ApplyPhase.PENDING: Readiness.PROVISIONING,
        ApplyPhase.OK: Readiness.READY,
        ApplyPhase.FAILED: Readiness.FAILED,
    },
)
