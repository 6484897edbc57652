"""In-memory remote state for the mock Atlas client.

Records are stored as raw camelCase mappings, exactly as the remote API would
return them, so the client's model parsing is exercised by every test.
"""

from __future__ import annotations

import copy
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)

# Notification fields the remote redacts on read
REDACTED_NOTIFICATION_FIELDS = frozenset(
    {
        "apiToken",
        "datadogApiKey",
        "flowdockApiToken",
        "opsGenieApiKey",
        "serviceKey",
        "victorOpsApiKey",
        "victorOpsRoutingKey",
    }
)
REDACTED_VALUE = "****************"

_ERROR_CLASSES: dict[int, type[HttpResponseError]] = {
    401: ClientAuthenticationError,
    403: ClientAuthenticationError,
    404: ResourceNotFoundError,
    409: ResourceExistsError,
}


def http_error(status_code: int, message: str = "") -> HttpResponseError:
    """Build the azure-core exception the real client raises for a status code."""
    error_class = _ERROR_CLASSES.get(status_code, HttpResponseError)
    error = error_class(message=message or f"remote returned {status_code}")
    error.status_code = status_code
    return error


@dataclass
class InjectedError:
    """An error raised by the next `times` calls of one client method."""

    error: Exception
    times: int = 1


@dataclass
class MockAtlasState:
    """Remote state of one organization and its project.

    Attributes:
        page_size: Items per page returned by paged listings.
        peer_initial_status: State of newly created peers.
        service_initial_status: State of newly created endpoint services.
        interface_initial_status: State of newly created interface endpoints.
    """

    page_size: int = 500
    peer_initial_status: str = "INITIATING"
    service_initial_status: str = "INITIATING"
    interface_initial_status: str = "PENDING"

    peers: dict[str, dict[str, Any]] = field(default_factory=dict)
    containers: dict[str, dict[str, Any]] = field(default_factory=dict)
    endpoint_services: dict[str, dict[str, Any]] = field(default_factory=dict)
    interfaces: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    cloud_roles: dict[str, dict[str, Any]] = field(default_factory=dict)
    custom_roles: dict[str, dict[str, Any]] = field(default_factory=dict)
    alerts: dict[str, dict[str, Any]] = field(default_factory=dict)
    integrations: dict[str, dict[str, Any]] = field(default_factory=dict)
    teams: dict[str, dict[str, Any]] = field(default_factory=dict)
    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    project_teams: dict[str, dict[str, Any]] = field(default_factory=dict)

    calls: list[str] = field(default_factory=list)
    requests: list[tuple[str, Any]] = field(default_factory=list)
    errors: dict[str, list[InjectedError]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)
    _ids: Counter[str] = field(default_factory=Counter)

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def next_id(self, prefix: str) -> str:
        """Sortable ids: ascending in creation order."""
        self._ids[prefix] += 1
        return f"{prefix}-{self._ids[prefix]:04d}"

    def inject_error(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next `times` calls of a client method raise `error`."""
        self.errors.setdefault(method, []).append(InjectedError(error, times))

    def enter(self, method: str) -> None:
        """Record a call and raise an injected error if one is pending."""
        self.calls.append(method)
        pending = self.errors.get(method)
        if not pending:
            return
        injected = pending[0]
        injected.times -= 1
        if injected.times <= 0:
            pending.pop(0)
        raise injected.error

    def call_count(self, method: str) -> int:
        return self.calls.count(method)

    def requests_for(self, method: str) -> list[Any]:
        return [body for name, body in self.requests if name == method]

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_container(self, provider: str = "AWS", **fields: Any) -> dict[str, Any]:
        record = {
            "id": self.next_id("container"),
            "providerName": provider,
            "provisioned": False,
            **fields,
        }
        if provider == "GCP":
            record.setdefault("gcpProjectId", "atlas-gcp-project")
            record.setdefault("networkName", "atlas-network")
        self.containers[record["id"]] = record
        return record

    def add_peer(self, provider: str = "AWS", status: str = "AVAILABLE", **fields: Any) -> dict[str, Any]:
        record = {"id": self.next_id("peer"), "providerName": provider, **fields}
        record["statusName" if provider == "AWS" else "status"] = status
        self.peers[record["id"]] = record
        return record

    def add_endpoint_service(
        self, provider: str = "AWS", region: str = "US_EAST_1", status: str = "AVAILABLE", **fields: Any
    ) -> dict[str, Any]:
        record = {
            "id": self.next_id("service"),
            "cloudProvider": provider,
            "regionName": region,
            "status": status,
            **fields,
        }
        self.endpoint_services[record["id"]] = record
        return record

    def add_interface(
        self, service_id: str, endpoint_id: str, status: str = "AVAILABLE", **fields: Any
    ) -> dict[str, Any]:
        service = self.endpoint_services[service_id]
        record = {"id": endpoint_id, "status": status, **fields}
        self.interfaces[(service_id, endpoint_id)] = record
        service.setdefault(interface_list_key(service["cloudProvider"]), []).append(endpoint_id)
        return record

    def add_cloud_role(self, provider: str = "AWS", arn: str = "", authorized: bool = False) -> dict[str, Any]:
        record = {
            "roleId": self.next_id("role"),
            "providerName": provider,
            "iamAssumedRoleArn": arn,
            "atlasAWSAccountArn": "arn:aws:iam::000000000000:root",
            "atlasAssumedRoleExternalId": "external-id",
            "createdDate": "2024-01-01T00:00:00Z",
            "authorizedDate": "2024-01-02T00:00:00Z" if authorized else "",
            "featureUsages": [],
        }
        self.cloud_roles[record["roleId"]] = record
        return record

    def add_custom_role(self, name: str, **fields: Any) -> dict[str, Any]:
        record = {"roleName": name, "actions": [], "inheritedRoles": [], **fields}
        self.custom_roles[name] = record
        return record

    def add_alert(self, **fields: Any) -> dict[str, Any]:
        record = {"id": self.next_id("alert"), "enabled": True, **fields}
        self.alerts[record["id"]] = record
        return record

    def add_integration(self, integration_type: str, **fields: Any) -> dict[str, Any]:
        record = {"id": self.next_id("integration"), "type": integration_type, **fields}
        self.integrations[integration_type] = record
        return record

    def add_user(self, username: str) -> dict[str, Any]:
        record = {"id": self.next_id("user"), "username": username}
        self.users[record["id"]] = record
        return record

    def add_team(self, name: str, usernames: list[str] | None = None) -> dict[str, Any]:
        record = {
            "id": self.next_id("team"),
            "name": name,
            "users": [self.user_by_name(u)["id"] for u in usernames or []],
        }
        self.teams[record["id"]] = record
        return record

    def add_project_team(self, team_id: str, role_names: list[str]) -> dict[str, Any]:
        record = {"teamId": team_id, "roleNames": list(role_names)}
        self.project_teams[team_id] = record
        return record

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def user_by_name(self, username: str) -> dict[str, Any]:
        for user in self.users.values():
            if user["username"] == username:
                return user
        raise http_error(404, f"user {username} not found")

    def team_by_name(self, name: str) -> dict[str, Any] | None:
        for team in self.teams.values():
            if team["name"] == name:
                return team
        return None

    def team_usernames(self, name: str) -> set[str]:
        team = self.team_by_name(name)
        if team is None:
            return set()
        return {self.users[user_id]["username"] for user_id in team["users"]}

    def set_status(self, collection: str, record_id: str, status: str) -> None:
        """Move a seeded or created record to another remote state."""
        record = getattr(self, collection)[record_id]
        key = "statusName" if collection == "peers" and record.get("providerName") == "AWS" else "status"
        record[key] = status

    def redacted_alert(self, record: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(record)
        for notification in data.get("notifications", []):
            for key in REDACTED_NOTIFICATION_FIELDS & set(notification):
                notification[key] = REDACTED_VALUE
        return data


def interface_list_key(provider: str) -> str:
    """Service field listing interface ids for a provider."""
    return {
        "AWS": "interfaceEndpoints",
        "AZURE": "privateEndpoints",
        "GCP": "endpointGroupNames",
    }[provider]
