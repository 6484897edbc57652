"""Mock remote client with the same surface as project_operator.client.AtlasClient.

Every method records its call, raises any injected error, then operates on
MockAtlasState under its lock (the engine calls the client from executor
threads).
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from typing import Any

from project_operator.models import (
    ProviderName,
    RemoteAlertConfiguration,
    RemoteCloudProviderRole,
    RemoteContainer,
    RemoteCustomRole,
    RemoteEndpointService,
    RemoteIntegration,
    RemoteInterfaceEndpoint,
    RemotePeer,
    RemoteProjectTeam,
    RemoteTeam,
    RemoteUser,
)
from project_operator.paging import Page

from .state import MockAtlasState, http_error, interface_list_key


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class MockAtlasClient:
    """In-memory stand-in for AtlasClient."""

    def __init__(self, state: MockAtlasState | None = None) -> None:
        self.state = state or MockAtlasState()

    def close(self) -> None:
        pass

    def __enter__(self) -> MockAtlasClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _page(self, records: list[dict[str, Any]], page_num: int, model: Any) -> Page[Any]:
        size = self.state.page_size
        start = (page_num - 1) * size
        return Page(
            results=[model.model_validate(copy.deepcopy(r)) for r in records[start : start + size]],
            total_count=len(records),
        )

    # =========================================================================
    # Network peering
    # =========================================================================

    def list_peers(self, project_id: str, provider: ProviderName, page_num: int) -> Page[RemotePeer]:
        with self.state.lock:
            self.state.enter("list_peers")
            records = [p for p in self.state.peers.values() if p["providerName"] == provider.value]
            return self._page(records, page_num, RemotePeer)

    def create_peer(self, project_id: str, request: dict[str, Any]) -> RemotePeer:
        with self.state.lock:
            self.state.enter("create_peer")
            self.state.requests.append(("create_peer", copy.deepcopy(request)))
            if request["containerId"] not in self.state.containers:
                raise http_error(404, f"container {request['containerId']} not found")
            record = {"id": self.state.next_id("peer"), **request}
            status_key = "statusName" if request["providerName"] == "AWS" else "status"
            record[status_key] = self.state.peer_initial_status
            self.state.peers[record["id"]] = record
            return RemotePeer.model_validate(copy.deepcopy(record))

    def delete_peer(self, project_id: str, peer_id: str) -> None:
        with self.state.lock:
            self.state.enter("delete_peer")
            if self.state.peers.pop(peer_id, None) is None:
                raise http_error(404, f"peer {peer_id} not found")

    def list_containers(
        self, project_id: str, provider: ProviderName, page_num: int
    ) -> Page[RemoteContainer]:
        with self.state.lock:
            self.state.enter("list_containers")
            records = [
                c for c in self.state.containers.values() if c["providerName"] == provider.value
            ]
            return self._page(records, page_num, RemoteContainer)

    def get_container(self, project_id: str, container_id: str) -> RemoteContainer:
        with self.state.lock:
            self.state.enter("get_container")
            record = self.state.containers.get(container_id)
            if record is None:
                raise http_error(404, f"container {container_id} not found")
            return RemoteContainer.model_validate(copy.deepcopy(record))

    def create_container(self, project_id: str, request: dict[str, Any]) -> RemoteContainer:
        with self.state.lock:
            self.state.enter("create_container")
            self.state.requests.append(("create_container", copy.deepcopy(request)))
            for existing in self.state.containers.values():
                if (
                    existing["providerName"] == request["providerName"]
                    and existing.get("atlasCidrBlock") == request.get("atlasCidrBlock")
                ):
                    raise http_error(409, "CONTAINERS_IN_USE")
            fields = {k: v for k, v in request.items() if k != "providerName"}
            record = self.state.add_container(request["providerName"], **fields)
            return RemoteContainer.model_validate(copy.deepcopy(record))

    def delete_container(self, project_id: str, container_id: str) -> None:
        with self.state.lock:
            self.state.enter("delete_container")
            record = self.state.containers.get(container_id)
            if record is None:
                raise http_error(404, f"container {container_id} not found")
            in_use = any(p.get("containerId") == container_id for p in self.state.peers.values())
            if in_use or record.get("provisioned"):
                raise http_error(409, "CONTAINERS_IN_USE")
            del self.state.containers[container_id]

    # =========================================================================
    # Private endpoints
    # =========================================================================

    def list_endpoint_services(
        self, project_id: str, provider: ProviderName
    ) -> list[RemoteEndpointService]:
        with self.state.lock:
            self.state.enter("list_endpoint_services")
            services = []
            for record in self.state.endpoint_services.values():
                if record["cloudProvider"] != provider.value:
                    continue
                service = RemoteEndpointService.model_validate(copy.deepcopy(record))
                service.cloud_provider = provider
                services.append(service)
            return services

    def create_endpoint_service(
        self, project_id: str, provider: ProviderName, region: str
    ) -> RemoteEndpointService:
        with self.state.lock:
            self.state.enter("create_endpoint_service")
            self.state.requests.append(
                ("create_endpoint_service", {"providerName": provider.value, "region": region})
            )
            record = self.state.add_endpoint_service(
                provider.value, region, self.state.service_initial_status
            )
            service = RemoteEndpointService.model_validate(copy.deepcopy(record))
            service.cloud_provider = provider
            return service

    def delete_endpoint_service(
        self, project_id: str, provider: ProviderName, service_id: str
    ) -> None:
        with self.state.lock:
            self.state.enter("delete_endpoint_service")
            record = self.state.endpoint_services.get(service_id)
            if record is None:
                raise http_error(404, f"endpoint service {service_id} not found")
            if record.get(interface_list_key(provider.value)):
                raise http_error(400, "endpoint service still has interface endpoints")
            del self.state.endpoint_services[service_id]

    def create_interface_endpoint(
        self,
        project_id: str,
        provider: ProviderName,
        service_id: str,
        request: dict[str, Any],
    ) -> RemoteInterfaceEndpoint:
        with self.state.lock:
            self.state.enter("create_interface_endpoint")
            self.state.requests.append(("create_interface_endpoint", copy.deepcopy(request)))
            if service_id not in self.state.endpoint_services:
                raise http_error(404, f"endpoint service {service_id} not found")
            endpoint_id = request.get("endpointGroupName") or request.get("id", "")
            if (service_id, endpoint_id) in self.state.interfaces:
                raise http_error(409, f"interface endpoint {endpoint_id} already exists")
            fields: dict[str, Any] = {}
            if "endpoints" in request:
                fields["endpoints"] = [
                    {**e, "status": self.state.interface_initial_status}
                    for e in request["endpoints"]
                ]
            record = self.state.add_interface(
                service_id, endpoint_id, self.state.interface_initial_status, **fields
            )
            return RemoteInterfaceEndpoint.model_validate(copy.deepcopy(record))

    def get_interface_endpoint(
        self, project_id: str, provider: ProviderName, service_id: str, endpoint_id: str
    ) -> RemoteInterfaceEndpoint:
        with self.state.lock:
            self.state.enter("get_interface_endpoint")
            record = self.state.interfaces.get((service_id, endpoint_id))
            if record is None:
                raise http_error(404, f"interface endpoint {endpoint_id} not found")
            return RemoteInterfaceEndpoint.model_validate(copy.deepcopy(record))

    def delete_interface_endpoint(
        self, project_id: str, provider: ProviderName, service_id: str, endpoint_id: str
    ) -> None:
        with self.state.lock:
            self.state.enter("delete_interface_endpoint")
            if self.state.interfaces.pop((service_id, endpoint_id), None) is None:
                raise http_error(404, f"interface endpoint {endpoint_id} not found")
            service = self.state.endpoint_services.get(service_id)
            if service is not None:
                ids = service.get(interface_list_key(provider.value), [])
                service[interface_list_key(provider.value)] = [i for i in ids if i != endpoint_id]

    # =========================================================================
    # Cloud provider access
    # =========================================================================

    def list_cloud_provider_roles(self, project_id: str) -> list[RemoteCloudProviderRole]:
        with self.state.lock:
            self.state.enter("list_cloud_provider_roles")
            return [
                RemoteCloudProviderRole.model_validate(copy.deepcopy(r))
                for r in self.state.cloud_roles.values()
            ]

    def create_cloud_provider_role(
        self, project_id: str, provider: ProviderName
    ) -> RemoteCloudProviderRole:
        with self.state.lock:
            self.state.enter("create_cloud_provider_role")
            record = self.state.add_cloud_role(provider.value)
            return RemoteCloudProviderRole.model_validate(copy.deepcopy(record))

    def authorize_cloud_provider_role(
        self, project_id: str, role_id: str, provider: ProviderName, role_arn: str
    ) -> RemoteCloudProviderRole:
        with self.state.lock:
            self.state.enter("authorize_cloud_provider_role")
            self.state.requests.append(("authorize_cloud_provider_role", (role_id, role_arn)))
            record = self.state.cloud_roles.get(role_id)
            if record is None:
                raise http_error(404, f"role {role_id} not found")
            record["iamAssumedRoleArn"] = role_arn
            record["authorizedDate"] = _now()
            return RemoteCloudProviderRole.model_validate(copy.deepcopy(record))

    def deauthorize_cloud_provider_role(
        self, project_id: str, provider: ProviderName, role_id: str
    ) -> None:
        with self.state.lock:
            self.state.enter("deauthorize_cloud_provider_role")
            if self.state.cloud_roles.pop(role_id, None) is None:
                raise http_error(404, f"role {role_id} not found")

    # =========================================================================
    # Custom roles
    # =========================================================================

    def list_custom_roles(self, project_id: str) -> list[RemoteCustomRole]:
        with self.state.lock:
            self.state.enter("list_custom_roles")
            return [
                RemoteCustomRole.model_validate(copy.deepcopy(r))
                for r in self.state.custom_roles.values()
            ]

    def create_custom_role(self, project_id: str, request: dict[str, Any]) -> RemoteCustomRole:
        with self.state.lock:
            self.state.enter("create_custom_role")
            self.state.requests.append(("create_custom_role", copy.deepcopy(request)))
            name = request["roleName"]
            if name in self.state.custom_roles:
                raise http_error(409, f"role {name} already exists")
            self.state.custom_roles[name] = copy.deepcopy(request)
            return RemoteCustomRole.model_validate(copy.deepcopy(request))

    def update_custom_role(
        self, project_id: str, role_name: str, request: dict[str, Any]
    ) -> RemoteCustomRole:
        with self.state.lock:
            self.state.enter("update_custom_role")
            self.state.requests.append(("update_custom_role", copy.deepcopy(request)))
            if role_name not in self.state.custom_roles:
                raise http_error(404, f"role {role_name} not found")
            self.state.custom_roles[role_name] = {**copy.deepcopy(request), "roleName": role_name}
            return RemoteCustomRole.model_validate(copy.deepcopy(self.state.custom_roles[role_name]))

    def delete_custom_role(self, project_id: str, role_name: str) -> None:
        with self.state.lock:
            self.state.enter("delete_custom_role")
            if self.state.custom_roles.pop(role_name, None) is None:
                raise http_error(404, f"role {role_name} not found")

    # =========================================================================
    # Alert configurations
    # =========================================================================

    def list_alert_configurations(
        self, project_id: str, page_num: int
    ) -> Page[RemoteAlertConfiguration]:
        with self.state.lock:
            self.state.enter("list_alert_configurations")
            records = [self.state.redacted_alert(r) for r in self.state.alerts.values()]
            return self._page(records, page_num, RemoteAlertConfiguration)

    def create_alert_configuration(
        self, project_id: str, request: dict[str, Any]
    ) -> RemoteAlertConfiguration:
        with self.state.lock:
            self.state.enter("create_alert_configuration")
            self.state.requests.append(("create_alert_configuration", copy.deepcopy(request)))
            record = self.state.add_alert(**copy.deepcopy(request))
            return RemoteAlertConfiguration.model_validate(self.state.redacted_alert(record))

    def update_alert_configuration(
        self, project_id: str, alert_id: str, request: dict[str, Any]
    ) -> RemoteAlertConfiguration:
        with self.state.lock:
            self.state.enter("update_alert_configuration")
            self.state.requests.append(("update_alert_configuration", copy.deepcopy(request)))
            if alert_id not in self.state.alerts:
                raise http_error(404, f"alert configuration {alert_id} not found")
            record = {**copy.deepcopy(request), "id": alert_id}
            self.state.alerts[alert_id] = record
            return RemoteAlertConfiguration.model_validate(self.state.redacted_alert(record))

    def delete_alert_configuration(self, project_id: str, alert_id: str) -> None:
        with self.state.lock:
            self.state.enter("delete_alert_configuration")
            if self.state.alerts.pop(alert_id, None) is None:
                raise http_error(404, f"alert configuration {alert_id} not found")

    # =========================================================================
    # Third-party integrations
    # =========================================================================

    def list_integrations(self, project_id: str, page_num: int) -> Page[RemoteIntegration]:
        with self.state.lock:
            self.state.enter("list_integrations")
            return self._page(list(self.state.integrations.values()), page_num, RemoteIntegration)

    def create_integration(
        self, project_id: str, integration_type: str, request: dict[str, Any]
    ) -> None:
        with self.state.lock:
            self.state.enter("create_integration")
            self.state.requests.append(("create_integration", copy.deepcopy(request)))
            if integration_type in self.state.integrations:
                raise http_error(409, f"integration {integration_type} already exists")
            self.state.add_integration(integration_type, **copy.deepcopy(request))

    def update_integration(
        self, project_id: str, integration_type: str, request: dict[str, Any]
    ) -> None:
        with self.state.lock:
            self.state.enter("update_integration")
            self.state.requests.append(("update_integration", copy.deepcopy(request)))
            record = self.state.integrations.get(integration_type)
            if record is None:
                raise http_error(404, f"integration {integration_type} not found")
            record.update(copy.deepcopy(request))

    def delete_integration(self, project_id: str, integration_type: str) -> None:
        with self.state.lock:
            self.state.enter("delete_integration")
            if self.state.integrations.pop(integration_type, None) is None:
                raise http_error(404, f"integration {integration_type} not found")

    # =========================================================================
    # Teams
    # =========================================================================

    def get_team_by_name(self, org_id: str, team_name: str) -> RemoteTeam:
        with self.state.lock:
            self.state.enter("get_team_by_name")
            team = self.state.team_by_name(team_name)
            if team is None:
                raise http_error(404, f"team {team_name} not found")
            return RemoteTeam(id=team["id"], name=team["name"])

    def create_team(self, org_id: str, team_name: str, usernames: list[str]) -> RemoteTeam:
        with self.state.lock:
            self.state.enter("create_team")
            if self.state.team_by_name(team_name) is not None:
                raise http_error(409, f"team {team_name} already exists")
            team = self.state.add_team(team_name, usernames)
            return RemoteTeam(id=team["id"], name=team["name"])

    def list_team_users(self, org_id: str, team_id: str, page_num: int) -> Page[RemoteUser]:
        with self.state.lock:
            self.state.enter("list_team_users")
            team = self.state.teams.get(team_id)
            if team is None:
                raise http_error(404, f"team {team_id} not found")
            records = [self.state.users[user_id] for user_id in team["users"]]
            return self._page(records, page_num, RemoteUser)

    def remove_team_user(self, org_id: str, team_id: str, user_id: str) -> None:
        with self.state.lock:
            self.state.enter("remove_team_user")
            team = self.state.teams.get(team_id)
            if team is None or user_id not in team["users"]:
                raise http_error(404, f"user {user_id} is not a member of team {team_id}")
            team["users"].remove(user_id)

    def get_user_by_name(self, username: str) -> RemoteUser:
        with self.state.lock:
            self.state.enter("get_user_by_name")
            return RemoteUser.model_validate(copy.deepcopy(self.state.user_by_name(username)))

    def add_team_users(self, org_id: str, team_id: str, user_ids: list[str]) -> None:
        with self.state.lock:
            self.state.enter("add_team_users")
            self.state.requests.append(("add_team_users", list(user_ids)))
            team = self.state.teams.get(team_id)
            if team is None:
                raise http_error(404, f"team {team_id} not found")
            for user_id in user_ids:
                if user_id not in team["users"]:
                    team["users"].append(user_id)

    def list_project_teams(self, project_id: str, page_num: int) -> Page[RemoteProjectTeam]:
        with self.state.lock:
            self.state.enter("list_project_teams")
            return self._page(list(self.state.project_teams.values()), page_num, RemoteProjectTeam)

    def assign_project_teams(self, project_id: str, assignments: list[dict[str, Any]]) -> None:
        with self.state.lock:
            self.state.enter("assign_project_teams")
            self.state.requests.append(("assign_project_teams", copy.deepcopy(assignments)))
            for assignment in assignments:
                if assignment["teamId"] not in self.state.teams:
                    raise http_error(404, f"team {assignment['teamId']} not found")
            for assignment in assignments:
                self.state.add_project_team(assignment["teamId"], assignment["roleNames"])

    def update_project_team_roles(
        self, project_id: str, team_id: str, role_names: list[str]
    ) -> None:
        with self.state.lock:
            self.state.enter("update_project_team_roles")
            self.state.requests.append(("update_project_team_roles", list(role_names)))
            record = self.state.project_teams.get(team_id)
            if record is None:
                raise http_error(404, f"team {team_id} is not assigned to the project")
            record["roleNames"] = list(role_names)

    def unassign_project_team(self, project_id: str, team_id: str) -> None:
        with self.state.lock:
            self.state.enter("unassign_project_team")
            if self.state.project_teams.pop(team_id, None) is None:
                raise http_error(404, f"team {team_id} is not assigned to the project")
