"""Remote control-plane API client built on the azure-core HTTP pipeline.

The client is deliberately thin: one method per remote operation, JSON in and
typed models out. Error status codes are mapped onto azure-core exceptions so
that callers catch the same taxonomy regardless of transport:

- 401/403 -> ClientAuthenticationError
- 404     -> ResourceNotFoundError (delete callers treat it as success)
- 409     -> ResourceExistsError (resolved by re-listing and adopting)
- other   -> HttpResponseError (transient, retried with backoff)

All methods are synchronous; the engine runs them on an executor through
ReconcileContext.call so the ambient deadline applies.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

from azure.core import PipelineClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    map_error,
)
from azure.core.pipeline import policies
from azure.core.rest import HttpRequest

from .models import (
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
from .paging import DEFAULT_ITEMS_PER_PAGE, Page

logger = logging.getLogger(__name__)

API_PREFIX = "/api/atlas/v2"
API_MEDIA_TYPE = "application/vnd.atlas.2024-08-05+json"
USER_AGENT = "project-operator"

# Transport-level retries for connection errors and 429/5xx (azure-core policy)
TRANSPORT_RETRY_TOTAL = 3

# Seconds left for the whole request including retries; set by ReconcileContext.call
request_timeout: ContextVar[float | None] = ContextVar("request_timeout", default=None)

ERROR_MAP: dict[int, type[HttpResponseError]] = {
    401: ClientAuthenticationError,
    403: ClientAuthenticationError,
    404: ResourceNotFoundError,
    409: ResourceExistsError,
}

# Cloud provider access lists come back grouped by provider
_ROLE_LIST_KEYS: dict[str, ProviderName] = {
    "awsIamRoles": ProviderName.AWS,
    "azureServicePrincipals": ProviderName.AZURE,
    "gcpServiceAccounts": ProviderName.GCP,
}


class AtlasClient:
    """Typed client for the project sub-resource endpoints."""

    def __init__(
        self,
        base_url: str,
        credential: AzureKeyCredential,
        *,
        transport: Any = None,
        retry_total: int = TRANSPORT_RETRY_TOTAL,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the remote API (scheme and host).
            credential: API access token, sent as a bearer Authorization header.
            transport: Optional azure-core transport (tests inject one).
            retry_total: Transport-level retry budget per request.
        """
        pipeline_policies = [
            policies.HeadersPolicy({"Accept": API_MEDIA_TYPE, "Content-Type": API_MEDIA_TYPE}),
            policies.UserAgentPolicy(base_user_agent=USER_AGENT),
            policies.RetryPolicy(retry_total=retry_total),
            policies.AzureKeyCredentialPolicy(credential, "Authorization", prefix="Bearer"),
            policies.NetworkTraceLoggingPolicy(),
        ]
        kwargs: dict[str, Any] = {"policies": pipeline_policies}
        if transport is not None:
            kwargs["transport"] = transport
        self._client: PipelineClient[Any, Any] = PipelineClient(base_url=base_url, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AtlasClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """Send one request and decode the JSON body.

        Raises:
            HttpResponseError: Or a mapped subclass for non-2xx responses.
        """
        request = HttpRequest(method, f"{API_PREFIX}{path}", params=params, json=body)
        options: dict[str, Any] = {}
        timeout = request_timeout.get()
        if timeout is not None:
            options["timeout"] = timeout
        response = self._client.send_request(request, **options)
        if response.status_code >= 400:
            logger.debug(
                "Remote API error",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            map_error(status_code=response.status_code, response=response, error_map=ERROR_MAP)
            raise HttpResponseError(response=response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _page(
        self, path: str, page_num: int, model: Any, params: dict[str, Any] | None = None
    ) -> Page[Any]:
        query = {"pageNum": page_num, "itemsPerPage": DEFAULT_ITEMS_PER_PAGE, **(params or {})}
        data = self._send("GET", path, params=query) or {}
        return Page(
            results=[model.model_validate(item) for item in data.get("results", [])],
            total_count=int(data.get("totalCount", 0)),
        )

    # =========================================================================
    # Network peering
    # =========================================================================

    def list_peers(
        self, project_id: str, provider: ProviderName, page_num: int
    ) -> Page[RemotePeer]:
        return self._page(
            f"/groups/{project_id}/peers", page_num, RemotePeer, {"providerName": provider.value}
        )

    def create_peer(self, project_id: str, request: dict[str, Any]) -> RemotePeer:
        return RemotePeer.model_validate(
            self._send("POST", f"/groups/{project_id}/peers", body=request)
        )

    def delete_peer(self, project_id: str, peer_id: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/peers/{peer_id}")

    def list_containers(
        self, project_id: str, provider: ProviderName, page_num: int
    ) -> Page[RemoteContainer]:
        return self._page(
            f"/groups/{project_id}/containers",
            page_num,
            RemoteContainer,
            {"providerName": provider.value},
        )

    def get_container(self, project_id: str, container_id: str) -> RemoteContainer:
        return RemoteContainer.model_validate(
            self._send("GET", f"/groups/{project_id}/containers/{container_id}")
        )

    def create_container(self, project_id: str, request: dict[str, Any]) -> RemoteContainer:
        return RemoteContainer.model_validate(
            self._send("POST", f"/groups/{project_id}/containers", body=request)
        )

    def delete_container(self, project_id: str, container_id: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/containers/{container_id}")

    # =========================================================================
    # Private endpoints
    # =========================================================================

    def list_endpoint_services(
        self, project_id: str, provider: ProviderName
    ) -> list[RemoteEndpointService]:
        data = self._send(
            "GET", f"/groups/{project_id}/privateEndpoint/{provider.value}/endpointService"
        )
        services = [RemoteEndpointService.model_validate(item) for item in data or []]
        for service in services:
            service.cloud_provider = provider
        return services

    def create_endpoint_service(
        self, project_id: str, provider: ProviderName, region: str
    ) -> RemoteEndpointService:
        service = RemoteEndpointService.model_validate(
            self._send(
                "POST",
                f"/groups/{project_id}/privateEndpoint/endpointService",
                body={"providerName": provider.value, "region": region},
            )
        )
        service.cloud_provider = provider
        return service

    def delete_endpoint_service(
        self, project_id: str, provider: ProviderName, service_id: str
    ) -> None:
        self._send(
            "DELETE",
            f"/groups/{project_id}/privateEndpoint/{provider.value}/endpointService/{service_id}",
        )

    def create_interface_endpoint(
        self,
        project_id: str,
        provider: ProviderName,
        service_id: str,
        request: dict[str, Any],
    ) -> RemoteInterfaceEndpoint:
        return RemoteInterfaceEndpoint.model_validate(
            self._send(
                "POST",
                f"/groups/{project_id}/privateEndpoint/{provider.value}"
                f"/endpointService/{service_id}/endpoint",
                body=request,
            )
        )

    def get_interface_endpoint(
        self, project_id: str, provider: ProviderName, service_id: str, endpoint_id: str
    ) -> RemoteInterfaceEndpoint:
        return RemoteInterfaceEndpoint.model_validate(
            self._send(
                "GET",
                f"/groups/{project_id}/privateEndpoint/{provider.value}"
                f"/endpointService/{service_id}/endpoint/{endpoint_id}",
            )
        )

    def delete_interface_endpoint(
        self, project_id: str, provider: ProviderName, service_id: str, endpoint_id: str
    ) -> None:
        self._send(
            "DELETE",
            f"/groups/{project_id}/privateEndpoint/{provider.value}"
            f"/endpointService/{service_id}/endpoint/{endpoint_id}",
        )

    # =========================================================================
    # Cloud provider access
    # =========================================================================

    def list_cloud_provider_roles(self, project_id: str) -> list[RemoteCloudProviderRole]:
        data = self._send("GET", f"/groups/{project_id}/cloudProviderAccess") or {}
        roles: list[RemoteCloudProviderRole] = []
        for key, provider in _ROLE_LIST_KEYS.items():
            for item in data.get(key) or []:
                role = RemoteCloudProviderRole.model_validate(item)
                role.provider_name = provider
                roles.append(role)
        return roles

    def create_cloud_provider_role(
        self, project_id: str, provider: ProviderName
    ) -> RemoteCloudProviderRole:
        return RemoteCloudProviderRole.model_validate(
            self._send(
                "POST",
                f"/groups/{project_id}/cloudProviderAccess",
                body={"providerName": provider.value},
            )
        )

    def authorize_cloud_provider_role(
        self, project_id: str, role_id: str, provider: ProviderName, role_arn: str
    ) -> RemoteCloudProviderRole:
        return RemoteCloudProviderRole.model_validate(
            self._send(
                "PATCH",
                f"/groups/{project_id}/cloudProviderAccess/{role_id}",
                body={"providerName": provider.value, "iamAssumedRoleArn": role_arn},
            )
        )

    def deauthorize_cloud_provider_role(
        self, project_id: str, provider: ProviderName, role_id: str
    ) -> None:
        self._send(
            "DELETE", f"/groups/{project_id}/cloudProviderAccess/{provider.value}/{role_id}"
        )

    # =========================================================================
    # Custom roles
    # =========================================================================

    def list_custom_roles(self, project_id: str) -> list[RemoteCustomRole]:
        data = self._send("GET", f"/groups/{project_id}/customDBRoles/roles")
        return [RemoteCustomRole.model_validate(item) for item in data or []]

    def create_custom_role(self, project_id: str, request: dict[str, Any]) -> RemoteCustomRole:
        return RemoteCustomRole.model_validate(
            self._send("POST", f"/groups/{project_id}/customDBRoles/roles", body=request)
        )

    def update_custom_role(
        self, project_id: str, role_name: str, request: dict[str, Any]
    ) -> RemoteCustomRole:
        return RemoteCustomRole.model_validate(
            self._send(
                "PATCH", f"/groups/{project_id}/customDBRoles/roles/{role_name}", body=request
            )
        )

    def delete_custom_role(self, project_id: str, role_name: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/customDBRoles/roles/{role_name}")

    # =========================================================================
    # Alert configurations
    # =========================================================================

    def list_alert_configurations(
        self, project_id: str, page_num: int
    ) -> Page[RemoteAlertConfiguration]:
        return self._page(f"/groups/{project_id}/alertConfigs", page_num, RemoteAlertConfiguration)

    def create_alert_configuration(
        self, project_id: str, request: dict[str, Any]
    ) -> RemoteAlertConfiguration:
        return RemoteAlertConfiguration.model_validate(
            self._send("POST", f"/groups/{project_id}/alertConfigs", body=request)
        )

    def update_alert_configuration(
        self, project_id: str, alert_id: str, request: dict[str, Any]
    ) -> RemoteAlertConfiguration:
        return RemoteAlertConfiguration.model_validate(
            self._send("PUT", f"/groups/{project_id}/alertConfigs/{alert_id}", body=request)
        )

    def delete_alert_configuration(self, project_id: str, alert_id: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/alertConfigs/{alert_id}")

    # =========================================================================
    # Third-party integrations
    # =========================================================================

    def list_integrations(self, project_id: str, page_num: int) -> Page[RemoteIntegration]:
        return self._page(f"/groups/{project_id}/integrations", page_num, RemoteIntegration)

    def create_integration(
        self, project_id: str, integration_type: str, request: dict[str, Any]
    ) -> None:
        self._send(
            "POST", f"/groups/{project_id}/integrations/{integration_type}", body=request
        )

    def update_integration(
        self, project_id: str, integration_type: str, request: dict[str, Any]
    ) -> None:
        self._send(
            "PUT", f"/groups/{project_id}/integrations/{integration_type}", body=request
        )

    def delete_integration(self, project_id: str, integration_type: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/integrations/{integration_type}")

    # =========================================================================
    # Teams
    # =========================================================================

    def get_team_by_name(self, org_id: str, team_name: str) -> RemoteTeam:
        return RemoteTeam.model_validate(
            self._send("GET", f"/orgs/{org_id}/teams/byName/{team_name}")
        )

    def create_team(self, org_id: str, team_name: str, usernames: list[str]) -> RemoteTeam:
        return RemoteTeam.model_validate(
            self._send(
                "POST", f"/orgs/{org_id}/teams", body={"name": team_name, "usernames": usernames}
            )
        )

    def list_team_users(self, org_id: str, team_id: str, page_num: int) -> Page[RemoteUser]:
        return self._page(f"/orgs/{org_id}/teams/{team_id}/users", page_num, RemoteUser)

    def remove_team_user(self, org_id: str, team_id: str, user_id: str) -> None:
        self._send("DELETE", f"/orgs/{org_id}/teams/{team_id}/users/{user_id}")

    def get_user_by_name(self, username: str) -> RemoteUser:
        return RemoteUser.model_validate(self._send("GET", f"/users/byName/{username}"))

    def add_team_users(self, org_id: str, team_id: str, user_ids: list[str]) -> None:
        self._send(
            "POST",
            f"/orgs/{org_id}/teams/{team_id}/users",
            body=[{"id": user_id} for user_id in user_ids],
        )

    def list_project_teams(self, project_id: str, page_num: int) -> Page[RemoteProjectTeam]:
        return self._page(f"/groups/{project_id}/teams", page_num, RemoteProjectTeam)

    def assign_project_teams(self, project_id: str, assignments: list[dict[str, Any]]) -> None:
        self._send("POST", f"/groups/{project_id}/teams", body=assignments)

    def update_project_team_roles(
        self, project_id: str, team_id: str, role_names: list[str]
    ) -> None:
        self._send(
            "PATCH", f"/groups/{project_id}/teams/{team_id}", body={"roleNames": role_names}
        )

    def unassign_project_team(self, project_id: str, team_id: str) -> None:
        self._send("DELETE", f"/groups/{project_id}/teams/{team_id}")
