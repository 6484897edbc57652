"""Private endpoint convergence.

A private endpoint has two remote parts: an endpoint service per provider and
region, created by this operator, and an interface endpoint the user sets up on
the cloud side and then declares here (by id, or endpoint group for GCP).

Two conditions are reported:
- PrivateEndpointServiceReady: every desired service is available
- PrivateEndpointReady: every configured interface is available; unset while
  services are not ready or while no endpoint is configured yet
"""

from __future__ import annotations

from dataclasses import dataclass, field

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError

from .client import AtlasClient
from .context import ReconcileContext
from .diff import compute_diff
from .models import (
    PrivateEndpoint,
    PrivateEndpointStatus,
    ProviderName,
    RemoteEndpointService,
    RemoteInterfaceEndpoint,
)
from .state import ENDPOINT_READINESS, EndpointPhase, Readiness, RemoteState, classify
from .status import CategoryReport

SERVICE_NOT_READY_MESSAGE = "Private Endpoint Service is not ready"
SERVICE_DELETING_MESSAGE = "Private Endpoint is deleting"
INTERFACE_NOT_READY_MESSAGE = "Interface Private Endpoint is not ready"
AWAITS_CONFIGURATION_MESSAGE = "Interface Private Endpoint awaits configuration"
PARTIALLY_CONFIGURED_MESSAGE = "not all interface private endpoints are fully configured"

# Interface create responses meaning the remote will never accept the request
TERMINAL_STATUS_CODES = frozenset({400, 409})


def normalize_region(region: str) -> str:
    """Regions compare as upper-case with underscores (us-east-1 == US_EAST_1)."""
    return region.upper().replace("-", "_")


def endpoint_identity(endpoint: PrivateEndpoint) -> str:
    return f"{endpoint.provider.value}{normalize_region(endpoint.region)}"


def service_identity(service: RemoteEndpointService) -> str:
    provider = service.cloud_provider.value if service.cloud_provider else ""
    return f"{provider}{normalize_region(service.region_name)}"


def endpoint_matches(endpoint: PrivateEndpoint, service: RemoteEndpointService) -> bool:
    return endpoint_identity(endpoint) == service_identity(service)


def is_deleting(service: RemoteEndpointService) -> bool:
    return classify(ENDPOINT_READINESS, service.status) == Readiness.CLOSING


def interface_id(endpoint: PrivateEndpoint) -> str:
    """Remote interface id of a configured endpoint."""
    if endpoint.provider == ProviderName.GCP:
        return endpoint.endpoint_group_name
    return endpoint.id


def needs_interface(endpoint: PrivateEndpoint, service: RemoteEndpointService) -> bool:
    """Whether the interface must be created on an available service.

    GCP interfaces are also recreated when the number of forwarding rules
    differs from the service attachments.
    """
    if not endpoint.is_configured:
        return False
    if RemoteState.parse(service.status) != RemoteState.AVAILABLE:
        return False
    present = interface_id(endpoint) in service.interface_endpoint_ids()
    if endpoint.provider == ProviderName.GCP:
        return not present or len(service.service_attachment_names) != len(endpoint.endpoints)
    return not present


def interface_request(endpoint: PrivateEndpoint) -> dict[str, object]:
    request: dict[str, object] = {}
    if endpoint.id:
        request["id"] = endpoint.id
    if endpoint.ip:
        request["privateEndpointIPAddress"] = endpoint.ip
    if endpoint.endpoint_group_name:
        request["endpointGroupName"] = endpoint.endpoint_group_name
    if endpoint.gcp_project_id:
        request["gcpProjectId"] = endpoint.gcp_project_id
    if endpoint.endpoints:
        request["endpoints"] = [e.model_dump(by_alias=True) for e in endpoint.endpoints]
    return request


def interface_availability(remote: RemoteInterfaceEndpoint) -> tuple[bool, str]:
    """Return (available, failure message) for an interface and its rules."""
    failure = remote.error_message or f"interface endpoint {remote.id} failed"
    if RemoteState.parse(remote.status) == RemoteState.FAILED:
        return False, failure
    available = RemoteState.AVAILABLE in (
        RemoteState.parse(remote.status),
        RemoteState.parse(remote.connection_status),
    )
    for rule in remote.endpoints:
        state = RemoteState.parse(rule.status)
        if state == RemoteState.FAILED:
            return False, failure
        if state != RemoteState.AVAILABLE:
            available = False
    return available, ""


@dataclass
class ServiceReadiness:
    """Readiness of one endpoint service, aggregated into the service condition."""

    identity: str
    readiness: Readiness
    error_message: str = ""
    terminal: bool = False


@dataclass
class EndpointReports:
    """Outcome of one private endpoint pass.

    Attributes:
        service: Report for the service condition.
        interface: Report for the interface condition.
        statuses: Item statuses persisted on the project.
    """

    service: CategoryReport
    interface: CategoryReport
    statuses: list[PrivateEndpointStatus] = field(default_factory=list)


async def list_endpoint_services(
    ctx: ReconcileContext, client: AtlasClient
) -> list[RemoteEndpointService]:
    """List services of every provider (the endpoint is not paginated)."""
    services: list[RemoteEndpointService] = []
    for provider in ProviderName:
        services.extend(await ctx.call(client.list_endpoint_services, ctx.project_id, provider))
    return services


async def sync_private_endpoints(
    ctx: ReconcileContext,
    client: AtlasClient,
    desired: list[PrivateEndpoint],
    owned: list[PrivateEndpoint],
) -> EndpointReports:
    """Converge endpoint services and their interfaces.

    Args:
        ctx: Reconciliation context.
        client: Remote API client.
        desired: Endpoints declared in the project spec.
        owned: Endpoints recorded by the last successful cycle.

    Returns:
        Reports for both conditions plus the item statuses.
    """
    if not desired and not owned:
        return EndpointReports(service=CategoryReport(), interface=CategoryReport())

    try:
        observed = await list_endpoint_services(ctx, client)
    except AzureError as e:
        ctx.log.error("Failed to list private endpoint services", extra={"error": str(e)})
        return EndpointReports(
            service=CategoryReport(
                desired_count=len(desired),
                errors=[f"failed to list private endpoint services: {e}"],
            ),
            interface=CategoryReport(),
            statuses=list(ctx.project.status.private_endpoints),
        )

    diff = compute_diff(
        desired,
        observed,
        owned,
        matches=endpoint_matches,
        identity=endpoint_identity,
        is_closing=is_deleting,
    )
    ctx.log.info("Private endpoint diff", extra=diff.summary())

    service_report = CategoryReport(
        desired_count=len(diff.to_create) + len(diff.matched),
        pending_message=SERVICE_NOT_READY_MESSAGE,
    )
    for service in diff.to_delete:
        await _delete_service(ctx, client, service, service_report)
    closing = [
        s for s in observed if is_deleting(s) and any(endpoint_matches(o, s) for o in owned)
    ]
    if diff.to_delete or closing:
        service_report.remnant = True
        service_report.pending_message = SERVICE_DELETING_MESSAGE

    services: list[ServiceReadiness] = []
    statuses: list[PrivateEndpointStatus] = []
    for item in diff.to_create:
        status, readiness = await _create_service(ctx, client, item)
        statuses.append(status)
        services.append(readiness)
    for service, item in diff.matched:
        status, readiness = await _sync_interface(ctx, client, service, item)
        statuses.append(status)
        services.append(readiness)
    service_report.statuses = services

    return EndpointReports(
        service=service_report,
        interface=_interface_report(service_report, statuses),
        statuses=statuses,
    )


def _interface_report(
    service_report: CategoryReport,
    statuses: list[PrivateEndpointStatus],
) -> CategoryReport:
    """Interface condition input; empty (unset) until every service is ready."""
    services_ready = (
        not service_report.errors
        and not service_report.remnant
        and all(s.readiness == Readiness.READY for s in service_report.statuses)
    )
    if not statuses or not services_ready:
        return CategoryReport()

    # With every service ready, unconfigured endpoints stop at SERVICE_AVAILABLE
    configured = [s for s in statuses if s.phase != EndpointPhase.SERVICE_AVAILABLE]
    unconfigured = len(statuses) - len(configured)
    if unconfigured:
        service_report.pending_message = AWAITS_CONFIGURATION_MESSAGE
        if not configured:
            return CategoryReport()
        return CategoryReport(
            statuses=configured,
            desired_count=len(configured),
            errors=[PARTIALLY_CONFIGURED_MESSAGE],
        )

    return CategoryReport(
        statuses=configured,
        desired_count=len(configured),
        pending_message=INTERFACE_NOT_READY_MESSAGE,
    )


async def _delete_service(
    ctx: ReconcileContext,
    client: AtlasClient,
    service: RemoteEndpointService,
    report: CategoryReport,
) -> None:
    """Delete a removed service, interfaces first.

    A service with interfaces only gets its interfaces deleted in this pass;
    the service itself goes once the remote reports none left.
    """
    provider = service.cloud_provider or ProviderName.AWS
    interfaces = service.interface_endpoint_ids()
    if interfaces:
        for endpoint_id in interfaces:
            try:
                await ctx.call(
                    client.delete_interface_endpoint,
                    ctx.project_id,
                    provider,
                    service.id,
                    endpoint_id,
                )
            except ResourceNotFoundError:
                continue
            except AzureError as e:
                ctx.log.error(
                    "Failed to delete private endpoint interface",
                    extra={"service_id": service.id, "endpoint_id": endpoint_id, "error": str(e)},
                )
                report.fail("failed to delete Private Endpoint")
        return

    try:
        await ctx.call(client.delete_endpoint_service, ctx.project_id, provider, service.id)
        ctx.log.info(
            "Deleted private endpoint service",
            extra={"provider": provider.value, "region": service.region_name},
        )
    except ResourceNotFoundError:
        ctx.log.debug("Private endpoint service already gone", extra={"service_id": service.id})
    except AzureError as e:
        ctx.log.error(
            "Failed to delete private endpoint service",
            extra={"service_id": service.id, "error": str(e)},
        )
        report.fail("failed to delete Private Endpoint Service")


def _new_status(endpoint: PrivateEndpoint, service: RemoteEndpointService) -> PrivateEndpointStatus:
    status = PrivateEndpointStatus(
        identity=endpoint_identity(endpoint),
        id=service.id,
        provider=endpoint.provider,
        region=endpoint.region,
    )
    match endpoint.provider:
        case ProviderName.AWS:
            status.service_name = service.endpoint_service_name
            status.service_resource_id = service.id
        case ProviderName.AZURE:
            status.service_name = service.private_link_service_name
            status.service_resource_id = service.private_link_service_resource_id
        case ProviderName.GCP:
            status.service_attachment_names = list(service.service_attachment_names)
    return status


async def _create_service(
    ctx: ReconcileContext, client: AtlasClient, endpoint: PrivateEndpoint
) -> tuple[PrivateEndpointStatus, ServiceReadiness]:
    identity = endpoint_identity(endpoint)
    try:
        service = await ctx.call(
            client.create_endpoint_service, ctx.project_id, endpoint.provider, endpoint.region
        )
    except AzureError as e:
        message = f"failed to create private endpoint service: {e}"
        ctx.log.error(
            "Failed to create private endpoint service",
            extra={"endpoint": identity, "error": str(e)},
        )
        status = PrivateEndpointStatus(
            identity=identity, provider=endpoint.provider, region=endpoint.region
        )
        status.advance(EndpointPhase.FAILED, message)
        return status, ServiceReadiness(identity, Readiness.FAILED, message)

    ctx.log.info("Created private endpoint service", extra={"endpoint": identity})
    service.region_name = endpoint.region
    status = _new_status(endpoint, service)
    status.advance(EndpointPhase.SERVICE_CREATED)
    return status, ServiceReadiness(identity, Readiness.PROVISIONING)


async def _sync_interface(
    ctx: ReconcileContext,
    client: AtlasClient,
    service: RemoteEndpointService,
    endpoint: PrivateEndpoint,
) -> tuple[PrivateEndpointStatus, ServiceReadiness]:
    status = _new_status(endpoint, service)
    service_readiness = classify(ENDPOINT_READINESS, service.status)
    if service_readiness == Readiness.FAILED:
        message = service.error_message or f"private endpoint service {service.id} failed"
        status.advance(EndpointPhase.FAILED, message)
        return status, ServiceReadiness(status.identity, Readiness.FAILED, message)
    if service_readiness != Readiness.READY:
        status.advance(EndpointPhase.SERVICE_CREATED)
        return status, ServiceReadiness(status.identity, Readiness.PROVISIONING)

    ready = ServiceReadiness(status.identity, Readiness.READY)
    status.advance(EndpointPhase.SERVICE_AVAILABLE)
    if not endpoint.is_configured:
        return status, ready

    status.interface_endpoint_id = interface_id(endpoint)
    if needs_interface(endpoint, service):
        await _create_interface(ctx, client, service, endpoint, status)
        return status, ready

    try:
        remote = await ctx.call(
            client.get_interface_endpoint,
            ctx.project_id,
            endpoint.provider,
            service.id,
            status.interface_endpoint_id,
        )
    except AzureError as e:
        status.advance(
            EndpointPhase.FAILED,
            f"failed to get interface endpoint {status.interface_endpoint_id}: {e}",
        )
        return status, ready

    if endpoint.provider == ProviderName.GCP:
        status.endpoints = list(remote.endpoints)
    available, failure = interface_availability(remote)
    if failure:
        status.advance(EndpointPhase.FAILED, failure)
    elif available:
        status.advance(EndpointPhase.AVAILABLE)
    else:
        status.advance(EndpointPhase.INTERFACE_CREATED)
    return status, ready


async def _create_interface(
    ctx: ReconcileContext,
    client: AtlasClient,
    service: RemoteEndpointService,
    endpoint: PrivateEndpoint,
    status: PrivateEndpointStatus,
) -> None:
    try:
        await ctx.call(
            client.create_interface_endpoint,
            ctx.project_id,
            endpoint.provider,
            service.id,
            interface_request(endpoint),
        )
    except HttpResponseError as e:
        ctx.log.error(
            "Failed to create private endpoint interface",
            extra={"endpoint": status.identity, "status_code": e.status_code, "error": str(e)},
        )
        status.advance(EndpointPhase.FAILED, f"failed to create interface endpoint: {e}")
        status.terminal = e.status_code in TERMINAL_STATUS_CODES
        return
    except AzureError as e:
        status.advance(EndpointPhase.FAILED, f"failed to create interface endpoint: {e}")
        return

    ctx.log.info(
        "Created private endpoint interface",
        extra={"endpoint": status.identity, "interface_id": status.interface_endpoint_id},
    )
    status.advance(EndpointPhase.INTERFACE_CREATED)
