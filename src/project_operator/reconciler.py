"""Project reconciliation and the controller loop.

A project cycle runs the category convergers strictly in order:

1. Private endpoints (service and interface conditions)
2. Cloud provider integrations
3. Network peers
4. Alert configurations
5. Third-party integrations
6. Custom roles
7. Teams

Each category writes its item statuses and its condition; a failing category
never stops the ones after it. The ownership snapshot is recorded only when
every category is ready or not configured.

The Controller periodically scans the specs directory and reconciles due
projects concurrently on a bounded worker pool, requeueing each one according
to the RetryPolicy decision of its last cycle.

SECURITY: Every project cycle is bounded by a deadline. A circuit breaker
pauses reconciliation after repeated fully failing scans.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from .alert_configurations import FAILURE_PREFIX as ALERT_FAILURE_PREFIX
from .alert_configurations import sync_alert_configurations
from .batch import DEFAULT_BATCH_LIMIT
from .client import AtlasClient
from .cloud_provider_integration import FAILURE_PREFIX as CLOUD_INTEGRATION_FAILURE_PREFIX
from .cloud_provider_integration import sync_cloud_provider_integrations
from .config import Config
from .context import ReconcileContext
from .custom_roles import FAILURE_PREFIX as CUSTOM_ROLE_FAILURE_PREFIX
from .custom_roles import sync_custom_roles
from .integrations import sync_integrations
from .models import (
    AlertConfigurationStatus,
    CloudProviderIntegrationStatus,
    Condition,
    CustomRoleStatus,
    IntegrationStatus,
    ManagedProject,
    NetworkPeerStatus,
    ProjectSpec,
    TeamStatus,
)
from .network_peering import sync_network_peers
from .ownership import OwnershipSnapshotError, owned, record, snapshot
from .private_endpoint import sync_private_endpoints
from .provenance import CategoryProvenance, get_provenance_logger
from .retry import RequeueDecision, RetryAction, RetryPolicy
from .secret_store import SecretStore
from .state import ConditionStatus, ConditionType, Outcome, Reason
from .status import Aggregate, CategoryReport, StatusAggregator, overall_ready
from .store import ProjectStore, StateStoreError
from .teams import sync_teams

logger = logging.getLogger(__name__)

# Circuit breaker constants
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes

# Lower bound between two directory scans
MIN_SCAN_WAIT_SECONDS = 1.0

CATEGORY_CONDITIONS: tuple[ConditionType, ...] = (
    ConditionType.PRIVATE_ENDPOINT_SERVICE_READY,
    ConditionType.PRIVATE_ENDPOINT_READY,
    ConditionType.CLOUD_PROVIDER_INTEGRATION_READY,
    ConditionType.NETWORK_PEER_READY,
    ConditionType.ALERT_CONFIGURATION_READY,
    ConditionType.INTEGRATION_READY,
    ConditionType.CUSTOM_ROLES_READY,
    ConditionType.TEAMS_READY,
)


@dataclass
class ReconcileResult:
    """Result of a single project reconciliation cycle."""

    project: str
    outcomes: dict[ConditionType, Outcome] = field(default_factory=dict)
    decision: RequeueDecision = field(
        default_factory=lambda: RequeueDecision(RetryAction.DONE, None)
    )
    ownership_recorded: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Every category converged or is not configured."""
        return self.error is None and all(
            o in (Outcome.READY, Outcome.UNSET) for o in self.outcomes.values()
        )

    @property
    def failed(self) -> bool:
        """The cycle needs a backoff retry."""
        return self.error is not None or self.decision.action == RetryAction.BACKOFF


CategoryStep = Callable[[ReconcileContext, ProjectSpec], Awaitable[list[tuple[ConditionType, Aggregate]]]]


class ProjectReconciler:
    """Runs one reconciliation cycle of one project."""

    def __init__(
        self,
        client: AtlasClient,
        secret_store: SecretStore,
        *,
        retry_policy: RetryPolicy | None = None,
        max_parallel_calls: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self._client = client
        self._secret_store = secret_store
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_parallel_calls = max_parallel_calls
        self._aggregator = StatusAggregator()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def _steps(self) -> list[tuple[ConditionType, Reason, CategoryStep]]:
        return [
            (
                ConditionType.PRIVATE_ENDPOINT_SERVICE_READY,
                Reason.PE_SERVICE_NOT_READY,
                self._sync_private_endpoints,
            ),
            (
                ConditionType.CLOUD_PROVIDER_INTEGRATION_READY,
                Reason.CLOUD_INTEGRATIONS_NOT_READY,
                self._sync_cloud_provider_integrations,
            ),
            (
                ConditionType.NETWORK_PEER_READY,
                Reason.NETWORK_PEER_NOT_READY,
                self._sync_network_peers,
            ),
            (
                ConditionType.ALERT_CONFIGURATION_READY,
                Reason.ALERT_CONFIGURATION_NOT_READY,
                self._sync_alert_configurations,
            ),
            (
                ConditionType.INTEGRATION_READY,
                Reason.INTEGRATION_NOT_READY,
                self._sync_integrations,
            ),
            (
                ConditionType.CUSTOM_ROLES_READY,
                Reason.CUSTOM_ROLES_NOT_READY,
                self._sync_custom_roles,
            ),
            (ConditionType.TEAMS_READY, Reason.TEAMS_NOT_READY, self._sync_teams),
        ]

    async def reconcile(
        self, ctx: ReconcileContext, consecutive_failures: int = 1
    ) -> ReconcileResult:
        """Execute a single reconciliation cycle of ctx.project.

        Args:
            ctx: Context of the project to reconcile.
            consecutive_failures: Failing cycles in a row including this one,
                used to scale the backoff.

        Returns:
            ReconcileResult with per-category outcomes and the requeue decision.
        """
        project = ctx.project
        result = ReconcileResult(project=project.metadata.key)

        provenance_logger = get_provenance_logger()
        provenance = provenance_logger.create_provenance(
            project=project.metadata.key, project_id=project.spec.project_id
        )

        try:
            aggregates = await self._run_categories(ctx)
            for condition_type, aggregate in aggregates:
                result.outcomes[condition_type] = aggregate.outcome
                provenance.categories.append(
                    CategoryProvenance(
                        condition_type=condition_type.value,
                        outcome=aggregate.outcome.value,
                        message=aggregate.condition.message,
                    )
                )

            project.status.set_condition(overall_ready(project.status.conditions))

            if result.success:
                record(project)
                result.ownership_recorded = True

            result.decision = self._retry_policy.decide(
                result.outcomes.values(), consecutive_failures
            )
        except Exception as e:
            ctx.log.exception("Reconciliation aborted", extra={"error": str(e)})
            result.error = e
            result.decision = RequeueDecision(
                RetryAction.BACKOFF, self._retry_policy.backoff_delay(consecutive_failures)
            )
            provenance.error = str(e)
            provenance.error_type = type(e).__name__
        finally:
            result.end_time = datetime.now(UTC)
            provenance.action = result.decision.action.value
            provenance.requeue_after_seconds = result.decision.delay_seconds
            provenance.ownership_recorded = result.ownership_recorded
            provenance.remote_calls = ctx.remote_calls
            provenance.duration_seconds = result.duration_seconds
            provenance_logger.log_provenance(provenance)

        return result

    async def _run_categories(
        self, ctx: ReconcileContext
    ) -> list[tuple[ConditionType, Aggregate]]:
        try:
            owned_spec = owned(ctx.project.metadata.annotations)
        except OwnershipSnapshotError as e:
            ctx.log.error("Invalid ownership snapshot", extra={"error": str(e)})
            return [
                (condition_type, self._fail(ctx, condition_type, Reason.OWNERSHIP_SNAPSHOT_INVALID, str(e)))
                for condition_type in CATEGORY_CONDITIONS
            ]

        aggregates: list[tuple[ConditionType, Aggregate]] = []
        for condition_type, reason, step in self._steps():
            try:
                aggregates.extend(await step(ctx, owned_spec))
            except Exception as e:
                # Unexpected errors fail the category; later categories still run
                ctx.log.exception(
                    "Category reconciliation failed",
                    extra={"condition_type": condition_type.value, "error": str(e)},
                )
                aggregates.append((condition_type, self._fail(ctx, condition_type, reason, str(e))))
        return aggregates

    def _fail(
        self, ctx: ReconcileContext, condition_type: ConditionType, reason: Reason, message: str
    ) -> Aggregate:
        aggregate = Aggregate(
            condition=Condition(
                type=condition_type,
                status=ConditionStatus.FALSE,
                reason=reason.value,
                message=message,
            ),
            outcome=Outcome.FAILED,
        )
        ctx.project.status.set_condition(aggregate.condition)
        return aggregate

    def _aggregate(
        self,
        ctx: ReconcileContext,
        condition_type: ConditionType,
        reason: Reason,
        report: CategoryReport,
        failure_prefix: str = "",
    ) -> tuple[ConditionType, Aggregate]:
        aggregate = self._aggregator.aggregate(
            condition_type, reason, report, failure_prefix=failure_prefix
        )
        ctx.project.status.set_condition(aggregate.condition)
        if aggregate.outcome != Outcome.UNSET:
            ctx.log.info(
                "Category reconciled",
                extra={
                    "condition_type": condition_type.value,
                    "outcome": aggregate.outcome.value,
                    "condition_message": aggregate.condition.message,
                },
            )
        return condition_type, aggregate

    # =========================================================================
    # Categories
    # =========================================================================

    async def _sync_private_endpoints(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        reports = await sync_private_endpoints(
            ctx, self._client, ctx.project.spec.private_endpoints, owned_spec.private_endpoints
        )
        ctx.project.status.private_endpoints = reports.statuses
        return [
            self._aggregate(
                ctx,
                ConditionType.PRIVATE_ENDPOINT_SERVICE_READY,
                Reason.PE_SERVICE_NOT_READY,
                reports.service,
            ),
            self._aggregate(
                ctx,
                ConditionType.PRIVATE_ENDPOINT_READY,
                Reason.PE_INTERFACE_NOT_READY,
                reports.interface,
            ),
        ]

    async def _sync_cloud_provider_integrations(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        report = await sync_cloud_provider_integrations(
            ctx,
            self._client,
            ctx.project.spec.cloud_provider_integrations,
            owned_spec.cloud_provider_integrations,
        )
        ctx.project.status.cloud_provider_integrations = [
            s for s in report.statuses if isinstance(s, CloudProviderIntegrationStatus)
        ]
        return [
            self._aggregate(
                ctx,
                ConditionType.CLOUD_PROVIDER_INTEGRATION_READY,
                Reason.CLOUD_INTEGRATIONS_NOT_READY,
                report,
                CLOUD_INTEGRATION_FAILURE_PREFIX,
            )
        ]

    async def _sync_network_peers(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        report = await sync_network_peers(
            ctx, self._client, ctx.project.spec.network_peers, owned_spec.network_peers
        )
        ctx.project.status.network_peers = [
            s for s in report.statuses if isinstance(s, NetworkPeerStatus)
        ]
        return [
            self._aggregate(
                ctx, ConditionType.NETWORK_PEER_READY, Reason.NETWORK_PEER_NOT_READY, report
            )
        ]

    async def _sync_alert_configurations(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        spec = ctx.project.spec
        report = await sync_alert_configurations(
            ctx,
            self._client,
            self._secret_store,
            spec.alert_configurations,
            owned_spec.alert_configurations,
            enabled=spec.alert_configuration_sync_enabled,
        )
        if spec.alert_configuration_sync_enabled:
            ctx.project.status.alert_configurations = [
                s for s in report.statuses if isinstance(s, AlertConfigurationStatus)
            ]
        return [
            self._aggregate(
                ctx,
                ConditionType.ALERT_CONFIGURATION_READY,
                Reason.ALERT_CONFIGURATION_NOT_READY,
                report,
                ALERT_FAILURE_PREFIX,
            )
        ]

    async def _sync_integrations(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        report = await sync_integrations(
            ctx,
            self._client,
            self._secret_store,
            ctx.project.spec.integrations,
            owned_spec.integrations,
        )
        ctx.project.status.integrations = [
            s for s in report.statuses if isinstance(s, IntegrationStatus)
        ]
        return [
            self._aggregate(
                ctx, ConditionType.INTEGRATION_READY, Reason.INTEGRATION_NOT_READY, report
            )
        ]

    async def _sync_custom_roles(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        report = await sync_custom_roles(
            ctx, self._client, ctx.project.spec.custom_roles, owned_spec.custom_roles
        )
        ctx.project.status.custom_roles = [
            s for s in report.statuses if isinstance(s, CustomRoleStatus)
        ]
        return [
            self._aggregate(
                ctx,
                ConditionType.CUSTOM_ROLES_READY,
                Reason.CUSTOM_ROLES_NOT_READY,
                report,
                CUSTOM_ROLE_FAILURE_PREFIX,
            )
        ]

    async def _sync_teams(
        self, ctx: ReconcileContext, owned_spec: ProjectSpec
    ) -> list[tuple[ConditionType, Aggregate]]:
        spec = ctx.project.spec
        report = await sync_teams(
            ctx,
            self._client,
            spec.teams,
            owned_spec.teams,
            org_id=spec.org_id,
            max_parallel=self._max_parallel_calls,
        )
        ctx.project.status.teams = [s for s in report.statuses if isinstance(s, TeamStatus)]
        return [self._aggregate(ctx, ConditionType.TEAMS_READY, Reason.TEAMS_NOT_READY, report)]


# =============================================================================
# Controller
# =============================================================================


@dataclass
class _Schedule:
    """Requeue bookkeeping of one project."""

    fingerprint: str = ""
    next_due: float = 0.0
    consecutive_failures: int = 0


class Controller:
    """Reconciles every project in the specs directory until shutdown.

    Projects are reconciled concurrently, at most worker_pool_size at a time.
    A project is due when its spec changed, when its requeue delay elapsed, or
    when the resync interval passed since it converged. Terminal projects wait
    for a spec change.
    """

    def __init__(
        self,
        config: Config,
        store: ProjectStore,
        reconciler: ProjectReconciler,
        logger_: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._reconciler = reconciler
        self._log = logger_ or logger
        self._semaphore = asyncio.Semaphore(config.worker_pool_size)
        self._schedules: dict[str, _Schedule] = {}
        self._shutdown_event = asyncio.Event()

        # Circuit breaker state
        self._consecutive_failures = 0
        self._circuit_open_until: datetime | None = None

    def schedule_of(self, key: str) -> _Schedule | None:
        return self._schedules.get(key)

    async def run(self) -> None:
        """Run the scan loop until shutdown.

        Implements circuit breaker pattern: after MAX_CONSECUTIVE_FAILURES
        scans in which every reconciled project failed, the circuit opens and
        reconciliation pauses for CIRCUIT_BREAKER_RESET_SECONDS.
        """
        self._log.info(
            "Starting controller",
            extra={
                "specs_dir": str(self._config.specs_dir),
                "worker_pool_size": self._config.worker_pool_size,
                "interval_seconds": self._config.reconcile_interval_seconds,
            },
        )

        while not self._shutdown_event.is_set():
            # Circuit breaker check
            if self._circuit_open_until is not None:
                now = datetime.now(UTC)
                if now < self._circuit_open_until:
                    remaining = (self._circuit_open_until - now).total_seconds()
                    self._log.warning(
                        "Circuit breaker open, skipping reconciliation",
                        extra={
                            "remaining_seconds": remaining,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._wait(min(remaining, self._config.reconcile_interval_seconds))
                    continue
                self._log.info("Circuit breaker reset, resuming reconciliation")
                self._circuit_open_until = None
                self._consecutive_failures = 0

            results = await self.scan_once()

            if results and all(r.failed for r in results):
                self._consecutive_failures += 1
                if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    self._circuit_open_until = datetime.now(UTC) + timedelta(
                        seconds=CIRCUIT_BREAKER_RESET_SECONDS
                    )
                    self._log.error(
                        "Circuit breaker opened after consecutive failures",
                        extra={
                            "consecutive_failures": self._consecutive_failures,
                            "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                        },
                    )
            elif results:
                self._consecutive_failures = 0

            await self._wait(self._next_wait())

        self._log.info("Controller shutdown complete")

    def shutdown(self) -> None:
        """Signal the controller to stop after in-flight projects finish."""
        self._log.info("Shutdown requested")
        self._shutdown_event.set()

    async def scan_once(self) -> list[ReconcileResult]:
        """Load every project and reconcile the due ones concurrently."""
        loop = asyncio.get_running_loop()
        projects = self._store.load_all()
        now = loop.time()

        known = {p.metadata.key for p in projects}
        for key in list(self._schedules):
            if key not in known:
                del self._schedules[key]

        due = [p for p in projects if self._is_due(p, now)]
        if not due:
            return []
        return list(await asyncio.gather(*(self.reconcile_project(p) for p in due)))

    async def reconcile_project(self, project: ManagedProject) -> ReconcileResult:
        """Reconcile one project on the worker pool and persist its state."""
        key = project.metadata.key
        schedule = self._schedules.setdefault(key, _Schedule())
        schedule.fingerprint = snapshot(project.spec)

        async with self._semaphore:
            ctx = ReconcileContext.for_project(
                project, self._log, self._config.reconcile_timeout_seconds
            )
            result = await self._reconciler.reconcile(ctx, schedule.consecutive_failures + 1)

        try:
            self._store.persist(project)
        except StateStoreError as e:
            self._log.error("Failed to persist project state", extra={"project": key, "error": str(e)})
            if result.error is None:
                result.error = e
                result.decision = RequeueDecision(
                    RetryAction.BACKOFF,
                    self._reconciler.retry_policy.backoff_delay(schedule.consecutive_failures + 1),
                )

        self._requeue(schedule, result)
        self._log_result(result)
        return result

    def _is_due(self, project: ManagedProject, now: float) -> bool:
        schedule = self._schedules.get(project.metadata.key)
        if schedule is None or schedule.fingerprint != snapshot(project.spec):
            return True
        return now >= schedule.next_due

    def _requeue(self, schedule: _Schedule, result: ReconcileResult) -> None:
        now = asyncio.get_running_loop().time()
        if result.failed:
            schedule.consecutive_failures += 1
        else:
            schedule.consecutive_failures = 0

        match result.decision.action:
            case RetryAction.TERMINAL:
                schedule.next_due = math.inf
            case RetryAction.DONE:
                schedule.next_due = now + self._config.reconcile_interval_seconds
            case _:
                schedule.next_due = now + (result.decision.delay_seconds or 0.0)

    def _next_wait(self) -> float:
        now = asyncio.get_running_loop().time()
        wait: float = self._config.reconcile_interval_seconds
        for schedule in self._schedules.values():
            wait = min(wait, schedule.next_due - now)
        return max(wait, MIN_SCAN_WAIT_SECONDS)

    async def _wait(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
        except TimeoutError:
            # Normal timeout, continue to next scan
            pass

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "project": result.project,
            "duration_seconds": result.duration_seconds,
            "action": result.decision.action.value,
            "requeue_after_seconds": result.decision.delay_seconds,
            "ownership_recorded": result.ownership_recorded,
            "outcomes": {t.value: o.value for t, o in result.outcomes.items()},
        }

        if result.error is not None:
            extra["error"] = str(result.error)
            self._log.error("Reconciliation failed", extra=extra)
        elif result.decision.action == RetryAction.BACKOFF:
            self._log.warning("Reconciliation: categories failing", extra=extra)
        elif result.decision.action == RetryAction.TERMINAL:
            self._log.warning("Reconciliation: unsupported by remote, not retrying", extra=extra)
        else:
            self._log.info("Reconciliation result", extra=extra)
