"""Tests for alert configuration convergence."""

from collections.abc import Callable
from typing import Any

import pytest
from atlas_mock import InMemorySecretStore, MockAtlasClient, MockAtlasState, http_error

from project_operator.alert_configurations import (
    alert_request,
    alerts_match,
    sync_alert_configurations,
)
from project_operator.context import ReconcileContext
from project_operator.models import AlertConfiguration, RemoteAlertConfiguration
from project_operator.secret_store import SecretNotFoundError
from project_operator.state import ApplyPhase

HIGH_CPU: dict[str, Any] = {
    "enabled": True,
    "eventTypeName": "OUTSIDE_METRIC_THRESHOLD",
    "metricThreshold": {
        "metricName": "NORMALIZED_SYSTEM_CPU_USER",
        "operator": "GREATER_THAN",
        "threshold": "90.5",
        "units": "RAW",
        "mode": "AVERAGE",
    },
    "notifications": [
        {"typeName": "EMAIL", "emailAddress": "oncall@example.com", "intervalMin": 5}
    ],
}

REMOTE_HIGH_CPU: dict[str, Any] = {
    **HIGH_CPU,
    "metricThreshold": {**HIGH_CPU["metricThreshold"], "threshold": 90.5},
    "notifications": [{**HIGH_CPU["notifications"][0], "delayMin": 0, "emailEnabled": True}],
}

PAGER: dict[str, Any] = {
    "enabled": True,
    "eventTypeName": "HOST_DOWN",
    "notifications": [{"typeName": "PAGER_DUTY", "serviceKeyRef": {"name": "pagerduty"}}],
}


def alerts(*items: dict[str, Any]) -> list[AlertConfiguration]:
    return [AlertConfiguration.model_validate(item) for item in items]


@pytest.fixture
def secrets() -> InMemorySecretStore:
    return InMemorySecretStore({("team-a", "pagerduty"): {"ServiceKey": "pd-key"}})


class TestMatching:
    """Tests for content matching against the remote representation."""

    def test_numeric_threshold_matches_decimal_string(self) -> None:
        remote = RemoteAlertConfiguration.model_validate(REMOTE_HIGH_CPU)

        assert alerts_match(alerts(HIGH_CPU)[0], remote)

    def test_different_threshold_does_not_match(self) -> None:
        remote = RemoteAlertConfiguration.model_validate(
            {**REMOTE_HIGH_CPU, "metricThreshold": {**REMOTE_HIGH_CPU["metricThreshold"], "threshold": 80}}
        )

        assert not alerts_match(alerts(HIGH_CPU)[0], remote)

    def test_unknown_remote_enabled_does_not_match(self) -> None:
        data = {k: v for k, v in REMOTE_HIGH_CPU.items() if k != "enabled"}

        assert not alerts_match(alerts(HIGH_CPU)[0], RemoteAlertConfiguration.model_validate(data))

    def test_redacted_secret_is_not_compared(self) -> None:
        remote = RemoteAlertConfiguration.model_validate(
            {**PAGER, "notifications": [{"typeName": "PAGER_DUTY", "serviceKey": "****"}]}
        )

        assert alerts_match(alerts(PAGER)[0], remote)


class TestRequest:
    def test_secrets_are_resolved_from_project_namespace(self, secrets: InMemorySecretStore) -> None:
        request = alert_request(alerts(PAGER)[0], secrets, "team-a")

        assert request["notifications"] == [{"typeName": "PAGER_DUTY", "serviceKey": "pd-key"}]

    def test_threshold_is_sent_as_number(self, secrets: InMemorySecretStore) -> None:
        request = alert_request(alerts(HIGH_CPU)[0], secrets, "team-a")

        assert request["metricThreshold"]["threshold"] == 90.5

    def test_missing_secret(self) -> None:
        with pytest.raises(SecretNotFoundError):
            alert_request(alerts(PAGER)[0], InMemorySecretStore(), "team-a")


class TestSync:
    """Tests for applying alert configurations against the Atlas mock."""

    @pytest.mark.asyncio
    async def test_disabled_sync_does_nothing(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(HIGH_CPU), [], enabled=False
        )

        assert atlas_state.calls == []
        assert report.statuses == []
        assert report.desired_count == 0

    @pytest.mark.asyncio
    async def test_creates_missing_configuration(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(HIGH_CPU), [], enabled=True
        )

        (alert_id,) = atlas_state.alerts
        (status,) = report.statuses
        assert status.phase == ApplyPhase.OK
        assert status.id == alert_id
        assert status.event_type_name == "OUTSIDE_METRIC_THRESHOLD"

    @pytest.mark.asyncio
    async def test_matching_configuration_is_not_touched(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        record = atlas_state.add_alert(**REMOTE_HIGH_CPU)

        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(HIGH_CPU), [], enabled=True
        )

        assert atlas_state.calls == ["list_alert_configurations"]
        assert report.statuses[0].id == record["id"]

    @pytest.mark.asyncio
    async def test_secret_backed_configuration_is_resent(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        """Redacted credentials can't be compared, so the configuration is PUT."""
        record = atlas_state.add_alert(
            eventTypeName="HOST_DOWN",
            notifications=[{"typeName": "PAGER_DUTY", "serviceKey": "rotated-away"}],
        )

        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(PAGER), [], enabled=True
        )

        assert atlas_state.call_count("create_alert_configuration") == 0
        assert atlas_state.alerts[record["id"]]["notifications"][0]["serviceKey"] == "pd-key"
        assert report.statuses[0].phase == ApplyPhase.OK

    @pytest.mark.asyncio
    async def test_missing_secret_fails_the_item(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
    ) -> None:
        report = await sync_alert_configurations(
            make_ctx(), atlas_client, InMemorySecretStore(), alerts(PAGER, HIGH_CPU), [], enabled=True
        )

        assert [s.phase for s in report.statuses] == [ApplyPhase.FAILED, ApplyPhase.OK]
        assert atlas_state.call_count("create_alert_configuration") == 1

    @pytest.mark.asyncio
    async def test_invalid_threshold_fails_the_item(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        bad = {**HIGH_CPU, "metricThreshold": {**HIGH_CPU["metricThreshold"], "threshold": "high"}}

        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(bad), [], enabled=True
        )

        (status,) = report.statuses
        assert status.phase == ApplyPhase.FAILED
        assert status.error_message.startswith("failed to parse atlas alert configuration:")
        assert atlas_state.call_count("create_alert_configuration") == 0

    @pytest.mark.asyncio
    async def test_create_error_is_reported(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        atlas_state.inject_error("create_alert_configuration", http_error(400, "INVALID_METRIC"))

        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, alerts(HIGH_CPU), [], enabled=True
        )

        assert report.statuses[0].error_message == (
            "failed to create atlas alert configuration: INVALID_METRIC"
        )

    @pytest.mark.asyncio
    async def test_owned_configuration_is_deleted(
        self,
        make_ctx: Callable[..., ReconcileContext],
        atlas_client: MockAtlasClient,
        atlas_state: MockAtlasState,
        secrets: InMemorySecretStore,
    ) -> None:
        owned = atlas_state.add_alert(**REMOTE_HIGH_CPU)
        foreign = atlas_state.add_alert(eventTypeName="JOINED_GROUP")

        report = await sync_alert_configurations(
            make_ctx(), atlas_client, secrets, [], alerts(HIGH_CPU), enabled=True
        )

        assert owned["id"] not in atlas_state.alerts
        assert foreign["id"] in atlas_state.alerts
        assert not report.errors
