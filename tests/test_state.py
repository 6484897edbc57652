"""Tests for remote state parsing, classification tables and state machines."""

import pytest

from project_operator.state import (
    APPLY_MACHINE,
    ENDPOINT_READINESS,
    INTEGRATION_MACHINE,
    PEER_MACHINE,
    PEER_READINESS,
    ApplyPhase,
    IntegrationPhase,
    InvalidTransitionError,
    PeerPhase,
    Readiness,
    RemoteState,
    StateMachine,
    classify,
)


class TestRemoteState:
    """Tests for parsing raw remote state strings."""

    def test_known_state(self) -> None:
        assert RemoteState.parse("AVAILABLE") == RemoteState.AVAILABLE

    def test_case_insensitive(self) -> None:
        assert RemoteState.parse("pending_acceptance") == RemoteState.PENDING_ACCEPTANCE

    @pytest.mark.parametrize("value", [None, "", "SOMETHING_NEW"])
    def test_unrecognized_is_unknown(self, value: str | None) -> None:
        assert RemoteState.parse(value) == RemoteState.UNKNOWN


class TestClassification:
    """Tests for the per-category readiness tables."""

    def test_tables_cover_every_state(self) -> None:
        for table in (PEER_READINESS, ENDPOINT_READINESS):
            assert set(table) == set(RemoteState)

    def test_peer_states(self) -> None:
        assert classify(PEER_READINESS, "AVAILABLE") == Readiness.READY
        assert classify(PEER_READINESS, "FAILED") == Readiness.FAILED
        assert classify(PEER_READINESS, "REJECTED") == Readiness.FAILED
        assert classify(PEER_READINESS, "TERMINATING") == Readiness.CLOSING
        assert classify(PEER_READINESS, "PENDING_ACCEPTANCE") == Readiness.PROVISIONING

    def test_endpoint_states(self) -> None:
        assert classify(ENDPOINT_READINESS, "ACTIVE") == Readiness.READY
        assert classify(ENDPOINT_READINESS, "DELETING") == Readiness.CLOSING
        assert classify(ENDPOINT_READINESS, "WAITING_FOR_USER") == Readiness.PROVISIONING

    def test_unknown_state_is_provisioning(self) -> None:
        """A state the operator has never seen must not count as ready or failed."""
        assert classify(PEER_READINESS, "BRAND_NEW_STATE") == Readiness.PROVISIONING


class TestStateMachine:
    """Tests for declared phase transitions."""

    def test_declared_transition(self) -> None:
        assert PEER_MACHINE.transition(PeerPhase.NEW, PeerPhase.PEER_CREATED) == PeerPhase.PEER_CREATED

    def test_self_transition_is_allowed(self) -> None:
        assert APPLY_MACHINE.transition(ApplyPhase.OK, ApplyPhase.OK) == ApplyPhase.OK

    def test_undeclared_transition_raises(self) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            INTEGRATION_MACHINE.transition(IntegrationPhase.AUTHORIZED, IntegrationPhase.CREATED)

        assert "Authorized -> Created" in str(exc_info.value)

    def test_readiness_of_phase(self) -> None:
        assert INTEGRATION_MACHINE.readiness_of(IntegrationPhase.AUTHORIZED) == Readiness.READY
        assert INTEGRATION_MACHINE.readiness_of(IntegrationPhase.DEAUTHORIZE) == Readiness.CLOSING
        assert APPLY_MACHINE.readiness_of(ApplyPhase.FAILED) == Readiness.FAILED

    def test_incomplete_table_rejected(self) -> None:
        with pytest.raises(ValueError, match="readiness table misses"):
            StateMachine(
                name="broken",
                transitions={phase: frozenset() for phase in ApplyPhase},
                readiness={ApplyPhase.OK: Readiness.READY},
            )
