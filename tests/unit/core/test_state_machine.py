"""Unit tests for StateMachine and the acquisition status map."""

import pytest

from newtube.core.state_machine import (
    InvalidTransitionError,
    StateMachine,
    advance_acquisition_status,
    create_acquisition_state_machine,
)
from newtube.models import AcquisitionStatus


class TestStateMachine:
    """Tests for generic StateMachine."""

    @pytest.fixture
    def simple_transitions(self):
        """Create simple transition map for testing."""
        return {
            "start": ["middle", "end"],
            "middle": ["end"],
            "end": [],
        }

    @pytest.fixture
    def state_machine(self, simple_transitions):
        """Create state machine with simple transitions."""
        return StateMachine("start", simple_transitions)

    def test_initial_state(self, state_machine):
        """Test that initial state is set correctly."""
        assert state_machine.current == "start"

    def test_can_transition(self, state_machine):
        """Test can_transition for valid and unknown targets."""
        assert state_machine.can_transition("middle") is True
        assert state_machine.can_transition("nonexistent") is False

    def test_transition_invalid_raises(self, state_machine):
        """Test invalid transition raises error with context."""
        state_machine.transition("middle")

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.transition("start")

        assert exc_info.value.current == "middle"
        assert exc_info.value.target == "start"
        assert exc_info.value.allowed == ["end"]
        assert exc_info.value.context["allowed"] == ["end"]

    def test_transition_to_returns_new_state(self, state_machine):
        """Test transition_to returns the new state."""
        assert state_machine.transition_to("end") == "end"
        assert state_machine.allowed_transitions == []


class TestAcquisitionStateMachine:
    """Tests for the acquisition status transitions."""

    def test_default_is_pending(self):
        sm = create_acquisition_state_machine()
        assert sm.current == AcquisitionStatus.PENDING

    def test_progress_is_forward_only(self):
        sm = create_acquisition_state_machine("partial")
        assert sm.can_transition(AcquisitionStatus.COMPLETE)
        assert not sm.can_transition(AcquisitionStatus.PENDING)

    def test_complete_is_terminal(self):
        sm = create_acquisition_state_machine("complete")
        assert sm.allowed_transitions == []

    def test_failed_can_only_retry(self):
        sm = create_acquisition_state_machine("failed")
        assert sm.allowed_transitions == [AcquisitionStatus.PENDING]


class TestAdvanceAcquisitionStatus:
    """Tests for advance_acquisition_status."""

    @pytest.mark.parametrize(
        ("current", "target", "expected"),
        [
            (None, "partial", AcquisitionStatus.PARTIAL),
            (None, "complete", AcquisitionStatus.COMPLETE),
            ("pending", "complete", AcquisitionStatus.COMPLETE),
            ("partial", "complete", AcquisitionStatus.COMPLETE),
            ("partial", "partial", AcquisitionStatus.PARTIAL),
        ],
    )
    def test_moves_forward(self, current, target, expected):
        assert advance_acquisition_status(current, target) == expected

    def test_never_downgrades_complete(self):
        """A poorer re-fetch keeps the furthest state reached."""
        assert advance_acquisition_status("complete", "partial") == AcquisitionStatus.COMPLETE

    def test_failed_row_is_retried(self):
        assert advance_acquisition_status("failed", "partial") == AcquisitionStatus.PARTIAL
        assert advance_acquisition_status("failed", "complete") == AcquisitionStatus.COMPLETE

    def test_accepts_enum_members(self):
        result = advance_acquisition_status(AcquisitionStatus.PARTIAL, AcquisitionStatus.COMPLETE)
        assert result == AcquisitionStatus.COMPLETE
