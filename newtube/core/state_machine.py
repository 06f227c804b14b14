"""Generic State Machine for model status transitions.

This module provides a reusable state machine pattern for managing
status transitions, and the transition map for video acquisition status.

Example:
    sm = create_acquisition_state_machine("pending")

    if sm.can_transition(AcquisitionStatus.PARTIAL):
        sm.transition(AcquisitionStatus.PARTIAL)

    sm.transition_to(AcquisitionStatus.COMPLETE)
"""

from enum import Enum
from typing import Generic, TypeVar

from newtube.core.exceptions import NewTubeError

T = TypeVar("T", bound=str | Enum)

# Type alias for transition maps
TransitionMap = dict[T, list[T]]


class InvalidTransitionError(NewTubeError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, current: T, target: T, allowed: list[T] | None = None):
        self.current = current
        self.target = target
        self.allowed = allowed or []
        self.error_code = "INVALID_TRANSITION"
        allowed_str = ", ".join(str(s) for s in self.allowed) if self.allowed else "none"
        super().__init__(
            message=f"Invalid transition from '{current}' to '{target}'. "
            f"Allowed transitions: {allowed_str}",
            context={
                "current": str(current),
                "target": str(target),
                "allowed": [str(s) for s in self.allowed],
            },
        )


class StateMachine(Generic[T]):
    """Generic state machine for status transitions.

    Attributes:
        current: Current state
        transitions: Map of allowed transitions from each state
    """

    def __init__(self, initial: T, transitions: TransitionMap[T]):
        """Initialize state machine.

        Args:
            initial: Initial state
            transitions: Map of state -> list of allowed target states
        """
        self._current = initial
        self._transitions = transitions

    @property
    def current(self) -> T:
        """Get current state."""
        return self._current

    @property
    def allowed_transitions(self) -> list[T]:
        """Get list of states we can transition to from current state."""
        return self._transitions.get(self._current, [])

    def can_transition(self, target: T) -> bool:
        """Check if transition to target state is allowed.

        Args:
            target: Target state to check

        Returns:
            True if transition is allowed, False otherwise
        """
        return target in self.allowed_transitions

    def transition(self, target: T) -> None:
        """Perform transition to target state.

        Args:
            target: Target state

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(
                current=self._current,
                target=target,
                allowed=self.allowed_transitions,
            )
        self._current = target

    def transition_to(self, target: T) -> T:
        """Perform transition and return new state.

        Args:
            target: Target state

        Returns:
            The new current state (same as target)

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        self.transition(target)
        return self._current

    def __str__(self) -> str:
        return f"StateMachine(current={self._current})"

    def __repr__(self) -> str:
        return f"StateMachine(current={self._current!r}, allowed={self.allowed_transitions!r})"


# ============================================
# Acquisition Status
# ============================================


def get_acquisition_transitions() -> TransitionMap:
    """Get transition map for AcquisitionStatus.

    Progress is monotone (pending < partial < complete); the only way
    back is failed -> pending when an item is retried.
    """
    from newtube.models.video import AcquisitionStatus

    return {
        AcquisitionStatus.PENDING: [
            AcquisitionStatus.PARTIAL,
            AcquisitionStatus.COMPLETE,
            AcquisitionStatus.FAILED,
        ],
        AcquisitionStatus.PARTIAL: [AcquisitionStatus.COMPLETE, AcquisitionStatus.FAILED],
        AcquisitionStatus.COMPLETE: [],  # Terminal state
        AcquisitionStatus.FAILED: [AcquisitionStatus.PENDING],  # Allow retry
    }


def create_acquisition_state_machine(initial_status: str | None = None) -> StateMachine:
    """Create a state machine for video acquisition status.

    Args:
        initial_status: Initial status (default: PENDING)

    Returns:
        Configured StateMachine for acquisition status
    """
    from newtube.models.video import AcquisitionStatus

    initial = AcquisitionStatus(initial_status) if initial_status else AcquisitionStatus.PENDING
    return StateMachine(initial, get_acquisition_transitions())


def advance_acquisition_status(current: str | None, target: str) -> str:
    """Resolve the status to store when a fetch computed ``target``.

    A failed row is first moved back to pending. The target is applied when
    it is a legal forward step; otherwise the furthest state already reached
    is kept, so a later, poorer fetch never downgrades a video.

    Args:
        current: Stored status (None for a new row)
        target: Status computed from the latest fetch

    Returns:
        Status to persist
    """
    from newtube.models.video import AcquisitionStatus

    sm = create_acquisition_state_machine(current)
    if sm.current == AcquisitionStatus.FAILED:
        sm.transition(AcquisitionStatus.PENDING)
    target_status = AcquisitionStatus(target)
    if sm.current != target_status and sm.can_transition(target_status):
        sm.transition(target_status)
    return sm.current


__all__ = [
    "InvalidTransitionError",
    "StateMachine",
    "TransitionMap",
    "advance_acquisition_status",
    "create_acquisition_state_machine",
    "get_acquisition_transitions",
]
