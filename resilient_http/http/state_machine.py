"""Per-call retry state machine."""

from enum import Enum, auto
from typing import ClassVar


class CallState(Enum):
    """States of one logical request.

    State transitions:
        ATTEMPT -> SUCCESS: A terminal response was received
        ATTEMPT -> RETRY: Retryable outcome with attempts remaining
        ATTEMPT -> FAILURE: Transport error that will not be retried
        RETRY -> ATTEMPT: Backoff elapsed, request is resent
    """

    ATTEMPT = auto()
    RETRY = auto()
    SUCCESS = auto()
    FAILURE = auto()


class CallStateError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: CallState, to_state: CallState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition: {from_state.name} -> {to_state.name}"
        )


class CallStateMachine:
    """State machine for one logical call and its retries.

    Counts attempts and refuses to start more than ``max_attempts``.
    """

    VALID_TRANSITIONS: ClassVar[dict[CallState, set[CallState]]] = {
        CallState.ATTEMPT: {CallState.SUCCESS, CallState.RETRY, CallState.FAILURE},
        CallState.RETRY: {CallState.ATTEMPT},
        CallState.SUCCESS: set(),  # Terminal state
        CallState.FAILURE: set(),  # Terminal state
    }

    def __init__(self, max_attempts: int) -> None:
        """Initialize the state machine in ATTEMPT state (first attempt).

        Args:
            max_attempts: Upper bound on attempts (max_retries + 1).
        """
        self._state = CallState.ATTEMPT
        self._attempt = 1
        self._max_attempts = max(1, max_attempts)

    @property
    def state(self) -> CallState:
        """Get the current state."""
        return self._state

    @property
    def attempt(self) -> int:
        """Current attempt number (1-indexed)."""
        return self._attempt

    def can_transition(self, to_state: CallState) -> bool:
        """Check if a transition to the given state is valid."""
        if to_state not in self.VALID_TRANSITIONS.get(self._state, set()):
            return False
        if to_state == CallState.RETRY:
            return self._attempt < self._max_attempts
        return True

    def transition(self, to_state: CallState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            CallStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            raise CallStateError(self._state, to_state)
        if self._state == CallState.RETRY and to_state == CallState.ATTEMPT:
            self._attempt += 1
        self._state = to_state

    def is_terminal(self) -> bool:
        """Check if the call has finished."""
        return self._state in (CallState.SUCCESS, CallState.FAILURE)
