"""Session lifecycle state machine."""

from enum import Enum
from typing import Set


class SessionState(str, Enum):
    """States of the single protocol session."""

    # Waiting for (or holding) a fresh handle
    INIT = "init"

    # Pairing token issued, waiting for the phone to scan it
    AWAITING_SCAN = "awaiting_scan"

    # Handle usable for sends
    CONNECTED = "connected"

    # Handle dropped, reconnect pending
    CLOSED = "closed"

    # Terminal
    LOGGED_OUT = "logged_out"


class ConnectionStatus(str, Enum):
    """Coarse status exposed to readers of the session."""

    CONNECTED = "connected"
    AWAITING_SCAN = "awaiting_scan"
    DISCONNECTED = "disconnected"


# Valid state transitions
VALID_TRANSITIONS: dict[SessionState, Set[SessionState]] = {
    SessionState.INIT: {
        SessionState.AWAITING_SCAN,
        SessionState.CONNECTED,
        SessionState.CLOSED,
    },
    SessionState.AWAITING_SCAN: {
        SessionState.AWAITING_SCAN,  # token refreshed
        SessionState.CONNECTED,
        SessionState.CLOSED,
    },
    SessionState.CONNECTED: {
        SessionState.CLOSED,
    },
    SessionState.CLOSED: {
        SessionState.INIT,
        SessionState.LOGGED_OUT,
    },
    SessionState.LOGGED_OUT: set(),  # Terminal state
}


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if a state transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_valid_transitions(state: SessionState) -> Set[SessionState]:
    """Get all valid transitions from a state."""
    return VALID_TRANSITIONS.get(state, set())


def is_terminal_state(state: SessionState) -> bool:
    """Check if state is terminal (no further transitions)."""
    return state is SessionState.LOGGED_OUT


def status_for(state: SessionState) -> ConnectionStatus:
    """Map a lifecycle state onto the status readers see."""
    if state is SessionState.CONNECTED:
        return ConnectionStatus.CONNECTED
    if state is SessionState.AWAITING_SCAN:
        return ConnectionStatus.AWAITING_SCAN
    return ConnectionStatus.DISCONNECTED
