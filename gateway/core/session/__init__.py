"""
Protocol session module.

Owns the single messaging-protocol session: state machine, credential
persistence, reconnect policy and the versioned send handle.
"""

from .state import ConnectionStatus, SessionState, can_transition, is_terminal_state
from .models import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    DocumentPayload,
    HandleRef,
    Identity,
    ImagePayload,
    MessageReceived,
    PairingTokenUpdated,
    ProtocolEvent,
    ReceiptUpdated,
    SendPayload,
    SessionSnapshot,
    TextPayload,
)
from .protocol import ProtocolBackend, ProtocolHandle, load_backend
from .reconnect import (
    ExponentialBackoff,
    ImmediateReconnect,
    ReconnectPolicy,
    get_reconnect_policy,
)
from .manager import SessionManager

__all__ = [
    # State
    "ConnectionStatus",
    "SessionState",
    "can_transition",
    "is_terminal_state",
    # Models
    "ConnectionClosed",
    "ConnectionOpened",
    "CredentialsUpdated",
    "DocumentPayload",
    "HandleRef",
    "Identity",
    "ImagePayload",
    "MessageReceived",
    "PairingTokenUpdated",
    "ProtocolEvent",
    "ReceiptUpdated",
    "SendPayload",
    "SessionSnapshot",
    "TextPayload",
    # Protocol
    "ProtocolBackend",
    "ProtocolHandle",
    "load_backend",
    # Reconnect
    "ExponentialBackoff",
    "ImmediateReconnect",
    "ReconnectPolicy",
    "get_reconnect_policy",
    # Manager
    "SessionManager",
]
