"""
Session data models.

Typed values that cross the boundary between the session manager and its
collaborators: the protocol events the capability emits, the payloads the
gateway sends, and the read-only snapshot other components see.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel

from gateway.core.errors import DisconnectReason
from .state import ConnectionStatus, SessionState, status_for


class Identity(BaseModel):
    """Account the session is logged in as."""

    id: str
    name: Optional[str] = None

    @property
    def user(self) -> str:
        """Bare user part of the id, without device suffix or domain."""
        return self.id.split("@", 1)[0].split(":", 1)[0]


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session handed to readers."""

    state: SessionState
    identity: Optional[Identity] = None
    qr: Optional[str] = None
    generation: int = 0

    @property
    def status(self) -> ConnectionStatus:
        return status_for(self.state)

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED


@dataclass(frozen=True)
class HandleRef:
    """A live handle plus the generation it was acquired at."""

    handle: Any
    generation: int


# === Outbound payloads ===


@dataclass(frozen=True)
class TextPayload:
    """Plain text message."""

    text: str


@dataclass(frozen=True)
class ImagePayload:
    """Image with an optional caption."""

    data: bytes
    caption: Optional[str] = None


@dataclass(frozen=True)
class DocumentPayload:
    """Generic file. Carries its original name and declared media type."""

    data: bytes
    filename: str
    mimetype: str
    caption: Optional[str] = None


SendPayload = Union[TextPayload, ImagePayload, DocumentPayload]


# === Protocol events ===


@dataclass(frozen=True)
class PairingTokenUpdated:
    """A new QR pairing token is available."""

    token: str


@dataclass(frozen=True)
class ConnectionOpened:
    """The connection is open and authenticated."""

    identity: Identity


@dataclass(frozen=True)
class ConnectionClosed:
    """The connection closed."""

    reason: DisconnectReason = DisconnectReason.UNKNOWN
    detail: Optional[str] = None


@dataclass(frozen=True)
class MessageReceived:
    """A message arrived. `message` is the raw protocol payload."""

    message: dict[str, Any]


@dataclass(frozen=True)
class ReceiptUpdated:
    """A batch of delivery/read receipts."""

    updates: list[Any]


@dataclass(frozen=True)
class CredentialsUpdated:
    """Credential keys changed and must be persisted."""

    credentials: dict[str, Any]


ProtocolEvent = Union[
    PairingTokenUpdated,
    ConnectionOpened,
    ConnectionClosed,
    MessageReceived,
    ReceiptUpdated,
    CredentialsUpdated,
]

InboundEvent = Union[MessageReceived, ReceiptUpdated]
