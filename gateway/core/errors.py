"""
Gateway error taxonomy.

Request-scoped failures carry the HTTP status they surface as; the exception
handlers in gateway.main turn them into JSON responses. Protocol-layer
failures never reach callers: they become state transitions in the session
manager or log lines in the event relay.
"""

from enum import Enum
from typing import Optional

from fastapi import status


class DisconnectReason(str, Enum):
    """Why the protocol connection closed."""

    LOGGED_OUT = "logged_out"
    CONNECTION_LOST = "connection_lost"
    CONNECTION_CLOSED = "connection_closed"
    TIMED_OUT = "timed_out"
    RESTART_REQUIRED = "restart_required"
    CONNECT_FAILED = "connect_failed"
    STREAM_ENDED = "stream_ended"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """Only an explicit logout stops the reconnect loop."""
        return self is DisconnectReason.LOGGED_OUT


class GatewayError(Exception):
    """Base class for errors surfaced over HTTP."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Response body for this error."""
        body = {"ok": False, "error": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(GatewayError):
    """Missing or malformed request fields."""

    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(GatewayError):
    """Missing or mismatched API key."""

    status_code = status.HTTP_401_UNAUTHORIZED


class SessionUnavailable(GatewayError):
    """No CONNECTED session handle."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "WhatsApp session not ready", detail: Optional[str] = None):
        super().__init__(message, detail)


class LoggedOut(SessionUnavailable):
    """The session was logged out; credentials must be re-provisioned."""

    def __init__(self):
        super().__init__(
            "WhatsApp session logged out",
            "Re-provision credentials and restart the gateway",
        )


class SendFailed(GatewayError):
    """The capability rejected or raised during send."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, cause: object):
        super().__init__("Failed to send message", str(cause))
        self.cause = cause


class QRUnavailable(GatewayError):
    """No pairing token is outstanding."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "No QR code available", detail: Optional[str] = None):
        super().__init__(message, detail)


class QRRenderError(GatewayError):
    """A pairing token exists but could not be encoded as PNG."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class RelayDeliveryFailed(Exception):
    """Webhook unreachable or timed out. Logged by the relay, never surfaced."""

    def __init__(self, url: str, cause: object):
        super().__init__(f"Webhook delivery to {url} failed: {cause}")
        self.url = url
        self.cause = cause
