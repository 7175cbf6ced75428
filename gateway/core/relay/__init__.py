"""
Event relay module.

Forwards inbound protocol events to the webhook sink and applies the
ping/pong auto-reply.
"""

from .extract import ExtractedMessage, extract_message, is_ping
from .webhook import WebhookClient
from .relay import EventRelay

__all__ = [
    "ExtractedMessage",
    "extract_message",
    "is_ping",
    "WebhookClient",
    "EventRelay",
]
