"""Normalization of raw inbound message payloads."""

from dataclasses import dataclass
from typing import Any, Optional

# Raw content key -> normalized type
CONTENT_TYPES: dict[str, str] = {
    "conversation": "text",
    "extendedTextMessage": "text",
    "imageMessage": "image",
    "videoMessage": "video",
    "audioMessage": "audio",
    "documentMessage": "document",
    "documentWithCaptionMessage": "document",
    "stickerMessage": "sticker",
    "locationMessage": "location",
    "liveLocationMessage": "location",
    "contactMessage": "contact",
    "contactsArrayMessage": "contact",
    "reactionMessage": "reaction",
}

# Envelopes whose `message` field holds the real content
WRAPPER_KEYS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "documentWithCaptionMessage",
)

UNKNOWN_TYPE = "unknown"


@dataclass(frozen=True)
class ExtractedMessage:
    """What the relay needs out of a raw message."""

    remote_jid: str
    sender: str
    from_me: bool
    type: str
    text: str


def _unwrap(content: dict[str, Any]) -> dict[str, Any]:
    while True:
        inner = next(
            (content[key]["message"] for key in WRAPPER_KEYS
             if isinstance(content.get(key), dict) and isinstance(content[key].get("message"), dict)),
            None,
        )
        if inner is None:
            return content
        content = inner


def content_type(content: dict[str, Any]) -> str:
    """First recognized content key, normalized."""
    for key in content:
        if key in CONTENT_TYPES:
            return CONTENT_TYPES[key]
    return UNKNOWN_TYPE


def message_text(content: dict[str, Any]) -> str:
    """First non-empty of plain text, extended text, image caption."""
    candidates: list[Optional[Any]] = [
        content.get("conversation"),
        (content.get("extendedTextMessage") or {}).get("text"),
        (content.get("imageMessage") or {}).get("caption"),
    ]
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return ""


def extract_message(raw: dict[str, Any]) -> ExtractedMessage:
    """
    Pull origin, type and text out of a raw message.

    Raises:
        ValueError: The payload has no usable key.remoteJid
    """
    key = raw.get("key") or {}
    remote_jid = key.get("remoteJid")
    if not isinstance(remote_jid, str) or not remote_jid:
        raise ValueError("message has no key.remoteJid")

    content = raw.get("message")
    content = _unwrap(content) if isinstance(content, dict) else {}

    return ExtractedMessage(
        remote_jid=remote_jid,
        sender=key.get("participant") or remote_jid,
        from_me=bool(key.get("fromMe")),
        type=content_type(content),
        text=message_text(content),
    )


def is_ping(text: str) -> bool:
    """Auto-reply trigger: the literal word "ping"."""
    return text.strip().casefold() == "ping"
