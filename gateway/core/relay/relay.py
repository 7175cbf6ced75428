"""
Inbound event relay.

Consumes message and receipt events the session manager queues, answers
"ping" with "pong", and forwards events to the webhook sink. Each event is
handled in isolation: a malformed payload, a failed reply or an unreachable
webhook is logged and the relay moves on to the next event.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Optional

from gateway.core.errors import GatewayError
from gateway.core.session import MessageReceived, ReceiptUpdated, SessionManager, TextPayload
from gateway.core.session.models import InboundEvent
from .extract import ExtractedMessage, extract_message, is_ping
from .webhook import WebhookClient

logger = logging.getLogger(__name__)

PONG = "pong"


def _user_part(jid: str) -> str:
    return jid.split("@", 1)[0].split(":", 1)[0]


class EventRelay:
    """
    Single consumer of SessionManager.inbound.

    Per message event, in order:
    1. Skip messages the session itself authored
    2. Extract remoteJid, type and text
    3. Auto-reply "pong" to "ping" (awaited)
    4. Schedule webhook delivery (not awaited)
    """

    def __init__(
        self,
        session_manager: SessionManager,
        webhook: Optional[WebhookClient] = None,
        auto_reply: bool = True,
    ):
        self._manager = session_manager
        self._webhook = webhook
        self.auto_reply = auto_reply
        self._task: Optional[asyncio.Task] = None

    @property
    def webhook(self) -> Optional[WebhookClient]:
        return self._webhook

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="event-relay")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while True:
            event = await self._manager.inbound.get()
            await self.handle_event(event)

    async def handle_event(self, event: InboundEvent) -> None:
        """Process one event. Never raises."""
        try:
            if isinstance(event, MessageReceived):
                await self._handle_message(event)
            elif isinstance(event, ReceiptUpdated):
                self._handle_receipt(event)
            else:
                logger.warning(f"Relay ignoring unexpected event {event!r}")
        except Exception:
            logger.exception(f"Failed to relay {type(event).__name__}")

    async def _handle_message(self, event: MessageReceived) -> None:
        msg = extract_message(event.message)

        if self._is_self_authored(msg):
            logger.debug(f"Skipping self-authored message in {msg.remote_jid}")
            return

        if self.auto_reply and is_ping(msg.text):
            await self._reply(msg.remote_jid, PONG)

        if self._webhook is not None:
            self._webhook.deliver({
                "event": "message",
                "remoteJid": msg.remote_jid,
                "type": msg.type,
                "text": msg.text,
                "message": event.message,
            })

    def _handle_receipt(self, event: ReceiptUpdated) -> None:
        if self._webhook is not None:
            self._webhook.deliver({"event": "receipt", "updates": event.updates})

    def _is_self_authored(self, msg: ExtractedMessage) -> bool:
        if msg.from_me:
            return True
        identity = self._manager.current_status().identity
        return identity is not None and _user_part(msg.sender) == identity.user

    async def _reply(self, to: str, text: str) -> None:
        try:
            await self._manager.send(to, TextPayload(text))
            logger.info(f"Auto-replied {text!r} to {to}")
        except GatewayError as e:
            logger.warning(f"Auto-reply to {to} failed: {e.message} {e.detail or ''}".rstrip())
