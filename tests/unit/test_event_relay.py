"""Tests for the inbound event relay."""

import json

import httpx
import pytest

from gateway.core.relay import EventRelay, WebhookClient
from gateway.core.session import MessageReceived, ReceiptUpdated, TextPayload
from tests.fakes import OWN_ID, WEBHOOK_URL, bring_online, wait_until

PEER = "62899@s.whatsapp.net"


def _message(text="hello", remote_jid=PEER, from_me=False, **key):
    return MessageReceived({
        "key": {"remoteJid": remote_jid, "fromMe": from_me, "id": "3EB0", **key},
        "message": {"conversation": text},
        "pushName": "Peer",
    })


def _bodies(requests):
    return [json.loads(r.content) for r in requests]


class TestMessageRelay:
    """Test message event handling."""

    @pytest.mark.asyncio
    async def test_forwards_message(self, manager, backend, webhook, webhook_requests):
        await bring_online(manager, backend)
        relay = EventRelay(manager, webhook=webhook)
        event = _message("hello")

        await relay.handle_event(event)
        await webhook.drain()

        assert _bodies(webhook_requests) == [{
            "event": "message",
            "remoteJid": PEER,
            "type": "text",
            "text": "hello",
            "message": event.message,
        }]
        assert backend.handle.sent == []

    @pytest.mark.asyncio
    async def test_forwards_image_with_binary_thumbnail(self, manager, webhook, webhook_requests):
        relay = EventRelay(manager, webhook=webhook)
        event = MessageReceived({
            "key": {"remoteJid": PEER, "fromMe": False, "id": "3EB1"},
            "message": {
                "imageMessage": {
                    "caption": "receipt",
                    "mimetype": "image/jpeg",
                    "jpegThumbnail": b"\xff\xd8\xff\xe0",
                },
            },
        })

        await relay.handle_event(event)
        await webhook.drain()

        assert len(webhook_requests) == 1
        body = _bodies(webhook_requests)[0]
        assert body["type"] == "image"
        assert body["text"] == "receipt"
        assert body["message"]["message"]["imageMessage"]["jpegThumbnail"] == "/9j/4A=="

    @pytest.mark.asyncio
    async def test_ping_gets_pong(self, manager, backend, webhook, webhook_requests):
        await bring_online(manager, backend)
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(_message("  PING "))
        await webhook.drain()

        assert backend.handle.sent == [(PEER, TextPayload("pong"))]
        assert len(webhook_requests) == 1
        assert _bodies(webhook_requests)[0]["text"] == "  PING "

    @pytest.mark.asyncio
    async def test_auto_reply_disabled(self, manager, backend, webhook):
        await bring_online(manager, backend)
        relay = EventRelay(manager, webhook=webhook, auto_reply=False)

        await relay.handle_event(_message("ping"))

        assert backend.handle.sent == []

    @pytest.mark.asyncio
    async def test_from_me_skipped(self, manager, backend, webhook, webhook_requests):
        await bring_online(manager, backend)
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(_message("ping", from_me=True))
        await webhook.drain()

        assert backend.handle.sent == []
        assert webhook_requests == []

    @pytest.mark.asyncio
    async def test_own_identity_skipped(self, manager, backend, webhook, webhook_requests):
        await bring_online(manager, backend, identity_id="62811:4@s.whatsapp.net")
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(_message("ping", remote_jid="1203630@g.us", participant=OWN_ID))
        await webhook.drain()

        assert backend.handle.sent == []
        assert webhook_requests == []

    @pytest.mark.asyncio
    async def test_reply_failure_does_not_block_webhook(self, manager, backend, webhook, webhook_requests):
        await bring_online(manager, backend)
        backend.handle.send_error = RuntimeError("rate limited")
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(_message("ping"))
        await webhook.drain()

        assert len(backend.handle.sent) == 1
        assert len(webhook_requests) == 1

    @pytest.mark.asyncio
    async def test_ping_while_disconnected(self, manager, webhook, webhook_requests):
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(_message("ping"))
        await webhook.drain()

        assert len(webhook_requests) == 1

    @pytest.mark.asyncio
    async def test_malformed_event_contained(self, manager, webhook, webhook_requests):
        relay = EventRelay(manager, webhook=webhook)

        await relay.handle_event(MessageReceived({"message": {"conversation": "no key"}}))
        await webhook.drain()

        assert webhook_requests == []

    @pytest.mark.asyncio
    async def test_no_webhook_configured(self, manager, backend):
        await bring_online(manager, backend)
        relay = EventRelay(manager, webhook=None)

        await relay.handle_event(_message("ping"))
        await relay.handle_event(ReceiptUpdated([{"id": 1}]))

        assert backend.handle.sent == [(PEER, TextPayload("pong"))]


class TestReceiptRelay:
    @pytest.mark.asyncio
    async def test_forwards_receipts(self, manager, webhook, webhook_requests):
        relay = EventRelay(manager, webhook=webhook)
        updates = [{"key": {"id": "3EB0"}, "receipt": {"readTimestamp": 1700000000}}]

        await relay.handle_event(ReceiptUpdated(updates))
        await webhook.drain()

        assert _bodies(webhook_requests) == [{"event": "receipt", "updates": updates}]


class TestRelayLoop:
    """Test the consumer task."""

    @pytest.mark.asyncio
    async def test_consumes_manager_queue(self, manager, backend, webhook, webhook_requests):
        relay = EventRelay(manager, webhook=webhook)
        await relay.start()
        await bring_online(manager, backend)

        backend.handle.emit(_message("first"))
        backend.handle.emit(MessageReceived({}))  # malformed, must not stop the loop
        backend.handle.emit(_message("ping"))

        await wait_until(lambda: len(backend.handle.sent) == 1)
        await wait_until(lambda: len(webhook_requests) == 2)
        await relay.stop()

        assert [b["text"] for b in _bodies(webhook_requests)] == ["first", "ping"]

    @pytest.mark.asyncio
    async def test_unreachable_webhook_keeps_loop_alive(self, manager, backend):
        def unreachable(request):
            raise httpx.ConnectError("refused", request=request)

        webhook = WebhookClient(WEBHOOK_URL, transport=httpx.MockTransport(unreachable))
        relay = EventRelay(manager, webhook=webhook)
        await relay.start()
        await bring_online(manager, backend)

        backend.handle.emit(_message("ping"))
        backend.handle.emit(_message("ping"))

        await wait_until(lambda: len(backend.handle.sent) == 2)
        await webhook.drain()
        await relay.stop()
        await webhook.aclose()
