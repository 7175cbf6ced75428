"""Tests for the HTTP surface."""

import io
from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from gateway.core.errors import QRRenderError
from gateway.core.session import (
    DocumentPayload,
    ImagePayload,
    PairingTokenUpdated,
    SessionState,
    TextPayload,
)
from tests.fakes import OWN_ID, bring_online, wait_until

DEST = "628123456789@s.whatsapp.net"


def _upload_dir_empty(settings) -> bool:
    path = Path(settings.upload_dir)
    return not path.exists() or not any(path.iterdir())


class TestRoot:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"


class TestHealth:
    """Test GET /health."""

    @pytest.mark.asyncio
    async def test_disconnected(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "disconnected", "user": None}

    @pytest.mark.asyncio
    async def test_awaiting_scan(self, client, manager, backend):
        await manager.start()
        await wait_until(lambda: backend.handles)
        backend.handle.emit(PairingTokenUpdated("ABC123"))
        await wait_until(lambda: manager.state is SessionState.AWAITING_SCAN)

        response = await client.get("/health")

        assert response.json() == {"status": "scan_qr", "user": None}

    @pytest.mark.asyncio
    async def test_connected(self, client, manager, backend):
        await bring_online(manager, backend)

        response = await client.get("/health")

        assert response.json() == {"status": "connected", "user": {"id": OWN_ID, "name": "Gateway"}}

    @pytest.mark.asyncio
    async def test_live(self, client):
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestQr:
    """Test GET /qr."""

    @pytest.mark.asyncio
    async def test_no_token(self, client):
        response = await client.get("/qr")

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "No QR code available"}

    @pytest.mark.asyncio
    async def test_renders_token(self, client, manager, backend):
        await manager.start()
        await wait_until(lambda: backend.handles)
        backend.handle.emit(PairingTokenUpdated("ABC123"))
        await wait_until(lambda: manager.current_pairing_token() == "ABC123")

        response = await client.get("/qr")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert "no-store" in response.headers["cache-control"]
        assert Image.open(io.BytesIO(response.content)).format == "PNG"

    @pytest.mark.asyncio
    async def test_render_failure(self, client, manager, backend):
        await manager.start()
        await wait_until(lambda: backend.handles)
        backend.handle.emit(PairingTokenUpdated("ABC123"))
        await wait_until(lambda: manager.current_pairing_token() == "ABC123")

        with patch(
            "gateway.api.routes.qr.render_qr_png",
            side_effect=QRRenderError("Failed to render QR code", "encoder exploded"),
        ):
            response = await client.get("/qr")

        assert response.status_code == 500
        assert response.json() == {
            "ok": False,
            "error": "Failed to render QR code",
            "detail": "encoder exploded",
        }


class TestSend:
    """Test POST /send."""

    @pytest.mark.asyncio
    async def test_sends_text(self, client, manager, backend):
        await bring_online(manager, backend)

        response = await client.post("/send", json={"to": "628123456789", "message": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["result"]["key"]["remoteJid"] == DEST
        assert backend.handle.sent == [(DEST, TextPayload("hi"))]

    @pytest.mark.asyncio
    async def test_qualified_destination_unchanged(self, client, manager, backend):
        await bring_online(manager, backend)

        await client.post("/send", json={"to": "1203630@g.us", "message": "hi"})

        assert backend.handle.sent == [("1203630@g.us", TextPayload("hi"))]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"message": "hi"},
            {"to": "628123456789"},
            {"to": "", "message": "hi"},
            {"to": "628123456789", "message": ""},
            {"to": "abc", "message": "hi"},
        ],
    )
    async def test_missing_fields(self, client, manager, backend, body):
        await bring_online(manager, backend)

        response = await client.post("/send", json=body)

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert backend.handle.sent == []

    @pytest.mark.asyncio
    async def test_malformed_json(self, client):
        response = await client.post(
            "/send",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid request"}

    @pytest.mark.asyncio
    async def test_not_connected(self, client, backend):
        response = await client.post("/send", json={"to": "628123456789", "message": "hi"})

        assert response.status_code == 503
        assert response.json()["error"] == "WhatsApp session not ready"
        assert backend.connect_calls == 0

    @pytest.mark.asyncio
    async def test_send_failure(self, client, manager, backend):
        await bring_online(manager, backend)
        backend.handle.send_error = RuntimeError("recipient not on WhatsApp")

        response = await client.post("/send", json={"to": "628123456789", "message": "hi"})

        assert response.status_code == 500
        assert response.json()["ok"] is False
        assert response.json()["detail"] == "recipient not on WhatsApp"


class TestAuth:
    """Test the API key guard."""

    @pytest.mark.asyncio
    async def test_open_without_key(self, client, manager, backend):
        await bring_online(manager, backend)

        response = await client.post("/send", json={"to": "628123456789", "message": "hi"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"x-api-key": "wrong"}])
    async def test_rejects_bad_key(self, client, settings, manager, backend, headers):
        settings.api_key = "s3cret-key-value"
        await bring_online(manager, backend)

        response = await client.post(
            "/send",
            json={"to": "628123456789", "message": "hi"},
            headers=headers,
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"
        assert backend.handle.sent == []

    @pytest.mark.asyncio
    async def test_rejects_before_parsing_body(self, client, settings):
        settings.api_key = "s3cret-key-value"

        response = await client.post(
            "/send",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 401
        assert response.json() == {
            "ok": False,
            "error": "Unauthorized",
            "detail": "x-api-key header missing or invalid",
        }

    @pytest.mark.asyncio
    async def test_malformed_body_with_key_is_400(self, client, settings):
        settings.api_key = "s3cret-key-value"

        response = await client.post(
            "/send",
            content=b"{not json",
            headers={"content-type": "application/json", "x-api-key": "s3cret-key-value"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_preflight_not_guarded(self, client, settings):
        settings.api_key = "s3cret-key-value"

        response = await client.options("/send")

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_accepts_key(self, client, settings, manager, backend):
        settings.api_key = "s3cret-key-value"
        await bring_online(manager, backend)

        response = await client.post(
            "/send",
            json={"to": "628123456789", "message": "hi"},
            headers={"x-api-key": "s3cret-key-value"},
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_guards_media(self, client, settings):
        settings.api_key = "s3cret-key-value"

        response = await client.post(
            "/send-media",
            data={"to": "628123456789"},
            files={"file": ("a.txt", b"x", "text/plain")},
        )

        assert response.status_code == 401
        assert _upload_dir_empty(settings)

    @pytest.mark.asyncio
    async def test_health_is_open(self, client, settings):
        settings.api_key = "s3cret-key-value"

        response = await client.get("/health")

        assert response.status_code == 200


class TestSendMedia:
    """Test POST /send-media."""

    @pytest.mark.asyncio
    async def test_image(self, client, manager, backend, settings):
        await bring_online(manager, backend)

        response = await client.post(
            "/send-media",
            data={"to": "628123456789", "caption": "look"},
            files={"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 200
        assert backend.handle.sent == [(DEST, ImagePayload(data=b"\xff\xd8jpeg", caption="look"))]
        assert _upload_dir_empty(settings)

    @pytest.mark.asyncio
    async def test_document(self, client, manager, backend, settings):
        await bring_online(manager, backend)

        response = await client.post(
            "/send-media",
            data={"to": "628123456789"},
            files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 200
        assert backend.handle.sent == [
            (DEST, DocumentPayload(data=b"%PDF-1.4", filename="invoice.pdf", mimetype="application/pdf"))
        ]
        assert _upload_dir_empty(settings)

    @pytest.mark.asyncio
    async def test_missing_file(self, client, manager, backend, settings):
        await bring_online(manager, backend)

        response = await client.post("/send-media", data={"to": "628123456789"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing field: file"
        assert backend.handle.sent == []

    @pytest.mark.asyncio
    async def test_missing_to_cleans_up(self, client, manager, backend, settings):
        await bring_online(manager, backend)

        response = await client.post(
            "/send-media",
            files={"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 400
        assert backend.handle.sent == []
        assert _upload_dir_empty(settings)

    @pytest.mark.asyncio
    async def test_not_connected_cleans_up(self, client, settings):
        response = await client.post(
            "/send-media",
            data={"to": "628123456789"},
            files={"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 503
        assert _upload_dir_empty(settings)

    @pytest.mark.asyncio
    async def test_send_failure_cleans_up(self, client, manager, backend, settings):
        await bring_online(manager, backend)
        backend.handle.send_error = RuntimeError("media upload rejected")

        response = await client.post(
            "/send-media",
            data={"to": "628123456789"},
            files={"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "media upload rejected"
        assert _upload_dir_empty(settings)


class TestCors:
    @pytest.mark.asyncio
    async def test_preflight(self, client):
        response = await client.options(
            "/send",
            headers={"Origin": "http://example.com", "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_headers_on_responses(self, client):
        response = await client.get("/health")

        assert response.headers["access-control-allow-origin"] == "*"


class TestLifespan:
    """Test startup and shutdown wiring."""

    @pytest.mark.asyncio
    async def test_backend_from_settings(self, settings):
        from gateway.main import create_app

        settings.protocol_backend = "tests.fakes:create_backend"
        app = create_app(settings=settings)
        manager = app.state.session_manager

        async with app.router.lifespan_context(app):
            await wait_until(lambda: manager.connect_attempts == 1)
            assert manager.is_running

        assert not manager.is_running
        assert manager.state is SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_starts_without_backend(self, settings):
        from gateway.main import create_app

        app = create_app(settings=settings)

        async with app.router.lifespan_context(app):
            assert app.state.session_manager.current_status().state is SessionState.INIT
            assert app.state.event_relay.webhook is None
