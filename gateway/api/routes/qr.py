"""
QR Pairing Endpoint

Serves the current pairing token as a PNG so an operator can scan it with
the phone.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from gateway.api.deps import get_session_manager
from gateway.core.errors import QRUnavailable
from gateway.core.qr import render_qr_png
from gateway.core.session import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pairing"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get(
    "/qr",
    response_class=Response,
    summary="Pairing QR code",
    description="PNG of the current pairing token. 404 when no token is outstanding.",
    responses={
        200: {"content": {"image/png": {}}, "description": "QR code image"},
        404: {"description": "No pairing token available"},
        500: {"description": "QR rendering failed"},
    },
)
async def qr(manager: SessionManager = Depends(get_session_manager)) -> Response:
    """Render the outstanding pairing token."""
    token = manager.current_pairing_token()
    if token is None:
        raise QRUnavailable()

    png = await asyncio.to_thread(render_qr_png, token)
    return Response(content=png, media_type="image/png", headers=NO_CACHE_HEADERS)
