"""Pairing token rendering."""

import io
import logging

import qrcode

from gateway.core.errors import QRRenderError

logger = logging.getLogger(__name__)


def render_qr_png(token: str, box_size: int = 10, border: int = 4) -> bytes:
    """
    Encode a pairing token as a PNG QR code.

    Raises:
        QRRenderError: The token could not be encoded
    """
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=box_size,
            border=border,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    except Exception as e:
        logger.error(f"Error generating QR image: {e}")
        raise QRRenderError("Failed to render QR code", str(e)) from e
