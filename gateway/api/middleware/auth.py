"""
API Key Authentication

Single shared key compared against the x-api-key header. When no key is
configured the guard is disabled.

The check runs as middleware, ahead of routing and body parsing, so a
guarded request without a matching key is rejected with 401 whatever its
body looks like.
"""

import hmac
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.config import Settings
from gateway.core.errors import Unauthorized

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


def mask_api_key(api_key: str) -> str:
    """
    Mask API key for logging.

    Shows first 3 and last 3 characters.
    """
    if len(api_key) < 10:
        return "***"
    return f"{api_key[:3]}...{api_key[-3:]}"


def verify_api_key(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison (prevents timing attacks)."""
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Guards the send endpoints.

    Reads the configured key from app.state.settings on every request.
    Must run inside CORSMiddleware so preflight requests are never guarded.
    """

    # Paths that require the key
    GUARDED_PATHS: set[str] = {
        "/send",
        "/send-media",
    }

    async def dispatch(self, request: Request, call_next):
        if request.url.path not in self.GUARDED_PATHS:
            return await call_next(request)

        settings: Settings = request.app.state.settings
        if not settings.auth_enabled:
            return await call_next(request)

        api_key = request.headers.get(API_KEY_HEADER)
        if verify_api_key(api_key, settings.api_key):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        if not api_key:
            logger.warning(f"Auth failed: No API key provided | IP: {client_ip}")
        else:
            logger.warning(f"Auth failed: Invalid API key | Key: {mask_api_key(api_key)} | IP: {client_ip}")

        error = Unauthorized("Unauthorized", "x-api-key header missing or invalid")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
