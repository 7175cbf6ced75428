"""
Protocol session capability interface.

The messaging-protocol engine is an external collaborator. The session
manager only needs three things from it: a way to open a connection with
stored credentials, a send operation on the open connection, and a queue of
typed events describing what the connection is doing.

Backends are plugged in by import path:

    PROTOCOL_BACKEND=my_engine.gateway:create_backend

where `create_backend(settings)` returns a ProtocolBackend.
"""

import asyncio
import importlib
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from gateway.config import Settings
from .models import ProtocolEvent, SendPayload

logger = logging.getLogger(__name__)


@runtime_checkable
class ProtocolHandle(Protocol):
    """One live connection.

    `events` is the explicit channel the session manager consumes. The
    handle puts events on it in the order they happen; the manager is its
    only reader. None on the queue means the stream ended without a close
    event.
    """

    events: "asyncio.Queue[Optional[ProtocolEvent]]"

    async def send(self, destination: str, payload: SendPayload) -> Any:
        """Send a payload. Returns the engine's result verbatim."""
        ...


@runtime_checkable
class ProtocolBackend(Protocol):
    """Factory for connections."""

    async def connect(self, credentials: dict[str, Any]) -> ProtocolHandle:
        """Open a new connection using the given credential blob."""
        ...


def load_backend(path: str, settings: Settings) -> Optional[ProtocolBackend]:
    """
    Import and build the configured protocol backend.

    Args:
        path: "package.module:factory"; empty returns None
        settings: Passed to the factory

    Raises:
        ValueError: Malformed path or the factory returned something that
            is not a ProtocolBackend
    """
    if not path:
        return None

    if ":" not in path:
        raise ValueError(f"PROTOCOL_BACKEND must look like 'module:factory', got {path!r}")

    module_path, factory_name = path.rsplit(":", 1)
    module = importlib.import_module(module_path)
    factory = getattr(module, factory_name)

    backend = factory(settings)
    if not isinstance(backend, ProtocolBackend):
        raise ValueError(f"{path} did not return a ProtocolBackend")

    logger.info(f"Protocol backend loaded from {path}")
    return backend
