"""
Session lifecycle manager.

Owns the single protocol session: connects with stored credentials, follows
the connection through pairing and open/close, persists credential updates,
and reconnects after every disconnect except an explicit logout.

One asyncio task consumes the handle's event queue, so every state mutation
happens on that task. HTTP handlers only read snapshots or call send().
"""

import asyncio
import logging
from contextlib import suppress
from typing import Any, Optional

from gateway.core.errors import DisconnectReason, LoggedOut, SendFailed, SessionUnavailable
from gateway.infra.credentials import CredentialStore, CredentialStoreError
from .models import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    HandleRef,
    Identity,
    InboundEvent,
    MessageReceived,
    PairingTokenUpdated,
    ProtocolEvent,
    ReceiptUpdated,
    SendPayload,
    SessionSnapshot,
)
from .protocol import ProtocolBackend, ProtocolHandle
from .reconnect import ExponentialBackoff, ReconnectPolicy
from .state import SessionState, can_transition, get_valid_transitions, is_terminal_state

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Single-session lifecycle owner.

    State flow:
        INIT -> AWAITING_SCAN -> CONNECTED -> CLOSED -> INIT ...
                                             CLOSED -> LOGGED_OUT (terminal)

    Every acquired or dropped handle bumps `generation`. Sends remember the
    generation they started on and fail if it moved, so a reconnect never
    silently retargets an in-flight send.

    Usage:
        manager = SessionManager(backend, FileCredentialStore("auth_info"))
        await manager.start()
        snapshot = manager.current_status()
        result = await manager.send("628123@s.whatsapp.net", TextPayload("hi"))
    """

    def __init__(
        self,
        backend: Optional[ProtocolBackend],
        store: CredentialStore,
        policy: Optional[ReconnectPolicy] = None,
    ):
        self._backend = backend
        self._store = store
        self._policy = policy or ExponentialBackoff()

        self._state = SessionState.INIT
        self._qr: Optional[str] = None
        self._identity: Optional[Identity] = None
        self._handle: Optional[ProtocolHandle] = None
        self._generation = 0
        self._credentials: dict[str, Any] = {}

        self._attempt = 0
        self.connect_attempts = 0
        self._task: Optional[asyncio.Task] = None

        # Message and receipt events for the event relay
        self.inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()

    # === Read side ===

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_status(self) -> SessionSnapshot:
        """Snapshot of the session. No side effects."""
        return SessionSnapshot(
            state=self._state,
            identity=self._identity,
            qr=self._qr,
            generation=self._generation,
        )

    def current_pairing_token(self) -> Optional[str]:
        """Current QR pairing token, if one is outstanding."""
        return self._qr

    # === Send side ===

    def acquire(self) -> HandleRef:
        """
        Reference the live handle.

        Raises:
            LoggedOut: The session is terminally logged out
            SessionUnavailable: No CONNECTED handle
        """
        if is_terminal_state(self._state):
            raise LoggedOut()
        if self._state is not SessionState.CONNECTED or self._handle is None:
            raise SessionUnavailable()
        return HandleRef(handle=self._handle, generation=self._generation)

    async def send(
        self,
        destination: str,
        payload: SendPayload,
        ref: Optional[HandleRef] = None,
    ) -> Any:
        """
        Send through the live handle.

        Args:
            destination: Fully qualified destination id
            payload: Text, image or document payload
            ref: Handle reference from acquire(); acquired now if omitted

        Returns:
            The capability's result, unchanged

        Raises:
            SessionUnavailable: No CONNECTED handle
            SendFailed: Stale ref, capability error, or the handle was
                replaced while the send was in flight
        """
        if ref is None:
            ref = self.acquire()
        elif ref.generation != self._generation:
            raise SendFailed("stale session handle")

        try:
            result = await ref.handle.send(destination, payload)
        except Exception as e:
            logger.error(f"Send to {destination} failed: {e}")
            raise SendFailed(e) from e

        if ref.generation != self._generation:
            logger.warning(f"Session changed while sending to {destination}; reporting failure")
            raise SendFailed("session reconnected while the send was in flight")

        return result

    # === Lifecycle ===

    async def start(self) -> None:
        """Start the lifecycle task. No-op without a backend."""
        if self._backend is None:
            logger.warning("No protocol backend configured - session stays disconnected")
            return
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="session-manager")

    async def stop(self) -> None:
        """Cancel the lifecycle task and abandon the handle."""
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        self._drop_handle()
        if can_transition(self._state, SessionState.CLOSED):
            self._transition(SessionState.CLOSED)
        logger.info("Session manager stopped")

    async def _run(self) -> None:
        while True:
            if self._state is SessionState.CLOSED:
                self._transition(SessionState.INIT)

            reason = await self._connect_once()
            self._drop_handle()
            if can_transition(self._state, SessionState.CLOSED):
                self._transition(SessionState.CLOSED)

            if reason.is_terminal:
                self._enter_logged_out()
                return

            self._attempt += 1
            delay = self._policy.delay(self._attempt)
            logger.info(f"Reconnecting in {delay:.1f}s (reason: {reason.value}, attempt {self._attempt})")
            await asyncio.sleep(delay)

    async def _connect_once(self) -> DisconnectReason:
        """Connect, then consume events until the connection closes."""
        try:
            self._credentials = await self._store.load()
        except Exception as e:
            logger.error(f"Loading credentials failed: {e}")
            return DisconnectReason.CONNECT_FAILED

        self.connect_attempts += 1
        try:
            handle = await self._backend.connect(dict(self._credentials))
        except Exception as e:
            logger.error(f"Connect attempt failed: {e}")
            return DisconnectReason.CONNECT_FAILED

        self._handle = handle
        self._generation += 1
        logger.info(f"Session handle acquired (generation {self._generation})")

        return await self._consume(handle)

    async def _consume(self, handle: ProtocolHandle) -> DisconnectReason:
        while True:
            event = await handle.events.get()
            if event is None:
                logger.warning("Protocol event stream ended")
                return DisconnectReason.STREAM_ENDED

            try:
                reason = await self._dispatch(event)
            except Exception:
                logger.exception(f"Failed to handle protocol event {type(event).__name__}")
                continue

            if reason is not None:
                return reason

    async def _dispatch(self, event: ProtocolEvent) -> Optional[DisconnectReason]:
        """Apply one event. Returns the reason when the connection closed."""
        if isinstance(event, PairingTokenUpdated):
            if not can_transition(self._state, SessionState.AWAITING_SCAN):
                logger.warning(f"Ignoring pairing token in state {self._state.value}")
                return None
            self._qr = event.token
            self._transition(SessionState.AWAITING_SCAN)
            logger.info("New pairing QR available at /qr")

        elif isinstance(event, ConnectionOpened):
            if not can_transition(self._state, SessionState.CONNECTED):
                logger.warning(f"Ignoring connection-open in state {self._state.value}")
                return None
            self._qr = None
            self._identity = event.identity
            self._attempt = 0
            self._transition(SessionState.CONNECTED)
            logger.info(f"Connected as {event.identity.id}")

        elif isinstance(event, ConnectionClosed):
            detail = f" ({event.detail})" if event.detail else ""
            logger.warning(f"Connection closed: {event.reason.value}{detail}")
            self._identity = None
            self._drop_handle()
            self._transition(SessionState.CLOSED)
            return event.reason

        elif isinstance(event, CredentialsUpdated):
            self._credentials.update(event.credentials)
            try:
                await self._store.save(self._credentials)
            except CredentialStoreError as e:
                logger.error(f"Credential update not persisted: {e}")

        elif isinstance(event, (MessageReceived, ReceiptUpdated)):
            self.inbound.put_nowait(event)

        else:
            logger.warning(f"Unknown protocol event: {event!r}")

        return None

    def _transition(self, to_state: SessionState) -> None:
        if not can_transition(self._state, to_state):
            allowed = sorted(s.value for s in get_valid_transitions(self._state))
            raise RuntimeError(
                f"Invalid session transition {self._state.value} -> {to_state.value} (allowed: {allowed})"
            )
        if to_state is not self._state:
            logger.debug(f"Session {self._state.value} -> {to_state.value}")
        self._state = to_state

    def _drop_handle(self) -> None:
        if self._handle is not None:
            self._handle = None
            self._generation += 1

    def _enter_logged_out(self) -> None:
        self._qr = None
        self._identity = None
        self._transition(SessionState.LOGGED_OUT)
        logger.warning("Session logged out - re-provision credentials to pair again")

    def __repr__(self) -> str:
        return f"<SessionManager(state={self._state.value}, generation={self._generation})>"
