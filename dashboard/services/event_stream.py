"""
EventStream — real-time channel lifecycle and inbound dispatch.

Owns the connection state machine, the room subscription and the boundary
where raw push payloads become validated, deduplicated events.

    Disconnected ──connect()──▶ Connecting ──connect──▶ Connected
         ▲  │                       │                    │    │
         │  │                 connect_error              │  disconnect
         │  │                       ▼                    │    ▼
         │  └─reconnect_attempt─▶ Reconnecting ◀─────────┘  Disconnected
         │                          │    reconnect_attempt
         └──────reconnect_failed────┤
                                 connect
                                    ▼
                                Connected

A transport-reported `disconnect` lands in Disconnected; the transport's own
retry loop then moves it to Reconnecting. Leaving Disconnected without a
local `connect()` is only allowed while the session still wants the link.

The socket client itself is injected as a Transport. Reconnection backoff is
the transport's job; the stream only reacts to what the transport reports.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from dashboard.config import settings
from dashboard.errors import ChannelError
from dashboard.models.events import INBOUND_KINDS, parse_event
from dashboard.services.store import Store
from reconciler.kernel import actions
from reconciler.kernel.dedup import RecentWindow
from reconciler.kernel.types import CONNECTED, CONNECTING, DISCONNECTED, RECONNECTING

logger = logging.getLogger(__name__)

TRANSPORT_EVENTS = ("connect", "disconnect", "connect_error", "reconnect_attempt", "reconnect_failed")

# state → allowed next states
_FSM: dict[str, set[str]] = {
    DISCONNECTED: {CONNECTING, RECONNECTING, CONNECTED},
    CONNECTING: {CONNECTED, RECONNECTING, DISCONNECTED},
    CONNECTED: {RECONNECTING, DISCONNECTED},
    RECONNECTING: {CONNECTED, RECONNECTING, DISCONNECTED},
}

EventHandler = Callable[[Any], None]
ConnectedHook = Callable[[], Awaitable[None] | None]


class Transport(Protocol):
    """
    What the stream needs from a socket client.

    `on(name, callback)` registers a callback for both transport events
    (connect, disconnect, connect_error, reconnect_attempt, reconnect_failed)
    and domain events; callbacks receive the payload (or None).
    """

    def on(self, name: str, callback: Callable[[Any], Any]) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def emit(self, name: str, data: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class RoomIdentity:
    """Who this client is, for server-side event scoping."""

    role: str
    user_id: str
    branch_id: str | None = None
    department_id: str | None = None

    def join_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "branchId": self.branch_id, "userId": self.user_id}
        if self.role == "chef":
            payload["chefId"] = self.user_id
        if self.role == "production" and self.department_id:
            payload["departmentId"] = self.department_id
        return payload


class EventStream:
    """Connection FSM plus validated, deduplicated inbound dispatch."""

    def __init__(
        self,
        transport: Transport,
        identity: RoomIdentity,
        store: Store | None = None,
        *,
        dedup_window: int | None = None,
    ):
        self._transport = transport
        self._identity = identity
        self._store = store
        self._state = DISCONNECTED
        self._wanted = False
        self._last_error: str | None = None
        self._seen = RecentWindow(dedup_window or settings.DEDUP_WINDOW_SIZE)
        self._handlers: dict[str, list[EventHandler]] = {}
        self._connected_hooks: list[ConnectedHook] = []

        self._transport.on("connect", self._on_connect)
        self._transport.on("disconnect", self._on_disconnect)
        self._transport.on("connect_error", self._on_connect_error)
        self._transport.on("reconnect_attempt", self._on_reconnect_attempt)
        self._transport.on("reconnect_failed", self._on_reconnect_failed)
        for kind in sorted(INBOUND_KINDS):
            self._transport.on(kind, self._make_inbound(kind))

    # -- state --

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == CONNECTED

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _transition(self, target: str, error: str | None = None) -> bool:
        if target not in _FSM[self._state]:
            logger.debug("event_stream: ignoring %s → %s", self._state, target)
            return False
        if self._state == DISCONNECTED and target != CONNECTING and not self._wanted:
            logger.debug("event_stream: ignoring %s after local disconnect", target)
            return False
        logger.info("event_stream: %s → %s", self._state, target)
        self._state = target
        self._last_error = error
        if self._store is not None:
            self._store.dispatch(actions.set_connection(target, error))
        return True

    # -- consumer registration --

    def subscribe(self, kind: str, handler: EventHandler) -> None:
        """Register a handler for validated events of one kind."""
        if kind not in INBOUND_KINDS:
            raise ValueError(f"unknown inbound event kind: {kind}")
        self._handlers.setdefault(kind, []).append(handler)

    def on_connected(self, hook: ConnectedHook) -> None:
        """Run `hook` after every successful (re)connection."""
        self._connected_hooks.append(hook)

    # -- lifecycle --

    async def connect(self) -> None:
        """
        Open the channel. Raises ChannelError if the transport fails outright;
        later losses are reported through the transport callbacks instead.
        """
        if not self._transition(CONNECTING):
            return
        self._wanted = True
        try:
            await self._transport.connect()
        except (OSError, RuntimeError) as e:
            self._wanted = False
            self._transition(DISCONNECTED, f"connect failed: {e}")
            raise ChannelError(f"connect failed: {e}") from e

    async def disconnect(self) -> None:
        self._wanted = False
        if self._state == DISCONNECTED:
            return
        await self._transport.disconnect()
        self._transition(DISCONNECTED)

    async def _on_connect(self, _data: Any = None) -> None:
        if not self._transition(CONNECTED):
            return
        await self._transport.emit("joinRoom", self._identity.join_payload())
        # Events missed while disconnected are not replayed; re-anchor from the server.
        for hook in list(self._connected_hooks):
            result = hook()
            if result is not None:
                await result

    def _on_disconnect(self, reason: Any = None) -> None:
        message = f"disconnected: {reason}" if reason else "disconnected"
        if self._state != DISCONNECTED:
            logger.warning("event_stream: %s", message)
            self._transition(DISCONNECTED, message)

    def _on_connect_error(self, err: Any = None) -> None:
        message = f"connect error: {err}"
        logger.warning("event_stream: %s", message)
        if self._state == CONNECTING:
            self._transition(RECONNECTING, message)
        else:
            self._last_error = message
            if self._store is not None:
                self._store.dispatch(actions.set_connection(self._state, message))

    def _on_reconnect_attempt(self, attempt: Any = None) -> None:
        self._transition(RECONNECTING, f"reconnecting (attempt {attempt})" if attempt else "reconnecting")

    def _on_reconnect_failed(self, _data: Any = None) -> None:
        self._transition(DISCONNECTED, "reconnect failed")

    # -- inbound --

    def _make_inbound(self, kind: str) -> Callable[[Any], None]:
        def handler(data: Any = None) -> None:
            self.receive(kind, data)

        return handler

    def receive(self, kind: str, data: Any) -> bool:
        """
        Validate, dedup and hand one raw payload to subscribers.

        Returns True if the event reached consumers.
        """
        if not self.is_connected:
            logger.debug("event_stream: %s dropped while %s", kind, self._state)
            return False

        try:
            event = parse_event(kind, data)
        except PydanticValidationError as e:
            logger.warning("event_stream: dropping malformed %s: %s", kind, e.errors()[:1])
            return False

        if not self._seen.check_and_add(event.event_id):
            logger.debug("event_stream: duplicate %s %s", kind, event.event_id)
            return False

        for handler in list(self._handlers.get(kind, [])):
            handler(event)
        return True

    # -- outbound --

    async def emit(self, name: str, data: dict[str, Any]) -> bool:
        """Send an event, stamping an eventId. Refused while not connected."""
        if not self.is_connected:
            logger.warning("event_stream: cannot emit %s while %s", name, self._state)
            return False
        payload = dict(data)
        payload.setdefault("eventId", str(uuid.uuid4()))
        # Our own emissions may be echoed back by the server.
        self._seen.check_and_add(payload["eventId"])
        await self._transport.emit(name, payload)
        return True


class LoopbackTransport:
    """
    In-memory transport for tests and local runs.

    `simulate(name, data)` delivers a server-side event to the registered
    callbacks; emitted messages are recorded in `sent`.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callable[[Any], Any]]] = {}
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.connected = False
        self.auto_connect = True

    def on(self, name: str, callback: Callable[[Any], Any]) -> None:
        self._callbacks.setdefault(name, []).append(callback)

    async def simulate(self, name: str, data: Any = None) -> None:
        if name == "connect":
            self.connected = True
        elif name in ("disconnect", "reconnect_failed"):
            self.connected = False
        for callback in list(self._callbacks.get(name, [])):
            result = callback(data)
            if isinstance(result, Awaitable):
                await result

    async def connect(self) -> None:
        if self.auto_connect:
            await self.simulate("connect")

    async def disconnect(self) -> None:
        self.connected = False

    async def emit(self, name: str, data: dict[str, Any]) -> None:
        self.sent.append((name, data))

    def sent_named(self, name: str) -> list[dict[str, Any]]:
        return [data for sent_name, data in self.sent if sent_name == name]
