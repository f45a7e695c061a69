# session client protocol and shared event plumbing
# src/bot_core/net/client.py
"""
Client abstraction for bedcraft sessions.

Defines the SessionClient protocol the runtime talks to, the PacketCodec
protocol the wire layer plugs into, and EventEmitterClient, the shared base
that both transports build on.

Events emitted by live clients:
    - "<packet name>" (params): every decoded inbound packet
    - "join" (): login accepted by the server
    - "spawn" (): the player spawned in the world
    - "close" (reason): the session ended
    - "error" (exc): a transport or session failure
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Protocol, Tuple

log = logging.getLogger(__name__)

# Type alias for event handlers.
EventHandler = Callable[..., None]

PLAY_STATUS_PACKET = "play_status"
PLAY_STATUS_EVENTS = {
    "login_success": "join",
    "player_spawn": "spawn",
}


class PacketCodec(Protocol):
    """
    Wire-protocol encoder/decoder supplied by the caller.

    encode() turns a named packet into one transport payload; decode() does
    the reverse and returns (packet_name, params).
    """

    def encode(self, name: str, params: Mapping[str, Any]) -> bytes:
        ...

    def decode(self, data: bytes) -> Tuple[str, Mapping[str, Any]]:
        ...


class SessionClient(Protocol):
    """
    Live session handle returned by the session factory.

    Implementations:
    - RaknetClient (direct UDP transport)
    - NethernetClient (WebRTC data-channel transport)
    """

    def connect(self) -> None:
        """Open the transport and start the login handshake."""
        ...

    def tick(self) -> None:
        """Pump inbound data, dispatch events and flush queued packets."""
        ...

    def write(self, name: str, params: Mapping[str, Any]) -> None:
        """Encode and send one packet immediately."""
        ...

    def queue(self, name: str, params: Mapping[str, Any]) -> None:
        """Buffer a packet until the next flush."""
        ...

    def disconnect(self, reason: str = "client disconnect") -> None:
        """Close the session; safe to call more than once."""
        ...

    def on(self, event: str, handler: EventHandler) -> None:
        """Register a handler for an event name."""
        ...

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every handler registered for an event name."""
        ...


class EventEmitterClient:
    """
    Handler registry plus outbound queue shared by both transports.

    Subclasses implement _send_payload() and call dispatch_payload() for
    every complete inbound payload.
    """

    def __init__(self, codec: PacketCodec) -> None:
        self._codec = codec
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._queued: List[Tuple[str, Mapping[str, Any]]] = []
        self.closed: bool = False

    # ------------------------------------------------------------------
    # Event registration
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                log.exception("Error in session handler for %s", event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def write(self, name: str, params: Mapping[str, Any]) -> None:
        if self.closed:
            log.debug("Dropping %s on closed session", name)
            return
        self._send_payload(self._codec.encode(name, params))

    def queue(self, name: str, params: Mapping[str, Any]) -> None:
        if self.closed:
            return
        self._queued.append((name, params))

    def flush(self) -> None:
        queued, self._queued = self._queued, []
        for name, params in queued:
            self.write(name, params)

    def _send_payload(self, payload: bytes) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def dispatch_payload(self, payload: bytes) -> None:
        try:
            name, params = self._codec.decode(payload)
        except Exception as exc:
            # Codec failures surface as session errors; the runtime decides severity.
            self.emit("error", exc)
            return
        self.emit(name, params)
        if name == PLAY_STATUS_PACKET:
            derived = PLAY_STATUS_EVENTS.get(str(params.get("status")))
            if derived is not None:
                self.emit(derived)

    def _mark_closed(self, reason: str) -> bool:
        """Flip to closed once; returns False if already closed."""
        if self.closed:
            return False
        self.closed = True
        self._queued.clear()
        self.emit("close", reason)
        return True
