# src/bot_core/net/raknet_client.py
"""
Direct UDP transport client.

RaknetClient owns one UDP socket bound to the server address and moves
codec payloads over it. RakNet framing, reliability and the game's login
handshake are the PacketCodec's concern; this class only handles the
socket, the handler registry and the session lifecycle.
"""

from __future__ import annotations

import logging
import socket
from threading import Lock
from typing import Callable, Optional

from ..errors import SessionError
from .client import EventEmitterClient, PacketCodec
from .session_options import ClientOptions

log = logging.getLogger(__name__)

RECV_BUFFER_BYTES = 65535
MAX_DATAGRAMS_PER_TICK = 256

SocketFactory = Callable[[], socket.socket]


def _create_udp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


class RaknetClient(EventEmitterClient):
    """
    Session client for the direct transport.

    connect() opens the socket and sends the codec's "login" packet;
    tick() drains pending datagrams without blocking and flushes queued
    packets.
    """

    def __init__(
        self,
        options: ClientOptions,
        codec: PacketCodec,
        *,
        socket_factory: SocketFactory = _create_udp_socket,
    ) -> None:
        super().__init__(codec)
        self.options = options
        self._socket_factory = socket_factory
        self._sock: Optional[socket.socket] = None
        self._lock = Lock()

    # ------------------------------------------------------------------
    # SessionClient protocol
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the UDP socket and send the login request."""
        if self._sock is not None:
            return

        log.info("RaknetClient connecting to %s:%d", self.options.host, self.options.port)
        sock = self._socket_factory()
        try:
            sock.connect((self.options.host, self.options.port))
            sock.setblocking(False)
        except OSError as exc:
            sock.close()
            raise SessionError(
                code="connect_failed",
                details={"host": self.options.host, "port": self.options.port, "error": str(exc)},
            ) from exc

        self._sock = sock
        self.write("login", self.options.as_dict())

    def disconnect(self, reason: str = "client disconnect") -> None:
        """Close the socket and emit "close" once."""
        with self._lock:
            if not self._mark_closed(reason):
                return
            log.info("RaknetClient disconnecting: %s", reason)
            try:
                if self._sock is not None:
                    self._sock.close()
            finally:
                self._sock = None

    def tick(self) -> None:
        if self.closed or self._sock is None:
            return

        for _ in range(MAX_DATAGRAMS_PER_TICK):
            try:
                data = self._sock.recv(RECV_BUFFER_BYTES)
            except BlockingIOError:
                break
            except OSError as exc:
                self._fail("receive_failed", exc)
                return
            self.dispatch_payload(data)
            if self.closed:
                return

        self.flush()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send_payload(self, payload: bytes) -> None:
        if self._sock is None:
            raise SessionError(code="not_connected", details={"host": self.options.host})
        try:
            self._sock.send(payload)
        except OSError as exc:
            self._fail("send_failed", exc)

    def _fail(self, code: str, exc: OSError) -> None:
        error = SessionError(code=code, details={"error": str(exc)})
        log.error("RaknetClient %s: %s", code, exc)
        self.emit("error", error)
        self.disconnect(code)
