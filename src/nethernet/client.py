# src/nethernet/client.py
"""
NetherNet session client.

Signaling runs over the LAN discovery socket: the client sends its offer
as a CONNECTREQUEST discovery message addressed to the host's server id and
applies the CONNECTRESPONSE answer and CANDIDATEADD candidates it receives
back. Game packets then travel over two WebRTC data channels, segmented to
fit the channel's message size.

The WebRTC stack itself is injected through the PeerConnection protocol.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Callable, Mapping, Optional, Protocol, Tuple

from bot_core.lan_network import DatagramSocket
from bot_core.net.client import EventEmitterClient, PacketCodec
from bot_core.net.session_options import ClientOptions
from monitoring.logger import FieldLogger

from .discovery_packets import DiscoveryMessage, decode_discovery_packet, encode_discovery_packet
from .lan_discovery import RECV_BUFFER_BYTES, create_udp_socket
from .segmentation import MAX_SEGMENT_BYTES, SegmentationError, SegmentReassembler, split_payload

log = logging.getLogger(__name__)

RELIABLE_CHANNEL_LABEL = "ReliableDataChannel"
UNRELIABLE_CHANNEL_LABEL = "UnreliableDataChannel"
DEFAULT_SDP_MID = "0"
MESSAGE_SEPARATOR = " "
PACKET_LOG_SAMPLE_LIMIT = 5
MAX_SIGNALS_PER_TICK = 64


class DataChannel(Protocol):
    label: str

    def is_open(self) -> bool:
        ...

    def max_message_size(self) -> int:
        ...

    def send(self, data: bytes) -> bool:
        ...

    def close(self) -> None:
        ...

    def on_open(self, callback: Callable[[], None]) -> None:
        ...

    def on_closed(self, callback: Callable[[], None]) -> None:
        ...

    def on_error(self, callback: Callable[[str], None]) -> None:
        ...

    def on_message(self, callback: Callable[[bytes], None]) -> None:
        ...


class PeerConnection(Protocol):
    def create_data_channel(self, label: str, *, reliable: bool) -> DataChannel:
        ...

    def create_offer(self) -> str:
        ...

    def set_remote_answer(self, sdp: str) -> None:
        ...

    def add_remote_candidate(self, candidate: str, mid: str) -> None:
        ...

    def on_local_candidate(self, callback: Callable[[str, str], None]) -> None:
        ...

    def on_state_change(self, callback: Callable[[str], None]) -> None:
        ...

    def close(self) -> None:
        ...


PeerConnectionFactory = Callable[[], PeerConnection]


def parse_signal(message: str) -> Optional[Tuple[str, str, str]]:
    """Split "TYPE SESSION DATA..." into its parts, or None if malformed."""
    parts = message.split(MESSAGE_SEPARATOR)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1], MESSAGE_SEPARATOR.join(parts[2:])


class NethernetClient(EventEmitterClient):
    """Session client over WebRTC data channels negotiated through LAN signaling."""

    def __init__(
        self,
        options: ClientOptions,
        logger: FieldLogger,
        server_id: int,
        client_id: int,
        *,
        codec: PacketCodec,
        peer_factory: PeerConnectionFactory,
        socket_factory: Callable[[], DatagramSocket] = create_udp_socket,
    ) -> None:
        super().__init__(codec)
        self.options = options
        self.server_id = server_id
        self.client_id = client_id
        self.session_id = secrets.randbits(64)
        self.connected = False
        self._logger = logger
        self._peer_factory = peer_factory
        self._socket_factory = socket_factory
        self._sock: Optional[DatagramSocket] = None
        self._peer: Optional[PeerConnection] = None
        self._reliable: Optional[DataChannel] = None
        self._unreliable: Optional[DataChannel] = None
        self._mid = DEFAULT_SDP_MID
        self._started = False
        self._sent_logs = 0
        self._received_logs = 0

    # ------------------------------------------------------------------
    # SessionClient protocol
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if self._started:
            return
        self._started = True

        sock = self._socket_factory()
        sock.bind(("", 0))
        sock.settimeout(0.0)
        self._sock = sock

        peer = self._peer_factory()
        self._peer = peer
        peer.on_local_candidate(self._handle_local_candidate)
        peer.on_state_change(self._handle_state_change)

        self._reliable = peer.create_data_channel(RELIABLE_CHANNEL_LABEL, reliable=True)
        self._unreliable = peer.create_data_channel(UNRELIABLE_CHANNEL_LABEL, reliable=False)
        for channel in (self._reliable, self._unreliable):
            self._register_channel(channel, SegmentReassembler())

        offer = peer.create_offer()
        self._send_signal(f"CONNECTREQUEST {self.session_id} {offer}")
        self._logger.info({"event": "nethernet_offer", "sessionId": str(self.session_id)}, "NetherNet offer created")

    def tick(self) -> None:
        if self.closed or self._sock is None:
            return
        for _ in range(MAX_SIGNALS_PER_TICK):
            try:
                data, _remote = self._sock.recvfrom(RECV_BUFFER_BYTES)
            except (BlockingIOError, TimeoutError):
                break
            except OSError as exc:
                self._logger.error({"event": "nethernet_socket_error", "error": str(exc)}, "NetherNet socket error")
                self.disconnect("NetherNet socket error")
                return
            self._handle_signal_datagram(data)

    def queue(self, name: str, params: Mapping[str, Any]) -> None:
        # NetherNet has no batching; queued packets go out immediately.
        self.write(name, params)

    def disconnect(self, reason: str = "client disconnect") -> None:
        if self.closed:
            return
        self.connected = False
        for channel in (self._reliable, self._unreliable):
            if channel is not None:
                channel.close()
        if self._peer is not None:
            self._peer.close()
        if self._sock is not None:
            self._sock.close()
        self._sock = None
        self._mark_closed(reason)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _send_payload(self, payload: bytes) -> None:
        channel = self._reliable
        if channel is None or not channel.is_open():
            log.debug("Reliable channel not open; dropping %d bytes", len(payload))
            return
        if self._sent_logs < PACKET_LOG_SAMPLE_LIMIT:
            self._sent_logs += 1
            self._logger.debug(
                {"event": "nethernet_send", "label": channel.label, "bytes": len(payload), "hexPrefix": payload[:8].hex()},
                "NetherNet outbound packet",
            )
        max_segment = min(MAX_SEGMENT_BYTES, max(1, channel.max_message_size() - 1))
        for segment in split_payload(payload, max_segment):
            if not channel.send(segment):
                self.disconnect("NetherNet send failed")
                return

    def _send_signal(self, message: str) -> None:
        if self._sock is None:
            return
        packet = encode_discovery_packet(self.client_id, DiscoveryMessage(recipient_id=self.server_id, message=message))
        self._sock.sendto(packet, (self.options.host, self.options.port))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _register_channel(self, channel: DataChannel, reassembler: SegmentReassembler) -> None:
        label = channel.label

        def on_open() -> None:
            self._logger.info({"event": "nethernet_channel_open", "label": label}, "NetherNet data channel open")
            self._maybe_mark_connected()

        def on_closed() -> None:
            self._logger.info({"event": "nethernet_channel_closed", "label": label}, "NetherNet data channel closed")
            self.disconnect("NetherNet channel closed")

        def on_error(error: str) -> None:
            self._logger.error({"event": "nethernet_channel_error", "label": label, "error": error}, "NetherNet data channel error")
            self.disconnect("NetherNet channel error")

        def on_message(message: bytes) -> None:
            self._handle_channel_message(label, message, reassembler)

        channel.on_open(on_open)
        channel.on_closed(on_closed)
        channel.on_error(on_error)
        channel.on_message(on_message)

    def _maybe_mark_connected(self) -> None:
        if self.connected:
            return
        if self._reliable is None or not self._reliable.is_open():
            return
        if self._unreliable is None or not self._unreliable.is_open():
            return
        self.connected = True
        self._logger.info({"event": "nethernet_connected", "sessionId": str(self.session_id)}, "NetherNet transport ready")
        self.write("login", self.options.as_dict())

    def _handle_channel_message(self, label: str, message: bytes, reassembler: SegmentReassembler) -> None:
        try:
            completed = reassembler.consume(message)
        except SegmentationError as exc:
            self._logger.error({"event": "nethernet_segment_error", "label": label, "error": str(exc)}, "NetherNet segment error")
            self.disconnect("NetherNet segment error")
            return
        if completed is None:
            return
        if self._received_logs < PACKET_LOG_SAMPLE_LIMIT:
            self._received_logs += 1
            self._logger.debug(
                {"event": "nethernet_receive", "label": label, "bytes": len(completed), "hexPrefix": completed[:8].hex()},
                "NetherNet inbound packet",
            )
        self.dispatch_payload(completed)

    def _handle_signal_datagram(self, data: bytes) -> None:
        decoded = decode_discovery_packet(data)
        if decoded is None or not isinstance(decoded.packet, DiscoveryMessage):
            return
        if decoded.packet.recipient_id != self.client_id:
            return
        parsed = parse_signal(decoded.packet.message)
        if parsed is None:
            return
        kind, session_id, payload = parsed
        if session_id != str(self.session_id) or self._peer is None:
            return
        if kind == "CONNECTRESPONSE":
            self._peer.set_remote_answer(payload)
            self._logger.info({"event": "nethernet_answer"}, "NetherNet answer received")
        elif kind == "CANDIDATEADD":
            self._peer.add_remote_candidate(payload, self._mid or DEFAULT_SDP_MID)

    def _handle_local_candidate(self, candidate: str, mid: str) -> None:
        self._mid = mid or DEFAULT_SDP_MID
        self._send_signal(f"CANDIDATEADD {self.session_id} {candidate}")

    def _handle_state_change(self, state: str) -> None:
        if state in ("failed", "closed"):
            self.disconnect(f"NetherNet peer state: {state}")
