# tests/test_nethernet_client.py
"""
Tests for nethernet.client.NethernetClient.

Covers:
- connect sends a CONNECTREQUEST signal to the server id
- answer / candidates applied only for our session id
- local candidates forwarded as CANDIDATEADD
- login written once both channels are open
- outbound segmentation and inbound reassembly
- channel close / peer failure disconnect once
"""

from __future__ import annotations

import json
from typing import Callable, Dict, List, Optional, Tuple

from bot_core.net.session_options import ClientOptions
from bot_core.testing.fakes import FakeCodec, RecordingFieldLogger
from nethernet.client import NethernetClient, parse_signal
from nethernet.discovery_packets import DiscoveryMessage, decode_discovery_packet, encode_discovery_packet
from nethernet.segmentation import split_payload

SERVER_ID = 1111
CLIENT_ID = 2222


class FakeChannel:
    def __init__(self, label: str, max_size: int = 262144) -> None:
        self.label = label
        self.open = False
        self.max_size = max_size
        self.sent: List[bytes] = []
        self.closed = False
        self.callbacks: Dict[str, Callable] = {}

    def is_open(self) -> bool:
        return self.open

    def max_message_size(self) -> int:
        return self.max_size

    def send(self, data: bytes) -> bool:
        self.sent.append(data)
        return True

    def close(self) -> None:
        self.closed = True

    def on_open(self, callback) -> None:
        self.callbacks["open"] = callback

    def on_closed(self, callback) -> None:
        self.callbacks["closed"] = callback

    def on_error(self, callback) -> None:
        self.callbacks["error"] = callback

    def on_message(self, callback) -> None:
        self.callbacks["message"] = callback

    def fire_open(self) -> None:
        self.open = True
        self.callbacks["open"]()


class FakePeer:
    def __init__(self) -> None:
        self.channels: Dict[str, FakeChannel] = {}
        self.answers: List[str] = []
        self.candidates: List[Tuple[str, str]] = []
        self.closed = False
        self.local_candidate: Optional[Callable[[str, str], None]] = None
        self.state_change: Optional[Callable[[str], None]] = None

    def create_data_channel(self, label: str, *, reliable: bool) -> FakeChannel:
        channel = FakeChannel(label, max_size=6 if reliable else 262144)
        self.channels[label] = channel
        return channel

    def create_offer(self) -> str:
        return "v=0 offer"

    def set_remote_answer(self, sdp: str) -> None:
        self.answers.append(sdp)

    def add_remote_candidate(self, candidate: str, mid: str) -> None:
        self.candidates.append((candidate, mid))

    def on_local_candidate(self, callback) -> None:
        self.local_candidate = callback

    def on_state_change(self, callback) -> None:
        self.state_change = callback

    def close(self) -> None:
        self.closed = True


class FakeSignalSocket:
    def __init__(self) -> None:
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.inbox: List[bytes] = []
        self.closed = False

    def bind(self, address) -> None:
        pass

    def settimeout(self, value) -> None:
        pass

    def setsockopt(self, level, option, value) -> None:
        pass

    def sendto(self, data: bytes, address) -> int:
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, bufsize: int):
        if not self.inbox:
            raise BlockingIOError()
        return self.inbox.pop(0), ("10.0.0.9", 7551)

    def close(self) -> None:
        self.closed = True

    def signals(self) -> List[str]:
        messages = []
        for data, _ in self.sent:
            decoded = decode_discovery_packet(data)
            assert decoded is not None and decoded.sender_id == CLIENT_ID
            assert decoded.packet.recipient_id == SERVER_ID
            messages.append(decoded.packet.message)
        return messages


def make_client():
    peer, sock, logger = FakePeer(), FakeSignalSocket(), RecordingFieldLogger()
    options = ClientOptions(host="10.0.0.9", port=7551, username="steve", authflow=None, skip_ping=True)
    client = NethernetClient(
        options,
        logger,
        SERVER_ID,
        CLIENT_ID,
        codec=FakeCodec(),
        peer_factory=lambda: peer,
        socket_factory=lambda: sock,
    )
    client.connect()
    return client, peer, sock, logger


def signal_from_server(client: NethernetClient, message: str, recipient: int = CLIENT_ID) -> bytes:
    return encode_discovery_packet(SERVER_ID, DiscoveryMessage(recipient_id=recipient, message=message))


def test_parse_signal() -> None:
    assert parse_signal("CONNECTRESPONSE 12 v=0 a b") == ("CONNECTRESPONSE", "12", "v=0 a b")
    assert parse_signal("CONNECTRESPONSE") is None
    assert parse_signal(" 12 x") is None


def test_connect_sends_offer_to_server() -> None:
    client, peer, sock, logger = make_client()

    assert sock.signals() == [f"CONNECTREQUEST {client.session_id} v=0 offer"]
    assert sock.sent[0][1] == ("10.0.0.9", 7551)
    assert set(peer.channels) == {"ReliableDataChannel", "UnreliableDataChannel"}
    assert "nethernet_offer" in logger.events()


def test_answer_and_candidates_for_our_session_only() -> None:
    client, peer, sock, _ = make_client()
    sid = client.session_id
    sock.inbox += [
        signal_from_server(client, f"CONNECTRESPONSE {sid} v=0 answer"),
        signal_from_server(client, f"CANDIDATEADD {sid + 1} candidate:other"),
        signal_from_server(client, f"CANDIDATEADD {sid} candidate:1 udp"),
        signal_from_server(client, f"CANDIDATEADD {sid} candidate:2", recipient=CLIENT_ID + 1),
        b"garbage datagram that is long enough to try decrypting",
    ]

    client.tick()

    assert peer.answers == ["v=0 answer"]
    assert peer.candidates == [("candidate:1 udp", "0")]


def test_local_candidate_forwarded() -> None:
    client, peer, sock, _ = make_client()
    peer.local_candidate("candidate:9 host", "data")
    assert sock.signals()[-1] == f"CANDIDATEADD {client.session_id} candidate:9 host"


def test_login_after_both_channels_open_with_segmentation() -> None:
    client, peer, _, logger = make_client()
    reliable = peer.channels["ReliableDataChannel"]
    unreliable = peer.channels["UnreliableDataChannel"]

    reliable.fire_open()
    assert reliable.sent == []
    unreliable.fire_open()

    assert client.connected
    assert "nethernet_connected" in logger.events()
    # max message size 6 -> 5-byte segment bodies with a remaining-count header.
    assert all(len(segment) <= 6 for segment in reliable.sent)
    assert reliable.sent[-1][0] == 0
    body = b"".join(segment[1:] for segment in reliable.sent)
    name, params = json.loads(body)
    assert name == "login"
    assert params["skip_ping"] is True


def test_inbound_segments_reassembled() -> None:
    client, peer, _, _ = make_client()
    received: List[dict] = []
    client.on("text", received.append)
    payload = FakeCodec().encode("text", {"message": "hello there"})

    for segment in split_payload(payload, 4):
        peer.channels["ReliableDataChannel"].callbacks["message"](segment)

    assert received == [{"message": "hello there"}]


def test_queue_writes_immediately_when_open() -> None:
    client, peer, _, _ = make_client()
    reliable = peer.channels["ReliableDataChannel"]
    reliable.max_size = 262144
    reliable.open = True

    client.queue("client_cache_status", {"enabled": False})

    assert len(reliable.sent) == 1


def test_channel_close_disconnects_once() -> None:
    client, peer, sock, _ = make_client()
    reasons: List[str] = []
    client.on("close", reasons.append)

    peer.channels["ReliableDataChannel"].callbacks["closed"]()
    peer.state_change("failed")

    assert reasons == ["NetherNet channel closed"]
    assert peer.closed
    assert sock.closed
    assert all(channel.closed for channel in peer.channels.values())


def test_segment_order_error_disconnects() -> None:
    client, peer, _, logger = make_client()
    reasons: List[str] = []
    client.on("close", reasons.append)
    on_message = peer.channels["ReliableDataChannel"].callbacks["message"]

    on_message(bytes([2]) + b"a")
    on_message(bytes([0]) + b"b")

    assert reasons == ["NetherNet segment error"]
    assert "nethernet_segment_error" in logger.events("error")
