"""Wire protocol spoken between the tracker and the peers.

Every message is a five byte header (type, payload size, both in network
order) followed by a payload whose layout depends on the type.
"""

from __future__ import annotations

import ipaddress
import socket
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Union

from oslab.metafile import MAX_NUM_PIECES, SHA_DIGEST_LENGTH

TRACKER_IP = "127.0.0.1"
CLIENT_IP = "127.0.0.1"
TRACKER_PORT = 6881

PEER_ID_BYTES = 20
MAX_NUM_PEERS = 10
PIECE_SIZE = 4096
FIXED_BLOCK_SIZE = 1024
PIECE_MAP_STRUCT_SIZE = 8
PIECE_MAP_BYTES = MAX_NUM_PIECES // PIECE_MAP_STRUCT_SIZE

_HEADER = struct.Struct(">BI")
_PEER_INFO = struct.Struct(f">{PEER_ID_BYTES}sIH")
_RESPONSE_HEAD = struct.Struct(f">HB{PIECE_MAP_BYTES}s")
_PEER_MSG_HEAD = struct.Struct(">IB")
_REQUEST_BODY = struct.Struct(">II")
_PIECE_POS = struct.Struct(">ii")

HEADER_SIZE = _HEADER.size
PEER_INFO_SIZE = _PEER_INFO.size
_TRACKER_REQUEST_SIZE = SHA_DIGEST_LENGTH + PEER_INFO_SIZE + PIECE_MAP_BYTES
_HANDSHAKE_SIZE = SHA_DIGEST_LENGTH + PEER_ID_BYTES + PIECE_MAP_BYTES
MAX_PAYLOAD_SIZE = max(
    _TRACKER_REQUEST_SIZE,
    _RESPONSE_HEAD.size + MAX_NUM_PEERS * PEER_INFO_SIZE,
    _HANDSHAKE_SIZE,
    _PEER_MSG_HEAD.size + _PIECE_POS.size + FIXED_BLOCK_SIZE,
)


class MsgType(IntEnum):
    """Kind of message carried after the header."""

    TRACKER_REQUEST = 0
    TRACKER_RESPONSE = 1
    PEER_HANDSHAKE = 2
    PEER_MESSAGE = 3


class PeerMessageType(IntEnum):
    """Kind of message exchanged between two peers after the handshake."""

    REQUEST = 0
    PIECE = 1


class ProtocolError(Exception):
    """Raised when bytes on the wire do not form a valid message."""


def _padded(value: bytes, size: int, what: str) -> bytes:
    data = bytes(value)
    if len(data) > size:
        raise ValueError(f"{what} is longer than {size} bytes")
    return data.ljust(size, b"\0")


def _exact(value: bytes, size: int, what: str) -> bytes:
    data = bytes(value)
    if len(data) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(data)}")
    return data


@dataclass(frozen=True)
class PeerInfo:
    """Contact details of one peer: identifier, IPv4 address and port."""

    peer_id: bytes
    ip: Union[int, str]
    port: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "peer_id", _padded(self.peer_id, PEER_ID_BYTES, "peer id"))
        object.__setattr__(self, "ip", int(ipaddress.IPv4Address(self.ip)))
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")

    @property
    def host(self) -> str:
        """The address in dotted notation."""
        return str(ipaddress.IPv4Address(self.ip))

    @property
    def name(self) -> str:
        """The identifier as text, without its zero padding."""
        return self.peer_id.rstrip(b"\0").decode("utf-8", "replace")

    def pack(self) -> bytes:
        return _PEER_INFO.pack(self.peer_id, self.ip, self.port)

    @classmethod
    def unpack(cls, data: bytes) -> "PeerInfo":
        if len(data) != PEER_INFO_SIZE:
            raise ProtocolError(f"peer info must be {PEER_INFO_SIZE} bytes, got {len(data)}")
        peer_id, ip, port = _PEER_INFO.unpack(data)
        return cls(peer_id, ip, port)


@dataclass
class TrackerRequest:
    """A peer announcing itself and the pieces it holds of a file."""

    file_hash: bytes
    peer: PeerInfo
    piece_map: bytes = b""

    def __post_init__(self) -> None:
        self.file_hash = _exact(self.file_hash, SHA_DIGEST_LENGTH, "file hash")
        self.piece_map = _padded(self.piece_map, PIECE_MAP_BYTES, "piece map")


@dataclass
class TrackerResponse:
    """The tracker's list of peers for a file and the swarm piece map."""

    interval: int
    piece_map: bytes = b""
    peers: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if not 0 <= self.interval <= 0xFFFF:
            raise ValueError(f"interval out of range: {self.interval}")
        self.piece_map = _padded(self.piece_map, PIECE_MAP_BYTES, "piece map")
        self.peers = list(self.peers)
        if len(self.peers) > MAX_NUM_PEERS:
            raise ValueError(f"at most {MAX_NUM_PEERS} peers fit in a response")

    @property
    def num_peers(self) -> int:
        return len(self.peers)


@dataclass
class PeerHandshake:
    """First message between two peers: file, identity and pieces held."""

    file_hash: bytes
    peer_id: bytes
    piece_map: bytes = b""

    def __post_init__(self) -> None:
        self.file_hash = _exact(self.file_hash, SHA_DIGEST_LENGTH, "file hash")
        self.peer_id = _padded(self.peer_id, PEER_ID_BYTES, "peer id")
        self.piece_map = _padded(self.piece_map, PIECE_MAP_BYTES, "piece map")


@dataclass
class PeerRequest:
    """Request for one block of one piece."""

    piece_index: int
    block_offset: int

    def __post_init__(self) -> None:
        for value in (self.piece_index, self.block_offset):
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"value out of range: {value}")


@dataclass
class PeerPiece:
    """One block of data; a piece index of -1 means the piece is not held."""

    piece_index: int
    block_offset: int
    data: bytes = b""

    def __post_init__(self) -> None:
        self.data = bytes(self.data)
        if len(self.data) > FIXED_BLOCK_SIZE:
            raise ValueError(f"a block holds at most {FIXED_BLOCK_SIZE} bytes")
        for value in (self.piece_index, self.block_offset):
            if not -(2**31) <= value < 2**31:
                raise ValueError(f"value out of range: {value}")


Message = Union[TrackerRequest, TrackerResponse, PeerHandshake, PeerRequest, PeerPiece]


def encode_message(msg: Message) -> bytes:
    """Serialise a message, header included."""
    if isinstance(msg, TrackerRequest):
        msg_type = MsgType.TRACKER_REQUEST
        payload = msg.file_hash + msg.peer.pack() + msg.piece_map
    elif isinstance(msg, TrackerResponse):
        msg_type = MsgType.TRACKER_RESPONSE
        payload = _RESPONSE_HEAD.pack(msg.interval, msg.num_peers, msg.piece_map) + b"".join(
            peer.pack() for peer in msg.peers
        )
    elif isinstance(msg, PeerHandshake):
        msg_type = MsgType.PEER_HANDSHAKE
        payload = msg.file_hash + msg.peer_id + msg.piece_map
    elif isinstance(msg, PeerRequest):
        msg_type = MsgType.PEER_MESSAGE
        body = _REQUEST_BODY.pack(msg.piece_index, msg.block_offset)
        payload = _PEER_MSG_HEAD.pack(1 + len(body), PeerMessageType.REQUEST) + body
    elif isinstance(msg, PeerPiece):
        msg_type = MsgType.PEER_MESSAGE
        body = _PIECE_POS.pack(msg.piece_index, msg.block_offset) + msg.data
        payload = _PEER_MSG_HEAD.pack(1 + len(body), PeerMessageType.PIECE) + body
    else:
        raise TypeError(f"not a protocol message: {msg!r}")
    return _HEADER.pack(msg_type, len(payload)) + payload


def _decode_peer_message(payload: bytes) -> Message:
    if len(payload) < _PEER_MSG_HEAD.size:
        raise ProtocolError("peer message too short")
    length, message_id = _PEER_MSG_HEAD.unpack_from(payload)
    body = payload[_PEER_MSG_HEAD.size:]
    if length != 1 + len(body):
        raise ProtocolError("peer message length does not match its payload")
    if message_id == PeerMessageType.REQUEST:
        if len(body) != _REQUEST_BODY.size:
            raise ProtocolError("malformed block request")
        return PeerRequest(*_REQUEST_BODY.unpack(body))
    if message_id == PeerMessageType.PIECE:
        if len(body) < _PIECE_POS.size:
            raise ProtocolError("malformed piece message")
        piece_index, block_offset = _PIECE_POS.unpack_from(body)
        data = body[_PIECE_POS.size:]
        if len(data) > FIXED_BLOCK_SIZE:
            raise ProtocolError("block larger than allowed")
        return PeerPiece(piece_index, block_offset, data)
    raise ProtocolError(f"unknown peer message id {message_id}")


def decode_message(msg_type: int, payload: bytes) -> Message:
    """Build a message from its type code and payload bytes."""
    try:
        kind = MsgType(msg_type)
    except ValueError:
        raise ProtocolError(f"unknown message type {msg_type}") from None
    payload = bytes(payload)

    if kind is MsgType.TRACKER_REQUEST:
        if len(payload) != _TRACKER_REQUEST_SIZE:
            raise ProtocolError("malformed tracker request")
        hash_end = SHA_DIGEST_LENGTH
        peer_end = hash_end + PEER_INFO_SIZE
        return TrackerRequest(
            payload[:hash_end], PeerInfo.unpack(payload[hash_end:peer_end]), payload[peer_end:]
        )

    if kind is MsgType.TRACKER_RESPONSE:
        if len(payload) < _RESPONSE_HEAD.size:
            raise ProtocolError("tracker response too short")
        interval, num_peers, piece_map = _RESPONSE_HEAD.unpack_from(payload)
        rest = payload[_RESPONSE_HEAD.size:]
        if num_peers > MAX_NUM_PEERS or len(rest) != num_peers * PEER_INFO_SIZE:
            raise ProtocolError("tracker response peer list does not match its count")
        peers = [
            PeerInfo.unpack(rest[start:start + PEER_INFO_SIZE])
            for start in range(0, len(rest), PEER_INFO_SIZE)
        ]
        return TrackerResponse(interval, piece_map, peers)

    if kind is MsgType.PEER_HANDSHAKE:
        if len(payload) != _HANDSHAKE_SIZE:
            raise ProtocolError("malformed handshake")
        id_end = SHA_DIGEST_LENGTH + PEER_ID_BYTES
        return PeerHandshake(
            payload[:SHA_DIGEST_LENGTH], payload[SHA_DIGEST_LENGTH:id_end], payload[id_end:]
        )

    return _decode_peer_message(payload)


def send_message(sock: socket.socket, msg: Message) -> None:
    """Send a whole message over a connected socket."""
    sock.sendall(encode_message(msg))


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    received = bytearray()
    while len(received) < size:
        chunk = sock.recv(size - len(received))
        if not chunk:
            break
        received += chunk
    return bytes(received)


def recv_message(sock: socket.socket) -> Optional[Message]:
    """Receive one message; None when the peer closed between messages."""
    header = _recv_exact(sock, HEADER_SIZE)
    if not header:
        return None
    if len(header) < HEADER_SIZE:
        raise ProtocolError("connection closed inside a header")
    msg_type, size = _HEADER.unpack(header)
    if size > MAX_PAYLOAD_SIZE:
        raise ProtocolError(f"payload of {size} bytes exceeds the largest message")
    payload = _recv_exact(sock, size)
    if len(payload) < size:
        raise ProtocolError("connection closed inside a payload")
    return decode_message(msg_type, payload)