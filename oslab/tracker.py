"""Tracker: keeps, for every shared file, the peers that hold it.

Peers announce themselves with a tracker request and get back the peer
list and the swarm piece map for that file. Peers that stay silent for
too many intervals are dropped.
"""

from __future__ import annotations

import socket
import sys
import threading
import time
from typing import List, Optional, Sequence

from oslab.metafile import SHA_DIGEST_LENGTH
from oslab.proto import (
    MAX_NUM_PEERS,
    PIECE_MAP_BYTES,
    TRACKER_IP,
    TRACKER_PORT,
    PeerInfo,
    ProtocolError,
    TrackerRequest,
    TrackerResponse,
    recv_message,
    send_message,
)

MAX_NUM_FILES = 10
INTERVAL = 5
MAX_NUM_INTERVALS = 3
STALE_AFTER = MAX_NUM_INTERVALS * INTERVAL

_LISTEN_BACKLOG = 5


class TrackerFull(Exception):
    """Raised when a peer list or the file container has no room left."""


def _piece_map(value: bytes) -> bytearray:
    data = bytes(value)
    if len(data) > PIECE_MAP_BYTES:
        raise ValueError(f"piece map is longer than {PIECE_MAP_BYTES} bytes")
    return bytearray(data.ljust(PIECE_MAP_BYTES, b"\0"))


class TrackedFile:
    """One file known to the tracker, with its peers and swarm piece map."""

    def __init__(self, file_hash: bytes, seeder: PeerInfo, piece_map: bytes = b"",
                 now: Optional[float] = None) -> None:
        self.file_hash = bytes(file_hash)
        if len(self.file_hash) != SHA_DIGEST_LENGTH:
            raise ValueError("file hash must be a SHA-1 digest")
        self._peers: List[PeerInfo] = [seeder]
        self._seen: List[float] = [time.monotonic() if now is None else now]
        self._map = _piece_map(piece_map)
        self._lock = threading.Lock()

    @property
    def peers(self) -> List[PeerInfo]:
        with self._lock:
            return list(self._peers)

    @property
    def num_peers(self) -> int:
        with self._lock:
            return len(self._peers)

    @property
    def piece_map(self) -> bytes:
        with self._lock:
            return bytes(self._map)

    def last_update(self, peer: PeerInfo) -> Optional[float]:
        """When the peer with this id last announced itself, if listed."""
        with self._lock:
            for known, seen in zip(self._peers, self._seen):
                if known.peer_id == peer.peer_id:
                    return seen
            return None

    def update_piece_map(self, piece_map: bytes) -> None:
        """Merge a peer's piece map into the swarm map."""
        incoming = _piece_map(piece_map)
        with self._lock:
            for index, byte in enumerate(incoming):
                self._map[index] |= byte

    def add_peer(self, peer: PeerInfo, now: Optional[float] = None) -> bool:
        """Add or refresh a peer; True if it was new, False if it was replaced."""
        stamp = time.monotonic() if now is None else now
        with self._lock:
            for position, known in enumerate(self._peers):
                if known.peer_id == peer.peer_id:
                    self._peers[position] = peer
                    self._seen[position] = stamp
                    return False
            if len(self._peers) >= MAX_NUM_PEERS:
                raise TrackerFull(f"already {MAX_NUM_PEERS} peers for this file")
            self._peers.append(peer)
            self._seen.append(stamp)
            return True

    def remove_peer(self, peer: PeerInfo) -> bool:
        """Drop a peer by id; the swarm map is cleared as it can't be split per peer."""
        with self._lock:
            for position, known in enumerate(self._peers):
                if known.peer_id == peer.peer_id:
                    self._peers[position] = self._peers[-1]
                    self._seen[position] = self._seen[-1]
                    self._peers.pop()
                    self._seen.pop()
                    self._map[:] = bytes(PIECE_MAP_BYTES)
                    return True
            return False

    def stale_peers(self, now: float) -> List[PeerInfo]:
        with self._lock:
            return [
                peer for peer, seen in zip(self._peers, self._seen)
                if now - seen > STALE_AFTER
            ]

    def describe(self) -> str:
        lines = [f"Hash: {self.file_hash.hex()}"]
        peers = self.peers
        if peers:
            seeder = peers[0]
            lines.append(f"SEEDER -> IP:{seeder.host} - Port:{seeder.port} - ID:{seeder.name}")
        return "\n".join(lines)


class FileContainer:
    """All files the tracker knows of, at most MAX_NUM_FILES."""

    def __init__(self) -> None:
        self._files: List[TrackedFile] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    @property
    def files(self) -> List[TrackedFile]:
        with self._lock:
            return list(self._files)

    def get(self, file_hash: bytes) -> Optional[TrackedFile]:
        wanted = bytes(file_hash)
        with self._lock:
            for tracked in self._files:
                if tracked.file_hash == wanted:
                    return tracked
            return None

    def add(self, tracked: TrackedFile) -> bool:
        """Store a file; True if new, False if merged into the known one.

        When merged, each new peer is added to the known file and its piece
        map folded in; peers that do not fit are left out.
        """
        with self._lock:
            previous = next(
                (known for known in self._files if known.file_hash == tracked.file_hash), None
            )
            if previous is None:
                if len(self._files) >= MAX_NUM_FILES:
                    raise TrackerFull(f"already {MAX_NUM_FILES} files tracked")
                self._files.append(tracked)
                return True
        piece_map = tracked.piece_map
        for peer in tracked.peers:
            try:
                added = previous.add_peer(peer)
            except TrackerFull:
                break
            if added:
                previous.update_piece_map(piece_map)
        return False

    def remove(self, file_hash: bytes) -> bool:
        wanted = bytes(file_hash)
        with self._lock:
            for position, tracked in enumerate(self._files):
                if tracked.file_hash == wanted:
                    self._files[position] = self._files[-1]
                    self._files.pop()
                    return True
            return False

    def describe(self) -> str:
        return "\n".join(tracked.describe() for tracked in self.files)

    def drop_stale(self, now: Optional[float] = None) -> List[PeerInfo]:
        """Remove peers silent for longer than the allowed intervals."""
        stamp = time.monotonic() if now is None else now
        removed = []
        for tracked in self.files:
            for peer in tracked.stale_peers(stamp):
                print(f"Removing peer {peer.name}")
                if tracked.remove_peer(peer):
                    removed.append(peer)
        return removed

    def process_request(self, request: TrackerRequest) -> TrackedFile:
        """Record a peer's announcement and return the file it asked about."""
        tracked = TrackedFile(request.file_hash, request.peer, request.piece_map)
        if self.add(tracked):
            return tracked
        known = self.get(request.file_hash)
        if known is None:
            raise TrackerFull("file vanished while being updated")
        return known


def serve_client(container: FileContainer, conn: socket.socket) -> int:
    """Answer a client's tracker requests; returns the number of responses sent."""
    answered = 0
    with conn:
        while True:
            try:
                request = recv_message(conn)
            except (OSError, ProtocolError):
                print("Error receiving")
                break
            if request is None:
                print("Socket closed")
                break
            if not isinstance(request, TrackerRequest):
                break
            try:
                tracked = container.process_request(request)
            except TrackerFull:
                break
            peer = request.peer
            print(f"Talking with client {peer.name} - IP:{peer.host} - Port: {peer.port}")
            peers = tracked.peers
            print(f"I have {len(peers)} peers for file requested")
            try:
                send_message(conn, TrackerResponse(INTERVAL, tracked.piece_map, peers))
            except OSError:
                break
            answered += 1
    return answered


def monitor_client_updates(container: FileContainer,
                           stop: Optional[threading.Event] = None) -> None:
    """Drop stale peers every interval until stopped."""
    if stop is None:
        stop = threading.Event()
    while not stop.is_set():
        container.drop_stale()
        stop.wait(INTERVAL)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tracker on its fixed address until interrupted."""
    del argv
    container = FileContainer()
    stop = threading.Event()
    threading.Thread(
        target=monitor_client_updates, args=(container, stop), daemon=True
    ).start()
    try:
        with socket.create_server((TRACKER_IP, TRACKER_PORT), backlog=_LISTEN_BACKLOG) as listener:
            while True:
                conn, _ = listener.accept()
                threading.Thread(
                    target=serve_client, args=(container, conn), daemon=True
                ).start()
    except KeyboardInterrupt:
        pass
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    finally:
        stop.set()
    return 0