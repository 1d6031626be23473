"""What a client knows about one shared file.

This covers the pieces it holds, the pieces the swarm holds and the peers
it has heard of. All state is guarded by one condition variable, so the
tracker thread, the download thread and the serving threads can share it.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, Optional

from oslab.metafile import MetaFile, PathLike
from oslab.proto import (
    MAX_NUM_PEERS,
    PIECE_MAP_BYTES,
    PIECE_MAP_STRUCT_SIZE,
    PeerInfo,
    TrackerResponse,
)

_BAR_WIDTH = 50


class PeerListFull(Exception):
    """Raised when a peer is added to a list that already holds the maximum."""


def check_piece(piece_map: bytes, index: int) -> bool:
    """Whether the bit for piece index is set in a piece map."""
    if not 0 <= index < len(piece_map) * PIECE_MAP_STRUCT_SIZE:
        raise IndexError(f"piece {index} out of range")
    group, bit = divmod(index, PIECE_MAP_STRUCT_SIZE)
    return bool(piece_map[group] & (1 << bit))


def _set_bit(piece_map: bytearray, index: int) -> None:
    group, bit = divmod(index, PIECE_MAP_STRUCT_SIZE)
    piece_map[group] |= 1 << bit


def _clear_bit(piece_map: bytearray, index: int) -> None:
    group, bit = divmod(index, PIECE_MAP_STRUCT_SIZE)
    piece_map[group] &= ~(1 << bit) & 0xFF


def _map_of(piece_map: bytes) -> bytearray:
    data = bytes(piece_map)
    if len(data) > PIECE_MAP_BYTES:
        raise ValueError(f"piece map is longer than {PIECE_MAP_BYTES} bytes")
    return bytearray(data.ljust(PIECE_MAP_BYTES, b"\0"))


class FileState:
    """Download state of one file, shared between threads."""

    def __init__(
        self, meta: MetaFile, client_info: PeerInfo, data_path: Optional[PathLike] = None
    ) -> None:
        self.meta = meta
        self.client_info = client_info
        self.data_path = Path(data_path if data_path is not None else meta.file_name)
        self._client_map = bytearray(PIECE_MAP_BYTES)
        self._swarm_map = bytearray(PIECE_MAP_BYTES)
        self._peers: list = []
        self._cond = threading.Condition()

    @property
    def client_piece_map(self) -> bytes:
        with self._cond:
            return bytes(self._client_map)

    @property
    def swarm_piece_map(self) -> bytes:
        with self._cond:
            return bytes(self._swarm_map)

    @property
    def peers(self) -> list:
        with self._cond:
            return list(self._peers)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.meta.num_pieces():
            raise IndexError(f"piece {index} out of range")

    def add_peer(self, peer: PeerInfo) -> bool:
        """Add a peer; False if one with the same id is already listed."""
        with self._cond:
            if any(known.peer_id == peer.peer_id for known in self._peers):
                return False
            if len(self._peers) >= MAX_NUM_PEERS:
                raise PeerListFull(f"already {MAX_NUM_PEERS} peers")
            self._peers.append(peer)
            return True

    def remove_peer(self, peer: PeerInfo) -> bool:
        """Drop a peer by id; the swarm map is cleared as it can no longer be trusted."""
        with self._cond:
            for position, known in enumerate(self._peers):
                if known.peer_id == peer.peer_id:
                    self._peers[position] = self._peers[-1]
                    self._peers.pop()
                    self._swarm_map[:] = bytes(PIECE_MAP_BYTES)
                    return True
            return False

    def update_peers(self, peers: Iterable[PeerInfo], swarm_piece_map: bytes) -> None:
        """Replace the peer list and swarm map, waking any waiting downloader."""
        new_peers = list(peers)
        if len(new_peers) > MAX_NUM_PEERS:
            raise ValueError(f"at most {MAX_NUM_PEERS} peers")
        new_map = _map_of(swarm_piece_map)
        with self._cond:
            self._peers = new_peers
            self._swarm_map = new_map
            self._cond.notify_all()

    def get_peer(self, index: int) -> PeerInfo:
        with self._cond:
            if not 0 <= index < len(self._peers):
                raise IndexError(f"no peer at index {index}")
            return self._peers[index]

    def set_client_piece(self, index: int) -> None:
        self._check_index(index)
        with self._cond:
            _set_bit(self._client_map, index)

    def clear_client_piece(self, index: int) -> None:
        self._check_index(index)
        with self._cond:
            _clear_bit(self._client_map, index)

    def claim_piece(self, peer_piece_map: bytes) -> Optional[int]:
        """Mark and return the first piece the peer has and the client lacks."""
        with self._cond:
            for index in range(self.meta.num_pieces()):
                if check_piece(peer_piece_map, index) and not check_piece(self._client_map, index):
                    _set_bit(self._client_map, index)
                    return index
            return None

    def is_complete(self) -> bool:
        with self._cond:
            return all(
                check_piece(self._client_map, index) for index in range(self.meta.num_pieces())
            )

    def has_interesting_pieces(self) -> bool:
        """Whether the swarm holds a piece the client does not."""
        with self._cond:
            return any(
                check_piece(self._swarm_map, index) and not check_piece(self._client_map, index)
                for index in range(self.meta.num_pieces())
            )

    def wait_for_interesting(self, timeout: Optional[float] = None) -> bool:
        """Block until the swarm offers a missing piece; False on timeout."""
        with self._cond:
            return self._cond.wait_for(self.has_interesting_pieces, timeout)

    def process_tracker_response(self, response: object) -> bool:
        """Take the peers and swarm map from a tracker response."""
        if not isinstance(response, TrackerResponse):
            return False
        self.update_peers(response.peers, response.piece_map)
        return True

    def _piece_verified(self, index: int) -> bool:
        try:
            return self.meta.check_piece_hash(index, self.data_path)
        except OSError:
            return False

    def progress_bar(self) -> str:
        """A text bar of the verified share of the file."""
        with self._cond:
            held = [
                index
                for index in range(self.meta.num_pieces())
                if check_piece(self._client_map, index)
            ]
        downloaded = sum(
            self.meta.piece_length(index) for index in held if self._piece_verified(index)
        )
        progress = downloaded / self.meta.file_size if self.meta.file_size else 1.0
        pos = int(progress * _BAR_WIDTH)
        cells = "".join(
            "=" if i < pos else ">" if i == pos else " " for i in range(_BAR_WIDTH)
        )
        return f"[{cells}] {int(progress * 100)}%"