"""Client side of the file sharing network.

A client talks to the tracker, serves the pieces it holds to other peers and
downloads the pieces it lacks. Both the seeder and the plain peer commands
are here.
"""

from __future__ import annotations

import socket
import sys
import threading
import time
from typing import BinaryIO, Optional, Sequence, Tuple

from oslab.filestate import FileState, check_piece
from oslab.metafile import MetaFile, load_meta_file, make_meta_file
from oslab.proto import (
    CLIENT_IP,
    FIXED_BLOCK_SIZE,
    PEER_ID_BYTES,
    PIECE_SIZE,
    TRACKER_IP,
    TRACKER_PORT,
    PeerHandshake,
    PeerInfo,
    PeerPiece,
    PeerRequest,
    ProtocolError,
    TrackerRequest,
    recv_message,
    send_message,
)

# Pause before each block is sent, so a transfer can be watched as it runs.
BLOCK_DELAY = 1.0

_RETRY_INTERVAL = 5
_POLL_SECONDS = 0.5
_LISTEN_BACKLOG = 5


def _block_range(meta: MetaFile, piece: int, block: int) -> Optional[Tuple[int, int]]:
    """File offset and size of a block, or None if it lies outside the file."""
    if not 0 <= piece < meta.num_pieces():
        return None
    piece_len = meta.piece_length(piece)
    num_blocks = -(-piece_len // FIXED_BLOCK_SIZE)
    if not 0 <= block < num_blocks:
        return None
    if block == num_blocks - 1:
        size = piece_len % FIXED_BLOCK_SIZE or FIXED_BLOCK_SIZE
    else:
        size = FIXED_BLOCK_SIZE
    return piece * meta.piece_size + block * FIXED_BLOCK_SIZE, size


def _acceptable(state: FileState, msg: object) -> bool:
    """Whether a message is a handshake from another peer for the same file."""
    return (
        isinstance(msg, PeerHandshake)
        and msg.peer_id != state.client_info.peer_id
        and msg.file_hash == state.meta.file_hash
    )


def _own_handshake(state: FileState) -> PeerHandshake:
    return PeerHandshake(
        state.meta.file_hash, state.client_info.peer_id, state.client_piece_map
    )


def _piece_ok(state: FileState, index: int) -> bool:
    try:
        return state.meta.check_piece_hash(index, state.data_path)
    except OSError:
        return False


def contact_tracker(state: FileState, tracker_addr: Tuple[str, int],
                    stop: Optional[threading.Event] = None) -> None:
    """Announce to the tracker and take its peer list, again every interval."""
    if stop is None:
        stop = threading.Event()
    while not stop.is_set():
        request = TrackerRequest(
            state.meta.file_hash, state.client_info, state.client_piece_map
        )
        with socket.create_connection(tracker_addr) as conn:
            send_message(conn, request)
            response = recv_message(conn)
        if state.process_tracker_response(response):
            interval = response.interval
        else:
            interval = _RETRY_INTERVAL
        stop.wait(interval)


def _serve_blocks(state: FileState, conn: socket.socket) -> int:
    meta = state.meta
    sent = 0
    try:
        state.data_path.touch(exist_ok=True)
        data = open(state.data_path, "rb")
    except OSError:
        return sent
    with data:
        while True:
            try:
                request = recv_message(conn)
            except (OSError, ProtocolError):
                break
            if not isinstance(request, PeerRequest):
                break
            piece, block = request.piece_index, request.block_offset
            where = _block_range(meta, piece, block)
            if where is None or not check_piece(state.client_piece_map, piece):
                reply = PeerPiece(-1, -1)
            else:
                offset, size = where
                data.seek(offset)
                reply = PeerPiece(piece, block, data.read(size))
                time.sleep(BLOCK_DELAY)
            try:
                send_message(conn, reply)
            except OSError:
                break
            if reply.piece_index >= 0:
                sent += 1
    return sent


def serve_peer(state: FileState, conn: socket.socket) -> int:
    """Answer a peer's block requests; returns the number of blocks sent."""
    with conn:
        try:
            hello = recv_message(conn)
        except (OSError, ProtocolError):
            return 0
        if not _acceptable(state, hello):
            return 0
        try:
            send_message(conn, _own_handshake(state))
        except OSError:
            return 0
        if hello.piece_map == state.client_piece_map:
            return 0
        return _serve_blocks(state, conn)


def _fetch_piece(conn: socket.socket, out: BinaryIO, meta: MetaFile, piece: int) -> bool:
    num_blocks = -(-meta.piece_length(piece) // FIXED_BLOCK_SIZE)
    for block in range(num_blocks):
        try:
            send_message(conn, PeerRequest(piece, block))
            reply = recv_message(conn)
        except (OSError, ProtocolError):
            return False
        if not isinstance(reply, PeerPiece) or reply.piece_index < 0:
            return False
        out.seek(piece * meta.piece_size + block * FIXED_BLOCK_SIZE)
        out.write(reply.data)
    return True


def _fetch_pieces(state: FileState, conn: socket.socket, peer_map: bytes) -> int:
    meta = state.meta
    verified = 0
    state.data_path.touch(exist_ok=True)
    with open(state.data_path, "r+b") as out:
        while (piece := state.claim_piece(peer_map)) is not None:
            print(state.progress_bar())
            complete = _fetch_piece(conn, out, meta, piece)
            out.flush()
            if complete and meta.check_piece_hash(piece, state.data_path):
                verified += 1
            else:
                state.clear_client_piece(piece)
            if not complete:
                break
    return verified


def contact_peer(state: FileState, peer: PeerInfo) -> int:
    """Fetch from one peer every missing piece it holds.

    Returns the number of pieces that arrived and matched their hash. A peer
    that cannot be reached is dropped from the peer list.
    """
    try:
        conn = socket.create_connection((peer.host, peer.port))
    except OSError:
        state.remove_peer(peer)
        return 0
    with conn:
        try:
            send_message(conn, _own_handshake(state))
            reply = recv_message(conn)
        except (OSError, ProtocolError):
            return 0
        if not _acceptable(state, reply) or reply.piece_map == state.client_piece_map:
            return 0
        return _fetch_pieces(state, conn, reply.piece_map)


def download_file(state: FileState, stop: Optional[threading.Event] = None) -> bool:
    """Download from every known peer until the file is complete.

    Returns True once every piece is held and verified, False if stopped.
    """
    if stop is None:
        stop = threading.Event()
    meta = state.meta
    while not stop.is_set():
        print(state.progress_bar())
        print("Waiting for new pieces")
        while not state.wait_for_interesting(_POLL_SECONDS):
            if stop.is_set():
                return False
        print("Found interesting pieces")
        own_id = state.client_info.peer_id
        workers = [
            threading.Thread(target=contact_peer, args=(state, peer), daemon=True)
            for peer in state.peers
            if peer.peer_id != own_id
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        held = state.client_piece_map
        for index in range(meta.num_pieces()):
            if check_piece(held, index) and not _piece_ok(state, index):
                state.clear_client_piece(index)
        if state.is_complete():
            return True
    return False


def _client_info(port_arg: str, id_arg: str) -> PeerInfo:
    return PeerInfo(id_arg.encode("utf-8")[:PEER_ID_BYTES], CLIENT_IP, int(port_arg))


def _start_tracker_thread(state: FileState) -> None:
    threading.Thread(
        target=contact_tracker,
        args=(state, (TRACKER_IP, TRACKER_PORT), threading.Event()),
        daemon=True,
    ).start()


def _listen(state: FileState) -> None:
    address = (state.client_info.host, state.client_info.port)
    with socket.create_server(address, backlog=_LISTEN_BACKLOG) as listener:
        while True:
            conn, _ = listener.accept()
            threading.Thread(target=serve_peer, args=(state, conn), daemon=True).start()


def seeder_main(argv: Optional[Sequence[str]] = None) -> int:
    """Share a whole file: write its meta file and serve every piece."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 4:
        print("usage client_seeder client_port client_id i_filename o_filename",
              file=sys.stderr)
        return 0
    info = _client_info(args[0], args[1])
    meta = make_meta_file(args[2], PIECE_SIZE)
    meta.write(args[3])
    state = FileState(meta, info, args[2])
    for index in range(meta.num_pieces()):
        state.set_client_piece(index)
    _start_tracker_thread(state)
    print(f"My info: IP:{info.host} - Port: {info.port}")
    try:
        _listen(state)
    except KeyboardInterrupt:
        pass
    return 0


def peer_main(argv: Optional[Sequence[str]] = None) -> int:
    """Download the file a meta file describes while serving what is held."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 3:
        print("usage client_peer client_port client_id filenames_declare", file=sys.stderr)
        return 0
    info = _client_info(args[0], args[1])
    meta = load_meta_file(args[2])
    state = FileState(meta, info)
    _start_tracker_thread(state)
    print(f"My info: IP:{info.host} - Port: {info.port}")
    threading.Thread(target=download_file, args=(state, threading.Event()), daemon=True).start()
    try:
        _listen(state)
    except KeyboardInterrupt:
        pass
    return 0