import threading
import time

import pytest

from oslab.filestate import FileState, PeerListFull, check_piece
from oslab.metafile import MetaFile, make_meta_file
from oslab.proto import MAX_NUM_PEERS, PIECE_MAP_BYTES, PeerInfo, TrackerResponse


def _meta(num_pieces=4, piece_size=4096):
    return MetaFile(
        "data.bin", b"\x01" * 20, num_pieces * piece_size, piece_size, [b"\x02" * 20] * num_pieces
    )


def _peer(name, port=7000):
    return PeerInfo(name.encode(), "127.0.0.1", port)


def _state(num_pieces=4, tmp_path=None):
    data_path = tmp_path / "data.bin" if tmp_path is not None else None
    return FileState(_meta(num_pieces), _peer("me"), data_path)


def _map_with(*indices):
    piece_map = bytearray(PIECE_MAP_BYTES)
    for index in indices:
        piece_map[index // 8] |= 1 << (index % 8)
    return bytes(piece_map)


def test_check_piece_reads_bits():
    piece_map = _map_with(0, 9)
    assert check_piece(piece_map, 0)
    assert check_piece(piece_map, 9)
    assert not check_piece(piece_map, 1)
    assert not check_piece(piece_map, 8)


def test_check_piece_out_of_range():
    with pytest.raises(IndexError):
        check_piece(bytes(2), 16)


def test_set_and_clear_client_piece():
    state = _state(16)
    state.set_client_piece(0)
    state.set_client_piece(9)
    assert state.client_piece_map[0] == 1
    assert state.client_piece_map[1] == 2
    state.clear_client_piece(9)
    assert not check_piece(state.client_piece_map, 9)
    assert check_piece(state.client_piece_map, 0)


def test_set_client_piece_outside_file():
    state = _state(4)
    with pytest.raises(IndexError):
        state.set_client_piece(4)


def test_add_peer_and_duplicate():
    state = _state()
    assert state.add_peer(_peer("a")) is True
    assert state.add_peer(_peer("a", port=9000)) is False
    assert len(state.peers) == 1


def test_add_peer_full():
    state = _state()
    for i in range(MAX_NUM_PEERS):
        state.add_peer(_peer(f"p{i}"))
    with pytest.raises(PeerListFull):
        state.add_peer(_peer("extra"))


def test_remove_peer_clears_swarm_map():
    state = _state()
    state.update_peers([_peer("a"), _peer("b"), _peer("c")], _map_with(1))
    assert state.remove_peer(_peer("a")) is True
    assert [p.name for p in state.peers] == ["c", "b"]
    assert state.swarm_piece_map == bytes(PIECE_MAP_BYTES)
    assert state.remove_peer(_peer("zzz")) is False


def test_get_peer():
    state = _state()
    state.add_peer(_peer("a"))
    assert state.get_peer(0).name == "a"
    with pytest.raises(IndexError):
        state.get_peer(1)


def test_update_peers_too_many():
    state = _state()
    with pytest.raises(ValueError):
        state.update_peers([_peer(f"p{i}") for i in range(MAX_NUM_PEERS + 1)], b"")


def test_claim_piece_takes_first_missing():
    state = _state(4)
    state.set_client_piece(1)
    peer_map = _map_with(1, 2, 3)
    assert state.claim_piece(peer_map) == 2
    assert check_piece(state.client_piece_map, 2)
    assert state.claim_piece(peer_map) == 3
    assert state.claim_piece(peer_map) is None


def test_is_complete():
    state = _state(3)
    assert not state.is_complete()
    for index in range(3):
        state.set_client_piece(index)
    assert state.is_complete()


def test_has_interesting_pieces():
    state = _state(4)
    assert not state.has_interesting_pieces()
    state.update_peers([_peer("a")], _map_with(3))
    assert state.has_interesting_pieces()
    state.set_client_piece(3)
    assert not state.has_interesting_pieces()


def test_wait_for_interesting_times_out():
    state = _state(4)
    assert state.wait_for_interesting(0.05) is False


def test_wait_for_interesting_wakes_on_update():
    state = _state(4)

    def announce():
        time.sleep(0.05)
        state.update_peers([_peer("a")], _map_with(2))

    worker = threading.Thread(target=announce)
    worker.start()
    assert state.wait_for_interesting(5) is True
    worker.join()


def test_process_tracker_response():
    state = _state(4)
    response = TrackerResponse(5, _map_with(0), [_peer("a"), _peer("b")])
    assert state.process_tracker_response(response) is True
    assert [p.name for p in state.peers] == ["a", "b"]
    assert state.swarm_piece_map == _map_with(0)
    assert state.process_tracker_response("not a response") is False


def test_progress_bar_empty_and_full(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(bytes(range(256)) * 40)
    meta = make_meta_file(path, 4096)
    state = FileState(meta, _peer("me"), path)
    assert state.progress_bar() == "[>" + " " * 49 + "] 0%"
    for index in range(meta.num_pieces()):
        state.set_client_piece(index)
    assert state.progress_bar() == "[" + "=" * 50 + "] 100%"


def test_progress_bar_counts_only_verified_pieces(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"a" * 8192)
    meta = make_meta_file(path, 4096)
    state = FileState(meta, _peer("me"), path)
    state.set_client_piece(0)
    bar = state.progress_bar()
    assert bar.endswith("] 50%")
    assert bar.count("=") == 25
    path.write_bytes(b"b" * 8192)
    assert state.progress_bar().endswith("] 0%")


def test_progress_bar_missing_data_file(tmp_path):
    state = _state(2, tmp_path)
    state.set_client_piece(0)
    assert state.progress_bar().endswith("] 0%")