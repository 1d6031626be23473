import socket
import threading

import pytest

from oslab.proto import (
    MAX_NUM_PEERS,
    PIECE_MAP_BYTES,
    PeerHandshake,
    PeerInfo,
    TrackerRequest,
    TrackerResponse,
    recv_message,
    send_message,
)
from oslab.tracker import (
    INTERVAL,
    MAX_NUM_FILES,
    STALE_AFTER,
    FileContainer,
    TrackedFile,
    TrackerFull,
    monitor_client_updates,
    serve_client,
)

HASH_A = bytes(range(20))
HASH_B = bytes(range(1, 21))


def peer(name, port=6000):
    return PeerInfo(name.encode(), "127.0.0.1", port)


def tracked(file_hash=HASH_A, name="seed", piece_map=b"\x01", now=0.0):
    return TrackedFile(file_hash, peer(name), piece_map, now=now)


def test_new_file_holds_seeder():
    t = tracked()
    assert t.peers == [peer("seed")]
    assert t.piece_map[:1] == b"\x01"
    assert len(t.piece_map) == PIECE_MAP_BYTES


def test_bad_hash_rejected():
    with pytest.raises(ValueError):
        TrackedFile(b"short", peer("seed"))


def test_add_peer_new_and_refresh():
    t = tracked()
    assert t.add_peer(peer("other"), now=1.0) is True
    assert t.add_peer(peer("other", 7000), now=2.0) is False
    assert t.num_peers == 2
    assert t.peers[1].port == 7000
    assert t.last_update(peer("other")) == 2.0


def test_add_peer_full():
    t = tracked()
    for i in range(MAX_NUM_PEERS - 1):
        t.add_peer(peer(f"p{i}"))
    with pytest.raises(TrackerFull):
        t.add_peer(peer("late"))
    assert t.num_peers == MAX_NUM_PEERS


def test_remove_peer_clears_map():
    t = tracked()
    t.add_peer(peer("other"))
    assert t.remove_peer(peer("seed")) is True
    assert t.peers == [peer("other")]
    assert t.piece_map == bytes(PIECE_MAP_BYTES)
    assert t.remove_peer(peer("ghost")) is False


def test_update_piece_map_ors():
    t = tracked(piece_map=b"\x01")
    t.update_piece_map(b"\x04\x02")
    assert t.piece_map[:2] == b"\x05\x02"


def test_describe_names_seeder():
    text = tracked().describe()
    assert f"Hash: {HASH_A.hex()}" in text
    assert "SEEDER -> IP:127.0.0.1 - Port:6000 - ID:seed" in text


def test_container_add_get_remove():
    c = FileContainer()
    t = tracked()
    assert c.add(t) is True
    assert c.get(HASH_A) is t
    assert c.get(HASH_B) is None
    assert c.remove(HASH_A) is True
    assert c.remove(HASH_A) is False
    assert len(c) == 0


def test_container_merges_same_hash():
    c = FileContainer()
    c.add(tracked(piece_map=b"\x01"))
    assert c.add(tracked(name="second", piece_map=b"\x02")) is False
    known = c.get(HASH_A)
    assert [p.name for p in known.peers] == ["seed", "second"]
    assert known.piece_map[:1] == b"\x03"
    assert len(c) == 1


def test_container_full():
    c = FileContainer()
    for i in range(MAX_NUM_FILES):
        c.add(tracked(file_hash=bytes([i]) * 20))
    with pytest.raises(TrackerFull):
        c.add(tracked(file_hash=b"\xff" * 20))


def test_drop_stale():
    c = FileContainer()
    t = tracked(now=0.0)
    c.add(t)
    t.add_peer(peer("fresh"), now=STALE_AFTER)
    removed = c.drop_stale(now=STALE_AFTER + 1)
    assert removed == [peer("seed")]
    assert t.peers == [peer("fresh")]


def test_process_request_returns_known_file():
    c = FileContainer()
    first = c.process_request(TrackerRequest(HASH_A, peer("a"), b"\x01"))
    second = c.process_request(TrackerRequest(HASH_A, peer("b"), b"\x02"))
    assert first is second
    assert first.num_peers == 2


def test_serve_client_answers_requests():
    c = FileContainer()
    client, server = socket.socketpair()
    result = []
    worker = threading.Thread(target=lambda: result.append(serve_client(c, server)))
    worker.start()
    with client:
        send_message(client, TrackerRequest(HASH_A, peer("a"), b"\x01"))
        reply = recv_message(client)
    worker.join(5)
    assert isinstance(reply, TrackerResponse)
    assert reply.interval == INTERVAL
    assert reply.peers == [peer("a")]
    assert reply.piece_map[:1] == b"\x01"
    assert result == [1]


def test_serve_client_stops_on_wrong_message():
    c = FileContainer()
    client, server = socket.socketpair()
    with client:
        send_message(client, PeerHandshake(HASH_A, b"x", b""))
        assert serve_client(c, server) == 0
    assert len(c) == 0


def test_monitor_stops_when_set():
    c = FileContainer()
    stop = threading.Event()
    stop.set()
    monitor_client_updates(c, stop)
    assert len(c) == 0