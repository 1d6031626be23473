"""TCP server that answers each client once with its message in capitals.

A client that sends nothing within the timeout is told so and dropped.
"""

from __future__ import annotations

import select
import socket
import sys
import threading
from typing import List, Optional, Sequence

BUFFER_SIZE = 256
TIMEOUT_SEC = 5
TIMEOUT_MESSAGE = b"TIMEOUT, SOCKET CLOSED"

_LISTEN_BACKLOG = 5
_ACCEPT_POLL = 0.2


def recv_timeout(sock: socket.socket, size: int = BUFFER_SIZE,
                 timeout: Optional[float] = TIMEOUT_SEC) -> Optional[bytes]:
    """Read up to size bytes; None if nothing arrives within timeout seconds.

    With timeout None the read waits as long as it takes.
    """
    if timeout is not None:
        readable, _, _ = select.select([sock], [], [], timeout)
        if not readable:
            return None
    return sock.recv(size)


def handle_client(conn: socket.socket, timeout: Optional[float] = TIMEOUT_SEC) -> bytes:
    """Answer one client and close the connection; returns what was sent."""
    with conn:
        data = recv_timeout(conn, BUFFER_SIZE, timeout)
        if data is None:
            print(f"Closing socket {conn.fileno()}, TIMEOUT")
            conn.sendall(TIMEOUT_MESSAGE)
            return TIMEOUT_MESSAGE
        print(f"Here is the message: {data.decode('utf-8', 'replace')}")
        reply = data.upper()
        conn.sendall(reply)
        return reply


def _handle_safely(conn: socket.socket, timeout: Optional[float]) -> None:
    try:
        handle_client(conn, timeout)
    except OSError as exc:
        print(f"ERROR serving client: {exc}", file=sys.stderr)


def serve(listener: socket.socket, timeout: Optional[float] = TIMEOUT_SEC,
          stop: Optional[threading.Event] = None) -> int:
    """Accept clients, one thread each, until stop is set.

    Returns the number of clients accepted.
    """
    if stop is None:
        stop = threading.Event()
    listener.settimeout(_ACCEPT_POLL)
    workers: List[threading.Thread] = []
    accepted = 0
    try:
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            conn.settimeout(None)
            accepted += 1
            worker = threading.Thread(target=_handle_safely, args=(conn, timeout), daemon=True)
            worker.start()
            workers.append(worker)
            workers = [w for w in workers if w.is_alive()]
    finally:
        for worker in workers:
            worker.join()
    return accepted


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Listen on the port given as first argument until interrupted."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("ERROR, no port provided", file=sys.stderr)
        return 1
    try:
        port = int(args[0])
    except ValueError:
        print(f"ERROR, invalid port: {args[0]}", file=sys.stderr)
        return 1
    try:
        listener = socket.create_server(("", port), backlog=_LISTEN_BACKLOG)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    with listener:
        try:
            serve(listener, TIMEOUT_SEC)
        except KeyboardInterrupt:
            pass
    return 0