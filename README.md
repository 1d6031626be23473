# oslab

`oslab` is a small peer-to-peer file sharing system. A central tracker tells
peers where to find each other. The peers then pass a file between themselves
in fixed-size pieces, and each piece is checked against its SHA-1 hash. The
package also holds a few smaller utilities that use threads, queues and
sockets.

It needs nothing beyond the Python standard library (3.10 or later).

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## File sharing

The system has three commands.

- **`oslab-tracker`** listens on `127.0.0.1:6881`. For each file hash it keeps
  the peers that announce that file, together with the combined piece map of
  the swarm. Every announcement is answered with the current peer list and a
  re-announce interval of 5 seconds. A peer that has been silent for more than
  15 seconds is dropped.
- **`oslab-seeder PORT ID FILE METAFILE`** shares a whole file. It cuts `FILE`
  into 4096-byte pieces, builds the metafile and writes it to `METAFILE`. It
  then announces itself to the tracker and serves every piece to the peers
  that ask for it.
- **`oslab-peer PORT ID METAFILE`** loads a metafile and learns the swarm from
  the tracker. It downloads the missing pieces from every other peer it knows
  of and prints a progress bar as it goes. While downloading it also serves
  the pieces it already has. The file is written to the working directory,
  under the name recorded in the metafile.

A typical session, with each command in its own terminal:

```
oslab-tracker
oslab-seeder 7000 seeder01 movie.mkv movie.meta
oslab-peer 7001 peer01 movie.meta
oslab-peer 7002 peer02 movie.meta
```

Peers ask for data in blocks of 1024 bytes. Before each block it sends, the
serving side waits for `oslab.peer.BLOCK_DELAY` seconds (1 by default), so
that a transfer can be watched while it runs. When a downloaded piece does not
match its hash, it is marked as missing and fetched again.

### Limits

- The tracker address (`127.0.0.1:6881`) is fixed. Clients listen on
  `127.0.0.1` only, so the whole swarm runs on one machine.
- The tracker follows at most 10 files, with at most 10 peers each.
- A file has at most 4096 pieces. With the 4096-byte pieces the seeder uses,
  that is 16 MiB.
- The tracker keeps its records in memory only. A peer that restarts begins
  with no pieces marked as held and fetches them all again.

### Library use

The building blocks can be imported on their own:

- `oslab.metafile` provides `make_meta_file`, `load_meta_file`, `calc_sha1` and
  the `MetaFile` record. A `MetaFile` has `to_bytes`/`from_bytes`, `write`,
  `num_pieces`, `piece_length`, `check_piece_hash` and `describe`.
- `oslab.proto` defines the wire messages `TrackerRequest`, `TrackerResponse`,
  `PeerHandshake`, `PeerRequest`, `PeerPiece` and `PeerInfo`.
  `encode_message` and `decode_message` turn them into bytes and back, and
  `send_message` and `recv_message` carry them over a socket. Malformed data
  raises `ProtocolError`.
- `oslab.filestate` holds `FileState`, the thread-safe record of which pieces
  a client holds, which peers it knows and what the swarm offers. It also has
  `check_piece` for reading a piece map.
- `oslab.peer` has the client loops: `contact_tracker`, `serve_peer`,
  `contact_peer` and `download_file`.
- `oslab.tracker` has the tracker's bookkeeping, `FileContainer` and
  `TrackedFile`, along with `serve_client` and `monitor_client_updates`.
  `TrackerFull` is raised when there is no room for another file or peer.

```python
from oslab.metafile import make_meta_file, load_meta_file

meta = make_meta_file("movie.mkv", 4096)
meta.write("movie.meta")
print(load_meta_file("movie.meta").describe())
```

## Other tools

- **`oslab-baseconv`** reads a number and a base (from 2 to 16) from standard
  input and prints the number in that base. It repeats until end of input.
- **`oslab-workserver`** starts a pool of 8 worker threads over a work queue
  that holds at most 5 units. It feeds the pool 30 sleeping jobs and then
  prints how many units ran, their average wait in the queue and their
  average run time. `WorkServer` is also a context manager, and `submit`
  accepts any `WorkUnit`.
- **`oslab-echoserver PORT`** starts a threaded TCP server. It answers each
  client once with its message in upper case and then closes the connection.
  If nothing arrives within 5 seconds, it sends `TIMEOUT, SOCKET CLOSED` and
  closes the connection.

A few small helper modules have no command of their own:

- `oslab.arith`: base conversion, bit counting and setting, greatest common
  divisor, and domino tilings of a 2 x n rectangle.
- `oslab.textops`: removing parenthesised comments, substring search and left
  trim.
- `oslab.complexnum`: a `Complex` number type with `+`, `-`, `*` and `/`.
- `oslab.people`: a `Person` record, comparison functions for several sort
  keys, and `sort_people`.