"""Meta files describing a shared file: name, size and SHA-1 hashes."""

from __future__ import annotations

import hashlib
import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

MAX_FILE_NAME = 128
MAX_NUM_PIECES = 4096
SHA_DIGEST_LENGTH = 20
_BUFF_SIZE = 32768

_LAYOUT = struct.Struct(
    f"<{MAX_FILE_NAME}s{SHA_DIGEST_LENGTH}sII{MAX_NUM_PIECES * SHA_DIGEST_LENGTH}s"
)
META_FILE_SIZE = _LAYOUT.size

PathLike = Union[str, os.PathLike]


def calc_sha1(path: PathLike, offset: int = 0, num_bytes: Optional[int] = None) -> bytes:
    """SHA-1 of at most num_bytes bytes of a file, starting at offset.

    With num_bytes None the hash runs to the end of the file.
    """
    digest = hashlib.sha1()
    remaining = num_bytes
    with open(path, "rb") as fh:
        fh.seek(offset)
        while remaining is None or remaining > 0:
            size = _BUFF_SIZE if remaining is None else min(_BUFF_SIZE, remaining)
            chunk = fh.read(size)
            if not chunk:
                break
            digest.update(chunk)
            if remaining is not None:
                remaining -= len(chunk)
    return digest.digest()


def _num_pieces(file_size: int, piece_size: int) -> int:
    return -(-file_size // piece_size)


@dataclass
class MetaFile:
    """Description of a shared file and the hash of every piece."""

    file_name: str
    file_hash: bytes
    file_size: int
    piece_size: int
    pieces_hash: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.file_name.encode("utf-8")) > MAX_FILE_NAME:
            raise ValueError(f"file name longer than {MAX_FILE_NAME} bytes")
        self.file_hash = bytes(self.file_hash)
        if len(self.file_hash) != SHA_DIGEST_LENGTH:
            raise ValueError("file hash must be a SHA-1 digest")
        if not 0 <= self.file_size <= 0xFFFFFFFF:
            raise ValueError(f"file size out of range: {self.file_size}")
        if not 0 < self.piece_size <= 0xFFFFFFFF:
            raise ValueError(f"piece size out of range: {self.piece_size}")
        if self.num_pieces() > MAX_NUM_PIECES:
            raise ValueError(f"a file may have at most {MAX_NUM_PIECES} pieces")
        self.pieces_hash = [bytes(h) for h in self.pieces_hash]
        if len(self.pieces_hash) != self.num_pieces():
            raise ValueError("one hash is needed for every piece")
        if any(len(h) != SHA_DIGEST_LENGTH for h in self.pieces_hash):
            raise ValueError("piece hashes must be SHA-1 digests")

    def to_bytes(self) -> bytes:
        """The fixed size on-disk layout."""
        return _LAYOUT.pack(
            self.file_name.encode("utf-8"),
            self.file_hash,
            self.file_size,
            self.piece_size,
            b"".join(self.pieces_hash),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "MetaFile":
        if len(data) < META_FILE_SIZE:
            raise ValueError(f"meta file needs {META_FILE_SIZE} bytes, got {len(data)}")
        raw_name, file_hash, file_size, piece_size, raw_hashes = _LAYOUT.unpack_from(data)
        if piece_size == 0:
            raise ValueError("meta file has a piece size of zero")
        count = min(_num_pieces(file_size, piece_size), MAX_NUM_PIECES)
        pieces = [
            raw_hashes[i * SHA_DIGEST_LENGTH:(i + 1) * SHA_DIGEST_LENGTH] for i in range(count)
        ]
        name = raw_name.split(b"\0", 1)[0].decode("utf-8")
        return cls(name, file_hash, file_size, piece_size, pieces)

    def write(self, path: PathLike) -> None:
        Path(path).write_bytes(self.to_bytes())

    def num_pieces(self) -> int:
        return _num_pieces(self.file_size, self.piece_size)

    def piece_length(self, index: int) -> int:
        """Size in bytes of a piece; only the last one may be short."""
        count = self.num_pieces()
        if not 0 <= index < count:
            raise IndexError(f"piece {index} out of range")
        if index == count - 1:
            return self.file_size % self.piece_size or self.piece_size
        return self.piece_size

    def check_piece_hash(self, index: int, path: PathLike) -> bool:
        """Whether the piece stored in the file at path has the expected hash."""
        self.piece_length(index)
        found = calc_sha1(path, index * self.piece_size, self.piece_size)
        return found == self.pieces_hash[index]

    def describe(self) -> str:
        lines = [
            f"File: {self.file_name}",
            f"Hash: {self.file_hash.hex()}",
            f"Size: {self.file_size} bytes",
            f"Pieces size: {self.piece_size} bytes",
        ]
        lines.extend(
            f"Piece {index} hash: {digest.hex()}" for index, digest in enumerate(self.pieces_hash)
        )
        return "\n".join(lines)


def make_meta_file(path: PathLike, piece_size: int) -> MetaFile:
    """Describe the file at path, cut into pieces of piece_size bytes."""
    if piece_size <= 0:
        raise ValueError("piece size must be positive")
    path = Path(path)
    size = path.stat().st_size
    count = _num_pieces(size, piece_size)
    if count > MAX_NUM_PIECES:
        raise ValueError(f"a file may have at most {MAX_NUM_PIECES} pieces")
    file_hash = calc_sha1(path, 0, size)
    if count == 1:
        pieces = [file_hash]
    else:
        pieces = [calc_sha1(path, i * piece_size, piece_size) for i in range(count)]
    return MetaFile(path.name, file_hash, size, piece_size, pieces)


def load_meta_file(path: PathLike) -> MetaFile:
    return MetaFile.from_bytes(Path(path).read_bytes())