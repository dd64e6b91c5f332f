"""
Random-access byte sources consumed by the EVT / EVTX decoders.
Decoders never assume the whole file is buffered; they ask for ranges.
"""

from pathlib import Path
from typing import BinaryIO, Protocol

from .errors import TruncatedReadError


class ByteSource(Protocol):
    """Anything that can serve (possibly short) reads at an absolute offset."""

    def read(self, offset: int, length: int) -> bytes: ...

    def total_size(self) -> int: ...


class BytesByteSource:
    """In-memory buffer (tests, carved fragments)."""

    def __init__(self, data: bytes):
        self._data = bytes(data)

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0 or offset >= len(self._data):
            return b""
        return self._data[offset : offset + length]

    def total_size(self) -> int:
        return len(self._data)


class FileByteSource:
    """Seek/read over an open binary file handle."""

    def __init__(self, fh: BinaryIO, size: int | None = None):
        self._fh = fh
        if size is None:
            fh.seek(0, 2)
            size = fh.tell()
        self._size = size

    @classmethod
    def open(cls, path: Path | str) -> "FileByteSource":
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Log file not found: {path}")
        return cls(open(path, "rb"))

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0 or offset >= self._size:
            return b""
        self._fh.seek(offset)
        return self._fh.read(min(length, self._size - offset))

    def total_size(self) -> int:
        return self._size

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "FileByteSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def read_exact(source: ByteSource, offset: int, length: int) -> bytes:
    """Read exactly `length` bytes or raise TruncatedReadError."""
    data = source.read(offset, length)
    if len(data) < length:
        raise TruncatedReadError(offset, length, len(data))
    return data
