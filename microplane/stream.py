"""Seekable byte streams used by every checker, parser, reader and writer.

``RandomAccessStream`` wraps a binary file object (a local file opened
through fsspec, or an in-memory ``io.BytesIO``) and adds absolute seek,
relative skip, length queries and fixed-width integer, floating point and
string access in a configurable byte order.

Short reads raise ``EOFError`` and failures of the underlying file object
propagate unchanged.
"""

from __future__ import annotations

import io
import os
import struct
from typing import Any, BinaryIO, Optional, Union

import fsspec

PathLike = Union[str, "os.PathLike[str]"]


class RandomAccessStream:
    """Random-access view over a binary file object.

    Args:
        handle: Seekable binary file object
        name: Path or label used in messages and for companion resolution
        little_endian: Initial byte order for multi-byte values
        owns_handle: Close ``handle`` when this stream is closed
    """

    def __init__(
        self,
        handle: BinaryIO,
        name: Optional[str] = None,
        little_endian: bool = False,
        owns_handle: bool = True,
    ):
        self._handle = handle
        self.name = name
        self.little_endian = little_endian
        self._owns_handle = owns_handle

    # -- construction --

    @classmethod
    def from_path(cls, path: PathLike, mode: str = "rb", **kwargs: Any) -> "RandomAccessStream":
        """Open a file for random access.

        Args:
            path: Path of the file
            mode: Binary open mode, ``"rb"`` or ``"wb"``
            **kwargs: Passed to the stream constructor

        Raises:
            FileNotFoundError: If the file does not exist and mode is "rb"
        """
        path = os.fspath(path)
        handle = fsspec.open(path, mode).open()
        return cls(handle, name=path, **kwargs)

    @classmethod
    def from_bytes(cls, data: bytes = b"", name: Optional[str] = None, **kwargs: Any) -> "RandomAccessStream":
        """Wrap an in-memory buffer (readable and writable)."""
        return cls(io.BytesIO(data), name=name, **kwargs)

    # -- byte order --

    def order(self, little_endian: bool) -> None:
        self.little_endian = little_endian

    @property
    def _prefix(self) -> str:
        return "<" if self.little_endian else ">"

    # -- positioning --

    def seek(self, position: int) -> None:
        if position < 0:
            raise EOFError(f"Cannot seek to negative position {position}")
        self._handle.seek(position)

    def skip(self, count: int) -> None:
        self._handle.seek(count, io.SEEK_CUR)

    def tell(self) -> int:
        return self._handle.tell()

    get_file_pointer = tell

    def length(self) -> int:
        current = self._handle.tell()
        end = self._handle.seek(0, io.SEEK_END)
        self._handle.seek(current)
        return end

    def remaining(self) -> int:
        return self.length() - self.tell()

    # -- reading --

    def read(self, count: int) -> bytes:
        """Read exactly ``count`` bytes.

        Raises:
            EOFError: If fewer than ``count`` bytes remain
        """
        if count < 0:
            raise ValueError(f"Cannot read a negative number of bytes ({count})")
        data = self._handle.read(count)
        if len(data) != count:
            raise EOFError(
                f"Expected {count} bytes at offset {self.tell() - len(data)}"
                f" of {self.name or 'stream'}, got {len(data)}"
            )
        return data

    def read_into(self, buf: Union[bytearray, memoryview], offset: int, count: int) -> None:
        """Read exactly ``count`` bytes into ``buf[offset:offset + count]``."""
        buf[offset:offset + count] = self.read(count)

    def _unpack(self, code: str) -> Any:
        fmt = self._prefix + code
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))[0]

    def read_byte(self) -> int:
        return self._unpack("b")

    def read_short(self) -> int:
        return self._unpack("h")

    def read_unsigned_short(self) -> int:
        return self._unpack("H")

    def read_int(self) -> int:
        return self._unpack("i")

    def read_long(self) -> int:
        return self._unpack("q")

    def read_double(self) -> float:
        return self._unpack("d")

    def read_string(self, count: int, encoding: str = "utf-8") -> str:
        return self.read(count).decode(encoding, errors="replace")

    def read_line(self, encoding: str = "latin-1") -> Optional[str]:
        """Read one line without its terminator, or None at end of stream."""
        raw = self._handle.readline()
        if not raw:
            return None
        return raw.decode(encoding).rstrip("\r\n")

    # -- writing --

    def write(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._handle.write(data)

    def _pack(self, code: str, value: Any) -> None:
        self.write(struct.pack(self._prefix + code, value))

    def write_short(self, value: int) -> None:
        self._pack("h", value)

    def write_unsigned_short(self, value: int) -> None:
        self._pack("H", value)

    def write_int(self, value: int) -> None:
        self._pack("i", value)

    def write_long(self, value: int) -> None:
        self._pack("q", value)

    def write_double(self, value: float) -> None:
        self._pack("d", value)

    def write_string(self, value: str, encoding: str = "utf-8") -> None:
        self.write(value.encode(encoding))

    def truncate(self, size: int) -> None:
        self._handle.truncate(size)

    def flush(self) -> None:
        self._handle.flush()

    def getvalue(self) -> bytes:
        """Return the whole content of an in-memory stream."""
        return self._handle.getvalue()

    # -- lifecycle --

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def close(self) -> None:
        if self._owns_handle and not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> "RandomAccessStream":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RandomAccessStream(name={self.name!r}, little_endian={self.little_endian})"
