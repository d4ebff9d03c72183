from __future__ import annotations

import io
import threading
from typing import BinaryIO, Union

from .constants import DEFAULT_COPY_CHUNK_SIZE
from .errors import OutOfRangeError, UnsupportedOperationError


class SharedStream:
    """The one underlying handle that every view of an opened archive reads from.

    All views share its physical cursor. Each view re-seeks the handle to its
    own position under ``lock`` before reading, so a single read is atomic,
    but callers should still drain one entry at a time. ``close`` is safe to
    call more than once; the handle is closed exactly once.
    """

    def __init__(self, f: BinaryIO):
        self.f = f
        self.lock = threading.RLock()
        self.closed = False

    def tell(self) -> int:
        return self.f.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self.f.seek(offset, whence)

    def read(self, n: int = -1) -> bytes:
        return self.f.read(n)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.f.close()


class BoundedView(io.RawIOBase):
    """Read-only window of ``size`` bytes starting at ``start_offset`` of a parent stream.

    Reads are truncated at the end of the window: asking for more than what
    remains returns only the remaining bytes, and a read at the end returns
    ``b""``. Seeking uses window-relative origins; for ``SEEK_END`` the offset
    counts backward from the end of the window (``seek(0, SEEK_END)`` is the
    last byte boundary of the window, not of the parent). A seek target outside
    ``[0, size]`` raises OutOfRangeError.

    A view borrows its parent unless ``owns_parent`` is set, in which case
    closing the view closes the parent too.
    """

    def __init__(
        self,
        parent: Union[SharedStream, BinaryIO],
        start_offset: int,
        size: int,
        *,
        owns_parent: bool = False,
    ):
        super().__init__()
        if start_offset < 0 or size < 0:
            raise OutOfRangeError("view offset and size must be non-negative")
        if not isinstance(parent, SharedStream):
            parent = SharedStream(parent)
        self._parent = parent
        self._start = start_offset
        self._size = size
        self._pos = 0
        self._owns_parent = owns_parent

    @property
    def parent(self) -> SharedStream:
        return self._parent

    @property
    def start_offset(self) -> int:
        return self._start

    @property
    def size(self) -> int:
        return self._size

    @property
    def length(self) -> int:
        return self._size

    @property
    def owns_parent(self) -> bool:
        return self._owns_parent

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def readinto(self, b) -> int:
        self._check_open()
        remaining = self._size - self._pos
        n = min(len(b), remaining)
        if n <= 0:
            return 0
        with self._parent.lock:
            self._parent.seek(self._start + self._pos)
            data = self._parent.read(n)
        got = len(data)
        b[:got] = data
        self._pos += got
        return got

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_open()
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        elif whence == io.SEEK_END:
            target = self._size - offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        if target < 0 or target > self._size:
            raise OutOfRangeError(f"seek to {target} outside view of {self._size} bytes")
        with self._parent.lock:
            self._parent.seek(self._start + target)
        self._pos = target
        return target

    def tell(self) -> int:
        self._check_open()
        return self._pos

    def write(self, b) -> int:
        raise UnsupportedOperationError("Writing is not supported")

    def truncate(self, size=None) -> int:
        raise UnsupportedOperationError("BoundedView cannot be resized")

    def close(self) -> None:
        if self.closed:
            return
        try:
            if getattr(self, "_owns_parent", False):
                self._parent.close()
        finally:
            super().close()

    def copy_all(self, destination: BinaryIO, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> int:
        """Copy the whole window into ``destination``; returns the byte count.

        Copies ``size // chunk_size`` full chunks and then one final partial
        chunk, never reading past the window. Raises OutOfRangeError if the
        parent ends before the window does.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.seek(0)
        full, last = divmod(self._size, chunk_size)
        buf = bytearray(chunk_size)
        for _ in range(full):
            self._copy_chunk(destination, buf, chunk_size)
        if last:
            self._copy_chunk(destination, buf, last)
        return self._size

    def read_all(self) -> bytes:
        out = io.BytesIO()
        self.copy_all(out)
        return out.getvalue()

    def _copy_chunk(self, destination: BinaryIO, buf: bytearray, n: int) -> None:
        mv = memoryview(buf)[:n]
        got = 0
        while got < n:
            r = self.readinto(mv[got:])
            if not r:
                raise OutOfRangeError(
                    f"content ends {self._size - self._pos} byte(s) before the end of its view"
                )
            got += r
        destination.write(mv)

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed view")
        if self._parent.closed:
            raise ValueError("I/O operation on a view whose archive is closed")
