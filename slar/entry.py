from __future__ import annotations

import io
import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .constants import DEFAULT_COPY_CHUNK_SIZE
from .errors import MalformedLengthError, SlarError
from .sizecodec import read_size, write_size
from .valuecodec import read_optional_str, write_optional_str
from .view import BoundedView, SharedStream


@dataclass(frozen=True)
class EntryInfo:
    name: Optional[str]
    length: int


class ContentSource:
    """Where an entry's bytes live, and who is responsible for closing them.

    ``owned`` sources are independent handles opened at build time; the entry
    closes them. Borrowed sources are BoundedViews into an opened archive; the
    archive closes their shared parent once.
    """

    def __init__(self, stream: BinaryIO, *, owned: bool, length: Optional[int] = None):
        self.stream = stream
        self.owned = owned
        self.length = _measure(stream) if length is None else length

    @classmethod
    def owned_handle(cls, stream: BinaryIO) -> "ContentSource":
        return cls(stream, owned=True)

    @classmethod
    def borrowed_view(cls, view: BoundedView) -> "ContentSource":
        return cls(view, owned=False, length=view.size)

    def open(self) -> BinaryIO:
        self.stream.seek(0)
        return self.stream

    def copy_to(self, destination: BinaryIO, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> int:
        if isinstance(self.stream, BoundedView):
            return self.stream.copy_all(destination, chunk_size)
        self.stream.seek(0)
        remaining = self.length
        while remaining:
            chunk = self.stream.read(min(chunk_size, remaining))
            if not chunk:
                raise SlarError(
                    f"content ended {remaining} byte(s) short of its recorded length {self.length}"
                )
            destination.write(chunk)
            remaining -= len(chunk)
        return self.length

    def close(self) -> None:
        if self.owned:
            self.stream.close()


def _measure(stream: BinaryIO) -> int:
    end = stream.seek(0, io.SEEK_END)
    stream.seek(0)
    return end


class Entry:
    """One named blob in an archive."""

    def __init__(self, name: Optional[str], source: ContentSource):
        self._name = name
        self._source = source

    @classmethod
    def from_stream(cls, name: str, stream: BinaryIO) -> "Entry":
        return cls(name, ContentSource.owned_handle(stream))

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def source(self) -> ContentSource:
        return self._source

    @property
    def length(self) -> int:
        return self._source.length

    @property
    def owned(self) -> bool:
        return self._source.owned

    @property
    def info(self) -> EntryInfo:
        return EntryInfo(name=self._name, length=self._source.length)

    def open(self) -> BinaryIO:
        """Return the content stream positioned at 0.

        For an entry read from an archive this is a BoundedView that shares the
        archive's handle; read it fully before opening another entry.
        """
        return self._source.open()

    def read_bytes(self) -> bytes:
        out = io.BytesIO()
        self._source.copy_to(out)
        return out.getvalue()

    def copy_to(self, destination: BinaryIO, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> int:
        return self._source.copy_to(destination, chunk_size)

    def close(self) -> None:
        self._source.close()

    def __repr__(self) -> str:
        kind = "owned" if self._source.owned else "view"
        return f"Entry(name={self._name!r}, length={self.length}, {kind})"


def write_entry(entry: Entry, target: BinaryIO, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> None:
    write_optional_str(target, entry.name)
    write_size(target, entry.length)
    entry.copy_to(target, chunk_size)


def read_entry(shared: SharedStream) -> Entry:
    name = read_optional_str(shared)
    length = read_size(shared)
    pos = shared.tell()
    if pos + length > sys.maxsize:
        raise MalformedLengthError(f"entry length {length} at offset {pos} exceeds any file offset")
    view = BoundedView(shared, pos, length)
    # Skip the content; it is only read through the view
    shared.seek(pos + length)
    return Entry(name, ContentSource.borrowed_view(view))
