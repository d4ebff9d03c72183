from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Union

from .constants import DEFAULT_COPY_CHUNK_SIZE, SLAR_EXTENSION
from .entry import Entry, read_entry, write_entry
from .errors import OutOfRangeError, SlarError
from .metadata import MetaTag, read_tags, write_tags
from .pathutil import join_archive_path
from .valuecodec import read_count, write_count
from .view import SharedStream


class Archive:
    """Ordered metadata tags plus ordered entries.

    An archive built from handles owns each of them. An archive returned by
    ``deserialize`` owns one SharedStream that every entry's view reads
    through; entries of such an archive must be read one at a time.
    """

    def __init__(
        self,
        entries: Optional[List[Entry]] = None,
        metadata: Optional[List[MetaTag]] = None,
        *,
        shared: Optional[SharedStream] = None,
    ):
        self.entries: List[Entry] = list(entries or [])
        self.metadata: List[MetaTag] = list(metadata or [])
        self.shared = shared
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __getitem__(self, key: Union[int, str]) -> Entry:
        if isinstance(key, str):
            entry = self.find(key)
            if entry is None:
                raise KeyError(key)
            return entry
        return self.entry_at(key)

    @property
    def names(self) -> List[Optional[str]]:
        return [e.name for e in self.entries]

    # lookups
    def entry_at(self, index: int) -> Entry:
        if index < 0 or index >= len(self.entries):
            raise OutOfRangeError(f"entry index {index} out of range (0..{len(self.entries) - 1})")
        return self.entries[index]

    def find(self, name: str) -> Optional[Entry]:
        for e in self.entries:
            if e.name == name:
                return e
        return None

    def get_tag(self, name: str, referenced_entry: Optional[str] = None) -> Optional[MetaTag]:
        """First tag called ``name``.

        Without ``referenced_entry`` the archive-scoped tag of that name is
        returned wherever it sits in the list; failing that, the first
        entry-scoped one. With ``referenced_entry`` the tag must reference that
        entry.
        """
        fallback = None
        for tag in self.metadata:
            if tag.name != name:
                continue
            if tag.referenced_entry == referenced_entry:
                return tag
            if referenced_entry is None and fallback is None:
                fallback = tag
        return fallback

    def tags_for_entry(self, name: str) -> List[MetaTag]:
        return [tag for tag in self.metadata if tag.referenced_entry == name]

    def archive_tags(self) -> List[MetaTag]:
        return [tag for tag in self.metadata if tag.referenced_entry is None]

    # serialization
    def serialize(self, target: BinaryIO, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> None:
        write_tags(target, self.metadata)
        write_count(target, len(self.entries))
        for e in self.entries:
            write_entry(e, target, chunk_size)

    def write(self, path: str, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> None:
        """Serialize to ``path``; a failed write leaves ``path`` as it was.

        The archive is staged in a temporary file beside ``path`` and moved
        into place only after every entry was written.
        """
        out_dir = os.path.dirname(os.path.abspath(path))
        fd, temp_path = tempfile.mkstemp(prefix="slar-write-", suffix=SLAR_EXTENSION, dir=out_dir)
        try:
            with os.fdopen(fd, "wb") as wf:
                self.serialize(wf, chunk_size)
            os.replace(temp_path, path)
        except (SlarError, OSError, ValueError, RuntimeError):
            Path(temp_path).unlink(missing_ok=True)
            raise

    @classmethod
    def deserialize(cls, source: Union[BinaryIO, SharedStream]) -> "Archive":
        """Read the tag list fully and bind each entry to a view of ``source``.

        No entry content is read. The returned archive takes ownership of
        ``source`` and closes it once on ``close``.
        """
        shared = source if isinstance(source, SharedStream) else SharedStream(source)
        metadata = read_tags(shared)
        n = read_count(shared)
        entries = [read_entry(shared) for _ in range(n)]
        return cls(entries, metadata, shared=shared)

    # extraction
    def extract(
        self,
        out_dir: str,
        chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
        on_entry: Optional[Callable[[int, Entry], None]] = None,
    ) -> List[str]:
        """Write every entry below ``out_dir``; returns the paths written.

        Entries share one read cursor, so they are copied strictly in order.
        ``on_entry(index, entry)`` is called before each entry is written.
        """
        written: List[str] = []
        for i, e in enumerate(self.entries):
            if e.name is None:
                raise ValueError("Cannot extract an entry without a name")
            dst = join_archive_path(out_dir, e.name)
            if on_entry is not None:
                on_entry(i, e)
            os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
            with open(dst, "wb") as wf:
                e.copy_to(wf, chunk_size)
            written.append(dst)
        return written

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.shared is not None:
            # Views alias the shared handle; close it once, not per entry
            self.shared.close()
            return
        for e in self.entries:
            e.close()

    def __repr__(self) -> str:
        return f"Archive(entries={len(self.entries)}, metadata={len(self.metadata)})"
