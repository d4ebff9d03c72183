from __future__ import annotations

import os
from typing import BinaryIO, Iterable, List, Optional, Sequence, Tuple

from .archive import Archive
from .constants import DEFAULT_COPY_CHUNK_SIZE
from .entry import Entry
from .metadata import MetaTag
from . import pathutil


class ArchiveBuilder:
    """Collects entries and tags, then hands them over as an Archive.

    Files added by path are opened immediately; if the builder is left through
    its context manager without ``build`` being called, every handle it holds
    is closed. Once built, the archive owns the handles.
    """

    def __init__(self, metadata: Optional[Iterable[MetaTag]] = None):
        self.entries: List[Entry] = []
        self.metadata: List[MetaTag] = list(metadata or [])
        self._built = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self._built:
            self.discard()

    def add_stream(self, name: str, stream: BinaryIO) -> Entry:
        if self._built:
            raise RuntimeError("Archive already built")
        entry = Entry.from_stream(name, stream)
        self.entries.append(entry)
        return entry

    def add_file(self, name: str, fs_path: str) -> Entry:
        rf = open(fs_path, "rb")
        try:
            return self.add_stream(name, rf)
        except BaseException:
            rf.close()
            raise

    def add_paths(self, paths: Iterable[str], prefix: str = "") -> None:
        for p in paths:
            self.add_file(pathutil.strip_prefix(p, prefix), p)

    def add_directory(self, directory: str) -> None:
        self.add_paths(iter_files(directory), prefix=directory)

    def add_tag(self, name: str, value: str, referenced_entry: Optional[str] = None) -> MetaTag:
        if self._built:
            raise RuntimeError("Archive already built")
        tag = MetaTag(name=name, value=value, referenced_entry=referenced_entry)
        self.metadata.append(tag)
        return tag

    def build(self) -> Archive:
        if self._built:
            raise RuntimeError("Archive already built")
        self._built = True
        return Archive(self.entries, self.metadata)

    def discard(self) -> None:
        for e in self.entries:
            e.close()
        self.entries = []


def iter_files(directory: str) -> List[str]:
    """All files under ``directory``, recursively, in sorted walk order."""
    out: List[str] = []
    for root, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        for fn in sorted(filenames):
            out.append(os.path.join(root, fn))
    return out


def build(files: Sequence[Tuple[str, BinaryIO]], metadata: Optional[Iterable[MetaTag]] = None) -> Archive:
    """Create an archive from (name, readable stream) pairs.

    The archive takes ownership of the streams and closes them on ``close``.
    """
    with ArchiveBuilder(metadata) as builder:
        for name, stream in files:
            builder.add_stream(name, stream)
        return builder.build()


def build_from_pairs(
    pairs: Sequence[Tuple[str, str]], metadata: Optional[Iterable[MetaTag]] = None
) -> Archive:
    """Create an archive from (archive name, filesystem path) pairs."""
    with ArchiveBuilder(metadata) as builder:
        for name, fs_path in pairs:
            builder.add_file(name, fs_path)
        return builder.build()


def build_from_paths(
    paths: Iterable[str], strip_prefix: str = "", metadata: Optional[Iterable[MetaTag]] = None
) -> Archive:
    """Create an archive from filesystem paths, naming each by removing ``strip_prefix``.

    If any path cannot be opened the whole build fails and the handles opened
    so far are closed.
    """
    with ArchiveBuilder(metadata) as builder:
        builder.add_paths(paths, prefix=strip_prefix)
        return builder.build()


def build_from_directory(directory: str, metadata: Optional[Iterable[MetaTag]] = None) -> Archive:
    return build_from_paths(iter_files(directory), strip_prefix=directory, metadata=metadata)


def write_archive(archive: Archive, path: str, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> None:
    archive.write(path, chunk_size)
