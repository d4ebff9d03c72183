from __future__ import annotations

from typing import List

from .archive import Archive
from .constants import DEFAULT_COPY_CHUNK_SIZE
from .errors import SlarError
from .view import BoundedView


def open_archive(path: str) -> Archive:
    """Open a .slar file and read its tag list and entry table.

    Entry content stays on disk until it is read through an entry's view.
    Close the returned archive (or use it as a context manager) to release the
    file.
    """
    f = open(path, "rb")
    try:
        return Archive.deserialize(f)
    except (SlarError, OSError, ValueError):
        # Ensure file handle is closed on failure to avoid leaks
        f.close()
        raise


def extract_file(archive_path: str, out_dir: str, chunk_size: int = DEFAULT_COPY_CHUNK_SIZE) -> List[str]:
    with open_archive(archive_path) as archive:
        return archive.extract(out_dir, chunk_size)


def open_entry(archive_path: str, index: int) -> BoundedView:
    """Open entry ``index`` of ``archive_path`` on its own file handle.

    The returned view owns that handle, so several of them can be read at the
    same time (one per thread) without sharing a cursor. Closing the view
    closes the handle.
    """
    with open_archive(archive_path) as archive:
        view = archive.entry_at(index).source.stream
        start, size = view.start_offset, view.size
    f = open(archive_path, "rb")
    return BoundedView(f, start, size, owns_parent=True)
