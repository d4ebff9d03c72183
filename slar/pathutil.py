from __future__ import annotations

import os


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def strip_prefix(path: str, prefix: str) -> str:
    """Derive an archive name from a filesystem path.

    The prefix is removed, host separators become '/', and a leading '/' is
    trimmed, so ``strip_prefix("data/docs/a.txt", "data")`` gives ``docs/a.txt``.
    """
    if prefix and not path.startswith(prefix):
        raise ValueError(f"Path {path!r} is not under {prefix!r}")
    name = path[len(prefix):]
    name = name.replace("\\", "/")
    if os.sep != "/":
        name = name.replace(os.sep, "/")
    return name.lstrip("/")


def join_archive_path(out_dir: str, name: str) -> str:
    # Entry names are always '/'-delimited, whatever the host uses
    rel = norm_path(name)
    if not rel:
        raise ValueError(f"Entry name {name!r} does not name a file")
    return os.path.join(out_dir, *rel.split("/"))
