from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, List, Optional

from .valuecodec import read_count, read_optional_str, read_str, write_count, write_optional_str, write_str


@dataclass(frozen=True)
class MetaTag:
    """A name/value pair for the whole archive, or for one entry when
    ``referenced_entry`` names it (the name is not checked against entries)."""

    name: str
    value: str
    referenced_entry: Optional[str] = None

    @property
    def archive_scoped(self) -> bool:
        return self.referenced_entry is None


def write_tag(f: BinaryIO, tag: MetaTag) -> None:
    write_str(f, tag.name)
    write_str(f, tag.value)
    write_optional_str(f, tag.referenced_entry)


def read_tag(f: BinaryIO) -> MetaTag:
    name = read_str(f)
    value = read_str(f)
    referenced_entry = read_optional_str(f)
    return MetaTag(name=name, value=value, referenced_entry=referenced_entry)


def write_tags(f: BinaryIO, tags: List[MetaTag]) -> None:
    write_count(f, len(tags))
    for tag in tags:
        write_tag(f, tag)


def read_tags(f: BinaryIO) -> List[MetaTag]:
    n = read_count(f)
    return [read_tag(f) for _ in range(n)]
