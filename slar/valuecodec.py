from __future__ import annotations

"""
Field-order value codec for SLAr metadata and entry headers.

Encoding
- Count: unsigned LEB128 varint
- String: varint(byte length) || UTF-8 bytes
- Nullable string: u8 presence (0 = absent, 1 = present) || string when present

Every type is written field by field in a fixed order by its own
write_*/read_* pair; nothing is inferred from the runtime type.
"""

from typing import BinaryIO, Optional

from .constants import MAX_LIST_COUNT, MAX_STRING_BYTES, STR_ABSENT, STR_PRESENT
from .errors import MalformedValueError


def varint_encode(n: int) -> bytes:
    if n < 0:
        raise ValueError("varint: negative not supported")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            break
    return bytes(out)


def read_exact(f: BinaryIO, n: int) -> bytes:
    b = f.read(n)
    if b is None or len(b) != n:
        raise MalformedValueError("Unexpected EOF")
    return b


def write_count(f: BinaryIO, n: int) -> None:
    f.write(varint_encode(n))


def read_count(f: BinaryIO, limit: int = MAX_LIST_COUNT) -> int:
    shift = 0
    result = 0
    while True:
        raw = f.read(1)
        if not raw:
            raise MalformedValueError("varint: truncated")
        b = raw[0]
        result |= (b & 0x7F) << shift
        if not (b & 0x80):
            break
        shift += 7
        if shift > 63:
            raise MalformedValueError("varint: too large")
    if result > limit:
        raise MalformedValueError(f"count {result} exceeds limit {limit}")
    return result


def write_str(f: BinaryIO, s: str) -> None:
    data = s.encode("utf-8")
    write_count(f, len(data))
    f.write(data)


def read_str(f: BinaryIO) -> str:
    n = read_count(f, limit=MAX_STRING_BYTES)
    raw = read_exact(f, n)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedValueError(f"string is not valid UTF-8: {exc}")


def write_optional_str(f: BinaryIO, s: Optional[str]) -> None:
    if s is None:
        f.write(bytes([STR_ABSENT]))
        return
    f.write(bytes([STR_PRESENT]))
    write_str(f, s)


def read_optional_str(f: BinaryIO) -> Optional[str]:
    marker = read_exact(f, 1)[0]
    if marker == STR_ABSENT:
        return None
    if marker != STR_PRESENT:
        raise MalformedValueError(f"bad nullable string marker: {marker}")
    return read_str(f)
