from __future__ import annotations

from typing import BinaryIO

from .constants import SIZE_MAX_BYTES
from .errors import MalformedLengthError


def encode_size(n: int) -> bytes:
    """Encode a byte length as count(u8) || magnitude (big-endian).

    The magnitude uses the minimal two's-complement width, so 0..127 take one
    byte and 128 already needs two (``02 00 80``).
    """
    if n < 0:
        raise ValueError("size: negative not supported")
    k = n.bit_length() // 8 + 1
    if k > SIZE_MAX_BYTES:
        raise ValueError("size: too large to encode")
    return bytes([k]) + n.to_bytes(k, "big", signed=True)


def write_size(f: BinaryIO, n: int) -> None:
    f.write(encode_size(n))


def read_size(f: BinaryIO) -> int:
    raw = f.read(1)
    if not raw:
        raise MalformedLengthError("size: missing byte count")
    k = raw[0]
    mag = f.read(k) if k else b""
    if len(mag) != k:
        raise MalformedLengthError(f"size: expected {k} magnitude bytes, got {len(mag)}")
    n = int.from_bytes(mag, "big", signed=True)
    if n < 0:
        raise MalformedLengthError("size: negative length")
    return n
