"""
core/bcs.py -- Minimal Binary Canonical Serialization (BCS) writer.

Only the encodings the zkLogin composite signature needs: u8, u64, ULEB128
lengths, byte vectors, UTF-8 strings and vectors of those. BCS is the ledger's
canonical wire format -- field order and integer widths are fixed by the
on-chain struct definition, so callers serialize fields in declaration order.

No decoding. Transactions are built and returned as bytes by the fullnode;
this module never needs to read them.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

_U64_MAX = 2**64 - 1


def uleb128(value: int) -> bytes:
    """Encode a non-negative integer as unsigned LEB128 (sequence lengths)."""
    if value < 0:
        raise ValueError(f"ULEB128 cannot encode negative value {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def u8(value: int) -> bytes:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 out of range: {value}")
    return bytes([value])


def u64(value: int) -> bytes:
    if not 0 <= value <= _U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def byte_vector(data: bytes) -> bytes:
    return uleb128(len(data)) + data


def string(value: str) -> bytes:
    return byte_vector(value.encode("utf-8"))


def vector(items: Iterable[T], encode: Callable[[T], bytes]) -> bytes:
    items = list(items)
    return uleb128(len(items)) + b"".join(encode(item) for item in items)
