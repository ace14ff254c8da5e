"""Variable-length integer codec used by the server status protocol.

Seven data bits per byte, least significant group first, high bit set on
every byte except the last. A 32-bit value never needs more than 5 bytes.
"""

import asyncio
from typing import Tuple

MAX_VARINT_BYTES = 5
_UINT32_MASK = 0xFFFFFFFF


class VarIntError(ValueError):
    """Raised for an over-long or truncated varint."""


def encode_varint(value: int) -> bytes:
    """Encode a 32-bit integer. Negative values use two's complement."""
    if value < -(1 << 31) or value > _UINT32_MASK:
        raise ValueError(f"VarInt out of 32-bit range: {value}")
    remaining = value & _UINT32_MASK
    out = bytearray()
    while True:
        if remaining & ~0x7F == 0:
            out.append(remaining)
            return bytes(out)
        out.append((remaining & 0x7F) | 0x80)
        remaining >>= 7


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode one varint from ``data`` at ``offset``.

    Returns ``(value, next_offset)`` with value as an unsigned 32-bit int.
    """
    result = 0
    for num_read in range(MAX_VARINT_BYTES):
        position = offset + num_read
        if position >= len(data):
            raise VarIntError("VarInt is truncated")
        byte = data[position]
        result |= (byte & 0x7F) << (7 * num_read)
        if not byte & 0x80:
            return result & _UINT32_MASK, position + 1
    raise VarIntError("VarInt is too big")


async def read_varint(reader: asyncio.StreamReader) -> int:
    """Read one varint from a stream, one byte at a time."""
    result = 0
    for num_read in range(MAX_VARINT_BYTES):
        byte = (await reader.readexactly(1))[0]
        result |= (byte & 0x7F) << (7 * num_read)
        if not byte & 0x80:
            return result & _UINT32_MASK
    raise VarIntError("VarInt is too big")
