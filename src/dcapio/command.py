"""Binary command frames sent on the data channel.

Every frame is ``totalLength:i32, opcode:i32, operands...`` in network
byte order, where ``totalLength`` counts everything after itself.
"""
from __future__ import annotations

import struct

from .constants import SEEK_SET, Opcode

SEEK_AND_READ_STRUCT = struct.Struct("!iiqiq")  # length, opcode, offset, whence, size
SEEK_AND_WRITE_STRUCT = struct.Struct("!iiqi")  # length, opcode, offset, whence
CLOSE_STRUCT = struct.Struct("!ii")  # length, opcode

LENGTH_SIZE = 4


def encode_seek_and_read(offset: int, length: int) -> bytes:
    return SEEK_AND_READ_STRUCT.pack(
        SEEK_AND_READ_STRUCT.size - LENGTH_SIZE,
        Opcode.SEEK_AND_READ,
        offset,
        SEEK_SET,
        length,
    )


def encode_seek_and_write(offset: int) -> bytes:
    # No size operand: the length travels in the data chunk that follows.
    return SEEK_AND_WRITE_STRUCT.pack(
        SEEK_AND_WRITE_STRUCT.size - LENGTH_SIZE,
        Opcode.SEEK_AND_WRITE,
        offset,
        SEEK_SET,
    )


def encode_close() -> bytes:
    return CLOSE_STRUCT.pack(CLOSE_STRUCT.size - LENGTH_SIZE, Opcode.CLOSE)
