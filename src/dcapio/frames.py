"""Acknowledgement and data-chunk framing.

Read path, after the command ack::

    header (8 bytes, not interpreted)
    { chunk_length:i32, chunk_bytes } ...
    EOD:i32 (-1)
    ack

Write path mirrors it with a single chunk. All integers are big-endian.
"""
from __future__ import annotations

import logging
import struct
from typing import Iterator, Protocol

from .constants import DATA_HEADER_SIZE, EOD, INT_SIZE, MAX_ACK_SIZE, MAX_CHUNK_SIZE, Opcode
from .errors import ChannelConnectionError, ProtocolError
from .net import Deadline

logger = logging.getLogger(__name__)

INT_STRUCT = struct.Struct("!i")
DATA_HEADER_STRUCT = struct.Struct("!ii")  # length, opcode


class FrameSource(Protocol):
    def deadline(self) -> Deadline: ...

    def recv_exactly(self, n: int, deadline: Deadline | None = None) -> bytes: ...

    def recv_into_exactly(self, view: memoryview, deadline: Deadline | None = None) -> None: ...


def _read_int(source: FrameSource, deadline: Deadline) -> int:
    (value,) = INT_STRUCT.unpack(source.recv_exactly(INT_SIZE, deadline))
    return value


def decode_ack(source: FrameSource) -> bytes:
    """Read one ``length:i32, payload`` acknowledgement and return the payload.

    The payload is returned as-is. A received ack says the peer answered,
    not that the request succeeded.
    """
    deadline = source.deadline()
    try:
        length = _read_int(source, deadline)
        if not 0 <= length <= MAX_ACK_SIZE:
            raise ProtocolError(f"ack length {length} outside 0..{MAX_ACK_SIZE}")
        payload = source.recv_exactly(length, deadline)
    except ChannelConnectionError as exc:
        raise ProtocolError(f"acknowledgement truncated: {exc}") from exc
    logger.debug("ack received; %d payload bytes", length)
    return payload


def decode_data_stream(source: FrameSource, destination: memoryview) -> int:
    """Copy chunk payloads into ``destination`` until EOD; return the byte count.

    The trailing ack after EOD is consumed as well.
    """
    dst = memoryview(destination).cast("B")
    capacity = len(dst)
    source.recv_exactly(DATA_HEADER_SIZE)

    written = 0
    while True:
        deadline = source.deadline()
        length = _read_int(source, deadline)
        if length < 0:
            if length != EOD:
                raise ProtocolError(f"malformed end-of-data marker {length}")
            break
        if length > capacity - written:
            raise ProtocolError(
                f"chunk of {length} bytes exceeds remaining capacity {capacity - written}"
            )
        source.recv_into_exactly(dst[written : written + length], deadline)
        written += length
        logger.debug("chunk of %d bytes; %d so far", length, written)

    decode_ack(source)
    return written


def encode_data_stream(payload: bytes) -> Iterator[bytes]:
    """Yield the frames that carry ``payload``: header plus chunk, then EOD."""
    data = memoryview(payload).cast("B")
    if len(data) > MAX_CHUNK_SIZE:
        raise ValueError(f"payload of {len(data)} bytes exceeds chunk limit {MAX_CHUNK_SIZE}")
    yield DATA_HEADER_STRUCT.pack(INT_SIZE, Opcode.DATA) + INT_STRUCT.pack(len(data)) + data.tobytes()
    yield INT_STRUCT.pack(EOD)
