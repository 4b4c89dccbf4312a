from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import BinaryIO

from .channel import DataChannel
from .constants import DEFAULT_BLOCK_SIZE


@dataclass(slots=True)
class TransferMetrics:
    bytes_transferred: int = 0
    operations: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


def download(channel: DataChannel, out: BinaryIO, block_size: int = DEFAULT_BLOCK_SIZE) -> TransferMetrics:
    """Copy the remote file into ``out`` until a read comes back empty."""
    metrics = TransferMetrics()
    buf = bytearray(block_size)
    view = memoryview(buf)

    while True:
        n = channel.read(view, metrics.bytes_transferred)
        metrics.operations += 1
        if n == 0:
            break
        out.write(view[:n])
        metrics.bytes_transferred += n

    out.flush()
    metrics.end_ts = time.monotonic()
    return metrics


def upload(channel: DataChannel, src: BinaryIO, block_size: int = DEFAULT_BLOCK_SIZE) -> TransferMetrics:
    metrics = TransferMetrics()

    while True:
        chunk = src.read(block_size)
        if not chunk:
            break
        metrics.bytes_transferred += channel.write(chunk, metrics.bytes_transferred)
        metrics.operations += 1

    metrics.end_ts = time.monotonic()
    return metrics
