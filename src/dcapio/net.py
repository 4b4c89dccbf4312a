from __future__ import annotations

import enum
import logging
import selectors
import socket
import time
from dataclasses import dataclass

from .constants import DEFAULT_TIMEOUT_S
from .errors import ChannelConnectionError, ChannelTimeoutError

logger = logging.getLogger(__name__)


class Operation(enum.Enum):
    READ = selectors.EVENT_READ
    WRITE = selectors.EVENT_WRITE


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute point on the monotonic clock that bounds one logical operation."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class DeadlineGuard:
    """Partial-I/O loops on a non-blocking socket, bounded by a deadline.

    The only place in the package that waits: each call blocks on socket
    readiness for at most the time left before its deadline, and keeps
    going until the buffer is fully sent or filled.
    """

    def __init__(self, sock: socket.socket, timeout: float = DEFAULT_TIMEOUT_S):
        self.sock = sock
        self.timeout = timeout
        sock.setblocking(False)
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ)

    def deadline(self) -> Deadline:
        return Deadline.after(self.timeout)

    def perform(self, op: Operation, buf: memoryview, deadline: Deadline) -> None:
        """Drain (WRITE) or fill (READ) ``buf`` completely before ``deadline``."""
        view = memoryview(buf).cast("B")
        done = 0
        total = len(view)
        self._selector.modify(self.sock, op.value)

        while done < total:
            remaining = deadline.remaining()
            if remaining <= 0:
                raise ChannelTimeoutError(
                    f"{op.name.lower()} timed out after {done}/{total} bytes"
                )
            if not self._selector.select(remaining):
                continue

            try:
                if op is Operation.READ:
                    n = self.sock.recv_into(view[done:])
                    if n == 0:
                        raise ChannelConnectionError(
                            f"peer closed connection after {done}/{total} bytes"
                        )
                else:
                    n = self.sock.send(view[done:])
            except (BlockingIOError, InterruptedError):
                continue
            except OSError as exc:
                raise ChannelConnectionError(f"{op.name.lower()} failed: {exc}") from exc
            done += n

    def send_all(self, data: bytes, deadline: Deadline | None = None) -> None:
        self.perform(Operation.WRITE, memoryview(data), deadline or self.deadline())

    def recv_into_exactly(self, view: memoryview, deadline: Deadline | None = None) -> None:
        self.perform(Operation.READ, view, deadline or self.deadline())

    def recv_exactly(self, n: int, deadline: Deadline | None = None) -> bytes:
        buf = bytearray(n)
        self.recv_into_exactly(memoryview(buf), deadline)
        return bytes(buf)

    def close(self) -> None:
        self._selector.close()
        self.sock.close()
