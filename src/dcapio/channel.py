from __future__ import annotations

import logging
import socket
import struct
import threading
from typing import Callable, Tuple, TypeVar

from .command import encode_close, encode_seek_and_read, encode_seek_and_write
from .constants import DEFAULT_TIMEOUT_S, MAX_CHUNK_SIZE, MAX_SESSION_ID
from .errors import ChannelClosedError, ChannelConnectionError, DcapError
from .frames import decode_ack, decode_data_stream, encode_data_stream
from .net import DeadlineGuard

logger = logging.getLogger(__name__)

HANDSHAKE_STRUCT = struct.Struct("!Ii")  # session id, challenge length

T = TypeVar("T")


class DataChannel:
    """Positioned reads and writes of one remote file over a dcap data connection.

    Constructing a channel connects to the mover at ``address`` and sends the
    session binding handshake. Calls are serialized on a per-channel lock,
    since the protocol is strict request/response on one socket. Arguments
    are checked before anything is sent. Any error after that leaves the
    connection in an unknown state, so the channel is torn down before the
    error propagates; open a new session to retry.

    Acknowledgement payloads are not interpreted. ``last_ack`` holds the raw
    payload of the last command or write acknowledgement for callers that
    want it; receiving an ack does not mean the request succeeded.
    """

    def __init__(
        self,
        address: Tuple[str, int],
        session_id: int,
        challenge: bytes,
        size: int = 0,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
    ):
        if not 0 <= session_id <= MAX_SESSION_ID:
            raise ValueError(f"session id {session_id} outside 0..{MAX_SESSION_ID}")
        handshake = HANDSHAKE_STRUCT.pack(session_id, len(challenge)) + bytes(memoryview(challenge))

        self._session_id = session_id
        self._size = size
        self._lock = threading.Lock()
        self._closed = False
        self.last_ack = b""

        try:
            sock = socket.create_connection(address, timeout=timeout)
        except OSError as exc:
            raise ChannelConnectionError(f"cannot connect to {address[0]}:{address[1]}: {exc}") from exc
        self._guard = DeadlineGuard(sock, timeout)

        try:
            self._guard.send_all(handshake)
        except DcapError as exc:
            self._guard.close()
            raise ChannelConnectionError(f"handshake with {address[0]}:{address[1]} failed: {exc}") from exc
        except BaseException:
            self._guard.close()
            raise
        logger.info("data channel open; session=%d mover=%s:%d", session_id, address[0], address[1])

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def size(self) -> int:
        """File size known when the channel was opened. Never refreshed."""
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def _exchange(self, request: bytes) -> bytes:
        self._guard.send_all(request)
        self.last_ack = decode_ack(self._guard)
        return self.last_ack

    def _call(self, name: str, fn: Callable[[], T]) -> T:
        with self._lock:
            if self._closed:
                raise ChannelClosedError(f"{name} on closed channel (session {self._session_id})")
            try:
                return fn()
            except BaseException as exc:
                logger.warning("session %d: %s failed, tearing down channel: %r", self._session_id, name, exc)
                self._teardown()
                raise

    def _teardown(self) -> None:
        self._closed = True
        self._guard.close()

    def read(self, buffer: memoryview | bytearray, position: int) -> int:
        """Fill ``buffer`` from the remote file at ``position``.

        Returns the number of bytes placed at the start of ``buffer``, which
        is short (possibly 0) when the file ends before the buffer does.
        """
        view = memoryview(buffer).cast("B")
        if view.readonly:
            raise ValueError("read needs a writable buffer")

        def run() -> int:
            self._exchange(encode_seek_and_read(position, len(view)))
            n = decode_data_stream(self._guard, view)
            logger.debug("session %d: read %d/%d bytes at %d", self._session_id, n, len(view), position)
            return n

        return self._call("read", run)

    def pread(self, length: int, position: int) -> bytes:
        buf = bytearray(length)
        n = self.read(buf, position)
        return bytes(buf[:n])

    def write(self, data: bytes, position: int) -> int:
        """Write all of ``data`` at ``position``; return its length."""
        payload = memoryview(data).cast("B")
        if len(payload) > MAX_CHUNK_SIZE:
            raise ValueError(f"payload of {len(payload)} bytes exceeds chunk limit {MAX_CHUNK_SIZE}")

        def run() -> int:
            self._exchange(encode_seek_and_write(position))
            for frame in encode_data_stream(payload):
                self._guard.send_all(frame)
            self.last_ack = decode_ack(self._guard)
            logger.debug("session %d: wrote %d bytes at %d", self._session_id, len(payload), position)
            return len(payload)

        return self._call("write", run)

    def close(self) -> None:
        """Send CLOSE, wait for its ack, release the socket. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            try:
                self._exchange(encode_close())
            finally:
                self._teardown()
        logger.info("data channel closed; session=%d", self._session_id)

    def __enter__(self) -> "DataChannel":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<DataChannel session={self._session_id} {state}>"
