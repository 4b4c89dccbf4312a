"""Control session with a dcap door.

The door speaks an ASCII, line-oriented request/response protocol. Each
request carries a sequence number; an ``open`` request is answered with the
mover address and challenge the data channel must present.
"""
from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass
from typing import Tuple

from .channel import DataChannel
from .constants import DEFAULT_DOOR_PORT, DEFAULT_TIMEOUT_S
from .errors import ChannelConnectionError, ChannelTimeoutError, DoorError, ProtocolError

logger = logging.getLogger(__name__)

ENCODING = "ascii"

HELLO = "{seq} 0 client hello 0 0 0 0"
BYE = "{seq} 0 client byebye"
OPEN = "{seq} 0 client open dcap://{door}/{path} {mode} localhost 1111 -passive"


def parse_door_address(text: str, default_port: int = DEFAULT_DOOR_PORT) -> Tuple[str, int]:
    """Split ``host[:port]``; bracketed IPv6 literals are accepted."""
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep:
            raise ValueError(f"unterminated IPv6 literal: {text!r}")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif text.count(":") == 1:
        host, _, port_text = text.partition(":")
    else:
        host, port_text = text, ""
    if not host:
        raise ValueError(f"missing host: {text!r}")
    return host, int(port_text) if port_text else default_port


def _check_reply(reply: str) -> list[str]:
    fields = reply.split(" ")
    if len(fields) > 3 and fields[3] == "failed":
        raise DoorError(reply)
    return fields


@dataclass(frozen=True, slots=True)
class DataEndpoint:
    host: str
    port: int
    session_id: int
    challenge: bytes

    @property
    def address(self) -> Tuple[str, int]:
        return (self.host, self.port)


class DoorSession:
    def __init__(self, address: Tuple[str, int], timeout: float = DEFAULT_TIMEOUT_S):
        self.address = address
        self.timeout = timeout
        self._sequence = 0
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._reader = None

    @property
    def uri_authority(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    def connect(self) -> None:
        with self._lock:
            if self._sock is not None:
                raise ChannelConnectionError(f"door session {self.uri_authority} is already connected")
            try:
                self._sock = socket.create_connection(self.address, timeout=self.timeout)
            except OSError as exc:
                raise ChannelConnectionError(f"cannot connect to door {self.uri_authority}: {exc}") from exc
            self._reader = self._sock.makefile("rb")
            try:
                _check_reply(self._request(HELLO.format(seq=self._next_sequence())))
            except Exception:
                self._release()
                raise
        logger.info("door session open; door=%s", self.uri_authority)

    def disconnect(self) -> None:
        with self._lock:
            if self._sock is None:
                return
            try:
                _check_reply(self._request(BYE.format(seq=self._next_sequence())))
            finally:
                self._release()
        logger.info("door session closed; door=%s", self.uri_authority)

    def _release(self) -> None:
        self._reader.close()
        self._sock.close()
        self._sock = None
        self._reader = None

    def negotiate(self, path: str, mode: str) -> DataEndpoint:
        with self._lock:
            seq = self._next_sequence()
            reply = self._request(
                OPEN.format(seq=seq, door=self.uri_authority, path=path.lstrip("/"), mode=mode)
            )
        fields = _check_reply(reply)
        if len(fields) < 7:
            raise ProtocolError(f"short open reply: {reply!r}")
        try:
            port = int(fields[5])
        except ValueError as exc:
            raise ProtocolError(f"bad mover port in reply: {reply!r}") from exc
        endpoint = DataEndpoint(fields[4], port, seq, fields[6].encode(ENCODING))
        logger.info("open %s (%s) -> session %d on %s:%d", path, mode, seq, endpoint.host, endpoint.port)
        return endpoint

    def open(self, path: str, mode: str = "r", size: int = 0) -> DataChannel:
        endpoint = self.negotiate(path, mode)
        return DataChannel(endpoint.address, endpoint.session_id, endpoint.challenge, size, timeout=self.timeout)

    def _next_sequence(self) -> int:
        seq = self._sequence
        self._sequence += 1
        return seq

    def _request(self, message: str) -> str:
        if self._sock is None:
            raise ChannelConnectionError(f"door session {self.uri_authority} is not connected")
        logger.debug("door <- %s", message)
        try:
            self._sock.sendall(message.encode(ENCODING) + b"\r\n")
            line = self._reader.readline()
        except socket.timeout as exc:
            raise ChannelTimeoutError(f"door {self.uri_authority} did not answer: {message!r}") from exc
        except OSError as exc:
            raise ChannelConnectionError(f"door {self.uri_authority}: {exc}") from exc
        if not line.endswith(b"\n"):
            raise ChannelConnectionError(f"door {self.uri_authority} closed the control connection")
        reply = line.decode(ENCODING).rstrip("\r\n")
        logger.debug("door -> %s", reply)
        return reply

    def __enter__(self) -> "DoorSession":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()
