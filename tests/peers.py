"""In-process stand-ins for a dcap mover and door."""
from __future__ import annotations

import io
import socket
import struct
import threading

from dcapio.errors import ChannelConnectionError
from dcapio.net import Deadline

INT = struct.Struct("!i")


def recv_exactly(conn: socket.socket, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = conn.recv(n - len(buf))
        if not chunk:
            raise EOFError("client closed")
        buf.extend(chunk)
    return bytes(buf)


def ack(payload: bytes = b"") -> bytes:
    return INT.pack(len(payload)) + payload


def data_stream(*chunks: bytes, ack_payload: bytes = b"") -> bytes:
    out = struct.pack("!ii", 4, 8)
    for c in chunks:
        out += INT.pack(len(c)) + c
    return out + INT.pack(-1) + ack(ack_payload)


class BytesSource:
    """Frame source over an in-memory byte string."""

    def __init__(self, data: bytes):
        self._f = io.BytesIO(data)

    def deadline(self) -> Deadline:
        return Deadline.after(1.0)

    def recv_exactly(self, n: int, deadline: Deadline | None = None) -> bytes:
        data = self._f.read(n)
        if len(data) < n:
            raise ChannelConnectionError("peer closed")
        return data

    def recv_into_exactly(self, view: memoryview, deadline: Deadline | None = None) -> None:
        view[:] = self.recv_exactly(len(view))

    @property
    def consumed(self) -> int:
        return self._f.tell()


class FakePeer:
    """Accepts one TCP connection on loopback and hands it to ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.error: BaseException | None = None
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()

    @property
    def address(self) -> tuple[str, int]:
        return self.listener.getsockname()

    def _run(self) -> None:
        try:
            conn, _ = self.listener.accept()
            conn.settimeout(5)
            with conn:
                self.handler(conn)
        except BaseException as exc:  # surfaced by join()
            self.error = exc
        finally:
            self.listener.close()

    def join(self, timeout: float = 5) -> None:
        self.thread.join(timeout)
        if self.error is not None:
            raise self.error


class MoverScript:
    """Records what a client sends to a mover, answering from a script.

    ``steps`` is a list of ``("cmd",)``, ``("recv", n)``, ``("send", bytes)``
    or ``("wait",)`` entries run in order after the handshake.
    """

    def __init__(self, steps):
        self.steps = steps
        self.handshake: tuple[int, bytes] | None = None
        self.commands: list[bytes] = []
        self.received: list[bytes] = []
        self.release = threading.Event()

    def __call__(self, conn: socket.socket) -> None:
        session, length = struct.unpack("!Ii", recv_exactly(conn, 8))
        self.handshake = (session, recv_exactly(conn, length))
        for step in self.steps:
            kind = step[0]
            if kind == "cmd":
                (length,) = INT.unpack(recv_exactly(conn, 4))
                self.commands.append(INT.pack(length) + recv_exactly(conn, length))
            elif kind == "recv":
                self.received.append(recv_exactly(conn, step[1]))
            elif kind == "send":
                conn.sendall(step[1])
            elif kind == "wait":
                self.release.wait(5)


class FakeDoor:
    """Line-based door that answers each request via ``reply(fields)``."""

    def __init__(self, reply):
        self.reply = reply
        self.requests: list[str] = []
        self.peer = FakePeer(self._serve)

    @property
    def address(self) -> tuple[str, int]:
        return self.peer.address

    def _serve(self, conn: socket.socket) -> None:
        reader = conn.makefile("rb")
        while True:
            line = reader.readline()
            if not line:
                return
            text = line.decode("ascii").rstrip("\r\n")
            self.requests.append(text)
            fields = text.split(" ")
            conn.sendall((self.reply(fields) + "\n").encode("ascii"))
            if fields[3] == "byebye":
                return
