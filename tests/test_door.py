from __future__ import annotations

import pytest

from dcapio.constants import DEFAULT_DOOR_PORT
from dcapio.door import DataEndpoint, DoorSession, parse_door_address
from dcapio.errors import ChannelConnectionError, DoorError, ProtocolError

from peers import FakeDoor


def connect_reply(fields):
    seq, cmd = fields[0], fields[3]
    if cmd == "open":
        return f"{seq} 0 server connect mover.example.org 33115 c0ffee"
    return f"{seq} 0 server ok"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("door.example.org:22126", ("door.example.org", 22126)),
        ("door.example.org", ("door.example.org", DEFAULT_DOOR_PORT)),
        ("[::1]:1234", ("::1", 1234)),
        ("[::1]", ("::1", DEFAULT_DOOR_PORT)),
    ],
)
def test_parse_door_address(text, expected):
    assert parse_door_address(text) == expected


@pytest.mark.parametrize("text", ["", ":22125", "[::1"])
def test_parse_door_address_rejects(text):
    with pytest.raises(ValueError):
        parse_door_address(text)


def test_hello_open_byebye():
    door = FakeDoor(connect_reply)
    host, port = door.address

    with DoorSession(door.address) as session:
        endpoint = session.negotiate("/exports/data/p34", "r")
    door.peer.join()

    assert endpoint == DataEndpoint("mover.example.org", 33115, 1, b"c0ffee")
    assert endpoint.address == ("mover.example.org", 33115)
    assert door.requests == [
        "0 0 client hello 0 0 0 0",
        f"1 0 client open dcap://{host}:{port}/exports/data/p34 r localhost 1111 -passive",
        "2 0 client byebye",
    ]


def test_failed_open():
    def reply(fields):
        if fields[3] == "open":
            return f'{fields[0]} 0 server failed 2 "No such file"'
        return f"{fields[0]} 0 server ok"

    door = FakeDoor(reply)
    with DoorSession(door.address) as session:
        with pytest.raises(DoorError) as info:
            session.negotiate("missing", "r")
    door.peer.join()
    assert "No such file" in info.value.reply


def test_short_open_reply():
    def reply(fields):
        if fields[3] == "open":
            return f"{fields[0]} 0 server connect"
        return f"{fields[0]} 0 server ok"

    door = FakeDoor(reply)
    with DoorSession(door.address) as session:
        with pytest.raises(ProtocolError):
            session.negotiate("f", "r")
    door.peer.join()


def test_negotiate_requires_connection():
    with pytest.raises(ChannelConnectionError):
        DoorSession(("127.0.0.1", 1)).negotiate("f", "r")


def test_disconnect_without_connect_is_noop():
    DoorSession(("127.0.0.1", 1)).disconnect()


def test_failed_hello_releases_socket():
    door = FakeDoor(lambda fields: f'{fields[0]} 0 server failed 1 "go away"')
    session = DoorSession(door.address)

    with pytest.raises(DoorError, match="go away"):
        session.connect()
    door.peer.join()
    assert session._sock is None


def test_failed_byebye_still_releases_socket():
    def reply(fields):
        if fields[3] == "byebye":
            return f'{fields[0]} 0 server failed 1 "busy"'
        return f"{fields[0]} 0 server ok"

    door = FakeDoor(reply)
    session = DoorSession(door.address)
    session.connect()

    with pytest.raises(DoorError):
        session.disconnect()
    door.peer.join()
    assert session._sock is None


def test_connect_twice_rejected():
    door = FakeDoor(connect_reply)
    with DoorSession(door.address) as session:
        with pytest.raises(ChannelConnectionError, match="already connected"):
            session.connect()
    door.peer.join()
    assert door.requests == ["0 0 client hello 0 0 0 0", "1 0 client byebye"]
