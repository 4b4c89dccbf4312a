from __future__ import annotations


class DcapError(Exception):
    """Base class for everything raised by :mod:`dcapio`.

    Any of these raised from a data channel operation is fatal to that
    channel: the connection is torn down and must not be reused.
    """


class ProtocolError(DcapError):
    """A frame was inconsistent with the buffer it targets or malformed."""


class ChannelConnectionError(DcapError, ConnectionError):
    """Connect failed, or the peer went away in the middle of a frame."""


class ChannelClosedError(ChannelConnectionError):
    """The channel was closed, locally or after a fatal error."""


class ChannelTimeoutError(DcapError, TimeoutError):
    pass


class DoorError(DcapError):
    """The door refused a control request."""

    def __init__(self, reply: str) -> None:
        self.reply = reply
        super().__init__(f"door refused request: {reply}")
