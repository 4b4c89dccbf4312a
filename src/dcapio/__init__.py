"""dcap data channel client

Reads and writes byte ranges of a remote file over a dcap data connection:
- command frames and chunked data framing kept apart from socket handling
- every socket wait bounded by a deadline, never blocking forever
- one channel per session, calls serialized on it
"""

from .channel import DataChannel
from .door import DataEndpoint, DoorSession, parse_door_address
from .errors import (
    ChannelClosedError,
    ChannelConnectionError,
    ChannelTimeoutError,
    DcapError,
    DoorError,
    ProtocolError,
)

__all__ = [
    "ChannelClosedError",
    "ChannelConnectionError",
    "ChannelTimeoutError",
    "DataChannel",
    "DataEndpoint",
    "DcapError",
    "DoorError",
    "DoorSession",
    "ProtocolError",
    "parse_door_address",
]
