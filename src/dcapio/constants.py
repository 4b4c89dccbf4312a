from __future__ import annotations

import enum


class Opcode(enum.IntEnum):
    CLOSE = 4
    DATA = 8
    SEEK_AND_READ = 11
    SEEK_AND_WRITE = 12


SEEK_SET = 0
EOD = -1  # chunk length that ends a data stream

DATA_HEADER_SIZE = 8
INT_SIZE = 4

DEFAULT_DOOR_PORT = 22125
DEFAULT_TIMEOUT_S = 4.0
DEFAULT_BLOCK_SIZE = 8192

MAX_SESSION_ID = 2**32 - 1
MAX_CHUNK_SIZE = 2**31 - 1  # chunk lengths share the signed field with EOD
MAX_ACK_SIZE = 1 << 20
