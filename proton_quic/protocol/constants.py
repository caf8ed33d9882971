"""
Wire constants, protocol timeouts and close codes.
"""
from enum import IntEnum

ALPN_PROTOCOL = "proton"

MAX_BIDIRECTIONAL_STREAMS = 3

# Connect retry constants (carried by ReconnectConfig, not consumed)
MAX_CONNECT_RETRIES = 5
CONNECT_RETRY_DELAY = 2.0

# Protocol timeouts, in seconds
IDLE_TIMEOUT = 5.0
KEEP_ALIVE_INTERVAL = 1.0
STARTUP_DELAY = 2 * IDLE_TIMEOUT
HANDSHAKE_TIMEOUT = 5.0
STREAM_TIMEOUT = 300.0

# Payloads
U32_MAX = 0xFFFFFFFF
U32_SIZE = 4
COMMIT_RESPONSE_OFFSET = 2
ACTION_PROBE_REQUEST = 42


class StreamRole(IntEnum):
    """Discriminator byte sent once at the start of each stream."""
    EVENT = 1
    STATE_COMMIT = 2
    ACTION = 3

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


# Client opens the streams in this order
ROLE_ORDER = (StreamRole.EVENT, StreamRole.STATE_COMMIT, StreamRole.ACTION)


class CloseCode(IntEnum):
    NORMAL = 0
    STREAM_SETUP_ERROR = 1
    STREAM_ACCEPT_ERROR = 2
    STREAM_SETUP_TIMEOUT = 3
    STREAM_OPERATION_TIMEOUT = 4
    STREAM_ERROR = 5
    REJECTED = 6


CLOSE_REASONS: dict[CloseCode, str] = {
    CloseCode.NORMAL: "Streams completed",
    CloseCode.STREAM_SETUP_ERROR: "Stream setup error",
    CloseCode.STREAM_ACCEPT_ERROR: "Stream accept error",
    CloseCode.STREAM_SETUP_TIMEOUT: "Stream setup timeout",
    CloseCode.STREAM_OPERATION_TIMEOUT: "Stream operation timeout",
    CloseCode.STREAM_ERROR: "Stream error",
    CloseCode.REJECTED: "Another client is already connected",
}

CLIENT_CLOSE_REASON = "Client closed connection"
