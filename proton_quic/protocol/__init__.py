from .constants import (
    ALPN_PROTOCOL,
    CloseCode,
    CLOSE_REASONS,
    ROLE_ORDER,
    StreamRole,
    )
from .errors import (
    ErrorKind,
    ProtonError,
    ProtonIOError,
    ProtonConnectionError,
    InvalidStreamError,
    ProtonTimeoutError,
    map_transport_error,
    )
from .codec import (
    encode_u32,
    decode_u32,
    encode_role,
    decode_role,
    deadline,
    )
from .handshake import ChannelHandle, StreamBindings, open_streams
from .channels import (
    SessionCounters,
    ChannelLoop,
    EventLoop,
    StateCommitLoop,
    ActionLoop,
    )
from .session import ConnectionSession
