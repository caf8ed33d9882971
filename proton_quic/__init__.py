from .client import ProtonClient, ProtonConnection, ServerDisconnected, ClientRepl
from .server import ProtonServer, ConnectionOutcome
from .protocol import (
    CloseCode,
    StreamRole,
    ProtonError,
    ProtonIOError,
    ProtonConnectionError,
    InvalidStreamError,
    ProtonTimeoutError,
    )

__version__ = "0.1.0"
