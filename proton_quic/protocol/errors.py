"""
Proton error taxonomy.

Every failure that leaves the protocol layer is one of four kinds:

  - ProtonIOError:         an OS-level I/O failure, the cause is chained
  - ProtonConnectionError: the transport refused, reset or ended a stream
  - InvalidStreamError:    the peer broke the protocol (bad discriminator,
                           duplicate role, non-monotonic event id)
  - ProtonTimeoutError:    a deadline expired on a handshake or channel step

Lower-level exceptions are converted with the explicit `from_*` / `map_*`
functions below, never by catching `Exception` wholesale.
"""
import asyncio
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    IO = "io"
    CONNECTION = "connection"
    INVALID_STREAM = "invalid_stream"
    TIMEOUT = "timeout"


class ProtonError(Exception):
    """Base class; `kind` tags the variant."""
    kind: ErrorKind
    default_message = "Proton error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(self.default_message if detail is None else f"{self.default_message}: {detail}")


class ProtonIOError(ProtonError):
    kind = ErrorKind.IO
    default_message = "IO error"


class ProtonConnectionError(ProtonError):
    kind = ErrorKind.CONNECTION
    default_message = "Connection error"


class InvalidStreamError(ProtonError):
    kind = ErrorKind.INVALID_STREAM
    default_message = "Invalid stream"


class ProtonTimeoutError(ProtonError):
    kind = ErrorKind.TIMEOUT
    default_message = "Operation timed out"


def from_timeout(exc: BaseException, operation: Optional[str] = None) -> ProtonTimeoutError:
    error = ProtonTimeoutError(operation)
    error.__cause__ = exc
    return error


def from_io_error(exc: OSError) -> ProtonIOError:
    error = ProtonIOError(str(exc) or type(exc).__name__)
    error.__cause__ = exc
    return error


def from_connection_error(exc: BaseException) -> ProtonConnectionError:
    error = ProtonConnectionError(str(exc) or type(exc).__name__)
    error.__cause__ = exc
    return error


def map_transport_error(exc: BaseException, operation: Optional[str] = None) -> ProtonError:
    """
    Classify an exception raised by a stream read/write or by the QUIC layer.

    Order matters: asyncio.TimeoutError is an OSError subclass on 3.11+, and
    ConnectionError is one everywhere.
    """
    if isinstance(exc, ProtonError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return from_timeout(exc, operation)
    if isinstance(exc, (asyncio.IncompleteReadError, ConnectionError)):
        return from_connection_error(exc)
    if isinstance(exc, OSError):
        return from_io_error(exc)
    raise TypeError(f"Not a transport error: {type(exc).__name__}") from exc
