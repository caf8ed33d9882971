"""
Framing shared by every channel.

A stream starts with one discriminator byte naming its role; after that both
directions carry 4-byte little-endian unsigned integers, one request and one
response at a time.
"""
import asyncio
import struct
from typing import Awaitable, Optional, TypeVar, Union

from proton_quic.protocol.constants import StreamRole, U32_MAX, U32_SIZE
from proton_quic.protocol.errors import InvalidStreamError, map_transport_error

T = TypeVar("T")

_U32 = struct.Struct("<I")

# Exceptions a stream operation may raise that belong to the error taxonomy
TRANSPORT_ERRORS = (asyncio.TimeoutError, asyncio.IncompleteReadError, ConnectionError, OSError)


def encode_u32(value: int) -> bytes:
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"{value} does not fit in an unsigned 32-bit integer")
    return _U32.pack(value)


def decode_u32(data: bytes) -> int:
    if len(data) != U32_SIZE:
        raise ValueError(f"Expected {U32_SIZE} bytes, got {len(data)}")
    return _U32.unpack(data)[0]


def encode_role(role: StreamRole) -> bytes:
    return bytes((int(role),))


def decode_role(data: Union[bytes, int]) -> StreamRole:
    value = data if isinstance(data, int) else (data[0] if len(data) == 1 else -1)
    try:
        return StreamRole(value)
    except ValueError:
        raise InvalidStreamError(f"unknown stream discriminator {value!r}") from None


async def deadline(awaitable: Awaitable[T], timeout: Optional[float], operation: Optional[str] = None) -> T:
    """
    Await `awaitable` for at most `timeout` seconds (None waits forever).
    Expiry and transport failures come out as ProtonError subclasses.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TRANSPORT_ERRORS as e:
        raise map_transport_error(e, operation) from e


async def _write(writer: asyncio.StreamWriter, data: bytes) -> None:
    writer.write(data)
    await writer.drain()


async def read_role(reader: asyncio.StreamReader, timeout: Optional[float]) -> StreamRole:
    data = await deadline(reader.readexactly(1), timeout, "reading stream discriminator")
    return decode_role(data)


async def write_role(writer: asyncio.StreamWriter, role: StreamRole, timeout: Optional[float]) -> None:
    await deadline(_write(writer, encode_role(role)), timeout, "writing stream discriminator")


async def read_u32(reader: asyncio.StreamReader, timeout: Optional[float]) -> int:
    data = await deadline(reader.readexactly(U32_SIZE), timeout, "reading payload")
    return decode_u32(data)


async def write_u32(writer: asyncio.StreamWriter, value: int, timeout: Optional[float]) -> None:
    # Encode first: an out-of-range value is a caller bug, not a transport error
    data = encode_u32(value)
    await deadline(_write(writer, data), timeout, "writing payload")
