"""
Stream-role handshake.

The client opens one bidirectional stream per role and writes its
discriminator byte; the server reads that byte and binds the stream to the
role. A role can be bound once per connection.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from proton_quic.logger import Logger
from proton_quic.protocol.codec import deadline, read_role, read_u32, write_role, write_u32
from proton_quic.protocol.constants import ROLE_ORDER, StreamRole
from proton_quic.protocol.errors import InvalidStreamError


@dataclass
class ChannelHandle:
    """Send and receive halves of one stream, bound to one role."""
    role: StreamRole
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    async def read_u32(self, timeout: Optional[float]) -> int:
        return await read_u32(self.reader, timeout)

    async def write_u32(self, value: int, timeout: Optional[float]) -> None:
        await write_u32(self.writer, value, timeout)

    async def request(self, value: int, timeout: Optional[float]) -> int:
        """One request/response exchange: send `value`, return the peer's answer."""
        await self.write_u32(value, timeout)
        return await self.read_u32(timeout)


class StreamBindings:
    """The role slots of one connection."""

    __slots__ = ("_handles",)

    def __init__(self):
        self._handles: dict[StreamRole, ChannelHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, role: StreamRole) -> bool:
        return role in self._handles

    def __iter__(self) -> Iterator[ChannelHandle]:
        return iter(self._handles.values())

    @property
    def complete(self) -> bool:
        return all(role in self._handles for role in ROLE_ORDER)

    def get(self, role: StreamRole) -> Optional[ChannelHandle]:
        return self._handles.get(role)

    def bind(self, role: StreamRole, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> ChannelHandle:
        if role in self._handles:
            raise InvalidStreamError(f"duplicate {role.label} stream")
        handle = ChannelHandle(role=role, reader=reader, writer=writer)
        self._handles[role] = handle
        return handle

    async def accept(
            self,
            reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter,
            timeout: Optional[float],
        ) -> ChannelHandle:
        """Server side: read exactly one discriminator byte and bind the stream."""
        role = await read_role(reader, timeout)
        return self.bind(role, reader, writer)

    async def announce(
            self,
            role: StreamRole,
            reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter,
            timeout: Optional[float],
        ) -> ChannelHandle:
        """Client side: write the discriminator byte for `role` and bind the stream."""
        if role in self._handles:
            raise InvalidStreamError(f"duplicate {role.label} stream")
        await write_role(writer, role, timeout)
        return self.bind(role, reader, writer)


async def open_streams(connection: Any, timeout: Optional[float], logger: Logger) -> StreamBindings:
    """
    Client half of the handshake: open Event, StateCommit and Action streams in
    that order, each announced under `timeout`.
    """
    bindings = StreamBindings()
    for role in ROLE_ORDER:
        reader, writer = await deadline(connection.open_bi(), timeout, f"opening {role.label} stream")
        logger.info(f"Opening {role.label} stream...")
        await bindings.announce(role, reader, writer, timeout)
        logger.info(f"{role.label.capitalize()} stream established")
    return bindings
