"""
In-memory stand-ins for the QUIC connection surface, so protocol logic can
be exercised without sockets. Each stream is a pair of asyncio.StreamReader
objects, one per direction.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import pytest

from proton_quic.utils import HyperparameterConfig, TimeoutConfig


class MemoryWriter:
    """Write half of an in-memory stream: feeds the peer's reader."""

    def __init__(self, peer_reader: asyncio.StreamReader):
        self._peer_reader = peer_reader
        self._closing = False
        self.written = bytearray()

    def write(self, data: bytes) -> None:
        if self._closing:
            raise ConnectionResetError("stream closed")
        self.written.extend(data)
        self._peer_reader.feed_data(data)

    async def drain(self) -> None:
        if self._closing:
            raise ConnectionResetError("stream closed")

    def close(self) -> None:
        if not self._closing:
            self._closing = True
            self._peer_reader.feed_eof()

    def is_closing(self) -> bool:
        return self._closing


class MemoryConnection:
    """One endpoint of an in-memory connection. Close codes travel to the peer."""

    def __init__(self, name: str):
        self.name = name
        self.peer: Optional["MemoryConnection"] = None
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._closed = asyncio.Event()
        self._readers: list[asyncio.StreamReader] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.close_calls = 0

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    @property
    def remote_address(self) -> str:
        return f"memory:{self.peer.name}" if self.peer is not None else "memory:?"

    async def open_bi(self):
        if self.is_closed:
            raise ConnectionError("Connection is closed")
        local_reader = asyncio.StreamReader()
        peer_reader = asyncio.StreamReader()
        self._readers.append(local_reader)
        self.peer._readers.append(peer_reader)
        self.peer._incoming.put_nowait((peer_reader, MemoryWriter(local_reader)))
        return local_reader, MemoryWriter(peer_reader)

    async def accept_bi(self):
        item = await self._incoming.get()
        if item is None:
            self._incoming.put_nowait(None)
            raise ConnectionError("Connection closed while waiting for a stream")
        return item

    def lose_streams(self) -> None:
        """Make every later accept_bi fail, as if the transport went away mid-handshake."""
        self._incoming.put_nowait(None)

    def _terminate(self, code: int, reason: str) -> None:
        if self.is_closed:
            return
        self.close_code = code
        self.close_reason = reason
        self._closed.set()
        for reader in self._readers:
            reader.feed_eof()
        self._incoming.put_nowait(None)

    def close(self, error_code: int = 0, reason_phrase: str = "") -> None:
        self.close_calls += 1
        if self.is_closed:
            return
        self._terminate(error_code, reason_phrase)
        self.peer._terminate(error_code, reason_phrase)

    async def wait_closed(self) -> None:
        await self._closed.wait()


def connection_pair() -> tuple[MemoryConnection, MemoryConnection]:
    """(client side, server side). Must be called with a running loop."""
    client = MemoryConnection("client")
    server = MemoryConnection("server")
    client.peer, server.peer = server, client
    return client, server


class MemoryNetwork:
    """Connector for ProtonClient that hands the server side to `server.handle_connection`."""

    def __init__(self, server):
        self.server = server
        self.handlers: list[asyncio.Task] = []
        self._connections: list[MemoryConnection] = []

    @asynccontextmanager
    async def connect(self, host: str, port: int):
        # Let the server finish with connections that are already closed, so a
        # quick reconnect is not mistaken for a concurrent client
        for connection, handler in zip(self._connections, self.handlers):
            if connection.is_closed and not handler.done():
                await handler

        client_side, server_side = connection_pair()
        self._connections.append(client_side)
        self.handlers.append(asyncio.create_task(self.server.handle_connection(server_side)))
        try:
            yield client_side
        finally:
            if not client_side.is_closed:
                client_side.close(0, "")

    async def outcomes(self):
        return await asyncio.gather(*self.handlers)


def fast_hyper_parameters(
        handshake_timeout: float = 0.5,
        stream_timeout: float = 2.0,
    ) -> HyperparameterConfig:
    return HyperparameterConfig(
        timeouts=TimeoutConfig(
            handshake_timeout_seconds=handshake_timeout,
            stream_timeout_seconds=stream_timeout,
            startup_delay_seconds=0,
        )
    )


@pytest.fixture
def hyper_parameters() -> HyperparameterConfig:
    return fast_hyper_parameters()
