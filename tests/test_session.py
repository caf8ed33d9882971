"""
Tests for session.py: the race between channel loops and connection close
"""

import asyncio

import pytest
from conftest import connection_pair
from proton_quic.logger import get_logger
from proton_quic.protocol.constants import ROLE_ORDER, StreamRole
from proton_quic.protocol.errors import InvalidStreamError, ProtonTimeoutError
from proton_quic.protocol.handshake import StreamBindings, open_streams
from proton_quic.protocol.session import ConnectionSession

logger = get_logger("tests.session")


async def established(stream_timeout: float = 1.0):
    client, server = connection_pair()
    client_bindings = await open_streams(client, 1.0, logger)
    server_bindings = StreamBindings()
    for _ in ROLE_ORDER:
        await server_bindings.accept(*(await server.accept_bi()), 1.0)
    session = ConnectionSession(server, server_bindings, stream_timeout, logger)
    return client, client_bindings, session


@pytest.mark.asyncio
async def test_all_channels_served_concurrently():
    client, bindings, session = await established()
    task = asyncio.create_task(session.run())

    event = bindings.get(StreamRole.EVENT)
    commit = bindings.get(StreamRole.STATE_COMMIT)
    action = bindings.get(StreamRole.ACTION)
    results = await asyncio.gather(
        event.request(7, 1.0),
        commit.request(7, 1.0),
        action.request(42, 1.0),
    )
    assert results == [7, 9, 0]

    client.close(0, "Client closed connection")
    assert await task is None


@pytest.mark.asyncio
async def test_closed_connection_is_graceful():
    client, _, session = await established()
    task = asyncio.create_task(session.run())
    await asyncio.sleep(0)
    client.close(0, "")
    await asyncio.wait_for(task, 1.0)


@pytest.mark.asyncio
async def test_loop_failure_is_the_outcome():
    client, bindings, session = await established()
    task = asyncio.create_task(session.run())

    event = bindings.get(StreamRole.EVENT)
    assert await event.request(5, 1.0) == 5
    await event.write_u32(5, 1.0)
    with pytest.raises(InvalidStreamError):
        await task
    assert session.counters.last_event_id == 5


@pytest.mark.asyncio
async def test_timeout_surfaces_as_timeout_error():
    _, _, session = await established(stream_timeout=0.05)
    with pytest.raises(ProtonTimeoutError):
        await session.run()


@pytest.mark.asyncio
async def test_unbound_role_returns_normally():
    client, server = connection_pair()
    await open_streams(client, 1.0, logger)
    bindings = StreamBindings()
    await bindings.accept(*(await server.accept_bi()), 1.0)
    session = ConnectionSession(server, bindings, 1.0, logger)
    # StateCommit and Action are missing: their loops finish at once
    await asyncio.wait_for(session.run(), 1.0)
