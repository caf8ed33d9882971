"""
Tests for channels.py: Event monotonicity, StateCommit offset, Action counter
"""

import asyncio
import logging

import pytest
from conftest import connection_pair
from proton_quic.logger import get_logger
from proton_quic.protocol.channels import (
    ActionLoop,
    EventLoop,
    SessionCounters,
    StateCommitLoop,
)
from proton_quic.protocol.constants import StreamRole, U32_MAX
from proton_quic.protocol.errors import InvalidStreamError, ProtonConnectionError, ProtonTimeoutError
from proton_quic.protocol.handshake import StreamBindings

logger = get_logger("tests.channels")


async def bound_pair(role: StreamRole):
    """(client handle, server handle) for one stream of the given role."""
    client, server = connection_pair()
    reader, writer = await client.open_bi()
    client_handle = await StreamBindings().announce(role, reader, writer, 1.0)
    server_reader, server_writer = await server.accept_bi()
    server_handle = await StreamBindings().accept(server_reader, server_writer, 1.0)
    return client_handle, server_handle


@pytest.mark.asyncio
async def test_increasing_event_ids_are_echoed():
    client_handle, server_handle = await bound_pair(StreamRole.EVENT)
    counters = SessionCounters()
    loop = EventLoop(server_handle, counters, 1.0, logger)
    task = asyncio.create_task(loop.run())

    for event_id in (1, 2, 5, 1000):
        assert await client_handle.request(event_id, 1.0) == event_id
    assert counters.last_event_id == 1000
    task.cancel()


@pytest.mark.asyncio
@pytest.mark.parametrize("second", [3, 2])
async def test_non_increasing_event_id_fails(second):
    client_handle, server_handle = await bound_pair(StreamRole.EVENT)
    counters = SessionCounters()
    loop = EventLoop(server_handle, counters, 1.0, logger)
    task = asyncio.create_task(loop.run())

    assert await client_handle.request(3, 1.0) == 3
    await client_handle.write_u32(second, 1.0)
    with pytest.raises(InvalidStreamError):
        await task
    assert counters.last_event_id == 3


@pytest.mark.asyncio
async def test_first_event_id_must_be_positive():
    client_handle, server_handle = await bound_pair(StreamRole.EVENT)
    loop = EventLoop(server_handle, SessionCounters(), 1.0, logger)
    await client_handle.write_u32(0, 1.0)
    with pytest.raises(InvalidStreamError):
        await loop.step()


@pytest.mark.asyncio
@pytest.mark.parametrize("commit,expected", [
    (0, 2),
    (7, 9),
    (U32_MAX - 2, U32_MAX),
    (U32_MAX - 1, 0),
    (U32_MAX, 1),
])
async def test_state_commit_adds_two(commit, expected):
    client_handle, server_handle = await bound_pair(StreamRole.STATE_COMMIT)
    loop = StateCommitLoop(server_handle, SessionCounters(), 1.0, logger)
    await client_handle.write_u32(commit, 1.0)
    assert await loop.step() == expected
    assert await client_handle.read_u32(1.0) == expected


@pytest.mark.asyncio
async def test_actions_count_from_zero_regardless_of_payload():
    client_handle, server_handle = await bound_pair(StreamRole.ACTION)
    counters = SessionCounters()
    task = asyncio.create_task(ActionLoop(server_handle, counters, 1.0, logger).run())

    answers = [await client_handle.request(payload, 1.0) for payload in (42, 0, 42, U32_MAX, 7)]
    assert answers == [0, 1, 2, 3, 4]
    assert counters.action_counter == 5
    task.cancel()


@pytest.mark.asyncio
async def test_loop_times_out_on_silent_client():
    _, server_handle = await bound_pair(StreamRole.ACTION)
    loop = ActionLoop(server_handle, SessionCounters(), 0.05, logger)
    with pytest.raises(ProtonTimeoutError):
        await loop.run()


@pytest.mark.asyncio
async def test_loop_ends_with_connection_error_on_eof(caplog):
    client_handle, server_handle = await bound_pair(StreamRole.STATE_COMMIT)
    client_handle.writer.close()
    with caplog.at_level(logging.DEBUG, logger="tests.channels"):
        with pytest.raises(ProtonConnectionError):
            await StateCommitLoop(server_handle, SessionCounters(), 1.0, logger).run()
    # A client closing its stream is not an error on the server side
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]
    assert any("stream ended" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_loop_refuses_wrong_role():
    _, server_handle = await bound_pair(StreamRole.EVENT)
    with pytest.raises(ValueError):
        ActionLoop(server_handle, SessionCounters(), 1.0, logger)
