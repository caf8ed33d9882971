"""
Tests for client.py: ProtonClient and ProtonConnection against an in-memory server
"""

from contextlib import asynccontextmanager

import pytest
from conftest import MemoryNetwork, fast_hyper_parameters
from proton_quic.client import ProtonClient, ServerDisconnected
from proton_quic.protocol.constants import CloseCode, U32_MAX
from proton_quic.protocol.errors import InvalidStreamError, ProtonConnectionError
from proton_quic.server import ProtonServer


def make_pair(**kwargs):
    server = ProtonServer(name="tests.client.server", hyper_parameters=fast_hyper_parameters(**kwargs))
    network = MemoryNetwork(server)
    client = ProtonClient(
        name="tests.client",
        hyper_parameters=fast_hyper_parameters(**kwargs),
        connector=network.connect,
    )
    return server, network, client


@pytest.mark.asyncio
async def test_round_trip():
    _, network, client = make_pair()
    connection = await client.connect(startup_delay=0)
    assert await connection.send_event() == 1
    assert await connection.send_state_commit(7) == 9
    assert [await connection.read_action() for _ in range(3)] == [0, 1, 2]
    await connection.close()

    (outcome,) = await network.outcomes()
    assert outcome.close_code == CloseCode.NORMAL


@pytest.mark.asyncio
async def test_event_counter_survives_reconnect():
    _, network, client = make_pair()
    async with await client.connect(startup_delay=0) as connection:
        assert await connection.send_event() == 1
        assert await connection.send_event() == 2
    async with await client.connect(startup_delay=0) as connection:
        assert await connection.send_event() == 3
    assert client.last_event_id == 3
    outcomes = await network.outcomes()
    assert [o.close_code for o in outcomes] == [CloseCode.NORMAL, CloseCode.NORMAL]


@pytest.mark.asyncio
async def test_close_is_idempotent():
    _, network, client = make_pair()
    connection = await client.connect(startup_delay=0)
    await connection.close()
    await connection.close()
    assert connection.closed
    assert connection.connection.close_calls == 1
    with pytest.raises(ProtonConnectionError):
        await connection.send_event()


@pytest.mark.asyncio
async def test_commit_id_range_is_checked():
    _, _, client = make_pair()
    async with await client.connect(startup_delay=0) as connection:
        with pytest.raises(ValueError):
            await connection.send_state_commit(U32_MAX + 1)
        with pytest.raises(ValueError):
            await connection.send_state_commit(-1)
        assert await connection.send_state_commit(U32_MAX - 2) == U32_MAX


@pytest.mark.asyncio
async def test_server_close_code_is_reported():
    _, network, client = make_pair()
    first = await client.connect(startup_delay=0)
    assert await first.send_event() == 1

    second_client = ProtonClient(
        name="tests.client.second",
        hyper_parameters=fast_hyper_parameters(),
        connector=network.connect,
    )
    # The rejection may land during stream setup or on the first request
    second = None
    with pytest.raises(ServerDisconnected) as info:
        second = await second_client.connect(startup_delay=0)
        await second.send_event()
    assert info.value.close_code == CloseCode.REJECTED
    assert "Another client is already connected" in str(info.value)
    if second is not None:
        await second.close()
    await first.close()


@pytest.mark.asyncio
async def test_event_id_space_exhaustion():
    _, _, client = make_pair()
    client.last_event_id = U32_MAX
    with pytest.raises(InvalidStreamError):
        client.next_event_id()


@pytest.mark.asyncio
async def test_connect_failure_is_mapped():
    @asynccontextmanager
    async def unreachable(host, port):
        raise ConnectionRefusedError("nobody home")
        yield

    client = ProtonClient(name="tests.client.refused", hyper_parameters=fast_hyper_parameters(), connector=unreachable)
    with pytest.raises(ProtonConnectionError):
        await client.connect(startup_delay=0)


@pytest.mark.asyncio
async def test_run_script_rounds():
    _, _, client = make_pair()
    results = await client.run_script(rounds=3, startup_delay=0)
    assert results == [(1, 3, 0), (2, 4, 1), (3, 5, 2)]
