"""
Tests for repl.py: command parsing, chaining, repeat counts and reset
"""

import pytest
from conftest import MemoryNetwork, fast_hyper_parameters
from proton_quic.client import ClientRepl, ProtonClient
from proton_quic.server import ProtonServer


def make_repl():
    server = ProtonServer(name="tests.repl.server", hyper_parameters=fast_hyper_parameters())
    network = MemoryNetwork(server)
    lines: list[str] = []

    def make_client():
        return ProtonClient(name="tests.repl", hyper_parameters=fast_hyper_parameters(), connector=network.connect)

    repl = ClientRepl(client_factory=make_client, output=lines.append)
    return repl, lines


@pytest.mark.asyncio
async def test_chained_commands():
    repl, lines = make_repl()
    assert await repl.handle_command("connect 0; send_event; commit 7; read_action; close")
    assert "Connected successfully!" in lines
    assert "Event acknowledged with ID: 1" in lines
    assert "State commit response: 9" in lines
    assert "Received action: 0" in lines
    assert "Connection closed." in lines


@pytest.mark.asyncio
async def test_repeat_prefix():
    repl, lines = make_repl()
    await repl.handle_command("connect 0; 3 send_event; 2 read_action; close")
    assert [line for line in lines if line.startswith("Event acknowledged")] == [
        "Event acknowledged with ID: 1",
        "Event acknowledged with ID: 2",
        "Event acknowledged with ID: 3",
    ]
    assert [line for line in lines if line.startswith("Received action")] == [
        "Received action: 0",
        "Received action: 1",
    ]


@pytest.mark.asyncio
async def test_commands_need_a_connection():
    repl, lines = make_repl()
    await repl.handle_command("send_event; commit 3; read_action; close")
    assert lines.count("Not connected! Use 'connect' first.") == 3
    assert lines[-1] == "Not connected!"


@pytest.mark.asyncio
async def test_bad_arguments():
    repl, lines = make_repl()
    await repl.handle_command("connect 0; commit abc; commit 4294967296; sleep x; frobnicate; close")
    assert lines.count("Invalid commit ID. Usage: commit <number>") == 2
    assert "Invalid sleep duration. Usage: sleep <seconds>" in lines
    assert "Unknown command. Type 'help' for available commands." in lines


@pytest.mark.asyncio
async def test_double_connect_is_refused():
    repl, lines = make_repl()
    await repl.handle_command("connect 0; connect 0; close")
    assert "Already connected! Close the current connection first." in lines


@pytest.mark.asyncio
async def test_counter_persists_until_reset():
    repl, lines = make_repl()
    await repl.handle_command("connect 0; send_event; close; connect 0; send_event; reset; connect 0; send_event; close")
    acks = [line for line in lines if line.startswith("Event acknowledged")]
    assert acks == [
        "Event acknowledged with ID: 1",
        "Event acknowledged with ID: 2",
        "Event acknowledged with ID: 1",
    ]


@pytest.mark.asyncio
async def test_exit_stops_the_chain():
    repl, lines = make_repl()
    assert not await repl.handle_command("connect 0; exit; send_event")
    assert lines[-1] == "Goodbye!"
    assert repl.connection is None


@pytest.mark.asyncio
async def test_run_reads_until_exit():
    inputs = iter(["help", "sleep 0", "exit"])

    async def fake_input(prompt):
        return next(inputs)

    lines: list[str] = []
    repl = ClientRepl(
        client_factory=lambda: ProtonClient(name="tests.repl.run", hyper_parameters=fast_hyper_parameters()),
        input_func=fake_input,
        output=lines.append,
    )
    await repl.run()
    assert lines[0] == "Starting REPL client mode..."
    assert "Awake!" in lines
    assert lines[-1] == "Goodbye!"
