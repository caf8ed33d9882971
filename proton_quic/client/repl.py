"""
Interactive client.

Commands are read with aioconsole so the event loop keeps running (and the
connection keeps answering keep-alives) while the prompt waits. Several
commands can be chained with ';' and any command can be prefixed with a
repeat count, e.g. `connect 0; 3 send_event; commit 7; close`.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from aioconsole import ainput

from proton_quic.client.client import ProtonClient, ProtonConnection
from proton_quic.protocol.errors import ProtonError
from proton_quic.protocol.constants import U32_MAX
from proton_quic.utils import DEFAULT_HOST, DEFAULT_PORT, format_addr

HELP_TEXT = """Available commands:
  connect [delay]  - Connect to the server (optional startup delay in seconds)
  send_event       - Send an event
  commit <id>      - Send a state commit with given ID
  read_action      - Read an action from server
  close            - Close the connection
  sleep <secs>     - Sleep for specified seconds
  reset            - Close the connection and start over with a fresh client
  help             - Show this help message
  exit             - Exit the REPL

Commands can be chained with semicolons and repeated with a count prefix:
  Example: connect; sleep 2; 3 send_event; read_action"""


class ClientRepl:

    def __init__(
            self,
            host: str = DEFAULT_HOST,
            port: int = DEFAULT_PORT,
            client_factory: Optional[Callable[[], ProtonClient]] = None,
            input_func: Callable[[str], Awaitable[str]] = ainput,
            output: Callable[[str], None] = print,
        ):
        self.host = host
        self.port = port
        self._client_factory = client_factory or (lambda: ProtonClient(name="proton.client_repl"))
        self._input = input_func
        self._output = output
        self.client = self._client_factory()
        self.connection: Optional[ProtonConnection] = None

    def print_help(self):
        self._output(HELP_TEXT)

    def _require_connection(self) -> Optional[ProtonConnection]:
        if self.connection is None:
            self._output("Not connected! Use 'connect' first.")
        return self.connection

    async def _connect(self, args: list[str]):
        if self.connection is not None:
            self._output("Already connected! Close the current connection first.")
            return
        delay: Optional[float] = None
        if args:
            try:
                delay = float(args[0])
            except ValueError:
                self._output("Invalid delay. Usage: connect [seconds]")
                return
            if delay < 0:
                self._output("Invalid delay. Usage: connect [seconds]")
                return
        self._output(f"Connecting to server at {format_addr((self.host, self.port))}...")
        try:
            self.connection = await self.client.connect(self.host, self.port, startup_delay=delay)
        except ProtonError as e:
            self._output(f"Failed to connect: {e}")
            return
        self._output("Connected successfully!")

    async def _send_event(self, args: list[str]):
        connection = self._require_connection()
        if connection is None:
            return
        try:
            ack = await connection.send_event()
        except ProtonError as e:
            self._output(f"Failed to send event: {e}")
            return
        self._output(f"Event acknowledged with ID: {ack}")

    async def _commit(self, args: list[str]):
        connection = self._require_connection()
        if connection is None:
            return
        try:
            commit_id = int(args[0]) if args else -1
        except ValueError:
            commit_id = -1
        if not 0 <= commit_id <= U32_MAX:
            self._output("Invalid commit ID. Usage: commit <number>")
            return
        try:
            response = await connection.send_state_commit(commit_id)
        except ProtonError as e:
            self._output(f"Failed to commit state: {e}")
            return
        self._output(f"State commit response: {response}")

    async def _read_action(self, args: list[str]):
        connection = self._require_connection()
        if connection is None:
            return
        try:
            action = await connection.read_action()
        except ProtonError as e:
            self._output(f"Failed to read action: {e}")
            return
        self._output(f"Received action: {action}")

    async def _close(self, args: list[str]):
        if self.connection is None:
            self._output("Not connected!")
            return
        connection, self.connection = self.connection, None
        await connection.close()
        self._output("Connection closed.")

    async def _sleep(self, args: list[str]):
        try:
            seconds = float(args[0]) if args else -1.0
        except ValueError:
            seconds = -1.0
        if seconds < 0:
            self._output("Invalid sleep duration. Usage: sleep <seconds>")
            return
        self._output(f"Sleeping for {seconds:g} seconds...")
        await asyncio.sleep(seconds)
        self._output("Awake!")

    async def _reset(self, args: list[str]):
        if self.connection is not None:
            connection, self.connection = self.connection, None
            await connection.close()
        self.client = self._client_factory()
        self._output("Client reset. Event ids start over from 1.")

    async def handle_single_command(self, command: str) -> bool:
        """Run one command. Returns False when the REPL should stop."""
        words = command.split()
        if not words:
            return True

        repeat = 1
        if words[0].isdigit():
            repeat = int(words[0])
            words = words[1:]
            if not words:
                self._output("Missing command after repeat count.")
                return True

        name, args = words[0], words[1:]

        if name == "exit":
            if self.connection is not None:
                connection, self.connection = self.connection, None
                await connection.close()
            self._output("Goodbye!")
            return False

        if name == "help":
            self.print_help()
            return True

        handlers = {
            "connect": self._connect,
            "send_event": self._send_event,
            "commit": self._commit,
            "read_action": self._read_action,
            "close": self._close,
            "sleep": self._sleep,
            "reset": self._reset,
        }
        handler = handlers.get(name)
        if handler is None:
            self._output("Unknown command. Type 'help' for available commands.")
            return True

        for _ in range(repeat):
            await handler(args)
        return True

    async def handle_command(self, line: str) -> bool:
        for command in line.split(";"):
            if not await self.handle_single_command(command.strip()):
                return False
        return True

    async def run(self):
        self._output("Starting REPL client mode...")
        self.print_help()
        while True:
            try:
                line = await self._input("> ")
            except EOFError:
                line = "exit"
            if not await self.handle_command(line.strip()):
                break
