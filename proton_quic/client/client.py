import asyncio
import platform
import signal
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from typing import Any, Callable, Optional

from proton_quic.logger import Logger, configure_logger, get_logger
from proton_quic.protocol.codec import TRANSPORT_ERRORS
from proton_quic.protocol.constants import (
    ACTION_PROBE_REQUEST,
    CLIENT_CLOSE_REASON,
    CloseCode,
    StreamRole,
    U32_MAX,
)
from proton_quic.protocol.errors import (
    InvalidStreamError,
    ProtonConnectionError,
    ProtonError,
    map_transport_error,
)
from proton_quic.protocol.handshake import ChannelHandle, StreamBindings, open_streams
from proton_quic.transport.quic import build_client_configuration, dial, protocol_factory
from proton_quic.utils import DEFAULT_HOST, DEFAULT_PORT, HyperparameterConfig, load_config

# (host, port) -> async context manager yielding an established connection
Connector = Callable[[str, int], AbstractAsyncContextManager[Any]]


class ServerDisconnected(ProtonConnectionError):
    """Raised when the server closed the connection, carrying its close code and reason."""

    def __init__(self, close_code: int, reason: Optional[str]):
        self.close_code = close_code
        self.reason = reason or ""
        super().__init__(f"server closed the connection with code {close_code} ({self.reason or 'no reason'})")


class ProtonConnection:
    """
    Client side of one established connection: the three bound channels and
    the request helpers that drive them.
    """

    def __init__(
            self,
            client: "ProtonClient",
            connection: Any,
            exit_stack: Optional[AsyncExitStack] = None,
        ):
        self.client = client
        self.connection = connection
        self.logger: Logger = client.logger
        self.bindings: Optional[StreamBindings] = None
        self._exit_stack = exit_stack
        self._closed = False

    @property
    def stream_timeout(self) -> float:
        return self.client.hyper_parameters.timeouts.stream_timeout_seconds

    @property
    def closed(self) -> bool:
        return self._closed

    async def establish_streams(self) -> StreamBindings:
        """Open Event, StateCommit and Action streams, in that order."""
        self.bindings = await open_streams(self.connection, self.stream_timeout, self.logger)
        return self.bindings

    def _handle(self, role: StreamRole) -> ChannelHandle:
        if self._closed:
            raise ProtonConnectionError("connection already closed")
        handle = self.bindings.get(role) if self.bindings is not None else None
        if handle is None:
            raise ProtonConnectionError(f"no {role.label} stream established")
        return handle

    def _explain(self, error: ProtonError) -> ProtonError:
        # A read that hit EOF because the server closed us: report its close code instead
        if isinstance(error, ProtonConnectionError) and getattr(self.connection, "is_closed", False):
            code = getattr(self.connection, "close_code", None)
            if code is not None:
                disconnected = ServerDisconnected(code, getattr(self.connection, "close_reason", None))
                disconnected.__cause__ = error
                return disconnected
        return error

    async def _request(self, role: StreamRole, value: int) -> int:
        handle = self._handle(role)
        try:
            return await handle.request(value, self.stream_timeout)
        except ProtonError as e:
            raise self._explain(e)

    async def send_event(self) -> int:
        """Send the next event id and return the server's acknowledgement."""
        event_id = self.client.next_event_id()
        self.logger.info(f"Sending event {event_id}")
        ack = await self._request(StreamRole.EVENT, event_id)
        self.logger.info(f"Event {event_id} acknowledged with {ack}")
        return ack

    async def send_state_commit(self, commit_id: int) -> int:
        if not isinstance(commit_id, int) or not 0 <= commit_id <= U32_MAX:
            raise ValueError(f"commit id must be an unsigned 32-bit integer, got {commit_id!r}")
        self.logger.info(f"Sending state commit {commit_id}")
        response = await self._request(StreamRole.STATE_COMMIT, commit_id)
        self.logger.info(f"State commit {commit_id} answered with {response}")
        return response

    async def read_action(self) -> int:
        action = await self._request(StreamRole.ACTION, ACTION_PROBE_REQUEST)
        self.logger.info(f"Received action {action}")
        return action

    async def close(self) -> None:
        """Close the connection with code 0. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.logger.info("Closing connection")
        self.connection.close(int(CloseCode.NORMAL), CLIENT_CLOSE_REASON)
        if self._exit_stack is not None:
            exit_stack, self._exit_stack = self._exit_stack, None
            await exit_stack.aclose()

    async def __aenter__(self) -> "ProtonConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ProtonClient:

    __slots__: tuple[str, ...] = (
        "name",
        "logger",
        "loop",
        "hyper_parameters",
        "last_event_id",
        "_connector",
    )

    def __init__(
            self,
            name: Optional[str] = None,
            hyper_parameters: Optional[HyperparameterConfig] = None,
            connector: Optional[Connector] = None,
        ):
        # Give a name to the client
        self.name = name if isinstance(name, str) else "<client:no-name>"
        self.logger: Logger = get_logger(self.name)
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self.hyper_parameters = hyper_parameters or HyperparameterConfig()

        # Survives reconnects; only a fresh client starts again from 0
        self.last_event_id = 0

        self._connector = connector or self._dial

    # ==== CONFIGURATION ====

    def _apply_config(self, config: dict[str, Any]):
        configure_logger(self.logger, config.get("logger", {}))

        problems = self.hyper_parameters.merge_in(**config.get("hyper_parameters", {}))
        for problem in problems:
            self.logger.error(f"Config problem: {problem}")
        if problems:
            raise ValueError(f"Invalid client configuration ({len(problems)} problem(s))")

        warning = self.hyper_parameters.transport.keep_alive_warning()
        if warning:
            self.logger.warning(warning)

    def configure(self, config_path: Optional[str] = None) -> dict[str, Any]:
        client_config = load_config(config_path=config_path, debug=bool(config_path))
        self._apply_config(client_config)
        return client_config

    # ==== CONNECTION ====

    def next_event_id(self) -> int:
        if self.last_event_id >= U32_MAX:
            raise InvalidStreamError("event id space exhausted")
        self.last_event_id += 1
        return self.last_event_id

    def _dial(self, host: str, port: int) -> AbstractAsyncContextManager[Any]:
        transport = self.hyper_parameters.transport
        configuration = build_client_configuration(transport, self.hyper_parameters.tls, self.logger)
        return dial(host, port, configuration, protocol_factory(transport, self.logger))

    async def connect(
            self,
            host: str = DEFAULT_HOST,
            port: int = DEFAULT_PORT,
            startup_delay: Optional[float] = None,
        ) -> ProtonConnection:
        """
        Wait the startup delay, establish the transport connection and open
        the three channels. The returned connection must be closed by the caller.
        """
        delay = self.hyper_parameters.timeouts.startup_delay_seconds if startup_delay is None else startup_delay
        if delay > 0:
            self.logger.info(f"Waiting {delay:g} seconds for server startup...")
            await asyncio.sleep(delay)

        self.logger.info(f"Connecting to {host}:{port}...")
        exit_stack = AsyncExitStack()
        try:
            connection = await exit_stack.enter_async_context(self._connector(host, port))
        except TRANSPORT_ERRORS as e:
            await exit_stack.aclose()
            error = map_transport_error(e, f"connecting to {host}:{port}")
            self.logger.error(f"Failed to connect: {error}")
            raise error
        self.logger.info("Connected to server")

        proton_connection = ProtonConnection(self, connection, exit_stack)
        try:
            await proton_connection.establish_streams()
        except ProtonError as e:
            error = proton_connection._explain(e)
            await proton_connection.close()
            self.logger.error(f"Failed to establish streams: {error}")
            raise error
        except BaseException:
            await proton_connection.close()
            raise
        return proton_connection

    async def run_script(
            self,
            host: str = DEFAULT_HOST,
            port: int = DEFAULT_PORT,
            rounds: int = 1,
            startup_delay: Optional[float] = None,
        ) -> list[tuple[int, int, int]]:
        """
        Connect, then run `rounds` rounds of event / state commit / action.
        Returns the (event ack, commit response, action) of every round.
        """
        results: list[tuple[int, int, int]] = []
        async with await self.connect(host, port, startup_delay=startup_delay) as connection:
            for round_number in range(1, rounds + 1):
                ack = await connection.send_event()
                committed = await connection.send_state_commit(round_number)
                action = await connection.read_action()
                self.logger.info(f"Round {round_number}: event={ack} commit={committed} action={action}")
                results.append((ack, committed, action))
        return results

    # ==== CLIENT LIFE CYCLE ====

    def shutdown(self):
        self.logger.info("Client is shutting down...")
        for task in asyncio.all_tasks(self.loop):
            task.cancel()

    def set_termination_signals(self):
        # SIGINT = interupt signal for Ctrl+C | value = 2
        # SIGTERM = system/process-based termination | value = 15
        if platform.system() != "Windows":
            for sig in (signal.SIGINT, signal.SIGTERM):
                self.loop.add_signal_handler(sig, lambda: self.shutdown())

    def run(
            self,
            host: Optional[str] = None,
            port: Optional[int] = None,
            config_path: Optional[str] = None,
            rounds: int = 1,
            startup_delay: Optional[float] = None,
        ) -> list[tuple[int, int, int]]:
        client_config = self.configure(config_path) if config_path else {}
        host = host or client_config.get("host") or DEFAULT_HOST
        port = port if port is not None else client_config.get("port", DEFAULT_PORT)

        # Create a new event loop
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        try:
            self.set_termination_signals()
            return self.loop.run_until_complete(
                self.run_script(host=host, port=port, rounds=rounds, startup_delay=startup_delay)
            )
        finally:
            self.loop.close()
            self.logger.info("Client exited cleanly.")
