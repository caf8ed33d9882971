import asyncio
import platform
import signal
from dataclasses import dataclass
from typing import Any, Optional

from aioquic.asyncio.server import QuicServer

from proton_quic.logger import Logger, configure_logger, get_logger
from proton_quic.protocol.codec import deadline
from proton_quic.protocol.constants import CLOSE_REASONS, ROLE_ORDER, CloseCode
from proton_quic.protocol.errors import ProtonConnectionError, ProtonError, ProtonTimeoutError
from proton_quic.protocol.handshake import StreamBindings
from proton_quic.protocol.session import ConnectionSession
from proton_quic.server.admission import AdmissionBusy, AdmissionControl, Lease
from proton_quic.transport.quic import ProtonQuicProtocol, build_server_configuration, listen, protocol_factory
from proton_quic.utils import DEFAULT_HOST, DEFAULT_PORT, HyperparameterConfig, load_config


@dataclass(frozen=True)
class ConnectionOutcome:
    """How one connection ended: the close code sent and the error behind it, if any."""
    close_code: int
    reason: str
    error: Optional[BaseException] = None
    rejected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ProtonServer:

    __slots__: tuple[str, ...] = (
        "name",
        "logger",
        "loop",
        "hyper_parameters",
        "admission",
        "_incoming",
        "_serving",
        "_quic_server",
    )

    def __init__(self, name: Optional[str] = None, hyper_parameters: Optional[HyperparameterConfig] = None):
        # Give a name to the server
        self.name = name if isinstance(name, str) else "<server:no-name>"
        self.logger: Logger = get_logger(self.name)

        # Created by run(); run_server() can also be awaited on an existing loop
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self.hyper_parameters = hyper_parameters or HyperparameterConfig()
        self.admission = AdmissionControl()

        self._incoming: Optional[asyncio.Queue[ProtonQuicProtocol]] = None
        self._serving = False
        self._quic_server: Optional[QuicServer] = None

    # ==== CONFIGURATION ====

    def _apply_config(self, config: dict[str, Any]):
        configure_logger(self.logger, config.get("logger", {}))

        problems = self.hyper_parameters.merge_in(**config.get("hyper_parameters", {}))
        for problem in problems:
            self.logger.error(f"Config problem: {problem}")
        if problems:
            raise ValueError(f"Invalid server configuration ({len(problems)} problem(s))")

        warning = self.hyper_parameters.transport.keep_alive_warning()
        if warning:
            self.logger.warning(warning)

    def configure(self, config_path: Optional[str] = None) -> dict[str, Any]:
        """Load a JSON config (missing file means defaults) and apply it. Returns the raw config."""
        server_config = load_config(config_path=config_path, debug=bool(config_path))
        self._apply_config(server_config)
        return server_config

    # ==== CONNECTION HANDLING ====

    def _close(
            self,
            connection: Any,
            code: CloseCode,
            error: Optional[BaseException] = None,
        ) -> ConnectionOutcome:
        reason = CLOSE_REASONS[code]
        connection.close(int(code), reason)
        return ConnectionOutcome(close_code=int(code), reason=reason, error=error)

    def reject(self, connection: Any) -> ConnectionOutcome:
        """Turn a connection away because the admission slot is taken. Not fatal to the server."""
        code = self.hyper_parameters.admission.reject_close_code
        reason = CLOSE_REASONS[CloseCode.REJECTED]
        self.logger.warning(f"Rejecting connection from {connection.remote_address}: another client is already connected")
        connection.close(code, reason)
        return ConnectionOutcome(
            close_code=code,
            reason=reason,
            error=ProtonConnectionError("another client is already connected"),
            rejected=True,
        )

    async def _establish(self, connection: Any) -> tuple[Optional[StreamBindings], Optional[ConnectionOutcome]]:
        """
        Server half of the handshake: exactly one stream per role, each accepted
        and classified within the handshake timeout. On failure the connection
        is closed and the outcome is returned in place of the bindings.
        """
        timeout = self.hyper_parameters.timeouts.handshake_timeout_seconds
        bindings = StreamBindings()
        for established in range(1, len(ROLE_ORDER) + 1):
            try:
                reader, writer = await deadline(connection.accept_bi(), timeout, "accepting stream")
            except ProtonTimeoutError as e:
                self.logger.warning(f"Timeout waiting for stream establishment: {e}")
                return None, self._close(connection, CloseCode.STREAM_SETUP_TIMEOUT, e)
            except ProtonError as e:
                self.logger.error(f"Error accepting stream: {e}")
                return None, self._close(connection, CloseCode.STREAM_ACCEPT_ERROR, e)

            try:
                handle = await bindings.accept(reader, writer, timeout)
            except ProtonTimeoutError as e:
                self.logger.warning(f"Timeout reading stream discriminator: {e}")
                return None, self._close(connection, CloseCode.STREAM_SETUP_TIMEOUT, e)
            except ProtonError as e:
                self.logger.error(f"Error handling stream: {e}")
                return None, self._close(connection, CloseCode.STREAM_SETUP_ERROR, e)

            self.logger.info(f"Stream {established} established ({handle.role.label})")
        return bindings, None

    async def _serve_admitted(self, connection: Any, lease: Lease) -> ConnectionOutcome:
        bindings, failure = await self._establish(connection)
        if failure is not None:
            return failure

        session = ConnectionSession(
            connection,
            bindings,
            self.hyper_parameters.timeouts.stream_timeout_seconds,
            self.logger,
        )
        await self.admission.attach(lease, session)

        try:
            await session.run()
        except ProtonTimeoutError as e:
            self.logger.error(f"Stream operation timed out: {e}")
            return self._close(connection, CloseCode.STREAM_OPERATION_TIMEOUT, e)
        except ProtonError as e:
            self.logger.error(f"Stream error: {e}")
            return self._close(connection, CloseCode.STREAM_ERROR, e)

        self.logger.info("Streams completed normally")
        return self._close(connection, CloseCode.NORMAL)

    async def handle_connection(self, connection: Any) -> ConnectionOutcome:
        """
        Admission, handshake and channel loops for one established connection.
        The admission slot is released on every exit path.
        """
        try:
            async with self.admission.acquire(connection) as lease:
                outcome = await self._serve_admitted(connection, lease)
        except AdmissionBusy:
            return self.reject(connection)
        self.logger.info("Connection state cleared")
        return outcome

    def _on_established(self, protocol: ProtonQuicProtocol) -> None:
        # Runs inside aioquic's event dispatch; defer the decision to the loop
        asyncio.get_running_loop().call_soon(self._admit, protocol)

    def _admit(self, protocol: ProtonQuicProtocol) -> None:
        if protocol.is_closed:
            return
        # A queued connection, or one the accept loop has taken, holds the server
        if self.busy:
            self.reject(protocol)
            return
        if self._incoming is not None:
            self._incoming.put_nowait(protocol)

    @property
    def busy(self) -> bool:
        """True from the moment a connection is queued until its handler has been cleaned up."""
        queued = self._incoming is not None and not self._incoming.empty()
        return self._serving or queued or self.admission.occupied

    async def accept_loop(self):
        """
        Serve established connections one at a time: the next connection is
        taken only once the previous handler has finished.
        """
        if self._incoming is None:
            self._incoming = asyncio.Queue()
        while True:
            connection = await self._incoming.get()
            if connection.is_closed:
                continue
            self._serving = True
            try:
                await self._serve_one(connection)
            finally:
                # Ensure the slot is empty before the next connection
                await self.admission.reset()
                self._serving = False
            self.logger.info("Connection cleanup complete, ready for new connections")

    async def _serve_one(self, connection: ProtonQuicProtocol):
        self.logger.info(f"Connection established from {connection.remote_address}")
        handler = asyncio.create_task(self.handle_connection(connection))
        try:
            outcome = await handler
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.exception(f"Connection task failed: {e}")
            self._close(connection, CloseCode.STREAM_ERROR, e)
            return
        if outcome.ok:
            self.logger.info("Connection handled successfully")
        else:
            self.logger.error(f"Connection error: {outcome.error} (close code {outcome.close_code})")

    # ==== SERVER LIFE CYCLE ====

    async def start(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        transport = self.hyper_parameters.transport
        configuration = build_server_configuration(transport, self.hyper_parameters.tls, self.logger)
        self._incoming = asyncio.Queue()
        self._quic_server = await listen(
            host,
            port,
            configuration,
            protocol_factory(transport, self.logger, on_established=self._on_established),
        )
        self.logger.info(f"Server listening on {host}:{port}")

    def stop(self):
        if self._quic_server is not None:
            self._quic_server.close()
            self._quic_server = None

    async def run_server(
            self,
            host: str = DEFAULT_HOST,
            port: int = DEFAULT_PORT,
            startup_delay: Optional[float] = None,
        ):
        delay = self.hyper_parameters.timeouts.startup_delay_seconds if startup_delay is None else startup_delay
        if delay > 0:
            # Give connections from a previous run time to expire
            self.logger.info(f"Waiting {delay:g} seconds for startup delay...")
            await asyncio.sleep(delay)

        await self.start(host=host, port=port)
        try:
            await self.accept_loop()
        finally:
            self.stop()

    def shutdown(self):
        self.logger.info("Server is shutting down...")
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
            startup_delay: Optional[float] = None,
        ):
        server_config = self.configure(config_path) if config_path else {}
        host = host or server_config.get("host") or DEFAULT_HOST
        port = port if port is not None else server_config.get("port", DEFAULT_PORT)

        # Create a new event loop
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        try:
            self.set_termination_signals()
            self.loop.run_until_complete(self.run_server(host=host, port=port, startup_delay=startup_delay))
        except (asyncio.CancelledError, KeyboardInterrupt):
            pass
        finally:
            self.stop()
            self.loop.close()
            self.logger.info("Server exited cleanly.")
