"""
aioquic glue.

`ProtonQuicProtocol` gives the protocol layer a small connection surface:

  - accept_bi(): next stream opened by the peer
  - open_bi():   open a stream towards the peer
  - close(code, reason): application close, idempotent
  - wait_closed() / is_closed

Everything below that (TLS, congestion control, stream multiplexing) is
aioquic's business.
"""
import asyncio
import functools
import ssl
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Optional

from aioquic.asyncio import QuicConnectionProtocol, connect, serve
from aioquic.asyncio.server import QuicServer
from aioquic.quic.configuration import QuicConfiguration
from aioquic.quic.connection import QuicConnection
from aioquic.quic.events import ConnectionTerminated, HandshakeCompleted, QuicEvent

from proton_quic.logger import Logger, get_logger
from proton_quic.protocol.constants import ALPN_PROTOCOL, MAX_BIDIRECTIONAL_STREAMS, CloseCode
from proton_quic.transport.certs import generate_self_signed, write_pem
from proton_quic.utils.addr_handlers import format_addr
from proton_quic.utils.tls_configs import TlsConfig
from proton_quic.utils.transport_configs import TransportConfig

StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]
EstablishedCallback = Callable[["ProtonQuicProtocol"], None]


class ProtonQuicProtocol(QuicConnectionProtocol):
    """
    Streams opened by the peer are queued for `accept_bi` instead of being
    dispatched to a handler; the stream_handler aioquic passes in is ignored.
    """

    def __init__(
            self,
            quic: QuicConnection,
            stream_handler: Any = None,
            *,
            on_established: Optional[EstablishedCallback] = None,
            keep_alive_interval: Optional[float] = None,
            max_streams: int = MAX_BIDIRECTIONAL_STREAMS,
            logger: Optional[Logger] = None,
        ):
        super().__init__(quic, stream_handler=self._stream_received)
        self.logger: Logger = logger or get_logger("proton.transport")
        self._incoming: asyncio.Queue[Optional[StreamPair]] = asyncio.Queue()
        self._peer_streams = 0
        self._max_streams = max_streams
        self._keep_alive_interval = keep_alive_interval
        self._keep_alive_task: Optional[asyncio.Task] = None
        self._on_established = on_established
        self._close_requested = False
        self._terminated = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

    # ==== CONNECTION SURFACE ====

    @property
    def is_closed(self) -> bool:
        return self._terminated

    @property
    def remote_address(self) -> str:
        paths = getattr(self._quic, "_network_paths", None)
        return format_addr(paths[0].addr if paths else None)

    async def accept_bi(self) -> StreamPair:
        item = await self._incoming.get()
        if item is None:
            # Leave the marker for any other waiter
            self._incoming.put_nowait(None)
            raise ConnectionError("Connection closed while waiting for a stream")
        return item

    async def open_bi(self) -> StreamPair:
        if self._terminated or self._close_requested:
            raise ConnectionError("Connection is closed")
        return await self.create_stream(is_unidirectional=False)

    def close(self, error_code: int = CloseCode.NORMAL, reason_phrase: str = "") -> None:
        if self._close_requested or self._terminated:
            return
        self._close_requested = True
        self.close_code = int(error_code)
        self.close_reason = reason_phrase
        super().close(error_code=int(error_code), reason_phrase=reason_phrase)

    # ==== AIOQUIC CALLBACKS ====

    def _stream_received(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._peer_streams += 1
        if self._peer_streams > self._max_streams:
            self.logger.warning(
                f"Refusing stream #{self._peer_streams} from {self.remote_address}: "
                f"limit is {self._max_streams}"
            )
            writer.close()
            return
        self._incoming.put_nowait((reader, writer))

    def quic_event_received(self, event: QuicEvent) -> None:
        super().quic_event_received(event)

        if isinstance(event, HandshakeCompleted):
            if self._keep_alive_interval:
                self._keep_alive_task = asyncio.ensure_future(self._keep_alive())
            if self._on_established is not None:
                self._on_established(self)

        elif isinstance(event, ConnectionTerminated):
            self._terminated = True
            if self.close_code is None:
                self.close_code = event.error_code
                self.close_reason = event.reason_phrase
            self._incoming.put_nowait(None)
            if self._keep_alive_task is not None:
                self._keep_alive_task.cancel()

    async def _keep_alive(self) -> None:
        while not self._terminated:
            await asyncio.sleep(self._keep_alive_interval)
            try:
                await self.ping()
            except ConnectionError:
                return


# ==== CONFIGURATION ====

def build_server_configuration(transport: TransportConfig, tls: TlsConfig, logger: Logger) -> QuicConfiguration:
    configuration = QuicConfiguration(
        is_client=False,
        alpn_protocols=[ALPN_PROTOCOL],
        idle_timeout=transport.idle_timeout_seconds,
    )
    if tls.certfile:
        configuration.load_cert_chain(tls.certfile, tls.keyfile)
        logger.info(f"Loaded certificate from {tls.certfile}")
    else:
        certificate, private_key = generate_self_signed(tls.server_name)
        configuration.certificate = certificate
        configuration.private_key = private_key
        logger.info(f"Generated self-signed certificate for {tls.server_name}")
        if tls.export_certfile:
            write_pem(certificate, private_key, tls.export_certfile)
            logger.info(f"Wrote self-signed certificate to {tls.export_certfile}")
    return configuration


def build_client_configuration(transport: TransportConfig, tls: TlsConfig, logger: Logger) -> QuicConfiguration:
    configuration = QuicConfiguration(
        is_client=True,
        alpn_protocols=[ALPN_PROTOCOL],
        idle_timeout=transport.idle_timeout_seconds,
        server_name=tls.server_name,
    )
    if tls.insecure_skip_verify:
        logger.warning("Server certificate verification is DISABLED (insecure_skip_verify)")
        configuration.verify_mode = ssl.CERT_NONE
    elif tls.ca_certs:
        configuration.load_verify_locations(cafile=tls.ca_certs)
    return configuration


def protocol_factory(
        transport: TransportConfig,
        logger: Logger,
        on_established: Optional[EstablishedCallback] = None,
    ) -> Callable[..., ProtonQuicProtocol]:
    return functools.partial(
        ProtonQuicProtocol,
        on_established=on_established,
        keep_alive_interval=transport.keep_alive_interval_seconds,
        max_streams=transport.max_bidirectional_streams,
        logger=logger,
    )


async def listen(
        host: str,
        port: int,
        configuration: QuicConfiguration,
        create_protocol: Callable[..., ProtonQuicProtocol],
    ) -> QuicServer:
    return await serve(host, port, configuration=configuration, create_protocol=create_protocol)


def dial(
        host: str,
        port: int,
        configuration: QuicConfiguration,
        create_protocol: Callable[..., ProtonQuicProtocol],
    ) -> AbstractAsyncContextManager[ProtonQuicProtocol]:
    return connect(host, port, configuration=configuration, create_protocol=create_protocol)
