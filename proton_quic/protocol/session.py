"""
One established connection: three bound channels and their counters.
"""
import asyncio
from typing import Any, Optional

from proton_quic.logger import Logger
from proton_quic.protocol.channels import LOOP_TYPES, SessionCounters
from proton_quic.protocol.constants import ROLE_ORDER, StreamRole
from proton_quic.protocol.errors import ProtonConnectionError
from proton_quic.protocol.handshake import StreamBindings


class ConnectionSession:

    __slots__ = (
        "connection",
        "bindings",
        "counters",
        "stream_timeout",
        "logger",
    )

    def __init__(
            self,
            connection: Any,
            bindings: StreamBindings,
            stream_timeout: Optional[float],
            logger: Logger,
            counters: Optional[SessionCounters] = None,
        ):
        self.connection = connection
        self.bindings = bindings
        self.stream_timeout = stream_timeout
        self.logger = logger
        self.counters = counters if counters is not None else SessionCounters()

    async def _run_channel(self, role: StreamRole) -> None:
        handle = self.bindings.get(role)
        if handle is None:
            self.logger.warning(f"No {role.label} stream bound; channel loop not started")
            return
        loop = LOOP_TYPES[role](handle, self.counters, self.stream_timeout, self.logger)
        await loop.run()

    async def run(self) -> None:
        """
        Run all channel loops concurrently against the connection-closed signal.
        The first one to finish decides the outcome and the others are cancelled:
          - connection closed: returns normally
          - a loop returned: returns normally
          - a loop failed: its ProtonError is raised
        """
        channel_tasks: dict[asyncio.Task, StreamRole] = {
            asyncio.create_task(self._run_channel(role), name=f"proton-{role.name.lower()}"): role
            for role in ROLE_ORDER
        }
        closed_task = asyncio.create_task(self.connection.wait_closed(), name="proton-closed")
        all_tasks = set(channel_tasks) | {closed_task}

        try:
            done, _ = await asyncio.wait(all_tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in all_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*all_tasks, return_exceptions=True)

        if closed_task in done:
            self.logger.info("Client closed connection")
            return

        # Deterministic pick when several loops finished in the same tick: failures first
        finished = sorted(
            (task for task in done if task in channel_tasks),
            key=lambda t: (t.cancelled() or t.exception() is None, ROLE_ORDER.index(channel_tasks[t])),
        )
        winner = finished[0]
        error = None if winner.cancelled() else winner.exception()
        if error is None:
            self.logger.info(f"{channel_tasks[winner].label.capitalize()} channel finished")
            return

        # The loops saw EOF just before the transport reported the close
        if isinstance(error, ProtonConnectionError) and getattr(self.connection, "is_closed", False):
            self.logger.info("Client closed connection")
            return

        raise error
