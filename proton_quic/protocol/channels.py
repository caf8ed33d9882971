"""
Server-side channel loops.

Every loop is `read -> respond -> write` under the stream timeout, forever.
A failed step ends the loop with a ProtonError; loops are not resumable.
"""
from dataclasses import dataclass
from typing import Optional

from proton_quic.logger import Logger
from proton_quic.protocol.constants import COMMIT_RESPONSE_OFFSET, StreamRole, U32_MAX
from proton_quic.protocol.errors import InvalidStreamError, ProtonConnectionError, ProtonError, ProtonTimeoutError
from proton_quic.protocol.handshake import ChannelHandle


@dataclass
class SessionCounters:
    last_event_id: int = 0
    action_counter: int = 0


class ChannelLoop:

    role: StreamRole

    def __init__(
            self,
            handle: ChannelHandle,
            counters: SessionCounters,
            timeout: Optional[float],
            logger: Logger,
        ):
        if handle.role is not self.role:
            raise ValueError(f"{type(self).__name__} cannot drive a {handle.role.label} stream")
        self.handle = handle
        self.counters = counters
        self.timeout = timeout
        self.logger = logger

    def respond(self, request: int) -> int:
        raise NotImplementedError

    def acknowledged(self, request: int, response: int) -> None:
        """Called once the response is on the wire."""

    async def step(self) -> int:
        label = self.role.label
        try:
            request = await self.handle.read_u32(self.timeout)
        except ProtonTimeoutError:
            self.logger.error(f"Timeout reading {label} request")
            raise
        except ProtonConnectionError as e:
            # Usually the client closing; the session decides whether it was an error
            self.logger.debug(f"{label.capitalize()} stream ended: {e}")
            raise
        except ProtonError as e:
            self.logger.error(f"Failed to read {label} request: {e}")
            raise

        response = self.respond(request)

        try:
            await self.handle.write_u32(response, self.timeout)
        except ProtonTimeoutError:
            self.logger.error(f"Timeout sending {label} response")
            raise
        except ProtonError as e:
            self.logger.error(f"Failed to send {label} response: {e}")
            raise

        self.acknowledged(request, response)
        return response

    async def run(self) -> None:
        while True:
            await self.step()


class EventLoop(ChannelLoop):
    """Echo strictly increasing event ids."""

    role = StreamRole.EVENT

    def respond(self, request: int) -> int:
        if request <= self.counters.last_event_id:
            self.logger.error(
                f"Event {request} breaks monotonicity (last accepted {self.counters.last_event_id})"
            )
            raise InvalidStreamError(
                f"event id {request} is not greater than {self.counters.last_event_id}"
            )
        self.counters.last_event_id = request
        return request

    def acknowledged(self, request: int, response: int) -> None:
        self.logger.info(f"Event {request} acknowledged")


class StateCommitLoop(ChannelLoop):

    role = StreamRole.STATE_COMMIT

    def respond(self, request: int) -> int:
        self.logger.info(f"Received state commit: {request}")
        return (request + COMMIT_RESPONSE_OFFSET) & U32_MAX

    def acknowledged(self, request: int, response: int) -> None:
        self.logger.info(f"State commit {request} response sent")


class ActionLoop(ChannelLoop):
    """The request payload is ignored; responses count up from 0."""

    role = StreamRole.ACTION

    def respond(self, request: int) -> int:
        self.logger.info(f"Received action request: {request}")
        return self.counters.action_counter

    def acknowledged(self, request: int, response: int) -> None:
        self.logger.info(f"Action {response} sent")
        self.counters.action_counter = (self.counters.action_counter + 1) & U32_MAX


LOOP_TYPES: dict[StreamRole, type[ChannelLoop]] = {
    StreamRole.EVENT: EventLoop,
    StreamRole.STATE_COMMIT: StateCommitLoop,
    StreamRole.ACTION: ActionLoop,
}
