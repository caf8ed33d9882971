"""
config["hyper_parameters"]["transport"] and config["hyper_parameters"]["timeouts"],
shared by client and server.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from proton_quic.protocol.constants import (
    IDLE_TIMEOUT,
    KEEP_ALIVE_INTERVAL,
    MAX_BIDIRECTIONAL_STREAMS,
    HANDSHAKE_TIMEOUT,
    STREAM_TIMEOUT,
    STARTUP_DELAY,
)


def _merge_seconds(
        kwargs: dict[str, Any],
        key: str,
        problems: List[str],
        allow_zero: bool = False,
    ) -> Optional[float]:
    """Validate one duration entry; return it as float, or None if absent or invalid."""
    if key not in kwargs:
        return None
    z = kwargs[key]
    if not isinstance(z, float | int) or isinstance(z, bool):
        problems.append(f"The provided {key} was not an integer or a float. It was {type(z)}")
        return None
    if z < 0 or (z == 0 and not allow_zero):
        bound = "≥ 0.0" if allow_zero else "> 0.0"
        problems.append(f"The provided {key} must be a number {bound}. It was {z}")
        return None
    return float(z)


@dataclass(slots=True)
class TransportConfig:
    idle_timeout_seconds: float = IDLE_TIMEOUT
    keep_alive_interval_seconds: float = KEEP_ALIVE_INTERVAL
    max_bidirectional_streams: int = MAX_BIDIRECTIONAL_STREAMS

    def __post_init__(self):
        if self.idle_timeout_seconds <= 0.0:
            raise ValueError("The provided idle_timeout_seconds must be > 0.0")
        if self.keep_alive_interval_seconds <= 0.0:
            raise ValueError("The provided keep_alive_interval_seconds must be > 0.0")
        if self.max_bidirectional_streams < 3:
            raise ValueError("The provided max_bidirectional_streams must be an integer ≥ 3")

    def merge_in(self, **kwargs) -> List[str]:
        all_problems: List[str] = []
        if (z := _merge_seconds(kwargs, "idle_timeout_seconds", all_problems)) is not None:
            self.idle_timeout_seconds = z
        if (z := _merge_seconds(kwargs, "keep_alive_interval_seconds", all_problems)) is not None:
            self.keep_alive_interval_seconds = z
        if "max_bidirectional_streams" in kwargs:
            z = kwargs["max_bidirectional_streams"]
            if not isinstance(z, int) or isinstance(z, bool):
                all_problems.append(f"The provided max_bidirectional_streams was not an integer. It was {type(z)}")
            elif z < 3:
                all_problems.append(f"The provided max_bidirectional_streams must be ≥ 3 (one per channel). It was {z}")
            else:
                self.max_bidirectional_streams = z
        return all_problems

    def keep_alive_warning(self) -> Optional[str]:
        """
        Valid but merits a warning: a keep-alive slower than the idle timeout
        lets a quiet connection expire.
        """
        if self.keep_alive_interval_seconds >= self.idle_timeout_seconds:
            return (
                f"keep_alive_interval_seconds ({self.keep_alive_interval_seconds}) ≥ idle_timeout_seconds "
                f"({self.idle_timeout_seconds}); idle connections may time out"
            )
        return None


@dataclass(slots=True)
class TimeoutConfig:
    handshake_timeout_seconds: float = HANDSHAKE_TIMEOUT
    stream_timeout_seconds: float = STREAM_TIMEOUT
    startup_delay_seconds: float = STARTUP_DELAY

    def __post_init__(self):
        if self.handshake_timeout_seconds <= 0.0:
            raise ValueError("The provided handshake_timeout_seconds must be > 0.0")
        if self.stream_timeout_seconds <= 0.0:
            raise ValueError("The provided stream_timeout_seconds must be > 0.0")
        if self.startup_delay_seconds < 0.0:
            raise ValueError("The provided startup_delay_seconds must be ≥ 0.0")

    def merge_in(self, **kwargs) -> List[str]:
        all_problems: List[str] = []
        if (z := _merge_seconds(kwargs, "handshake_timeout_seconds", all_problems)) is not None:
            self.handshake_timeout_seconds = z
        if (z := _merge_seconds(kwargs, "stream_timeout_seconds", all_problems)) is not None:
            self.stream_timeout_seconds = z
        if (z := _merge_seconds(kwargs, "startup_delay_seconds", all_problems, allow_zero=True)) is not None:
            self.startup_delay_seconds = z
        return all_problems
