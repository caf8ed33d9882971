"""
In `client.py` config["hyper_parameters"]["reconnection"]
holds the retry constants. Isolate that out here.

These values are carried for a retry wrapper around `ProtonClient.connect`;
no request/response call path consumes them. Connection failures are
surfaced directly to the caller.
"""

from dataclasses import dataclass
from typing import List

from proton_quic.protocol.constants import MAX_CONNECT_RETRIES, CONNECT_RETRY_DELAY


@dataclass(slots=True)
class ReconnectConfig:
    max_retries: int = MAX_CONNECT_RETRIES
    retry_delay_seconds: float = CONNECT_RETRY_DELAY

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("The provided max_retries must be an integer ≥ 0")
        if self.retry_delay_seconds < 0.0:
            raise ValueError("The provided retry_delay_seconds must be a float ≥ 0.0")

    def merge_in(self, **kwargs) -> List[str]:
        all_problems = []
        if "max_retries" in kwargs:
            z = kwargs["max_retries"]
            if not isinstance(z, int) or isinstance(z, bool):
                all_problems.append(f"The provided max_retries was not an integer. It was {type(z)}")
            elif z < 0:
                all_problems.append(f"The provided max_retries was negative. It was {z}")
            else:
                self.max_retries = z
        if "retry_delay_seconds" in kwargs:
            z = kwargs["retry_delay_seconds"]
            if not isinstance(z, float | int) or isinstance(z, bool):
                all_problems.append(f"The provided retry_delay_seconds was not an integer or a float. It was {type(z)}")
            elif z < 0.0:
                all_problems.append(f"The provided retry_delay_seconds was negative. It was {z}")
            else:
                self.retry_delay_seconds = float(z)
        return all_problems
