"""
config["hyper_parameters"] as a whole. Each section is handled by its own
dataclass; this module only routes the sections and collects the problems.
"""

from dataclasses import dataclass, field
from typing import Any, List

from proton_quic.protocol.constants import CloseCode, U32_MAX
from proton_quic.utils.client_reconnect_configs import ReconnectConfig
from proton_quic.utils.tls_configs import TlsConfig
from proton_quic.utils.transport_configs import TimeoutConfig, TransportConfig


@dataclass(slots=True)
class AdmissionConfig:
    """
    Close code used when a connection is turned away because another client
    holds the admission slot. Setting it to 0 reproduces the historical
    behavior, where a rejection was indistinguishable from a clean close.
    """
    reject_close_code: int = int(CloseCode.REJECTED)

    def __post_init__(self):
        if not 0 <= self.reject_close_code <= U32_MAX:
            raise ValueError("The provided reject_close_code must fit in 32 bits")

    def merge_in(self, **kwargs) -> List[str]:
        all_problems = []
        if "reject_close_code" in kwargs:
            z = kwargs["reject_close_code"]
            if not isinstance(z, int) or isinstance(z, bool):
                all_problems.append(f"The provided reject_close_code was not an integer. It was {type(z)}")
            elif not 0 <= z <= U32_MAX:
                all_problems.append(f"The provided reject_close_code must fit in 32 bits. It was {z}")
            else:
                self.reject_close_code = z
        return all_problems


@dataclass(slots=True)
class HyperparameterConfig:
    transport: TransportConfig = field(default_factory=TransportConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    tls: TlsConfig = field(default_factory=TlsConfig)
    reconnection: ReconnectConfig = field(default_factory=ReconnectConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)

    def merge_in(self, **kwargs) -> List[str]:
        all_problems: List[str] = []
        for section in ("transport", "timeouts", "tls", "reconnection", "admission"):
            if section not in kwargs:
                continue
            values = kwargs[section]
            if not isinstance(values, dict):
                all_problems.append(f"The provided {section} section was not an object. It was {type(values)}")
                continue
            all_problems.extend(getattr(self, section).merge_in(**values))
        return all_problems

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> tuple["HyperparameterConfig", List[str]]:
        """Defaults overridden by config["hyper_parameters"], plus the problems met on the way."""
        hyper_parameters = cls()
        hp_config = config.get("hyper_parameters", {})
        if not isinstance(hp_config, dict):
            return hyper_parameters, [f"hyper_parameters was not an object. It was {type(hp_config)}"]
        return hyper_parameters, hyper_parameters.merge_in(**hp_config)
