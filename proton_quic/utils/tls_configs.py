"""
config["hyper_parameters"]["tls"].

Certificate verification is on unless `insecure_skip_verify` is set
explicitly, either here or with `--insecure` on the command line.
`export_certfile` only applies when the server generates its own certificate.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(slots=True)
class TlsConfig:
    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    ca_certs: Optional[str] = None
    export_certfile: Optional[str] = None
    insecure_skip_verify: bool = False
    server_name: str = "localhost"

    def __post_init__(self):
        if not isinstance(self.insecure_skip_verify, bool):
            raise ValueError("The provided insecure_skip_verify must be a bool")
        if (self.certfile is None) != (self.keyfile is None):
            raise ValueError("certfile and keyfile must be provided together")

    def merge_in(self, **kwargs) -> List[str]:
        all_problems = []
        for key in ("certfile", "keyfile", "ca_certs", "export_certfile"):
            if key in kwargs:
                z = kwargs[key]
                if isinstance(z, str | None):
                    setattr(self, key, z or None)
                else:
                    all_problems.append(f"The provided {key} was not an optional string. It was {type(z)}")
        if (self.certfile is None) != (self.keyfile is None):
            all_problems.append("The provided certfile and keyfile must be given together")
        if "insecure_skip_verify" in kwargs:
            z = kwargs["insecure_skip_verify"]
            if not isinstance(z, bool):
                all_problems.append(f"The provided insecure_skip_verify was not a bool. It was {type(z)}")
            else:
                self.insecure_skip_verify = z
        if "server_name" in kwargs:
            z = kwargs["server_name"]
            if not isinstance(z, str) or not z:
                all_problems.append(f"The provided server_name was not a non-empty string. It was {z!r}")
            else:
                self.server_name = z
        return all_problems
