from .certs import generate_self_signed, write_pem
from .quic import (
    ProtonQuicProtocol,
    build_client_configuration,
    build_server_configuration,
    protocol_factory,
    listen,
    dial,
    )
