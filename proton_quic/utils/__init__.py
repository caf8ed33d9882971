from .json_handlers import (
    load_config,
    )
from .addr_handlers import (
    format_addr,
    parse_addr,
    DEFAULT_HOST,
    DEFAULT_PORT,
    )
from .client_reconnect_configs import ReconnectConfig
from .transport_configs import TransportConfig, TimeoutConfig
from .tls_configs import TlsConfig
from .hyperparameter_configs import AdmissionConfig, HyperparameterConfig
