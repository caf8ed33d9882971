from .client import ProtonClient, ProtonConnection, ServerDisconnected
from .repl import ClientRepl
