from collections.abc import Iterable
from typing import Any
import ipaddress

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4433


def format_addr(addr: Any) -> str:
    """
    Convert a peer address (or similar) to a compact, deterministic string.

    Behavior:
      - IPv4 (host, port) -> "host:port"
      - IPv6 (host, port[, flowinfo, scopeid]) -> "[host%scopeid]:port"  (scopeid only if nonzero)
      - str -> returned as-is
      - None -> "None"
      - Fallback -> str(addr)
    """
    if addr is None:
        return "None"

    if isinstance(addr, str):
        return addr

    if isinstance(addr, Iterable):
        seq = list(addr)
        if len(seq) >= 2 and isinstance(seq[0], str) and isinstance(seq[1], int):
            host, port = seq[0], seq[1]
            scopeid = seq[3] if len(seq) >= 4 and isinstance(seq[3], int) else None
            try:
                ip = ipaddress.ip_address(host)
            except ValueError:
                # Not an IP literal; fall back to host:port
                return f"{host}:{port}"
            if ip.version == 6:
                host_fmt = host if scopeid in (None, 0) else f"{host}%{scopeid}"
                return f"[{host_fmt}]:{port}"
            return f"{host}:{port}"

    return str(addr)


def parse_addr(addr: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """
    Split "host:port" (or "[v6]:port", or a bare host) into (host, port).

    Raises ValueError on an empty host or a port outside 0..65535.
    """
    text = addr.strip()
    if not text:
        raise ValueError("Address is empty")

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep:
            raise ValueError(f"Unterminated IPv6 literal in {addr!r}")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif text.count(":") == 1:
        host, _, port_text = text.partition(":")
    else:
        host, port_text = text, ""

    if not host:
        raise ValueError(f"Missing host in {addr!r}")

    if not port_text:
        return host, default_port

    try:
        port = int(port_text)
    except ValueError as e:
        raise ValueError(f"Invalid port in {addr!r}") from e
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range in {addr!r}")
    return host, port
