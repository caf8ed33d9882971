"""
Command line entry point: `proton server|client|client_repl [addr] ...`
(also `python -m proton_quic`).
"""
import argparse
import asyncio
from typing import Any, Optional, Sequence

from proton_quic.client import ClientRepl, ProtonClient
from proton_quic.logger import setup_logger
from proton_quic.protocol.errors import ProtonError
from proton_quic.server import ProtonServer
from proton_quic.settings import PROTON_CONFIG
from proton_quic.utils import DEFAULT_HOST, DEFAULT_PORT, parse_addr

logger = setup_logger("proton.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="proton", description="Proton: three request/response channels over QUIC.")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    def add_common(sub: argparse.ArgumentParser):
        sub.add_argument('addr', nargs='?', default=None, help=f'host:port (default {DEFAULT_HOST}:{DEFAULT_PORT}, or the config file values)')
        sub.add_argument('--config', dest='config_path', default=PROTON_CONFIG or None, help='Path to a JSON config file (e.g., --config templates/server_config.json)')

    def add_client_tls(sub: argparse.ArgumentParser):
        sub.add_argument('--insecure', action='store_true', help='Skip server certificate verification (testing only)')
        sub.add_argument('--ca-certs', dest='ca_certs', default=None, help='CA bundle used to verify the server certificate')

    server = subparsers.add_parser("server", help="Run the single-tenant server")
    add_common(server)
    server.add_argument('--certfile', default=None, help='PEM certificate chain (default: generated self-signed certificate)')
    server.add_argument('--keyfile', default=None, help='PEM private key matching --certfile')
    server.add_argument('--export-cert', dest='export_certfile', default=None, help='Write the generated self-signed certificate here for clients to use with --ca-certs')
    server.add_argument('--no-startup-delay', dest='no_startup_delay', action='store_true', help='Start listening immediately')

    client = subparsers.add_parser("client", help="Connect and run a fixed number of rounds")
    add_common(client)
    add_client_tls(client)
    client.add_argument('--rounds', type=int, default=1, help='Rounds of event / state commit / action (default 1)')
    client.add_argument('--no-startup-delay', dest='no_startup_delay', action='store_true', help='Connect immediately')

    repl = subparsers.add_parser("client_repl", help="Interactive client")
    add_common(repl)
    add_client_tls(repl)

    return parser


def _resolve_addr(addr: Optional[str], config: dict[str, Any]) -> tuple[str, int]:
    if addr:
        return parse_addr(addr)
    return config.get("host") or DEFAULT_HOST, config.get("port", DEFAULT_PORT)


def _apply_client_tls(client: ProtonClient, args: argparse.Namespace):
    tls = client.hyper_parameters.tls
    if args.insecure:
        tls.insecure_skip_verify = True
    if args.ca_certs:
        tls.ca_certs = args.ca_certs


def run_server(args: argparse.Namespace) -> int:
    server = ProtonServer(name="proton.server")
    config = server.configure(args.config_path)
    if args.certfile:
        server.hyper_parameters.tls.certfile = args.certfile
        server.hyper_parameters.tls.keyfile = args.keyfile
    if args.export_certfile:
        server.hyper_parameters.tls.export_certfile = args.export_certfile
    host, port = _resolve_addr(args.addr, config)
    server.run(host=host, port=port, startup_delay=0 if args.no_startup_delay else None)
    return 0


def run_client(args: argparse.Namespace) -> int:
    client = ProtonClient(name="proton.client")
    config = client.configure(args.config_path)
    _apply_client_tls(client, args)
    host, port = _resolve_addr(args.addr, config)
    client.run(host=host, port=port, rounds=args.rounds, startup_delay=0 if args.no_startup_delay else None)
    return 0


def run_repl(args: argparse.Namespace) -> int:
    config: dict[str, Any] = {}

    def make_client() -> ProtonClient:
        client = ProtonClient(name="proton.client_repl")
        config.update(client.configure(args.config_path))
        _apply_client_tls(client, args)
        return client

    repl = ClientRepl(client_factory=make_client)
    repl.host, repl.port = _resolve_addr(args.addr, config)
    asyncio.run(repl.run())
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if bool(getattr(args, "certfile", None)) != bool(getattr(args, "keyfile", None)):
        parser.error("--certfile and --keyfile must be given together")
    if getattr(args, "rounds", 1) < 0:
        parser.error("--rounds must be ≥ 0")

    runners = {
        "server": run_server,
        "client": run_client,
        "client_repl": run_repl,
    }
    try:
        return runners[args.mode](args)
    except ValueError as e:
        # Bad address or invalid config; the details were already logged
        logger.error(f"{e}")
        return 2
    except ProtonError as e:
        logger.error(f"{args.mode} failed: {e}")
        return 1
    except (KeyboardInterrupt, asyncio.CancelledError):
        return 130
