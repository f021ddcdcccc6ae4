"""Command line entry point: ``kyr-server`` or ``python -m kyr.core.server.main``.

    kyr-server                      serve over Streamable HTTP
    kyr-server --transport stdio    serve over stdio (desktop MCP clients)
    kyr-server generate-key         print a fresh ENCRYPTION_KEY
    kyr-server rotate-key           re-encrypt stored rows under the first key
"""

from __future__ import annotations

import argparse
import logging
from ipaddress import ip_address

from kyr.core.config.settings import Settings, get_settings
from kyr.core.server.app import create_app
from kyr.core.storage.database import RightsDatabase
from kyr.core.storage.encryption import FieldEncryptor
from kyr.core.storage.repository import RightsRepository

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_bind(settings: Settings) -> None:
    """Refuse a public bind unless explicitly allowed.

    Raises:
        RuntimeError: If the host is not loopback and the override is off.
    """
    if settings.kyr_allow_insecure_bind or _is_loopback_host(settings.kyr_host):
        return
    raise RuntimeError(
        f"Refusing to bind to {settings.kyr_host}: the server holds encounter locations "
        "and contact details and has no auth layer. "
        "Set KYR_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def _serve(settings: Settings, transport: str) -> None:
    if transport == "stdio":
        logger.info("Starting Know Your Rights server on stdio")
        create_app(settings=settings).run(transport="stdio")
        return
    check_bind(settings)
    mcp = create_app(settings=settings)
    logger.info("Starting Know Your Rights server on %s:%d", settings.kyr_host, settings.kyr_port)
    mcp.run(transport="streamable-http", host=settings.kyr_host, port=settings.kyr_port)


def _rotate_key(settings: Settings) -> int:
    if not settings.encryption_key:
        raise SystemExit("ENCRYPTION_KEY is not set; nothing to rotate")
    with RightsDatabase(settings.db_path) as database:
        repository = RightsRepository(database, FieldEncryptor(settings.encryption_key))
        return repository.rotate_encryption()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kyr-server", description="Know Your Rights MCP server")
    parser.add_argument(
        "--transport",
        choices=["streamable-http", "stdio"],
        default="streamable-http",
        help="MCP transport for the serve command",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=["serve", "generate-key", "rotate-key"],
        default="serve",
    )
    return parser


def run(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    if args.command == "generate-key":
        print(FieldEncryptor.generate_key())
        return

    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.kyr_log_level.upper(), logging.INFO))

    if args.command == "rotate-key":
        count = _rotate_key(settings)
        logger.info("Rotation complete: %d row(s) rewritten in %s", count, settings.db_path)
        return
    _serve(settings, args.transport)


if __name__ == "__main__":
    run()
