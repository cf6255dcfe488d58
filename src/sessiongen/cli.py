from __future__ import annotations

import argparse
import logging
import sys

from aiohttp import web

from . import __version__
from .config import Settings, load_settings
from .coordinator import ConnectionCoordinator
from .exceptions import ConfigError
from .log import setup_logging
from .protocol import ClientFactory, load_client_factory
from .server import SessionServer
from .store import store_factory_from_url

logger = logging.getLogger(__name__)


def build_server(
    settings: Settings, *, client_factory: ClientFactory | None = None
) -> SessionServer:
    """Wire store, protocol client and coordinator into the HTTP server."""

    store_factory = store_factory_from_url(
        settings.store_url, db_name=settings.db_name, collection=settings.collection
    )
    if client_factory is None and settings.client_factory:
        client_factory = load_client_factory(settings.client_factory)
    if client_factory is None:
        logger.warning(
            "SESSIONGEN_CLIENT_FACTORY is not set; connection attempts will fail until it is"
        )
    coordinator = ConnectionCoordinator(
        store_factory=store_factory,
        client_factory=client_factory,
        options=settings.client,
    )
    return SessionServer(coordinator)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="sessiongen",
        description="Pair a WhatsApp Web session over HTTP and persist its credentials.",
    )
    ap.add_argument("--host", help="listen address (default: $HOST or 0.0.0.0)")
    ap.add_argument("--port", type=int, help="listen port (default: $PORT or 3000)")
    ap.add_argument("--log-level", help="DEBUG, INFO, WARNING, ... (default: INFO)")
    ap.add_argument(
        "--client-factory",
        help="module:attribute of the protocol client factory",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = ap.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.log_level:
        settings.log_level = args.log_level.upper()
    if args.client_factory:
        settings.client_factory = args.client_factory

    setup_logging(settings.log_level, settings.log_file)

    try:
        server = build_server(settings)
    except ConfigError as e:
        logger.critical("%s", e)
        return 1

    logger.info("Listening on http://%s:%d", settings.host, settings.port)
    web.run_app(server.app, host=settings.host, port=settings.port, print=None)
    return 0
