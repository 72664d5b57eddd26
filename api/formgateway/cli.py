"""
Command-line entry point: ``formgateway -c /etc/emailformgateway/config.toml``.

Flags override the ``[Server]`` section. SIGHUP reloads the configuration
file without restarting; requests already in flight keep the snapshot they
started with.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

import uvicorn

from .config import ConfigError, ConfigStore
from .logging_config import configure_logging
from .main import create_app

logger = logging.getLogger(__name__)

RELOAD_THREAD_NAME = "config-reload"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="formgateway",
        description="A simple gateway that validates contact forms and sends emails",
    )
    parser.add_argument("-c", "--config", default=None,
                        help="Config file to use (default: ./config.toml, then /etc/emailformgateway/config.toml)")
    parser.add_argument("-H", "--host", default=None, help="Hostname the gateway listens on")
    parser.add_argument("-p", "--port", type=int, default=None, help="Port the gateway listens on")
    parser.add_argument("-r", "--route", default=None, help="URL path the form data is POSTed to")
    parser.add_argument("--log-level", default=None, help="Override [LogFile] Level")
    return parser


def _reload_config(store: ConfigStore) -> None:
    try:
        store.reload()
    except ConfigError as e:
        logger.error("Config reload failed, keeping previous config: %s", e)


def _install_reload_handler(store: ConfigStore) -> None:
    if not hasattr(signal, "SIGHUP"):
        return

    # The handler runs on the main thread between bytecodes; it must not wait
    # on the store lock, which an earlier reload may still hold.
    def _reload(signum, frame):
        threading.Thread(target=_reload_config, args=(store,), name=RELOAD_THREAD_NAME, daemon=True).start()

    signal.signal(signal.SIGHUP, _reload)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        store = ConfigStore(args.config)
    except ConfigError as e:
        print(f"Could not load config: {e}", file=sys.stderr)
        return 1

    config = store.get()
    server = config.server.model_copy(update={
        key: value
        for key, value in (("host", args.host), ("port", args.port), ("path", args.route))
        if value is not None
    })
    if server != config.server:
        store = ConfigStore(args.config, config=config.model_copy(update={"server": server}))

    configure_logging(config.log_file, args.log_level)
    _install_reload_handler(store)

    logger.info("Listening on %s:%d, form route %s", server.host, server.port, server.path)
    uvicorn.run(create_app(store), host=server.host, port=server.port, log_level=(args.log_level or config.log_file.level).lower())
    return 0
