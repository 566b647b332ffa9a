#!/usr/bin/env python3
"""
Command-line entry point for the SSR dev server.

    ssrloader serve --root ./site --port 3000
    ssrloader load /entry_server.py --root ./site
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from ssrloader.__version__ import __version__
from ssrloader.app_config import ServerConfig, load_config
from ssrloader.errors import ConfigError, SSRLoaderError
from ssrloader.logging_config import configure_logging
from ssrloader.server import DevServer

log = logging.getLogger("ssrloader.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssrloader",
        description="SSR dev server for on-demand transformed Python modules",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", help="JSON configuration file path")
    parser.add_argument("-r", "--root", help="Project root directory")
    parser.add_argument("-d", "--debug", action="store_true", default=None,
                        help="Enable debug output")
    parser.add_argument("--log-format", choices=("text", "json"), help="Log output format")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP dev server")
    serve.add_argument("-H", "--host", help="Host to bind to")
    serve.add_argument("-p", "--port", type=int, help="Port to bind to")
    serve.add_argument("-e", "--entry", help="Entry module url exporting render(url)")
    serve.add_argument("--no-watch", dest="watch", action="store_false", default=None,
                       help="Disable the source file watcher")

    load = sub.add_parser("load", help="Load one module and print its exports as JSON")
    load.add_argument("url", help="Module url, e.g. /src/app.py")
    return parser


def _config_from_args(args: argparse.Namespace) -> ServerConfig:
    overrides = {
        "root": args.root,
        "debug": args.debug,
        "log_format": args.log_format,
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
        "entry": getattr(args, "entry", None),
        "watch": getattr(args, "watch", None),
    }
    return load_config(args.config, overrides)


def _serve(config: ServerConfig) -> int:
    from ssrloader.api.main import create_app

    errors = config.validate()
    if errors:
        for error in errors:
            log.error("Invalid configuration: %s", error)
        return 2

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
    return 0


async def _load(config: ServerConfig, url: str) -> dict:
    config.watch = False
    async with DevServer(config) as server:
        namespace = await server.ssr_load_module(url)
        return dict(namespace)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = _config_from_args(args)
    configure_logging(config)

    if args.command == "serve":
        return _serve(config)

    try:
        exports = asyncio.run(_load(config, args.url))
    except ConfigError as e:
        log.error("%s", e)
        return 2
    except SSRLoaderError as e:
        log.error("%s", e)
        return 1
    except Exception as e:
        # evaluation errors were already logged with the rewritten stack
        if not hasattr(e, "ssr_stacktrace"):
            log.exception("Failed to load %s", args.url)
        return 1

    print(json.dumps(exports, indent=2, default=repr, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
