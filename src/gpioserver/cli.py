"""Command line entry point"""

from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

from .config import ConfigFile, DuplicatePolicy, parse_config
from .exceptions import ConfigError
from .logging_config import setup_logging
from .settings import ServerSettings

logger = logging.getLogger("gpioserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gpioserver", description="Serve named GPIOs over WebSocket")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="run the GPIO server")
    serve.add_argument("--settings", help="YAML settings file")
    serve.add_argument("--config", dest="config_path", help="GPIO configuration file")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.add_argument("--simulate", action="store_true", help="use simulated GPIO lines")
    serve.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

    check = sub.add_parser("check", help="validate a GPIO configuration file")
    check.add_argument("config_path")
    check.add_argument("--strict", action="store_true", help="treat duplicate GPIO ids as errors")
    return parser


def check_config(path: str, strict: bool = False) -> int:
    """Parse a configuration file and print its pins"""
    text = ConfigFile(path).read()
    if text is None:
        print(f"Cannot read {path}")
        return 1

    duplicates = DuplicatePolicy.ERROR if strict else DuplicatePolicy.OVERRIDE
    try:
        config = parse_config(text, duplicates)
    except ConfigError as e:
        print(f"Configuration INVALID: {e}")
        return 1

    print(f"AllowRename: {'Yes' if config.allow_rename else 'No'}")
    for pin in config.sorted_pins():
        extra = f"Pull={pin.pull.value}" if pin.mode.value == "Input" else f"Boot={pin.boot.value}"
        print(f"  GPIO {pin.id:>2}  {pin.mode.value:<6} {pin.logic.value:<6} {extra:<10} "
              f"{pin.hname!r} {pin.uname!r} {pin.udesc!r}")
    print(f"Configuration VALID - {len(config.pins)} GPIO(s)")
    return 0


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .server import create_application

    try:
        settings = ServerSettings.load(args.settings) if args.settings else ServerSettings()
        settings.override(
            config_path=args.config_path,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            backend="simulated" if args.simulate else None,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level, settings.log_file)
    app = create_application(settings)

    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower(), lifespan="on")
    server = uvicorn.Server(config)
    logger.info(f"Listening on ws://{settings.host}:{settings.port}/")
    server.run()
    # uvicorn reports a failed lifespan startup by not marking the server started
    return 0 if server.started else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "check":
        return check_config(args.config_path, args.strict)
    if args.command == "serve":
        return serve(args)

    parser.print_help()
    return 2
