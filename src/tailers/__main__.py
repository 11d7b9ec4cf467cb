"""Command-line entry point for the multi-file tailer."""
from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from typing import List, Optional

from .config import ConfigError, TailConfig, build_config, load_config
from .dispatcher import Dispatcher
from .errors import TailerError

logger = logging.getLogger("tailers")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tailers",
        description="Follow several growing log files and print new lines as they are written",
    )
    parser.add_argument(
        "-f",
        "--files",
        action="extend",
        nargs="+",
        default=[],
        metavar="PATH",
        help="File to tail; may be given several times or as a list",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Optional YAML configuration file with a 'tail' section",
    )
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Skip files that cannot be opened instead of aborting",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> TailConfig:
    if args.config is not None:
        config = load_config(Path(args.config))
        config = config.with_files(build_config(args.files).files)
    else:
        config = build_config(args.files)
    if args.lenient:
        config.strict_startup = False
    if not config.files:
        raise ConfigError("No files to tail; pass --files or list them under tail.files")
    return config


def _interrupt(signum, frame) -> None:
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logger.info("Program starting")

    try:
        config = resolve_config(args)
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    previous_handler = signal.signal(signal.SIGTERM, _interrupt)

    dispatcher = Dispatcher(config)
    try:
        dispatcher.run()
    except TailerError as exc:
        logging.error("%s", exc)
        raise SystemExit(1) from exc
    finally:
        signal.signal(signal.SIGTERM, previous_handler)


if __name__ == "__main__":
    main()
