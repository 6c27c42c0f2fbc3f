from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from distpack.app import build_package, watch_package
from distpack.config import ConfigurationError, configure_logging, get_build_settings
from distpack.config.package import load_project

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BUILD_FAILED = 1
EXIT_USAGE = 2


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return number


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="distpack", description="Build library packages from their entry points"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build every entry point once")
    build.add_argument(
        "--project",
        "-p",
        type=Path,
        default=Path(),
        help="Project directory or its package.json (default: current directory)",
    )
    build.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug output",
    )

    watch = subparsers.add_parser("watch", help="Build, then rebuild on source changes")
    watch.add_argument(
        "--project",
        "-p",
        type=Path,
        default=Path(),
        help="Project directory or its package.json (default: current directory)",
    )
    watch.add_argument(
        "--poll-interval",
        type=_positive_float,
        help="Seconds between file system polls (defaults to DISTPACK_POLL_INTERVAL or 1.0)",
    )
    watch.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug output",
    )

    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)

    try:
        settings = get_build_settings()
    except ConfigurationError:
        configure_logging()
        log.exception("Invalid environment configuration")
        sys.exit(EXIT_USAGE)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else settings.log_level)

    try:
        project = load_project(parsed_args.project, working_directory=settings.working_directory)
        if parsed_args.command == "build":
            result = build_package(project)
            sys.exit(EXIT_OK if result.success else EXIT_BUILD_FAILED)
        elif parsed_args.command == "watch":
            poll_interval = parsed_args.poll_interval or settings.poll_interval
            watch_package(project, poll_interval=poll_interval)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ConfigurationError, ValueError):
        log.exception("Configuration error")
        sys.exit(EXIT_USAGE)
    except Exception:
        log.exception("Fatal error during build")
        sys.exit(EXIT_BUILD_FAILED)
    sys.exit(EXIT_OK)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    main()
