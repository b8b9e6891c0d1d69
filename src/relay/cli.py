"""Command-line interface for Relay."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from relay.config import (
    DEFAULT_FLUSH_DELAY_MS,
    DEFAULT_MAX_READ_LINES,
    DEFAULT_MIN_BUFFER_SIZE,
    RelayConfig,
)


def build_parser() -> argparse.ArgumentParser:
    """Build the ``relay`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="relay",
        description="Bridge a coding agent's event stream to the Agent Client Protocol.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run Relay as an ACP server",
    )
    serve_parser.add_argument(
        "--min-buffer-size",
        type=int,
        default=DEFAULT_MIN_BUFFER_SIZE,
        help=f"Buffered characters that force a flush (default: {DEFAULT_MIN_BUFFER_SIZE})",
    )
    serve_parser.add_argument(
        "--flush-delay-ms",
        type=int,
        default=DEFAULT_FLUSH_DELAY_MS,
        help=f"Delay before buffered text is flushed (default: {DEFAULT_FLUSH_DELAY_MS})",
    )
    serve_parser.add_argument(
        "--max-read-lines",
        type=int,
        default=DEFAULT_MAX_READ_LINES,
        help=f"Lines of file content shown for read tools (default: {DEFAULT_MAX_READ_LINES})",
    )
    serve_parser.add_argument(
        "--model",
        help="Model for the agent (e.g., 'sonnet', 'opus')",
    )
    serve_parser.add_argument(
        "--prioritize-by-order",
        action="store_true",
        help="Derive plan entry priority from todo position",
    )
    serve_parser.add_argument(
        "--no-client-fs",
        action="store_true",
        help="Read files from local disk even when the editor can serve them",
    )
    serve_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run Relay CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return _run_serve(args)

    return 0


def _get_log_dir() -> Path:
    """Get platform-appropriate log directory."""
    import os
    import platform

    if platform.system() == "Darwin":
        # macOS: ~/Library/Logs/Relay/
        return Path.home() / "Library" / "Logs" / "Relay"
    elif platform.system() == "Windows":
        # Windows: %LOCALAPPDATA%\Relay\Logs\
        local_app_data = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return local_app_data / "Relay" / "Logs"
    else:
        # Linux/Unix: ~/.local/state/relay/ (XDG Base Directory)
        xdg_state = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
        return xdg_state / "relay"


def _config_from_args(args: argparse.Namespace) -> RelayConfig:
    """Build the session config from parsed flags.

    Raises:
        ValueError: If a flag value is out of range.
    """
    return RelayConfig(
        min_buffer_size=args.min_buffer_size,
        flush_delay_ms=args.flush_delay_ms,
        max_read_lines=args.max_read_lines,
        prioritize_by_order=args.prioritize_by_order,
        model=args.model,
        use_client_fs=not args.no_client_fs,
    )


def _run_serve(args: argparse.Namespace) -> int:
    """Run the ACP server."""
    import logging
    from datetime import datetime

    try:
        config = _config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    log_level = logging.DEBUG if args.verbose else logging.WARNING

    # Create log file in platform-appropriate directory
    log_dir = _get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"relay-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"

    # Configure logging to both stderr and file
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_file),
    ]

    logging.basicConfig(
        level=log_level,
        format="[Relay] %(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )

    logging.info(f"Relay log file: {log_file}")

    try:
        from relay.acp_server import run_server

        asyncio.run(run_server(config))
        return 0
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ImportError:
        print(
            "Error: agent-client-protocol package not installed.\n"
            "Install with: uv add agent-client-protocol",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
