"""Command-line interface for doomstream.

Provides the main entry point for running the streaming server and a
snapshot command that brings up one session and saves a single frame.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="doomstream",
        description="Stream interactive program sessions to the browser as MJPEG",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/doomstream.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP streaming server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override listen address")
    serve_parser.add_argument("--port", type=int, default=None, help="Override listen port")
    serve_parser.add_argument(
        "--no-spawn", action="store_true",
        help="Do not launch the external program (dry run)",
    )

    snapshot_parser = subparsers.add_parser(
        "snapshot", help="Bring up one session, save a single JPEG frame, tear it down",
    )
    snapshot_parser.add_argument("--session", type=int, default=0, help="Session id")
    snapshot_parser.add_argument(
        "-o", "--output", type=Path, default=Path("snapshot.jpg"),
        help="Output file (default: snapshot.jpg)",
    )

    return parser.parse_args(argv)


def _serve(settings, args) -> int:
    """Run the dispatcher under uvicorn until interrupted."""
    import uvicorn

    from doomstream.endpoint.server import create_app

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.no_spawn:
        settings.program.disable_spawn = True

    app = create_app(settings)
    # uvicorn exits with status 1 itself when it cannot bind; its loggers
    # were already wired up by setup_logging
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )
    return 0


def _snapshot(settings, args) -> int:
    """Capture and encode one frame from a fresh session."""
    from doomstream.endpoint.stream import render_frame
    from doomstream.session.models import ResourceError, SessionNotFound
    from doomstream.session.registry import SessionRegistry

    registry = SessionRegistry.from_settings(settings)
    try:
        handle = registry.get_or_create(args.session)
    except (SessionNotFound, ResourceError) as e:
        print(f"Cannot start session {args.session}: {e}", file=sys.stderr)
        return 1
    try:
        jpeg = render_frame(handle, settings.capture.jpeg_quality)
        if jpeg is None:
            print("Session went away before a frame was captured", file=sys.stderr)
            return 1
        args.output.write_bytes(jpeg)
        source = "synthetic" if handle.session.grabber.degraded else "capture target"
        print(f"Saved {len(jpeg)} bytes to {args.output} ({source})")
    finally:
        registry.close(args.session)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the doomstream CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from doomstream.config.settings import load_settings
    from doomstream.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting streaming server on %s:%d", settings.server.host, settings.server.port)
        sys.exit(_serve(settings, args))

    elif args.command == "snapshot":
        logger.info("Taking snapshot of session %d", args.session)
        sys.exit(_snapshot(settings, args))


if __name__ == "__main__":
    main()
