#!/usr/bin/env python3
"""
main.py
=======
Console entry point.

Usage::

    python main.py --sumo-binary /usr/bin/sumo-gui --config scenario.sumocfg
    python main.py --mode api --port 8000

``SUMO_BINARY`` and ``SUMO_CONFIG`` provide the defaults for the two paths.
In ``ui`` mode the paths are only used when the operator presses *C*
(or immediately with ``--autoconnect``).
"""

import argparse
import logging
import os

from config import API_HOST, API_PORT, TARGET_FPS, WINDOW_HEIGHT, WINDOW_WIDTH
from logging_setup import setup_logging
from sim.errors import ConsoleError
from sim.session import SimulationSession


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SUMO traffic simulation console")
    parser.add_argument("--mode", choices=("ui", "api"), default="ui")
    parser.add_argument("--sumo-binary", default=os.environ.get("SUMO_BINARY"))
    parser.add_argument("--config", default=os.environ.get("SUMO_CONFIG"))
    parser.add_argument("--autoconnect", action="store_true",
                        help="connect as soon as the window opens")
    parser.add_argument("--strict-edits", action="store_true",
                        help="refuse phase commits when the program changed underneath")
    parser.add_argument("--log-level", default="INFO",
                        choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    parser.add_argument("--log-dir", default=os.environ.get("CONSOLE_LOG_DIR"))
    parser.add_argument("--host", default=API_HOST)
    parser.add_argument("--port", type=int, default=API_PORT)
    parser.add_argument("--width", type=int, default=WINDOW_WIDTH)
    parser.add_argument("--height", type=int, default=WINDOW_HEIGHT)
    parser.add_argument("--fps", type=int, default=TARGET_FPS)
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(getattr(logging, args.log_level), args.log_dir)
    log = logging.getLogger("main")

    session = SimulationSession(strict_edits=args.strict_edits)

    if args.mode == "api":
        import uvicorn

        from remote import create_app

        log.info("Serving remote API on %s:%d", args.host, args.port)
        try:
            uvicorn.run(create_app(session), host=args.host, port=args.port)
        finally:
            session.disconnect()
        return

    from ui import run_pygame_view

    if args.autoconnect:
        try:
            session.connect(args.sumo_binary, args.config)
        except ConsoleError as exc:
            log.error("Autoconnect failed: %s", exc)

    log.info("Starting console window...")
    run_pygame_view(
        session,
        width=args.width,
        height=args.height,
        fps=args.fps,
        engine_path=args.sumo_binary,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
