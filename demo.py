#!/usr/bin/env python3
"""
Quick demo: runs the console against the in-memory crossing so you can
try the UI without a SUMO install.

Usage:
    python3 demo.py
"""

import logging

from engine import FakeEngine, demo_world
from logging_setup import setup_logging
from sim.session import SimulationSession

DEMO_ARGS = ["demo"]


def build_demo_session() -> SimulationSession:
    """A session already attached to a started :class:`FakeEngine`."""
    engine = FakeEngine(world_factory=demo_world)
    engine.start(DEMO_ARGS)
    session = SimulationSession(engine_factory=lambda: FakeEngine(world_factory=demo_world))
    session.attach(engine, DEMO_ARGS)
    return session


if __name__ == "__main__":
    from ui import run_pygame_view

    setup_logging(logging.INFO)
    print("Starting demo with the built-in crossing...")
    print("Controls: N=step  SPACE=run/stop  1-0=speed  I=inject  TAB=signals  H=help")
    run_pygame_view(build_demo_session(), inject_route=("N_in", "route_NS"))
