"""
remote — HTTP control surface for a :class:`~sim.session.SimulationSession`
===========================================================================

Modules
-------
api
    :func:`create_app` FastAPI application factory.
"""

from .api import create_app

__all__ = ["create_app"]
