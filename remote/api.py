"""
remote/api.py
=============
FastAPI application exposing session commands over HTTP, so the console
can be driven by scripts or another front end.

Start the server::

    python main.py --mode api --sumo-binary /usr/bin/sumo --config scenario.sumocfg

Every endpoint is a thin call into :class:`~sim.session.SimulationSession`.
Operator errors (:class:`~sim.errors.ConsoleError`) come back as 4xx/503
responses with ``{"error", "kind", "detail"}`` bodies.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from bus import EventBus
from config import API_BUS_DRAIN_S
from sim.errors import ConsoleError
from sim.models import FilterMode, Snapshot
from sim.session import SimulationSession
from sim.signals import EditMode

log = logging.getLogger("api")

_STATUS_BY_KIND = {
    "not_connected": 409,
    "already_connected": 409,
    "engine_unreachable": 503,
    "no_data": 404,
    "unknown_controller": 404,
    "missing_config": 422,
    "invalid_engine_path": 422,
    "network_file_missing": 422,
    "invalid_duration": 422,
    "invalid_color": 422,
    "invalid_argument": 422,
    "phase_out_of_range": 422,
    "stale_program": 409,
    "last_phase": 409,
}


# ── Pydantic request schemas ─────────────────────────────────────────────────


class ConnectRequest(BaseModel):
    """SUMO binary and scenario for ``/connect``."""
    engine_path: str
    config_path: str


class ContinuousRequest(BaseModel):
    interval_ms: Optional[int] = None
    speed_level: Optional[int] = Field(None, ge=1, le=10)


class ZoomRequest(BaseModel):
    factor: float = Field(..., gt=0)


class PanRequest(BaseModel):
    dx: float
    dy: float


class FilterRequest(BaseModel):
    mode: FilterMode


class InjectRequest(BaseModel):
    """Vehicles to add on ``route_id``, placed on ``edge_id``."""
    edge_id: str
    route_id: str
    speed_kmh: float = Field(0.0, ge=0)
    count: int = Field(1, ge=1, le=100)


class PhaseRequest(BaseModel):
    index: int = Field(..., ge=0)


class ModeRequest(BaseModel):
    mode: EditMode


class LaneColorRequest(BaseModel):
    lane_id: str
    color: str


class CommitRequest(BaseModel):
    duration: float


class ExportRequest(BaseModel):
    path: Optional[str] = None


# ── Serialisers ──────────────────────────────────────────────────────────────


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    data = dataclasses.asdict(snapshot)
    data["vehicle_static"] = snapshot.vehicle_static
    return data


def _status(session: SimulationSession) -> Dict[str, Any]:
    vp = session.viewport
    return {
        "state": session.state.value,
        "connected": session.is_connected,
        "continuous": session.continuous_running,
        "interval_ms": session.interval_ms,
        "total_steps": session.total_steps,
        "filter_mode": session.filter_mode.value,
        "viewport": dataclasses.asdict(vp),
    }


def _editor(session: SimulationSession) -> Dict[str, Any]:
    registry = session.signals
    controller = registry.selected
    return {
        "state": registry.state.value,
        "controller": None if controller is None else {
            "id": controller.id,
            "program_id": controller.program_id,
            "controlled_lanes": list(controller.controlled_lanes),
            "phases": [
                {"label": label, "state": p.state, "duration": p.duration}
                for label, p in zip(controller.phase_labels, controller.phases)
            ],
        },
        "selected_phase": registry.selected_phase,
        "mode": registry.mode.value if registry.mode else None,
        "pending_state": registry.pending_state,
    }


# ── FastAPI application ──────────────────────────────────────────────────────


async def _drain_forever(bus: EventBus, period_s: float) -> None:
    while True:
        await asyncio.sleep(period_s)
        bus.dispatch_pending()


def create_app(session: SimulationSession, drain_period_s: float = API_BUS_DRAIN_S) -> FastAPI:
    """Build an app bound to *session*.

    There is no window draining the session's event bus here, so the app
    does it: after every request, and every *drain_period_s* while the
    server runs (continuous mode keeps publishing between requests).
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        drain = asyncio.create_task(_drain_forever(session.bus, drain_period_s))
        log.info("Remote API started")
        yield
        drain.cancel()
        with suppress(asyncio.CancelledError):
            await drain
        session.bus.dispatch_pending()

    app = FastAPI(
        title="Traffic Console API",
        description="Remote control for a SUMO simulation session.",
        version="1.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def drain_bus(request: Request, call_next):
        response = await call_next(request)
        session.bus.dispatch_pending()
        return response

    @app.exception_handler(ConsoleError)
    def console_error(_request: Request, exc: ConsoleError) -> JSONResponse:
        kind = exc.kind.value
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(kind, 400),
            content={"error": type(exc).__name__, "kind": kind, "detail": str(exc)},
        )

    # ── lifecycle ────────────────────────────────────────────────────────

    @app.get("/status")
    def status():
        return _status(session)

    @app.post("/connect")
    def connect(req: ConnectRequest):
        session.connect(req.engine_path, req.config_path)
        return _status(session)

    @app.post("/disconnect")
    def disconnect():
        session.disconnect()
        return _status(session)

    @app.post("/reset")
    def reset():
        session.reset()
        return _status(session)

    # ── stepping ─────────────────────────────────────────────────────────

    @app.post("/step")
    def step():
        return snapshot_to_dict(session.step())

    @app.post("/continuous/start")
    def start_continuous(req: ContinuousRequest):
        interval = req.interval_ms
        if req.speed_level is not None:
            interval = session.interval_for_speed_level(req.speed_level)
        session.start_continuous(interval)
        return _status(session)

    @app.post("/continuous/stop")
    def stop_continuous():
        session.stop_continuous()
        return _status(session)

    # ── telemetry ────────────────────────────────────────────────────────

    @app.get("/snapshot")
    def snapshot():
        snap = session.last_snapshot
        if snap is None:
            return JSONResponse(
                status_code=404,
                content={"error": "NoData", "kind": "no_data", "detail": "No snapshot yet"},
            )
        return snapshot_to_dict(snap)

    @app.get("/vehicles")
    def vehicles():
        return [
            {**dataclasses.asdict(v), "speed_kmh": v.speed_kmh, "status": v.status.value}
            for v in session.visible_vehicles()
        ]

    @app.get("/vehicles/details")
    def vehicle_details():
        clock, rows = session.vehicle_details()
        return {
            "time": clock,
            "vehicles": [{**dataclasses.asdict(r), "status": r.status.value} for r in rows],
        }

    @app.post("/vehicles/inject")
    def inject(req: InjectRequest):
        created = session.inject_vehicles(req.edge_id, req.route_id, req.speed_kmh, req.count)
        return {"created": created}

    @app.post("/export")
    def export(req: ExportRequest):
        return {"path": session.export_stats(req.path)}

    # ── view ─────────────────────────────────────────────────────────────

    @app.post("/view/zoom")
    def zoom(req: ZoomRequest):
        return dataclasses.asdict(session.zoom(req.factor))

    @app.post("/view/pan")
    def pan(req: PanRequest):
        return dataclasses.asdict(session.pan(req.dx, req.dy))

    @app.post("/view/reset")
    def reset_view():
        return dataclasses.asdict(session.reset_view())

    @app.post("/filter")
    def set_filter(req: FilterRequest):
        return {"filter_mode": session.set_filter_mode(req.mode).value}

    # ── signal editing ───────────────────────────────────────────────────

    @app.get("/signals")
    def signals():
        return {"ids": session.signals.ids(), "editor": _editor(session)}

    @app.post("/signals/{signal_id}/select")
    def select_controller(signal_id: str):
        session.signals.select_controller(signal_id)
        return _editor(session)

    @app.post("/signals/phase")
    def select_phase(req: PhaseRequest):
        session.signals.select_phase(req.index)
        return _editor(session)

    @app.post("/signals/mode")
    def enter_mode(req: ModeRequest):
        session.signals.enter_mode(req.mode)
        return _editor(session)

    @app.post("/signals/lane")
    def set_lane_color(req: LaneColorRequest):
        painted = session.signals.set_lane_color(req.lane_id, req.color)
        return {**_editor(session), "painted": painted}

    @app.post("/signals/commit")
    def commit(req: CommitRequest):
        session.signals.commit(req.duration)
        return _editor(session)

    @app.post("/signals/abandon")
    def abandon():
        session.signals.abandon()
        return _editor(session)

    @app.post("/signals/phases")
    def add_phase():
        index = session.signals.add_phase()
        return {**_editor(session), "added": index}

    @app.delete("/signals/phases/{index}")
    def remove_phase(index: int):
        session.signals.remove_phase(index)
        return _editor(session)

    return app
