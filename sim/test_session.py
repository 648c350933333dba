#!/usr/bin/env python3
"""
Session lifecycle, stepping, continuous mode, view and extras tests,
all against the in-memory engine.
"""

from __future__ import annotations

import os
import stat
import tempfile
import time
import unittest
from unittest import mock

import pandas as pd

from bus import TOPIC_ERROR, TOPIC_SIGNALS, TOPIC_SNAPSHOT, TOPIC_STATUS
from config import MAX_SCALE, MAX_STEP_INTERVAL_MS, MIN_STEP_INTERVAL_MS
from engine.errors import TransportError, TransportErrorKind
from engine.fake import FakeEngine, FakeSignal, FakeVehicle, FakeWorld
from sim.errors import (
    ConnectError,
    ConnectErrorKind,
    EditError,
    ExportError,
    ExportErrorKind,
    InjectError,
    InjectErrorKind,
    ResetError,
    ResetErrorKind,
    StepError,
    StepErrorKind,
)
from sim.models import FilterMode, Phase, ProgramLogic
from sim.session import SessionState, SimulationSession, validate_launch

CFG = """<configuration>
    <input>
        <net-file value="{net}"/>
        <route-files value="routes.rou.xml"/>
    </input>
</configuration>
"""


def small_world() -> FakeWorld:
    return FakeWorld(
        vehicles={
            "parked": FakeVehicle("parked", speed=0.0),
            "crawler": FakeVehicle("crawler", speed=1.0, distance=5.0),
            "cruiser": FakeVehicle("cruiser", speed=10.0, distance=50.0),
        },
        edges={
            "A": [([(0.0, 0.0), (0.0, 100.0)], 3.2)],
            "B": [([(0.0, 100.0), (100.0, 100.0)], 3.2)],
        },
        signals={
            "J": FakeSignal(
                lanes=["A_0", "B_0"],
                logics=[ProgramLogic("0", phases=(Phase("Gr", 10.0), Phase("rG", 10.0)))],
            )
        },
        routes={"route_AB": ["A", "B"]},
        boundary=((0.0, 0.0), (100.0, 100.0)),
    )


def _until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class _Scenario(unittest.TestCase):
    """Temp dir with an executable named ``sumo``, a config and its network."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = tmp.name
        self.binary = self._write("sumo", "#!/bin/sh\n", executable=True)
        self.net = self._write("grid.net.xml", "<net/>")
        self.cfg = self._write("scenario.sumocfg", CFG.format(net="grid.net.xml"))

        self.engines = []
        self.session = SimulationSession(engine_factory=self._factory)
        self.addCleanup(self.session.disconnect)

    def _factory(self) -> FakeEngine:
        engine = FakeEngine(world_factory=small_world)
        self.engines.append(engine)
        return engine

    def _write(self, name: str, text: str, executable: bool = False) -> str:
        path = os.path.join(self.dir, name)
        with open(path, "w") as f:
            f.write(text)
        if executable:
            os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    @property
    def engine(self) -> FakeEngine:
        return self.engines[-1]

    def connect(self) -> None:
        self.session.connect(self.binary, self.cfg)


class LaunchValidationTests(_Scenario):
    def assertConnectError(self, kind: ConnectErrorKind, engine_path: str, config_path: str) -> None:
        with self.assertRaises(ConnectError) as ctx:
            validate_launch(engine_path, config_path)
        self.assertIs(ctx.exception.kind, kind)

    def test_valid_paths_give_launch_args(self) -> None:
        self.assertEqual(
            validate_launch(self.binary, self.cfg),
            [self.binary, "-c", self.cfg, "--start"],
        )

    def test_missing_config(self) -> None:
        self.assertConnectError(ConnectErrorKind.MISSING_CONFIG, self.binary, "")
        self.assertConnectError(
            ConnectErrorKind.MISSING_CONFIG, self.binary, os.path.join(self.dir, "nope.sumocfg")
        )

    def test_config_is_checked_before_engine(self) -> None:
        self.assertConnectError(ConnectErrorKind.MISSING_CONFIG, "/no/such/sumo", "")

    def test_engine_must_be_a_sumo_executable(self) -> None:
        wrong_name = self._write("python", "", executable=True)
        not_executable = os.path.join(self.dir, "sub", "sumo-gui")
        os.makedirs(os.path.dirname(not_executable))
        with open(not_executable, "w") as f:
            f.write("")
        os.chmod(not_executable, 0o644)

        self.assertConnectError(ConnectErrorKind.INVALID_ENGINE_PATH, wrong_name, self.cfg)
        self.assertConnectError(ConnectErrorKind.INVALID_ENGINE_PATH, "/no/such/sumo", self.cfg)
        self.assertConnectError(ConnectErrorKind.INVALID_ENGINE_PATH, self.dir, self.cfg)
        if os.geteuid() != 0:
            self.assertConnectError(ConnectErrorKind.INVALID_ENGINE_PATH, not_executable, self.cfg)

    def test_executable_name_is_case_insensitive(self) -> None:
        upper = self._write("SUMO-GUI", "", executable=True)
        self.assertEqual(validate_launch(upper, self.cfg)[0], upper)

    def test_network_file_must_exist(self) -> None:
        missing = self._write("missing.sumocfg", CFG.format(net="gone.net.xml"))
        self.assertConnectError(ConnectErrorKind.NETWORK_FILE_MISSING, self.binary, missing)

    def test_config_without_input_section(self) -> None:
        bare = self._write("bare.sumocfg", "<configuration/>")
        self.assertConnectError(ConnectErrorKind.NETWORK_FILE_MISSING, self.binary, bare)


class LifecycleTests(_Scenario):
    def test_connect_initialises_everything(self) -> None:
        self.connect()

        self.assertIs(self.session.state, SessionState.CONNECTED)
        self.assertEqual(self.engine.started_with, [[self.binary, "-c", self.cfg, "--start"]])
        self.assertTrue(self.session.geometry.loaded)
        self.assertEqual(self.session.signals.ids(), ["J"])
        self.assertEqual(self.session.projector.center, (50.0, 50.0))
        self.assertEqual(self.session.total_steps, 0)
        self.assertEqual(self.session.last_snapshot.total_steps, 0)
        self.assertEqual(self.session.last_snapshot.vehicle_total, 3)

    def test_connect_publishes_status_and_frame(self) -> None:
        self.connect()
        states = [e.payload["state"] for e in self.session.bus.poll(TOPIC_STATUS)]
        self.assertEqual(states[-1], "connected")
        self.assertEqual(len(self.session.bus.poll(TOPIC_SNAPSHOT)), 1)

    def test_validation_failure_never_launches(self) -> None:
        with self.assertRaises(ConnectError):
            self.session.connect(self.binary, "")
        self.assertEqual(self.engines, [])
        self.assertIs(self.session.state, SessionState.DISCONNECTED)

    def test_handshake_failure(self) -> None:
        session = SimulationSession(engine_factory=lambda: FakeEngine(handshake_error=True))
        with self.assertRaises(ConnectError) as ctx:
            session.connect(self.binary, self.cfg)
        self.assertIs(ctx.exception.kind, ConnectErrorKind.HANDSHAKE_FAILED)
        self.assertIs(session.state, SessionState.DISCONNECTED)

    def test_second_connect_is_refused(self) -> None:
        self.connect()
        with self.assertRaises(ConnectError) as ctx:
            self.connect()
        self.assertIs(ctx.exception.kind, ConnectErrorKind.ALREADY_CONNECTED)
        self.assertEqual(len(self.engines), 1)

    def test_connect_in_background_reports_errors_on_the_bus(self) -> None:
        thread = self.session.connect_in_background(self.binary, "")
        thread.join(timeout=5.0)
        errors = self.session.bus.poll(TOPIC_ERROR)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].payload["kind"], "missing_config")

    def test_disconnect_is_idempotent(self) -> None:
        self.connect()
        self.session.zoom(2.0)
        self.session.disconnect()

        self.assertIs(self.session.state, SessionState.DISCONNECTED)
        self.assertIn("close", self.engine.calls)
        self.assertFalse(self.session.geometry.loaded)
        self.assertEqual(len(self.session.signals), 0)
        self.assertEqual(self.session.viewport.scale, 1.0)

        with self.assertLogs("session", level="INFO") as logs:
            self.session.disconnect()
        self.assertIn("No active SUMO connection to disconnect.", logs.output[0])

    def test_attach_adopts_a_started_engine(self) -> None:
        engine = FakeEngine(world_factory=small_world)
        engine.start(["demo"])
        self.session.attach(engine, ["demo"])
        self.assertTrue(self.session.is_connected)
        self.assertEqual(self.session.launch_args, ["demo"])

    def test_render_target_is_invalidated(self) -> None:
        target = mock.Mock()
        self.session.render_target = target
        self.connect()
        self.session.step()
        self.assertGreaterEqual(target.invalidate.call_count, 2)


class StepTests(_Scenario):
    def test_step_requires_connection(self) -> None:
        with self.assertRaises(StepError) as ctx:
            self.session.step()
        self.assertIs(ctx.exception.kind, StepErrorKind.NOT_CONNECTED)

    def test_step_advances_counter_and_snapshot(self) -> None:
        self.connect()
        for _ in range(3):
            snap = self.session.step()
        self.assertEqual(self.session.total_steps, 3)
        self.assertEqual(snap.total_steps, 3)
        self.assertEqual(snap.simulation_time_label, "00:00:03")
        self.assertIs(self.session.last_snapshot, snap)
        self.assertEqual(snap.vehicle_running, 2)
        self.assertEqual(snap.vehicle_congested, 1)
        self.assertEqual(snap.signal_total, 2)

    def test_step_logs_progress(self) -> None:
        self.connect()
        with self.assertLogs("session", level="INFO") as logs:
            self.session.step()
        self.assertIn("Simulation progressed to step: 1", "\n".join(logs.output))

    def test_engine_unreachable_disconnects(self) -> None:
        self.connect()
        self.session.zoom(3.0)
        self.engine.drop_connection()

        with self.assertRaises(StepError) as ctx:
            self.session.step()

        self.assertIs(ctx.exception.kind, StepErrorKind.ENGINE_UNREACHABLE)
        self.assertIs(self.session.state, SessionState.DISCONNECTED)
        self.assertFalse(self.session.geometry.loaded)
        self.assertEqual(len(self.session.signals), 0)
        self.assertEqual(self.session.viewport.scale, 1.0)

    def test_rejected_step_keeps_connection(self) -> None:
        self.connect()
        failure = TransportError(TransportErrorKind.CALL_FAILED, "step", "bad step")
        with mock.patch.object(self.engine, "step", side_effect=failure):
            with self.assertRaises(StepError) as ctx:
                self.session.step()
        self.assertIs(ctx.exception.kind, StepErrorKind.STEP_FAILED)
        self.assertTrue(self.session.is_connected)
        self.assertEqual(self.session.total_steps, 0)
        self.session.step()
        self.assertEqual(self.session.total_steps, 1)


class ResetTests(_Scenario):
    def test_reset_requires_connection(self) -> None:
        with self.assertRaises(ResetError) as ctx:
            self.session.reset()
        self.assertIs(ctx.exception.kind, ResetErrorKind.NOT_CONNECTED)

    def test_reset_relaunches_with_same_args(self) -> None:
        self.connect()
        for _ in range(4):
            self.session.step()

        self.session.reset()

        self.assertEqual(len(self.engine.started_with), 2)
        self.assertEqual(self.engine.started_with[0], self.engine.started_with[1])
        self.assertEqual(self.session.total_steps, 0)
        self.assertEqual(self.session.last_snapshot.simulation_time_sec, 0.0)
        self.assertTrue(self.session.geometry.loaded)
        self.assertEqual(self.session.signals.ids(), ["J"])
        self.assertIs(self.session.state, SessionState.CONNECTED)

    def test_failed_relaunch_leaves_session_disconnected(self) -> None:
        self.connect()
        self.engine.handshake_error = True
        with self.assertRaises(ResetError) as ctx:
            self.session.reset()
        self.assertIs(ctx.exception.kind, ResetErrorKind.RELAUNCH_FAILED)
        self.assertIs(self.session.state, SessionState.DISCONNECTED)

    def test_reset_stops_continuous_mode(self) -> None:
        self.connect()
        self.session.start_continuous(MIN_STEP_INTERVAL_MS)
        self.session.reset()
        self.assertFalse(self.session.continuous_running)


class ContinuousModeTests(_Scenario):
    def test_requires_connection(self) -> None:
        with self.assertRaises(StepError) as ctx:
            self.session.start_continuous()
        self.assertIs(ctx.exception.kind, StepErrorKind.NOT_CONNECTED)

    def test_steps_until_stopped(self) -> None:
        self.connect()
        self.session.start_continuous(MIN_STEP_INTERVAL_MS)
        self.assertIs(self.session.state, SessionState.CONTINUOUS_RUNNING)
        self.assertTrue(_until(lambda: self.session.total_steps >= 3))

        self.session.stop_continuous()
        frozen = self.session.total_steps
        time.sleep(0.3)
        self.assertEqual(self.session.total_steps, frozen)
        self.assertFalse(self.session.continuous_running)
        self.assertIs(self.session.state, SessionState.CONNECTED)

    def test_starting_twice_keeps_one_timer(self) -> None:
        self.connect()
        self.session.start_continuous(MIN_STEP_INTERVAL_MS)
        first = self.session._timer
        self.session.start_continuous(MIN_STEP_INTERVAL_MS)
        self.assertIs(self.session._timer, first)

    def test_manual_step_stops_continuous_mode(self) -> None:
        self.connect()
        self.session.start_continuous(MAX_STEP_INTERVAL_MS)
        self.session.step()
        self.assertFalse(self.session.continuous_running)

    def test_interval_is_clamped(self) -> None:
        self.connect()
        self.session.start_continuous(5)
        self.assertEqual(self.session.interval_ms, MIN_STEP_INTERVAL_MS)
        self.session.stop_continuous()
        self.session.start_continuous(60_000)
        self.assertEqual(self.session.interval_ms, MAX_STEP_INTERVAL_MS)

    def test_speed_levels(self) -> None:
        level = SimulationSession.interval_for_speed_level
        self.assertEqual(level(1), 1000)
        self.assertEqual(level(5), 600)
        self.assertEqual(level(10), 100)
        self.assertEqual(level(0), 1000)
        self.assertEqual(level(42), 100)
        self.assertEqual(self.session.set_speed_level(7), 400)
        self.assertEqual(self.session.interval_ms, 400)

    def test_lost_engine_stops_the_timer(self) -> None:
        self.connect()
        self.session.start_continuous(MIN_STEP_INTERVAL_MS)
        self.assertTrue(_until(lambda: self.session.total_steps >= 1))
        self.engine.drop_connection()

        self.assertTrue(_until(lambda: not self.session.is_connected))
        self.assertTrue(_until(lambda: not self.session.continuous_running))
        self.assertTrue(_until(lambda: any(
            e.payload["kind"] == "engine_unreachable" for e in self.session.bus.poll(TOPIC_ERROR)
        )))


class ViewTests(_Scenario):
    def test_zoom_clamps(self) -> None:
        for _ in range(40):
            self.session.zoom_in()
        self.assertEqual(self.session.viewport.scale, MAX_SCALE)

    def test_reset_view_keeps_translate_mode(self) -> None:
        self.assertTrue(self.session.toggle_translate_mode())
        self.session.zoom(2.0)
        self.session.pan(30, -10)
        vp = self.session.reset_view()
        self.assertEqual((vp.scale, vp.translate_x, vp.translate_y), (1.0, 0.0, 0.0))
        self.assertTrue(vp.translate_mode)

    def test_pan_mode_toggle(self) -> None:
        self.assertTrue(self.session.toggle_pan_mode())
        self.assertFalse(self.session.toggle_pan_mode())

    def test_filter_modes(self) -> None:
        self.connect()
        self.assertEqual(len(self.session.visible_vehicles()), 3)
        self.session.set_filter_mode("running")
        self.assertEqual(sorted(v.id for v in self.session.visible_vehicles()), ["crawler", "cruiser"])
        self.session.set_filter_mode(FilterMode.CONGESTED)
        self.assertEqual([v.id for v in self.session.visible_vehicles()], ["crawler"])

    def test_no_vehicles_before_connect(self) -> None:
        self.assertEqual(self.session.visible_vehicles(), [])


class ExtrasTests(_Scenario):
    def test_inject_vehicles(self) -> None:
        self.connect()
        created = self.session.inject_vehicles("A", "route_AB", speed_kmh=36.0, count=2)

        self.assertEqual(len(created), 2)
        self.assertTrue(all(v.startswith("veh") for v in created))
        world = self.engine.world
        for vehicle_id in created:
            self.assertIn(vehicle_id, world.vehicles)
            self.assertEqual(world.vehicles[vehicle_id].lane, "A_0")
            self.assertAlmostEqual(world.vehicles[vehicle_id].speed, 10.0)

    def test_inject_on_edge_without_lanes_keeps_vehicle(self) -> None:
        self.connect()
        with self.assertLogs("session", level="INFO") as logs:
            created = self.session.inject_vehicles("nowhere", "route_AB")
        self.assertIn(created[0], self.engine.world.vehicles)
        self.assertTrue(any("no valid lanes" in line for line in logs.output))

    def test_inject_validation(self) -> None:
        self.connect()
        for kwargs in ({"count": 0}, {"speed_kmh": -1.0}):
            with self.assertRaises(InjectError) as ctx:
                self.session.inject_vehicles("A", "route_AB", **kwargs)
            self.assertIs(ctx.exception.kind, InjectErrorKind.INVALID_ARGUMENT)

    def test_inject_unknown_route(self) -> None:
        self.connect()
        with self.assertRaises(InjectError) as ctx:
            self.session.inject_vehicles("A", "route_nope")
        self.assertIs(ctx.exception.kind, InjectErrorKind.ENGINE_REJECTED)
        self.assertTrue(self.session.is_connected)

    def test_inject_requires_connection(self) -> None:
        with self.assertRaises(InjectError) as ctx:
            self.session.inject_vehicles("A", "route_AB")
        self.assertIs(ctx.exception.kind, InjectErrorKind.NOT_CONNECTED)

    def test_vehicle_details(self) -> None:
        self.connect()
        self.session.step()
        clock, rows = self.session.vehicle_details()
        self.assertEqual(clock, 1.0)
        self.assertEqual(sorted(r.id for r in rows), ["crawler", "cruiser", "parked"])

    def test_export_before_any_data(self) -> None:
        with self.assertRaises(ExportError) as ctx:
            self.session.export_stats(self.dir)
        self.assertIs(ctx.exception.kind, ExportErrorKind.NO_DATA)

    def test_export_stats(self) -> None:
        self.connect()
        self.session.step()
        path = self.session.export_stats(os.path.join(self.dir, "out", "stats.csv"))

        frame = pd.read_csv(path)
        self.assertEqual(list(frame.columns), ["Metric", "Value"])
        values = dict(zip(frame["Metric"], frame["Value"]))
        self.assertEqual(str(values["Total Vehicles"]), "3")
        self.assertEqual(str(values["Total Steps"]), "1")

    def test_export_vehicle_details(self) -> None:
        self.connect()
        path = self.session.export_vehicle_details(os.path.join(self.dir, "details.csv"))
        frame = pd.read_csv(path)
        self.assertEqual(len(frame), 3)
        self.assertIn("Travel Time (s)", frame.columns)


class SignalEditTests(_Scenario):
    def test_commit_is_published_on_the_bus(self) -> None:
        self.connect()
        self.session.bus.dispatch_pending()
        registry = self.session.signals
        registry.select_controller("J")
        registry.select_phase(0)
        registry.enter_mode("all_red")
        registry.commit(5)

        events = self.session.bus.poll(TOPIC_SIGNALS)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload["signal_id"], "J")
        self.assertEqual(events[0].payload["phases"][0], Phase("rr", 5.0))

    def test_edit_failure_from_an_old_connection_keeps_the_new_one(self) -> None:
        handler = self.session.signals.on_connection_lost
        seen = []
        self.session.signals.on_connection_lost = seen.append
        self.connect()
        self.session.signals.select_controller("J")
        self.engine.drop_connection()
        with self.assertRaises(EditError):
            self.session.signals.add_phase()
        self.session.disconnect()
        self.connect()

        handler(seen[0])
        self.assertTrue(self.session.is_connected)

        self.session.signals.on_connection_lost = handler
        self.session.signals.select_controller("J")
        self.engine.drop_connection()
        with self.assertRaises(EditError):
            self.session.signals.add_phase()
        self.assertIs(self.session.state, SessionState.DISCONNECTED)


if __name__ == "__main__":
    unittest.main()
