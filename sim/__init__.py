"""
sim — Console core
==================

Modules
-------
models
    Immutable value objects: :class:`Snapshot`, :class:`Viewport`, ...
session
    :class:`SimulationSession` connection lifecycle and step cadence.
telemetry
    :class:`TelemetryAggregator` per-step classification and statistics.
signals
    :class:`SignalControllerRegistry` and the phase-edit state machine.
geometry
    :class:`GeometryCache` lane shapes fetched once per connection.
projection
    :class:`CoordinateProjector` world → screen mapping.
cfg_parser
    ``.sumocfg`` input-file lookup.
export
    CSV export of snapshots and vehicle details.
errors
    Operator-facing error taxonomy.
"""
