"""
Integration tests for the perimeter guard running on live fusion output.
"""

from __future__ import annotations

import asyncio

import pytest

from presence_fusion.fusion.engine import FusionEngine
from presence_fusion.sensing.readings import DataSource
from presence_fusion.services.collaborators import (
    InMemoryDetectionLog,
    InMemoryZoneRepository,
    LoggingAlertSink,
)
from presence_fusion.services.perimeter_guard import PerimeterGuard
from presence_fusion.services.zone import GuardState, PerimeterZone, SensitivityLevel, ZoneStatus
from presence_fusion.testing import SimulatedScene

T0 = 1_700_000_000.0


def replay(engine: FusionEngine, scene: SimulatedScene, duration_s: float, start_time: float) -> None:
    """Feed every generated reading to the engine in timestamp order."""
    generated = scene.generate(duration_s, start_time=start_time)
    readings = sorted(
        (r for batch in generated.values() for r in batch),
        key=lambda r: r.timestamp,
    )
    for reading in readings:
        engine.process_reading(reading)


def make_guard(engine: FusionEngine, repository=None) -> PerimeterGuard:
    return PerimeterGuard(
        engine,
        LoggingAlertSink(),
        InMemoryDetectionLog(),
        zone_repository=repository,
        sample_interval_s=0.01,
        error_retry_s=0.01,
    )


class TestGuardPipeline:
    @pytest.mark.asyncio
    async def test_subject_entering_quiet_zone_raises_alert(self):
        engine = FusionEngine()
        guard = make_guard(engine)

        replay(engine, SimulatedScene(seed=1, subject_present=False), 3.0, T0)
        await guard.calibrate(0.05)
        await guard.configure_zone(PerimeterZone(name="hallway", sensitivity=SensitivityLevel.MEDIUM))

        # Same quiet scene: no deviation
        assert await guard.scan_once() is ZoneStatus.GREEN_CLEAR
        assert guard.deviation == pytest.approx(0.0)

        engine.reset()
        replay(engine, SimulatedScene(seed=2, subject_present=True), 3.0, T0 + 3.0)
        status = await guard.scan_once()

        assert status is not ZoneStatus.GREEN_CLEAR
        assert guard.alerts_raised == 1
        event = guard.detection_log.events[0]
        assert event.zone_name == "hallway"
        assert event.targets
        assert guard.alert_sink.active

    @pytest.mark.asyncio
    async def test_guard_over_live_streams(self):
        engine = FusionEngine()
        guard = make_guard(engine, repository=InMemoryZoneRepository())

        await guard.calibrate(0.05)
        zone = PerimeterZone(name="porch", sensitivity=SensitivityLevel.HIGH)
        await guard.configure_zone(zone)
        await guard.start_guarding()

        scene = SimulatedScene(seed=4)
        await engine.start(scene.streams(
            2.0,
            start_time=T0,
            sources=[DataSource.BLUETOOTH, DataSource.ACOUSTIC, DataSource.RANGING],
        ))
        try:
            await asyncio.wait_for(engine.drain(), timeout=10.0)
            await asyncio.sleep(0.5)
            assert guard.alerts_raised >= 1
            assert guard.status is not ZoneStatus.GREEN_CLEAR
        finally:
            await guard.stop_guarding()
            await engine.stop()

        assert guard.state is GuardState.STOPPED
        assert guard.status is ZoneStatus.UNKNOWN
        stored = await guard.zone_repository.load_zone(zone.id)
        assert stored.baseline == guard.baseline
