"""
Perimeter guard service

Calibrates a quiet-environment baseline from the fusion engine's output,
then periodically compares current modality statistics against it and
raises alerts when the weighted deviation crosses the zone's thresholds.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Protocol, Sequence

from presence_fusion.fusion.tracker import PresenceTarget
from presence_fusion.sensing.readings import DataSource
from presence_fusion.services.collaborators import AlertSink, DetectionLog, ZoneRepository
from presence_fusion.services.zone import (
    DetectionEvent,
    GuardState,
    GuardStatusReport,
    PerimeterZone,
    SensitivityLevel,
    SensorBaseline,
    ZoneStatus,
)

logger = logging.getLogger(__name__)

# Reference scale of the modality statistics
DEFAULT_RSSI_VARIANCE = 2.0
DEFAULT_SONAR_ENERGY = 0.1
DEFAULT_CAMERA_MOTION = 0.05
DEFAULT_NOISE_FLOOR = 0.2

DEVIATION_WEIGHTS = {
    DataSource.WIFI: 1.0,
    DataSource.BLUETOOTH: 1.0,
    DataSource.ACOUSTIC: 1.5,
    DataSource.OPTICAL: 1.5,
}


class CalibrationError(Exception):
    """Calibration collected no samples."""
    pass


class GuardConfigurationError(Exception):
    """Guard operation attempted without the required baseline or zone."""
    pass


class TargetSource(Protocol):
    """Anything exposing the live fused targets, e.g. ``FusionEngine``."""

    @property
    def targets(self) -> List[PresenceTarget]: ...


@dataclass(frozen=True)
class ModalityValues:
    """Current per-modality statistics derived from fused targets."""

    wifi_variance: float
    bluetooth_variance: float
    sonar_energy: float
    camera_motion: float
    noise_floor: float


def _mean_confidence(targets: Iterable[PresenceTarget], source: DataSource) -> Optional[float]:
    confidences = [t.confidence for t in targets if source in t.sources]
    if not confidences:
        return None
    return sum(confidences) / len(confidences)


def measure_modalities(
    targets: Sequence[PresenceTarget],
    baseline: Optional[SensorBaseline] = None,
) -> ModalityValues:
    """Scale the reference statistics by how strongly each modality currently sees targets.

    Calibration and scanning both measure on this fixed scale, so a baseline
    and a later measurement of the same scene compare equal. A modality that
    sees no targets reports the baseline value when one is given.
    """
    wifi = _mean_confidence(targets, DataSource.WIFI)
    bluetooth = _mean_confidence(targets, DataSource.BLUETOOTH)
    sonar = _mean_confidence(targets, DataSource.ACOUSTIC)
    moving = sum(1 for t in targets if t.is_moving)

    if baseline is None:
        quiet = ModalityValues(
            wifi_variance=DEFAULT_RSSI_VARIANCE,
            bluetooth_variance=DEFAULT_RSSI_VARIANCE,
            sonar_energy=DEFAULT_SONAR_ENERGY,
            camera_motion=DEFAULT_CAMERA_MOTION,
            noise_floor=DEFAULT_NOISE_FLOOR,
        )
    else:
        quiet = ModalityValues(
            wifi_variance=baseline.avg_rssi_variance,
            bluetooth_variance=baseline.bluetooth_reference,
            sonar_energy=baseline.avg_sonar_energy,
            camera_motion=baseline.avg_camera_motion,
            noise_floor=baseline.ambient_noise_level,
        )

    return ModalityValues(
        wifi_variance=(
            quiet.wifi_variance if wifi is None else DEFAULT_RSSI_VARIANCE * (1 + wifi * 5)
        ),
        bluetooth_variance=(
            quiet.bluetooth_variance if bluetooth is None
            else DEFAULT_RSSI_VARIANCE * (1 + bluetooth * 4)
        ),
        sonar_energy=(
            quiet.sonar_energy if sonar is None else DEFAULT_SONAR_ENERGY * (1 + sonar * 10)
        ),
        camera_motion=(
            quiet.camera_motion if moving == 0
            else DEFAULT_CAMERA_MOTION * (1 + moving * 0.2 * 5)
        ),
        noise_floor=quiet.noise_floor,
    )


def _percent_change(current: float, reference: float) -> float:
    if reference <= 0:
        return 0.0
    return (current - reference) / reference * 100.0


def compute_deviation(
    current: ModalityValues,
    baseline: SensorBaseline,
    active_sources: Iterable[DataSource],
) -> float:
    """Weighted mean percentage deviation over the zone's active modalities."""
    active = set(active_sources)
    deviations = {
        DataSource.WIFI: _percent_change(current.wifi_variance, baseline.avg_rssi_variance),
        DataSource.BLUETOOTH: _percent_change(
            current.bluetooth_variance, baseline.bluetooth_reference
        ),
        DataSource.ACOUSTIC: _percent_change(current.sonar_energy, baseline.avg_sonar_energy),
        DataSource.OPTICAL: _percent_change(current.camera_motion, baseline.avg_camera_motion),
    }
    weights = {
        source: (weight if source in active else 0.0)
        for source, weight in DEVIATION_WEIGHTS.items()
    }
    total_weight = sum(weights.values())
    if total_weight == 0:
        return 0.0
    return sum(deviations[s] * w for s, w in weights.items()) / total_weight


def evaluate_status(deviation: float, sensitivity: SensitivityLevel) -> ZoneStatus:
    """Map a deviation to an alert level; thresholds are exclusive."""
    yellow, red = sensitivity.thresholds
    if deviation > red:
        return ZoneStatus.RED_PRESENCE
    if deviation > yellow:
        return ZoneStatus.YELLOW_POSSIBLE
    return ZoneStatus.GREEN_CLEAR


class PerimeterGuard:
    """Calibration and guard state machine for one zone."""

    def __init__(
        self,
        target_source: TargetSource,
        alert_sink: AlertSink,
        detection_log: DetectionLog,
        zone_repository: Optional[ZoneRepository] = None,
        sample_interval_s: float = 0.1,
        error_retry_s: float = 1.0,
    ):
        """Initialize the perimeter guard.

        Args:
            target_source: Provider of the live fused targets.
            alert_sink: Alert delivery backend.
            detection_log: Receives a DetectionEvent for every non-green scan.
            zone_repository: Optional store for zones and their baselines.
            sample_interval_s: Delay between calibration samples.
            error_retry_s: Delay before the scan loop retries after an error.
        """
        self.target_source = target_source
        self.alert_sink = alert_sink
        self.detection_log = detection_log
        self.zone_repository = zone_repository
        self.sample_interval_s = sample_interval_s
        self.error_retry_s = error_retry_s

        self.state = GuardState.IDLE
        self.status = ZoneStatus.UNKNOWN
        self.deviation = 0.0
        self.baseline: Optional[SensorBaseline] = None
        self.zone: Optional[PerimeterZone] = None

        self.alerts_raised = 0
        self.last_scan: Optional[float] = None
        self.last_error: Optional[str] = None
        self._guard_task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.state is GuardState.GUARDING

    # -- calibration ---------------------------------------------------------

    async def calibrate(
        self, duration_s: float = 30.0, environment_type: Optional[str] = "indoor"
    ) -> SensorBaseline:
        """Record the quiet environment for ``duration_s`` seconds.

        Should run with nobody in the monitored area.

        Returns:
            The new baseline, also attached to the configured zone.

        Raises:
            GuardConfigurationError: If the guard is currently guarding.
            CalibrationError: If no sample could be taken.
        """
        if self.state is GuardState.GUARDING:
            raise GuardConfigurationError("Stop guarding before recalibrating")

        previous_state = self.state
        self.state = GuardState.CALIBRATING
        logger.info(f"Calibrating baseline for {duration_s:.1f}s")

        samples: List[ModalityValues] = []
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            while loop.time() - start < duration_s:
                samples.append(measure_modalities(self.target_source.targets))
                await asyncio.sleep(self.sample_interval_s)
        except BaseException:
            self.state = previous_state
            raise

        if not samples:
            self.state = previous_state
            raise CalibrationError(f"No samples collected in {duration_s}s of calibration")

        count = len(samples)
        baseline = SensorBaseline(
            avg_rssi_variance=sum(s.wifi_variance for s in samples) / count,
            avg_sonar_energy=sum(s.sonar_energy for s in samples) / count,
            avg_camera_motion=sum(s.camera_motion for s in samples) / count,
            ambient_noise_level=sum(s.noise_floor for s in samples) / count,
            calibration_timestamp=time.time(),
            sample_count=count,
            environment_type=environment_type,
            avg_bluetooth_variance=sum(s.bluetooth_variance for s in samples) / count,
        )
        self.baseline = baseline
        self.state = GuardState.CONFIGURED
        logger.info(f"Calibration complete with {count} samples")

        if self.zone is not None:
            self.zone = replace(self.zone, baseline=baseline)
            await self._persist_zone()
        return baseline

    # -- configuration -------------------------------------------------------

    async def configure_zone(self, zone: PerimeterZone) -> None:
        """Use ``zone``; its stored baseline is adopted when none was calibrated."""
        if self.baseline is None and zone.baseline is not None:
            self.baseline = zone.baseline
        self.zone = replace(zone, baseline=self.baseline)
        if self.baseline is not None and self.state is GuardState.IDLE:
            self.state = GuardState.CONFIGURED
        logger.info(f"Configured zone '{zone.name}' ({zone.sensitivity.value} sensitivity)")
        await self._persist_zone()

    async def apply_preset(self, preset_id: str, name: Optional[str] = None) -> PerimeterZone:
        """Configure the zone from a named template (see ``ZONE_PRESETS``)."""
        await self.configure_zone(PerimeterZone.from_preset(preset_id, name))
        return self.zone

    async def restore_zone(self, zone_id: str) -> PerimeterZone:
        """Load a zone and its baseline from the repository.

        Raises:
            GuardConfigurationError: If there is no repository or no such zone.
        """
        if self.zone_repository is None:
            raise GuardConfigurationError("No zone repository configured")
        zone = await self.zone_repository.load_zone(zone_id)
        if zone is None:
            raise GuardConfigurationError(f"Unknown zone: {zone_id}")
        if zone.baseline is not None:
            self.baseline = zone.baseline
        await self.configure_zone(zone)
        return self.zone

    async def _persist_zone(self) -> None:
        if self.zone_repository is not None and self.zone is not None:
            await self.zone_repository.save_zone(self.zone)

    # -- guarding ------------------------------------------------------------

    async def start_guarding(self) -> None:
        """Begin periodic scanning.

        Raises:
            GuardConfigurationError: If calibration is running or the baseline
                or zone is missing.
        """
        if self.is_active:
            return
        if self.state is GuardState.CALIBRATING:
            raise GuardConfigurationError("Calibration must finish before guarding")
        if self.baseline is None:
            raise GuardConfigurationError("Must calibrate before guarding")
        if self.zone is None:
            raise GuardConfigurationError("Must configure zone before guarding")

        self.state = GuardState.GUARDING
        self.status = ZoneStatus.GREEN_CLEAR
        self._guard_task = asyncio.create_task(self._guard_loop())
        logger.info(f"Guarding zone '{self.zone.name}'")

    async def stop_guarding(self) -> None:
        """Cancel scanning and reset the alert status; baseline and zone are kept."""
        if self._guard_task is not None:
            self._guard_task.cancel()
            try:
                await self._guard_task
            except asyncio.CancelledError:
                pass
            self._guard_task = None

        self.state = GuardState.STOPPED
        self.status = ZoneStatus.UNKNOWN
        await self.alert_sink.stop()
        logger.info("Perimeter guard stopped")

    async def scan_once(self) -> ZoneStatus:
        """Evaluate the zone once and alert on a non-green status."""
        targets = self.target_source.targets
        current = measure_modalities(targets, self.baseline)
        deviation = compute_deviation(current, self.baseline, self.zone.active_sources)
        status = evaluate_status(deviation, self.zone.sensitivity)

        self.deviation = deviation
        self.status = status
        self.last_scan = time.time()

        if status is not ZoneStatus.GREEN_CLEAR:
            await self._handle_alert(status, deviation, targets)
        return status

    async def _handle_alert(
        self, status: ZoneStatus, deviation: float, targets: Sequence[PresenceTarget]
    ) -> None:
        zone = self.zone
        event = DetectionEvent(
            zone_id=zone.id,
            zone_name=zone.name,
            status=status,
            deviation=deviation,
            targets=tuple(targets),
            active_sources=zone.active_sources,
        )
        await self.detection_log.log_event(event)
        await self.alert_sink.trigger(status, zone.alert_type)
        self.alerts_raised += 1

    async def _guard_loop(self) -> None:
        """Background scan loop."""
        try:
            while self.state is GuardState.GUARDING:
                try:
                    await self.scan_once()
                except Exception as e:
                    self.last_error = str(e)
                    logger.error(f"Error in guard scan loop: {e}", exc_info=True)
                    await asyncio.sleep(self.error_retry_s)
                    continue
                await asyncio.sleep(self.zone.sensitivity.scan_interval_s)
        except asyncio.CancelledError:
            logger.info("Guard scan loop cancelled")
            raise

    def get_status(self) -> GuardStatusReport:
        """Summary of the guard."""
        baseline_age = None
        if self.baseline is not None:
            baseline_age = time.time() - self.baseline.calibration_timestamp
        return GuardStatusReport(
            state=self.state,
            status=self.status,
            deviation=self.deviation,
            zone_name=self.zone.name if self.zone else None,
            sensitivity=self.zone.sensitivity if self.zone else None,
            baseline_age_s=baseline_age,
            alerts_raised=self.alerts_raised,
            last_scan=self.last_scan,
        )
