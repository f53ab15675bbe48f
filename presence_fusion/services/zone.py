"""
Perimeter zone configuration, calibration baseline and guard records.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from presence_fusion.fusion.tracker import PresenceTarget
from presence_fusion.sensing.readings import DataSource


class ZoneStatus(Enum):
    """Alert level of a guarded zone."""

    GREEN_CLEAR = "green_clear"
    YELLOW_POSSIBLE = "yellow_possible"
    RED_PRESENCE = "red_presence"
    UNKNOWN = "unknown"


class GuardState(Enum):
    """Lifecycle of the perimeter guard."""

    IDLE = "idle"
    CALIBRATING = "calibrating"
    CONFIGURED = "configured"
    GUARDING = "guarding"
    STOPPED = "stopped"


class SensitivityLevel(Enum):
    """Deviation thresholds (percent) and scan cadence."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CUSTOM = "custom"

    @property
    def thresholds(self) -> Tuple[float, float]:
        """(yellow, red) deviation thresholds in percent."""
        return {
            SensitivityLevel.LOW: (40.0, 70.0),
            SensitivityLevel.MEDIUM: (25.0, 50.0),
            SensitivityLevel.HIGH: (15.0, 35.0),
            SensitivityLevel.CUSTOM: (20.0, 45.0),
        }[self]

    @property
    def scan_interval_s(self) -> float:
        return {
            SensitivityLevel.LOW: 1.0,
            SensitivityLevel.MEDIUM: 0.5,
            SensitivityLevel.HIGH: 0.2,
            SensitivityLevel.CUSTOM: 0.5,
        }[self]


class MonitoringSector(Enum):
    """Region of the surroundings a zone covers."""

    FORWARD_CONE = "forward_cone"
    LEFT_SECTOR = "left_sector"
    RIGHT_SECTOR = "right_sector"
    REAR_SECTOR = "rear_sector"
    FRONT_WIDE = "front_wide"
    FULL_360 = "full_360"


class AlertType(Enum):
    """How an alert is delivered."""

    SOUND_AND_VIBRATION = "sound_and_vibration"
    VIBRATION_ONLY = "vibration_only"
    SILENT_LOG_ONLY = "silent_log_only"
    VISUAL_ONLY = "visual_only"
    FLASH_AND_VIBRATION = "flash_and_vibration"


DEFAULT_ACTIVE_SOURCES = frozenset([
    DataSource.WIFI,
    DataSource.BLUETOOTH,
    DataSource.ACOUSTIC,
    DataSource.OPTICAL,
])


@dataclass(frozen=True)
class SensorBaseline:
    """Averaged quiet-environment statistics from one calibration run."""

    avg_rssi_variance: float
    avg_sonar_energy: float
    avg_camera_motion: float
    ambient_noise_level: float
    calibration_timestamp: float
    sample_count: int
    environment_type: Optional[str] = None
    avg_bluetooth_variance: Optional[float] = None

    def __post_init__(self):
        if self.sample_count <= 0:
            raise ValueError("A baseline needs at least one sample")

    @property
    def bluetooth_reference(self) -> float:
        """Bluetooth baseline, falling back to the radio average."""
        if self.avg_bluetooth_variance is None:
            return self.avg_rssi_variance
        return self.avg_bluetooth_variance


@dataclass(frozen=True)
class PerimeterZone:
    """A guarded zone and the baseline it is compared against."""

    name: str
    sensitivity: SensitivityLevel = SensitivityLevel.MEDIUM
    alert_type: AlertType = AlertType.SOUND_AND_VIBRATION
    active_sources: FrozenSet[DataSource] = DEFAULT_ACTIVE_SOURCES
    monitoring_sector: MonitoringSector = MonitoringSector.FULL_360
    baseline: Optional[SensorBaseline] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)

    @property
    def baseline_calibrated(self) -> bool:
        return self.baseline is not None

    @classmethod
    def from_preset(cls, preset_id: str, name: Optional[str] = None) -> "PerimeterZone":
        """Build a zone from one of the ``ZONE_PRESETS`` templates.

        Raises:
            ValueError: If ``preset_id`` is not a known preset.
        """
        preset = ZONE_PRESETS.get(preset_id)
        if preset is None:
            raise ValueError(
                f"Unknown zone preset: {preset_id}. Available: {', '.join(ZONE_PRESETS)}"
            )
        return cls(
            name=name or preset.name,
            sensitivity=preset.sensitivity,
            alert_type=preset.alert_type,
            active_sources=preset.active_sources,
            monitoring_sector=preset.monitoring_sector,
        )


@dataclass(frozen=True)
class ZonePreset:
    """Quick-setup template for a common entry point."""

    id: str
    name: str
    description: str
    monitoring_sector: MonitoringSector
    sensitivity: SensitivityLevel
    alert_type: AlertType
    active_sources: FrozenSet[DataSource]


ZONE_PRESETS = {
    preset.id: preset
    for preset in (
        ZonePreset(
            id="doorway",
            name="Doorway",
            description="High sensitivity, narrow cone for entry monitoring",
            monitoring_sector=MonitoringSector.FORWARD_CONE,
            sensitivity=SensitivityLevel.HIGH,
            alert_type=AlertType.VIBRATION_ONLY,
            active_sources=frozenset([DataSource.ACOUSTIC, DataSource.OPTICAL]),
        ),
        ZonePreset(
            id="hallway",
            name="Hallway",
            description="Medium sensitivity, wide front coverage",
            monitoring_sector=MonitoringSector.FRONT_WIDE,
            sensitivity=SensitivityLevel.MEDIUM,
            alert_type=AlertType.SOUND_AND_VIBRATION,
            active_sources=frozenset([DataSource.ACOUSTIC, DataSource.OPTICAL, DataSource.WIFI]),
        ),
        ZonePreset(
            id="room",
            name="Room",
            description="360 degree coverage with low sensitivity",
            monitoring_sector=MonitoringSector.FULL_360,
            sensitivity=SensitivityLevel.LOW,
            alert_type=AlertType.SOUND_AND_VIBRATION,
            active_sources=frozenset([DataSource.WIFI, DataSource.BLUETOOTH, DataSource.ACOUSTIC]),
        ),
        ZonePreset(
            id="stairway",
            name="Stairway",
            description="Forward cone monitoring for stairs",
            monitoring_sector=MonitoringSector.FORWARD_CONE,
            sensitivity=SensitivityLevel.MEDIUM,
            alert_type=AlertType.VIBRATION_ONLY,
            active_sources=frozenset([DataSource.ACOUSTIC, DataSource.OPTICAL]),
        ),
        ZonePreset(
            id="outdoor",
            name="Outdoor Perimeter",
            description="Full 360 degree coverage with high sensitivity",
            monitoring_sector=MonitoringSector.FULL_360,
            sensitivity=SensitivityLevel.HIGH,
            alert_type=AlertType.FLASH_AND_VIBRATION,
            active_sources=frozenset([DataSource.WIFI, DataSource.BLUETOOTH, DataSource.OPTICAL]),
        ),
        # No sonar: stays silent
        ZonePreset(
            id="stealth",
            name="Stealth Watch",
            description="Silent operation, no sound emissions",
            monitoring_sector=MonitoringSector.FRONT_WIDE,
            sensitivity=SensitivityLevel.HIGH,
            alert_type=AlertType.VIBRATION_ONLY,
            active_sources=frozenset([DataSource.WIFI, DataSource.BLUETOOTH, DataSource.OPTICAL]),
        ),
        ZonePreset(
            id="vehicle",
            name="Vehicle Lane",
            description="Low sensitivity for larger movements",
            monitoring_sector=MonitoringSector.FRONT_WIDE,
            sensitivity=SensitivityLevel.LOW,
            alert_type=AlertType.SOUND_AND_VIBRATION,
            active_sources=frozenset([DataSource.WIFI, DataSource.BLUETOOTH]),
        ),
    )
}


@dataclass(frozen=True)
class DetectionEvent:
    """What the guard saw when it raised an alert."""

    zone_id: str
    zone_name: str
    status: ZoneStatus
    deviation: float
    targets: Tuple[PresenceTarget, ...]
    active_sources: FrozenSet[DataSource]
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class GuardStatusReport:
    """Summary of the guard for status displays."""

    state: GuardState
    status: ZoneStatus
    deviation: float
    zone_name: Optional[str]
    sensitivity: Optional[SensitivityLevel]
    baseline_age_s: Optional[float]
    alerts_raised: int
    last_scan: Optional[float]

    @property
    def is_active(self) -> bool:
        return self.state is GuardState.GUARDING
