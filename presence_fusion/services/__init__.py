"""
Services built on top of the fusion engine.
"""

from presence_fusion.services.collaborators import (
    AlertSink,
    DetectionLog,
    InMemoryDetectionLog,
    InMemoryZoneRepository,
    LoggingAlertSink,
    ZoneRepository,
)
from presence_fusion.services.perimeter_guard import (
    CalibrationError,
    GuardConfigurationError,
    PerimeterGuard,
    compute_deviation,
    evaluate_status,
    measure_modalities,
)
from presence_fusion.services.zone import (
    AlertType,
    DetectionEvent,
    GuardState,
    GuardStatusReport,
    MonitoringSector,
    PerimeterZone,
    SensitivityLevel,
    SensorBaseline,
    ZONE_PRESETS,
    ZonePreset,
    ZoneStatus,
)

__all__ = [
    "AlertSink",
    "DetectionLog",
    "InMemoryDetectionLog",
    "InMemoryZoneRepository",
    "LoggingAlertSink",
    "ZoneRepository",
    "CalibrationError",
    "GuardConfigurationError",
    "PerimeterGuard",
    "compute_deviation",
    "evaluate_status",
    "measure_modalities",
    "AlertType",
    "DetectionEvent",
    "GuardState",
    "GuardStatusReport",
    "MonitoringSector",
    "PerimeterZone",
    "SensitivityLevel",
    "SensorBaseline",
    "ZONE_PRESETS",
    "ZonePreset",
    "ZoneStatus",
]
