"""
Sensor fusion: reading-to-detection conversion, target tracking and the
stream-merging engine.
"""

from presence_fusion.fusion.channel import BackpressurePolicy, ReadingChannel
from presence_fusion.fusion.detection import (
    Detection,
    SensorWeights,
    SignalProcessors,
    estimate_ble_distance,
    estimate_wifi_distance,
    reading_to_detection,
)
from presence_fusion.fusion.tracker import (
    PresenceTarget,
    TargetTracker,
    TrackedTarget,
    TrackerConfig,
)
from presence_fusion.fusion.engine import FusionEngine

__all__ = [
    "BackpressurePolicy",
    "ReadingChannel",
    "Detection",
    "SensorWeights",
    "SignalProcessors",
    "estimate_ble_distance",
    "estimate_wifi_distance",
    "reading_to_detection",
    "PresenceTarget",
    "TargetTracker",
    "TrackedTarget",
    "TrackerConfig",
    "FusionEngine",
]
