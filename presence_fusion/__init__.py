"""
Presence Fusion
===============

Multi-modal presence sensing: fuses radio RSSI, acoustic echo, optical
motion and ranging readings into stable, classified presence targets, and
guards calibrated perimeter zones against deviations from a quiet baseline.

Example usage:
    >>> from presence_fusion import FusionEngine
    >>> engine = FusionEngine()
    >>> engine.process_reading(reading)
    >>> engine.targets

For CLI usage:
    $ presence-fusion simulate --duration 5
    $ presence-fusion guard --sensitivity high
"""

__version__ = "1.0.0"
__license__ = "MIT"

__title__ = "presence-fusion"
__description__ = "Multi-modal presence fusion, tracking and perimeter guarding"

__version_info__ = tuple(int(x) for x in __version__.split('.'))

from presence_fusion.fusion.engine import FusionEngine
from presence_fusion.fusion.tracker import PresenceTarget, TargetTracker
from presence_fusion.sensing.classifier import PresenceClassifier, TargetType
from presence_fusion.sensing.readings import DataSource
from presence_fusion.services.perimeter_guard import PerimeterGuard

__all__ = [
    "__version__",
    "FusionEngine",
    "PresenceTarget",
    "TargetTracker",
    "PresenceClassifier",
    "TargetType",
    "DataSource",
    "PerimeterGuard",
]
