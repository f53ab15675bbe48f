"""
Reading types, feature extraction and presence classification.

Modules:
    readings          -- per-modality reading variants and the generic SensorReading
    feature_extractor -- bounded histories reduced to PresenceFeatures
    classifier        -- rule-based PresenceClassifier with a pluggable model hook
"""

from presence_fusion.sensing.readings import (
    AccelerationReading,
    AcousticReading,
    BluetoothReading,
    DataSource,
    ModalityReading,
    OpticalReading,
    RangingReading,
    SensorReading,
    WifiReading,
    as_sensor_reading,
)
from presence_fusion.sensing.feature_extractor import FeatureExtractor, PresenceFeatures
from presence_fusion.sensing.classifier import (
    ClassificationResult,
    ModelInfo,
    PresenceClassifier,
    PresenceModel,
    TargetType,
)

__all__ = [
    "AccelerationReading",
    "AcousticReading",
    "BluetoothReading",
    "DataSource",
    "ModalityReading",
    "OpticalReading",
    "RangingReading",
    "SensorReading",
    "WifiReading",
    "as_sensor_reading",
    "FeatureExtractor",
    "PresenceFeatures",
    "ClassificationResult",
    "ModelInfo",
    "PresenceClassifier",
    "PresenceModel",
    "TargetType",
]
