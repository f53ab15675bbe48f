"""
Rule-based presence classification.

Scores ``PresenceFeatures`` for human, generic life-form and noise
hypotheses and picks a ``TargetType``:
    HUMAN          -- human score above 0.75
    POSSIBLE_LIFE  -- life-form score above 0.5
    NOISE          -- noise score outweighs the overall confidence
    UNKNOWN        -- none of the above

A scoring model can be attached through ``PresenceModel``; whenever it is
absent or fails, the rules decide.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from presence_fusion.sensing.feature_extractor import FeatureExtractor, PresenceFeatures

if TYPE_CHECKING:
    from presence_fusion.fusion.tracker import PresenceTarget

logger = logging.getLogger(__name__)


class TargetType(Enum):
    """Label assigned to a presence target."""

    HUMAN = "human"
    POSSIBLE_LIFE = "possible_life"
    NOISE = "noise"
    UNKNOWN = "unknown"
    VEHICLE = "vehicle"
    ANIMAL = "animal"


# Output order of a scoring model's probability vector.
MODEL_OUTPUT_ORDER = (
    TargetType.HUMAN,
    TargetType.POSSIBLE_LIFE,
    TargetType.NOISE,
    TargetType.UNKNOWN,
)


@dataclass(frozen=True)
class ClassificationResult:
    """Output of the presence classifier."""

    target_type: TargetType
    confidence: float                 # 0.0 to 1.0
    human_probability: float
    life_form_probability: float
    noise_probability: float
    features: PresenceFeatures

    @classmethod
    def from_probabilities(
        cls, probabilities: Sequence[float], features: PresenceFeatures
    ) -> "ClassificationResult":
        """Build a result from model probabilities ordered as ``MODEL_OUTPUT_ORDER``."""
        probs = np.clip(np.asarray(probabilities, dtype=np.float64), 0.0, 1.0)
        if probs.shape != (len(MODEL_OUTPUT_ORDER),):
            raise ValueError(
                f"Expected {len(MODEL_OUTPUT_ORDER)} probabilities, got shape {probs.shape}"
            )
        best = int(np.argmax(probs))
        return cls(
            target_type=MODEL_OUTPUT_ORDER[best],
            confidence=float(probs[best]),
            human_probability=float(probs[0]),
            life_form_probability=float(probs[1]),
            noise_probability=float(probs[2]),
            features=features,
        )


@runtime_checkable
class PresenceModel(Protocol):
    """A trained scorer that can replace the rules."""

    version: str

    def predict(self, vector: NDArray[np.float32]) -> Sequence[float]: ...


@dataclass(frozen=True)
class ModelInfo:
    """Describes which scoring path the classifier uses."""

    is_loaded: bool
    version: str
    model_type: str


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class PresenceClassifier:
    """
    Rule-based presence classifier with an optional model hook.

    Parameters
    ----------
    model : PresenceModel, optional
        Scorer consulted before the rules. Its failures are logged and the
        rules take over.
    feature_extractor : FeatureExtractor, optional
        Used by ``classify_target`` to derive features from a target.
    """

    HUMAN_THRESHOLD = 0.75
    LIFE_THRESHOLD = 0.5

    WALKING_BAND_HZ = (0.8, 2.5)
    BREATHING_BAND_HZ = (0.15, 0.6)
    HUMAN_SIZE_M = (0.3, 2.5)

    RULES_VERSION = "1.0.0"

    def __init__(
        self,
        model: Optional[PresenceModel] = None,
        feature_extractor: Optional[FeatureExtractor] = None,
    ) -> None:
        self._model = model
        self._extractor = feature_extractor or FeatureExtractor()

    @property
    def model_info(self) -> ModelInfo:
        if self._model is None:
            return ModelInfo(is_loaded=False, version=self.RULES_VERSION, model_type="rule_based")
        return ModelInfo(
            is_loaded=True,
            version=getattr(self._model, "version", "unknown"),
            model_type=type(self._model).__name__,
        )

    def classify(self, features: PresenceFeatures) -> ClassificationResult:
        """
        Classify a feature snapshot.

        Parameters
        ----------
        features : PresenceFeatures

        Returns
        -------
        ClassificationResult
        """
        if self._model is not None:
            try:
                return ClassificationResult.from_probabilities(
                    self._model.predict(features.to_vector()), features
                )
            except Exception as e:
                logger.warning(f"Presence model failed, using rules: {e}")

        return self.classify_with_rules(features)

    def classify_target(
        self, target: "PresenceTarget", now: Optional[float] = None
    ) -> ClassificationResult:
        """Classify a tracked target from its own attributes."""
        return self.classify(self._extractor.extract_from_target(target, now))

    def classify_with_rules(self, features: PresenceFeatures) -> ClassificationResult:
        human = self.human_score(features)
        life = self.life_form_score(features)
        noise = self.noise_score(features)

        if human > self.HUMAN_THRESHOLD:
            target_type, confidence = TargetType.HUMAN, human
        elif life > self.LIFE_THRESHOLD:
            target_type, confidence = TargetType.POSSIBLE_LIFE, life
        elif noise > features.overall_confidence:
            target_type, confidence = TargetType.NOISE, 1.0 - noise
        else:
            target_type, confidence = TargetType.UNKNOWN, features.overall_confidence

        return ClassificationResult(
            target_type=target_type,
            confidence=_clamp(confidence),
            human_probability=human,
            life_form_probability=life,
            noise_probability=noise,
            features=features,
        )

    # -- scores ---------------------------------------------------------------

    def human_score(self, features: PresenceFeatures) -> float:
        """Evidence for a human, normalised by the weights that apply."""
        score = 0.0
        weights = 0.0

        if features.has_motion:
            score += 0.3
            weights += 0.3
            low, high = self.WALKING_BAND_HZ
            if low <= features.motion_frequency_hz <= high:
                score += 0.2
        weights += 0.2

        low, high = self.BREATHING_BAND_HZ
        if low <= features.breathing_frequency_hz <= high:
            score += 0.25
        weights += 0.25

        if features.sensor_count >= 2:
            score += 0.15 * min(features.sensor_count, 4) / 4.0
        weights += 0.15

        low, high = self.HUMAN_SIZE_M
        if low <= features.estimated_size_m <= high:
            score += 0.1
        weights += 0.1

        return _clamp(score / weights)

    @staticmethod
    def life_form_score(features: PresenceFeatures) -> float:
        return _clamp(
            (0.3 if features.has_motion else 0.0)
            + (0.2 if features.signal_variance > 10.0 else 0.0)
            + 0.5 * features.overall_confidence
        )

    @staticmethod
    def noise_score(features: PresenceFeatures) -> float:
        return _clamp(
            (0.3 if features.signal_variance > 50.0 else 0.0)
            + (0.2 if features.sensor_count == 1 else 0.0)
            + (0.3 if features.duration_ms < 500.0 else 0.0)
            + (0.2 if features.overall_confidence < 0.3 else 0.0)
        )
