"""
Temporal identity tracking of fused detections.

Detections are matched to live targets by recency, bearing and range; a
detection that matches nothing starts a new target. Targets that have not
been updated for ``max_age_s`` are pruned. Time is the timestamp of the
incoming detection unless the caller supplies ``now``.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, List, Optional

from presence_fusion.fusion.detection import Detection, clamp
from presence_fusion.sensing.classifier import ClassificationResult, TargetType
from presence_fusion.sensing.readings import DataSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerConfig:
    """Matching and ageing parameters."""

    match_window_s: float = 2.0
    max_age_s: float = 5.0
    angle_tolerance_deg: float = 30.0
    distance_tolerance_m: float = 3.0
    history_size: int = 20


@dataclass
class TrackedTarget:
    """Mutable tracker-internal state of one target."""

    id: str
    first_seen: float
    last_updated: float
    confidence: float
    angle: Optional[float] = None
    distance: Optional[float] = None
    is_moving: bool = False
    velocity: Optional[float] = None   # Radial speed, m/s
    history: Deque[Detection] = field(default_factory=deque)

    @property
    def sources(self) -> FrozenSet[DataSource]:
        return frozenset(d.source for d in self.history)


@dataclass(frozen=True)
class PresenceTarget:
    """Immutable view of a target handed to consumers."""

    id: str
    angle: Optional[float]
    distance: Optional[float]
    confidence: float
    target_type: TargetType
    is_moving: bool
    last_updated: float
    first_seen: float
    sources: FrozenSet[DataSource]
    velocity: Optional[float] = None
    classification: Optional[ClassificationResult] = None


def angle_difference(a: float, b: float) -> float:
    """Smallest absolute difference between two bearings in degrees."""
    diff = abs(a - b) % 360.0
    return min(diff, 360.0 - diff)


def classify_by_confidence(confidence: float, source_count: int) -> TargetType:
    """Lightweight label from averaged confidence and source diversity."""
    if confidence > 0.7 and source_count >= 2:
        return TargetType.HUMAN
    if confidence > 0.3:
        return TargetType.POSSIBLE_LIFE
    if confidence < 0.2:
        return TargetType.NOISE
    return TargetType.UNKNOWN


class TargetTracker:
    """
    Maintains the live target map.

    Not thread-safe: the fusion engine serialises all updates through a
    single consumer.
    """

    def __init__(self, config: Optional[TrackerConfig] = None) -> None:
        self.config = config or TrackerConfig()
        self._targets: Dict[str, TrackedTarget] = {}

    def __len__(self) -> int:
        return len(self._targets)

    def get(self, target_id: str) -> Optional[TrackedTarget]:
        return self._targets.get(target_id)

    def update(self, detection: Detection, now: Optional[float] = None) -> TrackedTarget:
        """
        Merge ``detection`` into a matching target or create a new one.

        Args:
            detection: Weighted detection to absorb.
            now: Reference time in seconds; defaults to the detection timestamp.

        Returns:
            The target that absorbed the detection.
        """
        if now is None:
            now = detection.timestamp

        target = self._find_match(detection, now)
        if target is None:
            target = self._create(detection)
            logger.debug(f"New target {target.id} from {detection.source.value}")
        else:
            self._merge(target, detection)

        self.prune(now)
        return target

    def prune(self, now: float) -> List[str]:
        """Drop targets idle for longer than ``max_age_s``; returns their ids."""
        stale = [
            target_id for target_id, target in self._targets.items()
            if now - target.last_updated > self.config.max_age_s
        ]
        for target_id in stale:
            del self._targets[target_id]
        if stale:
            logger.debug(f"Pruned {len(stale)} stale target(s)")
        return stale

    def clear(self) -> None:
        self._targets.clear()

    def get_active_targets(self) -> List[PresenceTarget]:
        """Live targets in creation order, labelled by confidence."""
        return [
            PresenceTarget(
                id=target.id,
                angle=target.angle,
                distance=target.distance,
                confidence=target.confidence,
                target_type=classify_by_confidence(target.confidence, len(target.sources)),
                is_moving=target.is_moving,
                last_updated=target.last_updated,
                first_seen=target.first_seen,
                sources=target.sources,
                velocity=target.velocity,
            )
            for target in self._targets.values()
        ]

    # -- internals -----------------------------------------------------------

    def _find_match(self, detection: Detection, now: float) -> Optional[TrackedTarget]:
        cfg = self.config
        for target in self._targets.values():
            if not now - target.last_updated < cfg.match_window_s:
                continue
            if (
                detection.angle is not None
                and target.angle is not None
                and not angle_difference(detection.angle, target.angle) < cfg.angle_tolerance_deg
            ):
                continue
            if (
                detection.distance is not None
                and target.distance is not None
                and not abs(detection.distance - target.distance) < cfg.distance_tolerance_m
            ):
                continue
            return target
        return None

    def _create(self, detection: Detection) -> TrackedTarget:
        target = TrackedTarget(
            id=str(uuid.uuid4()),
            first_seen=detection.timestamp,
            last_updated=detection.timestamp,
            confidence=clamp(detection.confidence),
            angle=detection.angle,
            distance=detection.distance,
            is_moving=bool(detection.is_moving),
            history=deque([detection], maxlen=self.config.history_size),
        )
        self._targets[target.id] = target
        return target

    def _merge(self, target: TrackedTarget, detection: Detection) -> None:
        target.history.append(detection)

        if detection.distance is not None:
            elapsed = detection.timestamp - target.last_updated
            if target.distance is not None and elapsed > 0:
                target.velocity = abs(detection.distance - target.distance) / elapsed
            target.distance = detection.distance
        if detection.angle is not None:
            target.angle = detection.angle
        if detection.is_moving is not None:
            target.is_moving = detection.is_moving

        # Streams are only ordered individually, so never move backwards.
        target.last_updated = max(target.last_updated, detection.timestamp)
        target.confidence = clamp(
            sum(d.confidence for d in target.history) / len(target.history)
        )
