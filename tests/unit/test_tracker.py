"""
Unit tests for the target tracker.
"""

from __future__ import annotations

import pytest

from presence_fusion.fusion.detection import Detection
from presence_fusion.fusion.tracker import (
    TargetTracker,
    TrackerConfig,
    angle_difference,
    classify_by_confidence,
)
from presence_fusion.sensing.classifier import TargetType
from presence_fusion.sensing.readings import DataSource


def make_detection(
    timestamp: float,
    confidence: float = 0.2,
    source: DataSource = DataSource.BLUETOOTH,
    angle=None,
    distance=None,
    is_moving=None,
) -> Detection:
    return Detection(
        source=source,
        confidence=confidence,
        timestamp=timestamp,
        distance=distance,
        angle=angle,
        is_moving=is_moving,
    )


# ===========================================================================
# Matching
# ===========================================================================

class TestMatching:
    def test_nearby_detections_merge(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=10.0, distance=2.0))
        second = tracker.update(make_detection(1.0, angle=20.0, distance=3.0, source=DataSource.ACOUSTIC))
        assert second.id == first.id
        assert len(tracker) == 1
        assert tracker.get(first.id).sources == frozenset([DataSource.BLUETOOTH, DataSource.ACOUSTIC])

    def test_late_distant_detection_creates_new_target(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=10.0, distance=2.0))
        tracker.update(make_detection(1.0, angle=20.0, distance=3.0))
        third = tracker.update(make_detection(11.0, angle=120.0, distance=9.0))
        assert third.id != first.id
        # The idle target is pruned by the same update
        assert len(tracker) == 1
        assert tracker.get(first.id) is None

    def test_match_window_is_exclusive(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=10.0))
        second = tracker.update(make_detection(2.0, angle=10.0))
        assert second.id != first.id

    def test_angle_tolerance_is_exclusive(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=10.0))
        assert tracker.update(make_detection(0.5, angle=40.0)).id != first.id
        assert tracker.update(make_detection(0.6, angle=39.0)).id == first.id

    def test_distance_tolerance_is_exclusive(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, distance=2.0))
        assert tracker.update(make_detection(0.5, distance=5.0)).id != first.id

    def test_angle_wraps_around(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=350.0))
        assert tracker.update(make_detection(0.5, angle=5.0)).id == first.id

    def test_missing_coordinates_match_anything(self):
        tracker = TargetTracker()
        first = tracker.update(make_detection(0.0, angle=10.0, distance=2.0))
        wifi = tracker.update(make_detection(0.5, source=DataSource.WIFI))
        assert wifi.id == first.id
        assert tracker.get(first.id).angle == 10.0
        assert tracker.get(first.id).distance == 2.0

    def test_first_created_target_wins(self):
        tracker = TargetTracker()
        a = tracker.update(make_detection(0.0, angle=0.0))
        tracker.update(make_detection(0.1, angle=90.0))
        assert tracker.update(make_detection(0.2, source=DataSource.WIFI)).id == a.id

    def test_angle_difference(self):
        assert angle_difference(350.0, 10.0) == pytest.approx(20.0)
        assert angle_difference(-170.0, 170.0) == pytest.approx(20.0)
        assert angle_difference(0.0, 180.0) == pytest.approx(180.0)


# ===========================================================================
# Merge
# ===========================================================================

class TestMerge:
    def test_confidence_is_mean_of_history(self):
        tracker = TargetTracker()
        target = tracker.update(make_detection(0.0, confidence=0.1))
        tracker.update(make_detection(0.5, confidence=0.3))
        assert target.confidence == pytest.approx(0.2)

    def test_history_is_bounded(self):
        tracker = TargetTracker(TrackerConfig(history_size=20))
        target = None
        for i in range(25):
            target = tracker.update(make_detection(i * 0.1, confidence=0.0 if i < 5 else 0.4))
        assert len(target.history) == 20
        assert target.confidence == pytest.approx(0.4)

    def test_velocity_from_distance_change(self):
        tracker = TargetTracker()
        target = tracker.update(make_detection(0.0, distance=2.0))
        tracker.update(make_detection(0.5, distance=2.5))
        assert target.velocity == pytest.approx(1.0)
        assert target.distance == 2.5

    def test_motion_flag_carries_forward(self):
        tracker = TargetTracker()
        target = tracker.update(make_detection(0.0, is_moving=True))
        tracker.update(make_detection(0.5))
        assert target.is_moving
        tracker.update(make_detection(1.0, is_moving=False))
        assert not target.is_moving

    def test_last_updated_never_moves_backwards(self):
        tracker = TargetTracker()
        target = tracker.update(make_detection(1.0))
        tracker.update(make_detection(0.5))
        assert target.last_updated == 1.0
        assert target.first_seen == 1.0


# ===========================================================================
# Ageing
# ===========================================================================

class TestAgeing:
    def test_prune_after_max_age(self):
        tracker = TargetTracker()
        target = tracker.update(make_detection(0.0))
        assert tracker.prune(5.0) == []
        assert tracker.prune(5.01) == [target.id]
        assert len(tracker) == 0

    def test_clear(self):
        tracker = TargetTracker()
        tracker.update(make_detection(0.0))
        tracker.clear()
        assert tracker.get_active_targets() == []


# ===========================================================================
# Snapshots and labels
# ===========================================================================

class TestActiveTargets:
    def test_snapshot_in_creation_order(self):
        tracker = TargetTracker()
        a = tracker.update(make_detection(0.0, angle=0.0))
        b = tracker.update(make_detection(0.1, angle=180.0))
        targets = tracker.get_active_targets()
        assert [t.id for t in targets] == [a.id, b.id]
        assert targets[0].sources == frozenset([DataSource.BLUETOOTH])

    def test_snapshot_is_immutable(self):
        tracker = TargetTracker()
        tracker.update(make_detection(0.0))
        snapshot = tracker.get_active_targets()[0]
        with pytest.raises(AttributeError):
            snapshot.confidence = 1.0

    @pytest.mark.parametrize(
        "confidence, sources, expected",
        [
            (0.8, 2, TargetType.HUMAN),
            (0.8, 1, TargetType.POSSIBLE_LIFE),
            (0.5, 3, TargetType.POSSIBLE_LIFE),
            (0.25, 2, TargetType.UNKNOWN),
            (0.1, 4, TargetType.NOISE),
        ],
    )
    def test_confidence_labels(self, confidence, sources, expected):
        assert classify_by_confidence(confidence, sources) is expected
