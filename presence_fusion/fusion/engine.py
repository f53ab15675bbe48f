"""
Sensor fusion engine.

Merges any number of asynchronous modality streams through a bounded
channel into a single consumer. The consumer converts each reading into a
weighted detection, feeds the target tracker and relabels the live targets
with the presence classifier.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterable,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
)

from presence_fusion.fusion.channel import BackpressurePolicy, ReadingChannel
from presence_fusion.fusion.detection import (
    DEFAULT_MIN_CONFIDENCE,
    Detection,
    SensorWeights,
    SignalProcessors,
    reading_to_detection,
)
from presence_fusion.fusion.tracker import PresenceTarget, TargetTracker, TrackerConfig
from presence_fusion.sensing.classifier import ClassificationResult, PresenceClassifier
from presence_fusion.sensing.feature_extractor import FeatureExtractor
from presence_fusion.sensing.readings import DataSource, ModalityReading

if TYPE_CHECKING:
    from presence_fusion.config.settings import Settings

logger = logging.getLogger(__name__)


class FusionEngine:
    """
    Multi-modal presence fusion.

    Args:
        weights: Per-modality sensor weights.
        min_confidence: Per-modality confidence below which readings are noise.
        tracker_config: Target matching and ageing parameters.
        classifier: Presence classifier used to label targets.
        feature_extractor_factory: Builds the extractor kept for each live target.
        channel_capacity: Capacity of the merged reading channel.
        backpressure_policy: Behaviour of producers when the channel is full.
    """

    def __init__(
        self,
        weights: Optional[SensorWeights] = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        tracker_config: Optional[TrackerConfig] = None,
        classifier: Optional[PresenceClassifier] = None,
        feature_extractor_factory: Callable[[], FeatureExtractor] = FeatureExtractor,
        channel_capacity: int = 256,
        backpressure_policy: BackpressurePolicy = BackpressurePolicy.BLOCK,
    ) -> None:
        self.weights = weights or SensorWeights()
        self.min_confidence = min_confidence
        self.tracker = TargetTracker(tracker_config)
        self.processors = SignalProcessors()
        self.classifier = classifier or PresenceClassifier()
        self._extractor_factory = feature_extractor_factory
        self._channel_capacity = channel_capacity
        self._policy = backpressure_policy

        # Readings behind each live target, bounded like its detection history
        self._target_readings: Dict[str, Deque[ModalityReading]] = {}
        # Long-running signal histories per live target
        self._extractors: Dict[str, FeatureExtractor] = {}
        self._targets: List[PresenceTarget] = []

        self.is_running = False
        self._channel: Optional[ReadingChannel[ModalityReading]] = None
        self._producers: Dict[DataSource, asyncio.Task] = {}
        self._consumer: Optional[asyncio.Task] = None

        self.stats = {
            "total_readings": 0,
            "detections": 0,
            "rejected_readings": 0,
            "processing_errors": 0,
            "stream_faults": 0,
            "streams_ended": 0,
        }

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs: Any) -> "FusionEngine":
        """Build an engine from application settings."""
        return cls(
            weights=settings.get_sensor_weights(),
            min_confidence=settings.min_detection_confidence,
            tracker_config=settings.get_tracker_config(),
            channel_capacity=settings.channel_capacity,
            backpressure_policy=BackpressurePolicy(settings.backpressure_policy),
            **kwargs,
        )

    # -- outputs -------------------------------------------------------------

    @property
    def targets(self) -> List[PresenceTarget]:
        """Classified live targets in creation order."""
        return list(self._targets)

    @property
    def active_sources(self) -> List[DataSource]:
        return [source for source, task in self._producers.items() if not task.done()]

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats["live_targets"] = len(self.tracker)
        stats["active_streams"] = len(self.active_sources)
        if self._channel is not None:
            stats["channel"] = self._channel.get_stats()
        return stats

    # -- lifecycle -----------------------------------------------------------

    async def start(self, streams: Mapping[DataSource, AsyncIterable[ModalityReading]]) -> None:
        """
        Start consuming ``streams``, one producer task per modality.

        An empty mapping is legal; the engine then simply produces nothing.
        """
        if self.is_running:
            return

        logger.info(f"Starting fusion engine with {len(streams)} stream(s): "
                    f"{', '.join(s.value for s in streams) or 'none'}")
        self._channel = ReadingChannel(self._channel_capacity, self._policy)
        self.is_running = True
        self._consumer = asyncio.create_task(self._consume_loop())
        for source, stream in streams.items():
            self._producers[source] = asyncio.create_task(self._pump(source, stream))

    async def drain(self) -> None:
        """Wait for every stream to end and every queued reading to be processed."""
        if self._producers:
            await asyncio.gather(*self._producers.values(), return_exceptions=True)
        if self._channel is not None:
            await self._channel.join()

    async def stop(self) -> None:
        """Cancel all streams and clear transient state."""
        self.is_running = False

        tasks = list(self._producers.values())
        if self._consumer is not None:
            tasks.append(self._consumer)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._producers.clear()
        self._consumer = None
        if self._channel is not None:
            self._channel.clear()
        self.reset()
        logger.info("Fusion engine stopped")

    def reset(self) -> None:
        """Forget all targets and rolling signal history."""
        self.tracker.clear()
        self.processors.reset()
        self._target_readings.clear()
        self._extractors.clear()
        self._targets = []

    # -- processing ----------------------------------------------------------

    def process_reading(self, reading: ModalityReading) -> Optional[Detection]:
        """
        Run one reading through conversion, tracking and classification.

        Returns:
            The detection forwarded to the tracker, or None if rejected.
        """
        self.stats["total_readings"] += 1
        detection = reading_to_detection(
            reading, self.processors, self.weights, self.min_confidence
        )
        if detection is None:
            self.stats["rejected_readings"] += 1
            # Time still advances for targets nobody is seeing any more
            if self.tracker.prune(reading.timestamp):
                self._refresh_targets()
            return None

        self.stats["detections"] += 1
        target = self.tracker.update(detection)

        readings = self._target_readings.get(target.id)
        if readings is None:
            readings = deque(maxlen=self.tracker.config.history_size)
            self._target_readings[target.id] = readings
        readings.append(reading)

        extractor = self._extractors.get(target.id)
        if extractor is None:
            extractor = self._extractor_factory()
            self._extractors[target.id] = extractor
        extractor.observe([reading])

        self._refresh_targets()
        return detection

    def classify(self, target: PresenceTarget) -> ClassificationResult:
        """Classify a live target from the readings that built it."""
        readings = self._target_readings.get(target.id)
        extractor = self._extractors.get(target.id)
        if not readings or extractor is None:
            return self.classifier.classify_target(target)
        return self.classifier.classify(extractor.summarize(readings))

    def _refresh_targets(self) -> None:
        live = self.tracker.get_active_targets()
        live_ids = {t.id for t in live}
        for target_id in list(self._target_readings):
            if target_id not in live_ids:
                del self._target_readings[target_id]
        for target_id in list(self._extractors):
            if target_id not in live_ids:
                del self._extractors[target_id]

        labelled = []
        for target in live:
            result = self.classify(target)
            labelled.append(replace(target, target_type=result.target_type, classification=result))
        self._targets = labelled

    # -- tasks ---------------------------------------------------------------

    async def _pump(self, source: DataSource, stream: AsyncIterable[ModalityReading]) -> None:
        """Forward one stream into the channel, isolating its failures."""
        try:
            async for reading in stream:
                await self._channel.put(reading)
        except asyncio.CancelledError:
            logger.info(f"{source.value} stream cancelled")
            raise
        except Exception as e:
            self.stats["stream_faults"] += 1
            logger.error(f"{source.value} stream failed, dropping it: {e}", exc_info=True)
        else:
            self.stats["streams_ended"] += 1
            logger.info(f"{source.value} stream ended")

    async def _consume_loop(self) -> None:
        """Single writer into the tracker."""
        try:
            while True:
                reading = await self._channel.get()
                try:
                    self.process_reading(reading)
                except Exception as e:
                    self.stats["processing_errors"] += 1
                    logger.error(f"Error processing {type(reading).__name__}: {e}", exc_info=True)
                finally:
                    self._channel.task_done()
        except asyncio.CancelledError:
            logger.info("Fusion consume loop cancelled")
            raise
