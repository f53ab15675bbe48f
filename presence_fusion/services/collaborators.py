"""
Outward-facing collaborators of the perimeter guard.

The guard only depends on the protocols below; delivery, storage and
logging backends are injected. In-memory and logging implementations are
provided for development, the CLI and tests.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Protocol, runtime_checkable

from presence_fusion.services.zone import AlertType, DetectionEvent, PerimeterZone, ZoneStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class AlertSink(Protocol):
    """Delivers alerts (sound, vibration, visual)."""

    async def trigger(self, status: ZoneStatus, alert_type: AlertType) -> None: ...
    async def stop(self) -> None: ...


@runtime_checkable
class DetectionLog(Protocol):
    """Append-only log of detection events."""

    async def log_event(self, event: DetectionEvent) -> None: ...


@runtime_checkable
class ZoneRepository(Protocol):
    """Persists zones together with their baselines."""

    async def load_zone(self, zone_id: str) -> Optional[PerimeterZone]: ...
    async def save_zone(self, zone: PerimeterZone) -> None: ...


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------

class LoggingAlertSink:
    """Alert sink that records alerts and writes them to the log."""

    def __init__(self) -> None:
        self.triggered: List[tuple] = []
        self.active = False

    async def trigger(self, status: ZoneStatus, alert_type: AlertType) -> None:
        self.triggered.append((status, alert_type))
        self.active = True
        level = logging.WARNING if status is ZoneStatus.RED_PRESENCE else logging.INFO
        logger.log(level, f"ALERT {status.value} via {alert_type.value}")

    async def stop(self) -> None:
        if self.active:
            logger.info("Alert stopped")
        self.active = False


class InMemoryDetectionLog:
    """Bounded in-memory detection log."""

    def __init__(self, max_events: int = 1000) -> None:
        self._events: Deque[DetectionEvent] = deque(maxlen=max_events)

    async def log_event(self, event: DetectionEvent) -> None:
        self._events.append(event)
        logger.debug(
            f"Logged {event.status.value} event for zone '{event.zone_name}' "
            f"(deviation {event.deviation:.1f}%, {len(event.targets)} target(s))"
        )

    @property
    def events(self) -> List[DetectionEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


class InMemoryZoneRepository:
    """Zone store backed by a dict."""

    def __init__(self) -> None:
        self._zones: Dict[str, PerimeterZone] = {}

    async def load_zone(self, zone_id: str) -> Optional[PerimeterZone]:
        return self._zones.get(zone_id)

    async def save_zone(self, zone: PerimeterZone) -> None:
        self._zones[zone.id] = zone
        logger.debug(f"Saved zone '{zone.name}' ({zone.id})")
