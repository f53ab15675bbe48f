"""
Typed, timestamped readings delivered by the acquisition layer.

Each modality has its own immutable variant. They are deliberately not
subclasses of a common base: code that needs per-modality behaviour
dispatches on the variant type with a lookup table (see
``as_sensor_reading`` and ``presence_fusion.fusion.detection``).

All timestamps are UNIX epoch seconds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type, Union

import numpy as np

logger = logging.getLogger(__name__)


class DataSource(Enum):
    """Sensing modality a reading came from."""

    WIFI = "wifi"
    BLUETOOTH = "bluetooth"
    ACOUSTIC = "acoustic"
    OPTICAL = "optical"
    RANGING = "ranging"
    ACCELEROMETER = "accelerometer"


RADIO_SOURCES = frozenset([DataSource.WIFI, DataSource.BLUETOOTH])


# ---------------------------------------------------------------------------
# Generic sample
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SensorReading:
    """A raw sample reduced to modality, time, values and free-form metadata."""

    source: DataSource
    timestamp: float
    values: Tuple[float, ...]
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


# ---------------------------------------------------------------------------
# Modality variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BluetoothReading:
    """BLE advertisement from a single device."""

    device_id: str
    rssi: float                       # dBm
    timestamp: float
    tx_power: float = -59.0           # Calibrated RSSI at 1 m
    variance: Optional[float] = None  # Pre-computed by the scanner, if available
    distance: Optional[float] = None  # Metres, if the scanner estimated it
    angle: Optional[float] = None     # Degrees

    source = DataSource.BLUETOOTH


@dataclass(frozen=True)
class WifiReading:
    """Beacon strength from one access point."""

    access_point_id: str
    rssi: float                       # dBm
    timestamp: float
    frequency_mhz: float = 2400.0

    source = DataSource.WIFI


@dataclass(frozen=True)
class AcousticReading:
    """
    Result of one active sonar ping.

    ``samples``/``sample_rate``/``carrier_hz`` may be supplied instead of a
    ``doppler_shift`` so the shift can be estimated spectrally.
    """

    has_echo: bool
    amplitude: float                  # 0..1
    quality: float                    # 0..1
    timestamp: float
    distance: Optional[float] = None  # Nearest echo, metres
    doppler_shift: Optional[float] = None  # Hz
    motion_score: Optional[float] = None
    angle: float = 0.0                # Speaker faces forward
    samples: Optional[Tuple[float, ...]] = None
    sample_rate: Optional[float] = None
    carrier_hz: Optional[float] = None

    source = DataSource.ACOUSTIC


@dataclass(frozen=True)
class OpticalReading:
    """Frame-differencing motion in one of eight camera sectors."""

    sector: int                       # 0..7
    motion_magnitude: float           # 0..1
    angle: float                      # Degrees
    timestamp: float

    source = DataSource.OPTICAL

    def __post_init__(self):
        if not 0 <= self.sector <= 7:
            raise ValueError(f"Optical sector must be in 0..7, got {self.sector}")


@dataclass(frozen=True)
class RangingReading:
    """Precise ranging fix (e.g. UWB)."""

    distance: float                   # Metres
    azimuth: float                    # Degrees
    confidence: float                 # 0..1
    timestamp: float
    elevation: Optional[float] = None

    source = DataSource.RANGING


@dataclass(frozen=True)
class AccelerationReading:
    """Raw tri-axis acceleration of the sensing device itself."""

    x: float
    y: float
    z: float
    timestamp: float

    source = DataSource.ACCELEROMETER


ModalityReading = Union[
    BluetoothReading,
    WifiReading,
    AcousticReading,
    OpticalReading,
    RangingReading,
    AccelerationReading,
]


# ---------------------------------------------------------------------------
# Variant -> generic sample
# ---------------------------------------------------------------------------

def _bluetooth_sample(reading: BluetoothReading) -> SensorReading:
    return SensorReading(
        source=DataSource.BLUETOOTH,
        timestamp=reading.timestamp,
        values=(reading.rssi,),
        metadata=MappingProxyType({
            "device_id": reading.device_id,
            "tx_power": reading.tx_power,
            "variance": reading.variance,
            "distance": reading.distance,
        }),
    )


def _wifi_sample(reading: WifiReading) -> SensorReading:
    return SensorReading(
        source=DataSource.WIFI,
        timestamp=reading.timestamp,
        values=(reading.rssi,),
        metadata=MappingProxyType({
            "access_point_id": reading.access_point_id,
            "frequency_mhz": reading.frequency_mhz,
        }),
    )


def _acoustic_sample(reading: AcousticReading) -> SensorReading:
    return SensorReading(
        source=DataSource.ACOUSTIC,
        timestamp=reading.timestamp,
        values=(reading.amplitude if reading.has_echo else 0.0,),
        metadata=MappingProxyType({
            "distance": reading.distance,
            "doppler_shift": reading.doppler_shift,
            "quality": reading.quality,
        }),
    )


def _optical_sample(reading: OpticalReading) -> SensorReading:
    return SensorReading(
        source=DataSource.OPTICAL,
        timestamp=reading.timestamp,
        values=(reading.motion_magnitude,),
        metadata=MappingProxyType({"sector": reading.sector, "angle": reading.angle}),
    )


def _ranging_sample(reading: RangingReading) -> SensorReading:
    return SensorReading(
        source=DataSource.RANGING,
        timestamp=reading.timestamp,
        values=(reading.distance, reading.azimuth),
        metadata=MappingProxyType({
            "confidence": reading.confidence,
            "elevation": reading.elevation,
        }),
    )


def _acceleration_sample(reading: AccelerationReading) -> SensorReading:
    return SensorReading(
        source=DataSource.ACCELEROMETER,
        timestamp=reading.timestamp,
        values=(reading.x, reading.y, reading.z),
    )


_SAMPLE_BUILDERS: Dict[Type[Any], Callable[[Any], SensorReading]] = {
    BluetoothReading: _bluetooth_sample,
    WifiReading: _wifi_sample,
    AcousticReading: _acoustic_sample,
    OpticalReading: _optical_sample,
    RangingReading: _ranging_sample,
    AccelerationReading: _acceleration_sample,
}


def as_sensor_reading(reading: Union[ModalityReading, SensorReading]) -> SensorReading:
    """Reduce a modality variant to a generic ``SensorReading``."""
    if isinstance(reading, SensorReading):
        return reading
    builder = _SAMPLE_BUILDERS.get(type(reading))
    if builder is None:
        raise TypeError(f"Unsupported reading type: {type(reading).__name__}")
    return builder(reading)


def acoustic_samples_array(reading: AcousticReading) -> Optional[np.ndarray]:
    """Raw microphone samples of an acoustic reading as a float array, if any."""
    if reading.samples is None:
        return None
    return np.asarray(reading.samples, dtype=np.float64)
