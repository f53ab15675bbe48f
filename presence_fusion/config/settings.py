"""
Pydantic settings for the presence fusion pipeline
"""

from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from presence_fusion.fusion.detection import SensorWeights
from presence_fusion.fusion.tracker import TrackerConfig


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application settings
    app_name: str = Field(default="Presence Fusion", description="Application name")
    environment: str = Field(default="development", description="Environment (development, testing, production)")
    debug: bool = Field(default=False, description="Debug mode")

    # Fusion settings
    min_detection_confidence: float = Field(default=0.15, description="Per-modality confidence below which a reading is treated as noise")
    weight_wifi: float = Field(default=0.20, description="Wi-Fi sensor weight")
    weight_bluetooth: float = Field(default=0.20, description="Bluetooth sensor weight")
    weight_acoustic: float = Field(default=0.25, description="Acoustic (sonar) sensor weight")
    weight_optical: float = Field(default=0.25, description="Optical motion sensor weight")
    weight_ranging: float = Field(default=0.40, description="Ranging (UWB) sensor weight")
    channel_capacity: int = Field(default=256, description="Capacity of the merged reading channel")
    backpressure_policy: str = Field(default="block", description="Full-channel policy (block, drop_oldest)")

    # Tracker settings
    tracker_match_window_s: float = Field(default=2.0, description="Max age of a target that can still absorb a detection")
    tracker_max_age_s: float = Field(default=5.0, description="Age after which a target is pruned")
    tracker_angle_tolerance_deg: float = Field(default=30.0, description="Angle difference allowed when matching")
    tracker_distance_tolerance_m: float = Field(default=3.0, description="Distance difference allowed when matching")
    tracker_history_size: int = Field(default=20, description="Detections retained per target")

    # Perimeter guard settings
    calibration_duration_s: float = Field(default=30.0, description="Default calibration duration in seconds")
    calibration_sample_interval_s: float = Field(default=0.1, description="Interval between calibration samples")
    guard_error_retry_s: float = Field(default=1.0, description="Delay before the scan loop retries after an error")

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Max log file size in bytes (10MB)")
    log_backup_count: int = Field(default=5, description="Number of log backup files")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_environments = ["development", "testing", "production"]
        if v not in allowed_environments:
            raise ValueError(f"Environment must be one of: {allowed_environments}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level setting."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @field_validator("min_detection_confidence")
    @classmethod
    def validate_min_confidence(cls, v):
        """Validate minimum detection confidence."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Minimum detection confidence must be between 0.0 and 1.0")
        return v

    @field_validator("weight_wifi", "weight_bluetooth", "weight_acoustic", "weight_optical", "weight_ranging")
    @classmethod
    def validate_weight(cls, v):
        """Validate sensor weights."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Sensor weights must be between 0.0 and 1.0")
        return v

    @field_validator("backpressure_policy")
    @classmethod
    def validate_backpressure_policy(cls, v):
        """Validate channel backpressure policy."""
        allowed_policies = ["block", "drop_oldest"]
        if v.lower() not in allowed_policies:
            raise ValueError(f"Backpressure policy must be one of: {allowed_policies}")
        return v.lower()

    @field_validator("channel_capacity", "tracker_history_size")
    @classmethod
    def validate_positive_size(cls, v):
        """Validate buffer sizes."""
        if v < 1:
            raise ValueError("Buffer sizes must be at least 1")
        return v

    @field_validator(
        "tracker_match_window_s",
        "tracker_max_age_s",
        "calibration_sample_interval_s",
        "guard_error_retry_s",
    )
    @classmethod
    def validate_interval_seconds(cls, v):
        """Validate interval settings."""
        if v <= 0:
            raise ValueError("Interval settings must be positive")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == "testing"

    def get_sensor_weights(self) -> SensorWeights:
        """Get the per-modality fusion weights."""
        return SensorWeights(
            wifi=self.weight_wifi,
            bluetooth=self.weight_bluetooth,
            acoustic=self.weight_acoustic,
            optical=self.weight_optical,
            ranging=self.weight_ranging,
        )

    def get_tracker_config(self) -> TrackerConfig:
        """Get target tracker configuration."""
        return TrackerConfig(
            match_window_s=self.tracker_match_window_s,
            max_age_s=self.tracker_max_age_s,
            angle_tolerance_deg=self.tracker_angle_tolerance_deg,
            distance_tolerance_m=self.tracker_distance_tolerance_m,
            history_size=self.tracker_history_size,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_test_settings() -> Settings:
    """Get settings for testing."""
    return Settings(
        environment="testing",
        debug=True,
        calibration_duration_s=0.5,
        calibration_sample_interval_s=0.05,
        guard_error_retry_s=0.05,
        log_level="DEBUG"
    )


def load_settings_from_file(file_path: str) -> Settings:
    """Load settings from a specific file."""
    return Settings(_env_file=file_path)


def validate_settings(settings: Settings) -> List[str]:
    """Validate settings and return list of issues."""
    issues = []

    total_weight = (
        settings.weight_wifi
        + settings.weight_bluetooth
        + settings.weight_acoustic
        + settings.weight_optical
        + settings.weight_ranging
    )
    if total_weight == 0:
        issues.append("At least one sensor weight must be non-zero")

    if settings.tracker_max_age_s < settings.tracker_match_window_s:
        issues.append("Tracker max age should not be shorter than the match window")

    if settings.calibration_duration_s < settings.calibration_sample_interval_s:
        issues.append("Calibration duration is shorter than one sample interval")

    if settings.is_production and settings.debug:
        issues.append("Debug mode should be disabled in production")

    return issues
