"""Configuration management for the clinic scheduling engine."""

from datetime import time
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Default working hours
    working_day_start: time = Field(
        default=time(8, 0),
        description="Start of the clinic-wide working day",
    )
    working_day_end: time = Field(
        default=time(18, 0),
        description="End of the clinic-wide working day (00:00 = midnight)",
    )

    # Slot generation
    slot_granularity_minutes: int = Field(
        default=15,
        ge=1,
        description="Step between consecutive candidate start times",
    )
    default_search_days: int = Field(
        default=7,
        ge=0,
        description="Search window length when no preferences are given",
    )
    default_duration_minutes: int = Field(
        default=30,
        ge=1,
        description="Service duration used when a request does not specify one",
    )

    # Scoring caps
    proximity_max_points: float = Field(default=40.0, ge=0)
    proximity_decay_per_day: float = Field(default=5.0, ge=0)
    time_preference_max_points: float = Field(default=30.0, ge=0)
    utilization_max_points: float = Field(default=20.0, ge=0)
    workload_max_points: float = Field(default=10.0, ge=0)
    workload_penalty_per_appointment: float = Field(
        default=2.0,
        ge=0,
        description="Workload points lost per appointment above the pool mean",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @model_validator(mode="after")
    def _check_score_caps(self) -> "Settings":
        total = (
            self.proximity_max_points
            + self.time_preference_max_points
            + self.utilization_max_points
            + self.workload_max_points
        )
        if abs(total - 100.0) > 1e-9:
            raise ValueError(f"Scoring caps must sum to 100, got {total:g}")
        return self

    @property
    def max_points(self) -> tuple[float, float, float, float]:
        """Caps for (proximity, time preference, utilization, workload)."""
        return (
            self.proximity_max_points,
            self.time_preference_max_points,
            self.utilization_max_points,
            self.workload_max_points,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
