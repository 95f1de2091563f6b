"""Scheduler configuration.

Loaded in layers:
1. Defaults in SrsConfig
2. TOML file (~/.config/adaptive_srs/config.toml, or $ADAPTIVE_SRS_CONFIG_FILE)
3. Environment variables (ADAPTIVE_SRS_*)
4. Explicit overrides passed to load_config()
"""
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

CONFIG_FILE_ENV = "ADAPTIVE_SRS_CONFIG_FILE"
DEFAULT_CONFIG_FILES = [
    Path.home() / ".config" / "adaptive_srs" / "config.toml",
    Path.home() / ".adaptive_srs.toml",
]
DEFAULT_DB_PATH = str(Path.home() / ".adaptive_srs" / "srs.db")


def _config_file() -> Optional[Path]:
    explicit = os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        return Path(explicit)
    for candidate in DEFAULT_CONFIG_FILES:
        if candidate.exists():
            return candidate
    return None


class SrsConfig(BaseSettings):
    """Global scheduling constants. Per-learner tuning lives in LearningProfile."""

    model_config = SettingsConfigDict(
        env_prefix="ADAPTIVE_SRS_",
        extra="ignore",
        frozen=True,
    )

    # Ease
    starting_ease: float = 2.5
    min_ease: float = 1.3
    max_ease: Optional[float] = 3.5
    ease_step_down_hard: float = 0.15
    ease_step_up_easy: float = 0.15

    # Review-state interval multipliers
    hard_multiplier: float = 1.2
    good_multiplier: float = 2.5
    easy_multiplier: float = 3.5
    min_interval_multiplier: float = 1.0
    max_interval_multiplier: float = 6.0

    # Intervals
    min_interval_days: float = 1
    min_next_review_minutes: float = 10
    learning_steps_minutes: list[float] = Field(default_factory=lambda: [10, 60 * 24])
    relearning_steps_minutes: list[float] = Field(default_factory=lambda: [10, 60 * 24])
    initial_review_interval_days: float = 1
    easy_graduating_interval_days: float = 4
    lapse_interval_days: float = 1
    relearning_interval_factor: float = 0.5

    # Sessions and queue
    session_sizes: list[int] = Field(default_factory=lambda: [10, 20, 30, 40])
    ordering: Literal["priority", "shuffled"] = "shuffled"
    new_card_ratio: float = 0.3
    forgotten_after_days: float = 14

    # Calibration
    calibration_min_cards: int = 20
    calibration_session_window: int = 50
    calibration_trigger_reviews: int = 20
    recalibration_review_limit: int = 100
    recalibration_max_age_days: float = 30

    db_path: str = DEFAULT_DB_PATH

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_file = _config_file()
        if toml_file and toml_file.exists():
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("learning_steps_minutes", "relearning_steps_minutes")
    @classmethod
    def steps_non_negative(cls, v: list[float]) -> list[float]:
        if any(step < 0 for step in v):
            raise ValueError("step minutes must be non-negative")
        return v

    @field_validator("min_interval_days", "min_next_review_minutes", "lapse_interval_days")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return v

    @model_validator(mode="after")
    def check_ranges(self) -> "SrsConfig":
        if self.min_ease > self.starting_ease:
            raise ValueError("min_ease must not exceed starting_ease")
        if self.max_ease is not None and self.max_ease < self.starting_ease:
            raise ValueError("max_ease must not be below starting_ease")
        if self.min_interval_multiplier > self.max_interval_multiplier:
            raise ValueError("min_interval_multiplier must not exceed max_interval_multiplier")
        if not 0 <= self.new_card_ratio <= 1:
            raise ValueError("new_card_ratio must be between 0 and 1")
        return self

    def clamp_ease(self, value: float) -> float:
        value = max(self.min_ease, value)
        if self.max_ease is not None:
            value = min(self.max_ease, value)
        return value

    def steps_for(self, relearning: bool) -> list[float]:
        return self.relearning_steps_minutes if relearning else self.learning_steps_minutes


def load_config(overrides: dict[str, Any] | None = None) -> SrsConfig:
    """Resolve configuration; explicit overrides take final precedence."""
    return SrsConfig(**(overrides or {}))
