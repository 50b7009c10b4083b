"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Literal, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import DAY_NAMES, SchedulePolicy, parse_time_of_day, parse_weekday


class DefaultsConfig(BaseModel):
    """Working hours used when neither provider nor shop define their own."""
    duration_minutes: int = 30
    start_time: str = "09:00"
    end_time: str = "18:00"
    slot_step_minutes: int = 30
    open_days: List[int | str] = Field(default_factory=lambda: list(DAY_NAMES[:5]))

    @field_validator("duration_minutes", "slot_step_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure minute values are positive."""
        if value <= 0:
            raise ValueError("minute values must be greater than zero")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        """Validate "HH:MM" strings."""
        parsed = parse_time_of_day(value)
        return parsed.strftime("%H:%M")

    @field_validator("open_days")
    @classmethod
    def validate_open_days(cls, value: List[int | str]) -> List[int | str]:
        """Ensure weekdays are valid and deduplicated."""
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int | str] = []
        for day in value:
            index = parse_weekday(day)
            if index not in seen:
                deduped.append(DAY_NAMES[index])
                seen.add(index)
        return deduped

    @model_validator(mode="after")
    def validate_hours_order(self) -> "DefaultsConfig":
        """Ensure the configured window opens before it closes."""
        if parse_time_of_day(self.end_time) <= parse_time_of_day(self.start_time):
            raise ValueError("end_time must be later than start_time")
        return self

    def to_policy(self, timezone: str) -> SchedulePolicy:
        return SchedulePolicy.from_labels(
            self.open_days,
            self.start_time,
            self.end_time,
            slot_step_minutes=self.slot_step_minutes,
            timezone=timezone,
        )


class StorageConfig(BaseModel):
    """Where shop settings and appointments live."""
    backend: Literal["memory", "supabase"] = "memory"
    data_file: Optional[Path] = None
    supabase_url: str = ""
    supabase_key: str = ""
    timeout_seconds: int = 30

    @model_validator(mode="after")
    def validate_supabase_credentials(self) -> "StorageConfig":
        if self.backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError("supabase backend requires supabase_url and supabase_key")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/Sao_Paulo"
    log_level: str = "WARNING"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def default_policy(self) -> SchedulePolicy:
        """Schedule policy built from the configured defaults."""
        return self.defaults.to_policy(self.timezone)

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
