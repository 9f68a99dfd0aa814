"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.booking import BookingPolicy
from .domain.exceptions import InvalidTimeFormat
from .domain.models import parse_time


class DefaultsConfig(BaseModel):
    """Default settings for slot listing and booking."""
    granularity_minutes: int = 30
    duration_minutes: int = 30

    @field_validator("granularity_minutes", "duration_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure slot lengths are positive."""
        if value <= 0:
            raise ValueError("granularity_minutes and duration_minutes must be greater than zero")
        return value


class ScanWindowConfig(BaseModel):
    """Window of the day shown by slot listings, independent of working hours."""
    start: str = "06:00"
    end: str = "22:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        """Validate times are HH:MM."""
        try:
            parse_time(value)
        except InvalidTimeFormat as exc:
            raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "ScanWindowConfig":
        """Ensure the window opens before it closes."""
        if parse_time(self.end) <= parse_time(self.start):
            raise ValueError("scan_window end must be later than start")
        return self


class PolicyConfig(BaseModel):
    """Minimum notice before an appointment can be cancelled or rescheduled."""
    patient_notice_minutes: int = 120
    staff_notice_minutes: int = 30

    @field_validator("patient_notice_minutes", "staff_notice_minutes")
    @classmethod
    def validate_notice(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Notice periods cannot be negative")
        return value

    def to_policy(self) -> BookingPolicy:
        return BookingPolicy(
            patient_notice_minutes=self.patient_notice_minutes,
            staff_notice_minutes=self.staff_notice_minutes,
        )


class ApiConfig(BaseModel):
    """Hospital REST API used as the schedule store."""
    base_url: str = "http://localhost:8080/api"
    token: Optional[str] = None
    timeout_seconds: float = 30

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class Doctor(BaseModel):
    """Doctor configuration."""
    name: str  # Used as alias
    id: str
    specialty: str = ""

    def display_name(self) -> str:
        """Get display name."""
        if self.specialty:
            return f"{self.name} ({self.specialty})"
        return self.name


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    scan_window: ScanWindowConfig = Field(default_factory=ScanWindowConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    data_file: Optional[Path] = None
    doctors: List[Doctor] = Field(default_factory=list)

    @field_validator("doctors")
    @classmethod
    def validate_doctors(cls, value: List[Doctor]) -> List[Doctor]:
        """Ensure doctor aliases and ids are unique."""
        seen_names: set[str] = set()
        seen_ids: set[str] = set()
        for doctor in value:
            name_key = doctor.name.lower()
            if name_key in seen_names:
                raise ValueError(f"Duplicate doctor name detected: {doctor.name}")
            if doctor.id in seen_ids:
                raise ValueError(f"Duplicate doctor id detected: {doctor.id}")
            seen_names.add(name_key)
            seen_ids.add(doctor.id)
        return value

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

        config = cls(**data)
        if config.data_file is not None and not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file
        return config

    def find_doctor_by_name(self, name: str) -> Doctor | None:
        """Find a doctor by their name (alias)."""
        for doctor in self.doctors:
            if doctor.name.lower() == name.lower():
                return doctor
        return None

    def find_doctor_by_id(self, doctor_id: str) -> Doctor | None:
        for doctor in self.doctors:
            if doctor.id == doctor_id:
                return doctor
        return None

    def resolve_doctor(self, identifier: str) -> str:
        """
        Resolve a doctor identifier (alias or id) to a doctor id.

        Unknown identifiers are passed through as ids, so doctors that are
        not configured locally can still be queried.
        """
        doctor = self.find_doctor_by_name(identifier) or self.find_doctor_by_id(identifier)
        if doctor:
            return doctor.id
        return identifier


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


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the given config file, or defaults when no config file exists."""
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)
    return AppConfig()
