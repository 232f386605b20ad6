"""
Hearing Dose Engine Configuration
=================================

This module handles configuration loading for the dose engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    HEARING_DOSE_CONFIG             -> path of the YAML file
    HEARING_DOSE_MODEL              -> dose.model
    HEARING_DOSE_TIMEZONE           -> dose.timezone
    HEARING_DOSE_THRESHOLDS         -> notifications.thresholds ("50,80,100")
    HEARING_DOSE_COOLDOWN_SECONDS   -> notifications.cooldown_seconds
    HEARING_DOSE_INACTIVITY_SECONDS -> session.inactivity_timeout_seconds
    HEARING_DOSE_DAILY_LIMIT        -> session.daily_limit_percent
    HEARING_DOSE_SOURCE_PATH        -> sync.source_path
    HEARING_DOSE_STORAGE_BACKEND    -> storage.backend
    HEARING_DOSE_DB_PATH            -> storage.sqlite_path
    HEARING_DOSE_LOG_LEVEL          -> logging.level
    HEARING_DOSE_LOG_FORMAT         -> logging.format

Invalid Values:
    By default an invalid section is replaced by its defaults (NIOSH,
    thresholds {50, 80, 100}, 1 h cooldown, 5 min inactivity) and a warning
    is logged. load_config(strict=True) raises ConfigError instead.

Example:
    from hearing_dose.config import load_config

    settings = load_config()
    print(settings.dose.model)
    print(settings.notifications.thresholds)
"""

import os
import logging
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any, Callable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hearing_dose.errors import ConfigError
from hearing_dose.models.dose import ExchangeRateModel


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class DoseConfig(BaseModel):
    """Dose accounting configuration."""

    model: ExchangeRateModel = Field(
        default=ExchangeRateModel.NIOSH,
        description="Exchange-rate model: 'niosh' (3 dB) or 'osha' (5 dB)",
    )
    secondary_threshold_db: float = Field(
        default=85.0,
        gt=0,
        description="Level counted as 'time above' in daily records",
    )
    high_threshold_db: float = Field(
        default=90.0,
        gt=0,
        description="Level counted as 'time above high' in daily records",
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone that defines calendar days (None = system local)",
    )

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            _resolve_timezone(value)
        return value

    def resolve_tz(self) -> Optional[tzinfo]:
        return _resolve_timezone(self.timezone) if self.timezone else None


class NotificationConfig(BaseModel):
    """Notification gate configuration."""

    enabled: bool = Field(default=True, description="Evaluate threshold notifications")
    thresholds: List[int] = Field(
        default_factory=lambda: [50, 80, 100],
        description="Threshold percents of the daily limit",
    )
    cooldown_seconds: float = Field(
        default=3600.0,
        ge=0,
        description="Minimum time between two firings of one threshold",
    )
    actionable_enabled: bool = Field(default=True)
    actionable_cooldown_seconds: float = Field(default=600.0, ge=0)
    eta_warning_minutes: float = Field(
        default=30.0,
        gt=0,
        description="Actionable alert fires when the ETA to limit drops below this",
    )
    volume_suggestions_enabled: bool = Field(default=True)
    volume_cooldown_seconds: float = Field(default=1800.0, ge=0)
    volume_alert_threshold_db: float = Field(
        default=85.0,
        gt=0,
        description="Only suggest lowering the volume at or above this level",
    )
    suggestion_horizon_minutes: float = Field(
        default=120.0,
        gt=0,
        description="Listening time a suggested level should last",
    )
    ledger_path: Optional[str] = Field(
        default=None,
        description="JSON file for persisted cooldowns (None = in memory)",
    )

    @field_validator("thresholds")
    @classmethod
    def _check_thresholds(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("at least one threshold is required")
        for threshold in value:
            if not 1 <= threshold <= 500:
                raise ValueError(f"threshold {threshold} out of range [1, 500]")
        return sorted(set(value))


class SessionConfig(BaseModel):
    """Listening session configuration."""

    inactivity_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="End the session after this long without a sample",
    )
    reference_level_db: float = Field(
        default=80.0,
        gt=0,
        description="Assumed level for the live 'minutes left' estimate",
    )
    daily_limit_percent: int = Field(
        default=100,
        ge=1,
        le=200,
        description="User daily limit (100 = standard criterion)",
    )
    break_interval_minutes: float = Field(
        default=60.0,
        gt=0,
        description="Session length after which a break is suggested",
    )


class SyncConfig(BaseModel):
    """Sample sync configuration."""

    full_sync_days: int = Field(default=30, ge=1, le=365, description="Full sync window")
    refresh_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Background dose refresh interval",
    )
    source_path: Optional[str] = Field(
        default=None,
        description="JSON sample file for the file source",
    )


class InsightConfig(BaseModel):
    """Predictive insight configuration."""

    recent_window_minutes: float = Field(default=30.0, gt=0)
    history_days: int = Field(default=7, ge=1, description="Days used for the typical burn rate")
    eta_danger_minutes: float = Field(default=30.0, gt=0)


class StorageConfig(BaseModel):
    """Persistence configuration."""

    backend: str = Field(default="memory", description="Sample store: 'memory' or 'sqlite'")
    sqlite_path: str = Field(default="./data/hearing_dose.db")
    handoff_path: Optional[str] = Field(
        default=None,
        description="JSON file shared with the glance widget (None = in memory)",
    )

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("memory", "sqlite"):
            raise ValueError(f"unknown storage backend '{value}'")
        return value


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the hearing dose engine.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    dose: DoseConfig = Field(default_factory=DoseConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    insight: InsightConfig = Field(default_factory=InsightConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None, strict: bool = False) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        strict: Raise ConfigError on invalid values instead of substituting
            defaults

    Returns:
        Settings: Loaded configuration

    Raises:
        ConfigError: In strict mode, if the file or any value is invalid
    """
    # Find config file
    if config_path is None:
        config_path = os.environ.get("HEARING_DOSE_CONFIG")
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data: dict = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            _reject(f"Config file {config_path} is not valid YAML: {e}", strict)
            loaded = {}
        if not isinstance(loaded, dict):
            _reject(f"Config file {config_path} must contain a mapping", strict)
            loaded = {}
        config_data = loaded
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data, strict)

    # Build settings object
    try:
        return Settings.model_validate(config_data)
    except ValidationError as e:
        if strict:
            raise ConfigError(f"Invalid configuration: {e}") from e

    return _validate_by_section(config_data)


def _validate_by_section(config_data: dict) -> Settings:
    """Validate each section on its own, replacing invalid ones by defaults."""
    valid: dict = {}
    for name, field in Settings.model_fields.items():
        if name not in config_data:
            continue
        section_type = field.annotation
        try:
            valid[name] = section_type.model_validate(config_data[name])
        except ValidationError as e:
            logger.warning(
                f"Invalid '{name}' configuration, using defaults: "
                f"{e.error_count()} error(s), first: {e.errors()[0]['msg']}"
            )
    return Settings(**valid)


def _reject(message: str, strict: bool) -> None:
    if strict:
        raise ConfigError(message)
    logger.warning(message)


def _parse_thresholds(raw: str) -> List[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


def _apply_env_overrides(config_data: dict, strict: bool = False) -> None:
    """Apply environment variable overrides to config data."""

    def override(env_name: str, section: str, key: str, cast: Callable[[str], Any]) -> None:
        raw = os.environ.get(env_name)
        if not raw:
            return
        try:
            value = cast(raw)
        except ValueError:
            _reject(f"Ignoring invalid {env_name}={raw!r}", strict)
            return
        config_data.setdefault(section, {})[key] = value

    # Dose settings
    override("HEARING_DOSE_MODEL", "dose", "model", str.lower)
    override("HEARING_DOSE_TIMEZONE", "dose", "timezone", str)

    # Notification settings
    override("HEARING_DOSE_THRESHOLDS", "notifications", "thresholds", _parse_thresholds)
    override("HEARING_DOSE_COOLDOWN_SECONDS", "notifications", "cooldown_seconds", float)

    # Session settings
    override("HEARING_DOSE_INACTIVITY_SECONDS", "session", "inactivity_timeout_seconds", float)
    override("HEARING_DOSE_DAILY_LIMIT", "session", "daily_limit_percent", int)

    # Sync and storage settings
    override("HEARING_DOSE_SOURCE_PATH", "sync", "source_path", str)
    override("HEARING_DOSE_STORAGE_BACKEND", "storage", "backend", str)
    override("HEARING_DOSE_DB_PATH", "storage", "sqlite_path", str)

    # Logging settings
    override("HEARING_DOSE_LOG_LEVEL", "logging", "level", str)
    override("HEARING_DOSE_LOG_FORMAT", "logging", "format", str)


def _resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone '{name}'") from e


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
