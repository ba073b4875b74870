"""
Configuration module for the lifelog core
Centralizes paths, schedule rules and logging settings with validation

Priority: environment variables > YAML config file > defaults
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml

from lifelog.core.cadence import CadenceRule
from lifelog.errors import ValidationError
from lifelog.services.event_store.paths import EventStorePaths, get_data_dir


class ConfigError(Exception):
    """Configuration validation error"""

    pass


def _safe_int_env(name: str, default: int, min_val: int = None, max_val: int = None) -> int:
    """
    Safely parse integer environment variable with bounds.
    Falls back to default on invalid values.
    """
    logger_local = logging.getLogger(__name__)
    try:
        value = int(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        if max_val is not None:
            value = min(max_val, value)
        return value
    except (ValueError, TypeError):
        logger_local.warning(f"Invalid {name}, using default {default}")
        return default


class Config:
    """
    Lifelog configuration with:
    - Environment variable support
    - Optional YAML file (LIFELOG_CONFIG or explicit path)
    - Validation of schedule rules and log level
    """

    # ========== Scheduler Settings ==========
    SCHEDULER = {
        "default_schedule": "5 * * * *",  # five past every hour
        "stop_timeout": 5.0,
        "max_next_jobs": 3,
    }

    # ========== Query Settings ==========
    QUERY = {
        "default_search_limit": 50,
        "max_search_limit": 1000,
        "default_top_list_limit": 10,
    }

    # ========== Logging Settings ==========
    LOGGING = {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "date_format": "%Y-%m-%d %H:%M:%S",
        "max_bytes": 5 * 1024 * 1024,
        "backup_count": 3,
        "recent_buffer_size": _safe_int_env("LIFELOG_RECENT_LOGS", 100, 10, 10000),
    }

    def __init__(
        self,
        config_file: str | Path | None = None,
        validate: bool = True,
        overrides: dict[str, Any] | None = None,
    ):
        """
        Initialize configuration.

        Args:
            config_file: Optional YAML file (defaults to LIFELOG_CONFIG if set)
            validate: Whether to validate configuration on init
            overrides: Explicit values that win over env and file (for tests)
        """
        self._lock = threading.RLock()
        self._settings: dict[str, Any] = self._defaults()

        config_file = config_file or os.getenv("LIFELOG_CONFIG")
        if config_file:
            self.load_from_file(config_file)

        self._apply_env()

        if overrides:
            self._settings.update(overrides)

        self._resolve_paths()

        if validate:
            self.validate()

    @staticmethod
    def _defaults() -> dict[str, Any]:
        return {
            "data_dir": str(get_data_dir()),
            "raw_dir": None,
            "db_path": None,
            "log_dir": None,
            "log_level": Config.LOGGING["level"],
            "default_schedule": Config.SCHEDULER["default_schedule"],
            "schedules": {},
            "disabled_drivers": [],
        }

    def load_from_file(self, filepath: str | Path) -> None:
        """
        Load configuration from a YAML file.

        Args:
            filepath: Path to YAML configuration file

        Raises:
            ConfigError: If the file is missing, unreadable or not a mapping
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise ConfigError(f"Config file not found: {filepath}")

        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file {filepath}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Error reading config file {filepath}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {filepath} must contain a mapping")

        with self._lock:
            for key, value in data.items():
                if key not in self._settings:
                    logging.getLogger(__name__).warning(f"Unknown config key ignored: {key}")
                    continue
                self._settings[key] = value

    def _apply_env(self) -> None:
        env_mappings = {
            "LIFELOG_DATA_DIR": "data_dir",
            "LIFELOG_RAW_DIR": "raw_dir",
            "LIFELOG_DB_PATH": "db_path",
            "LIFELOG_LOG_DIR": "log_dir",
            "LIFELOG_SCHEDULE": "default_schedule",
            "LOG_LEVEL": "log_level",
        }
        for env_key, config_key in env_mappings.items():
            value = os.environ.get(env_key)
            if value:
                self._settings[config_key] = value

        disabled = os.environ.get("LIFELOG_DISABLED_DRIVERS")
        if disabled:
            self._settings["disabled_drivers"] = [d.strip() for d in disabled.split(",") if d.strip()]

    def _resolve_paths(self) -> None:
        paths = EventStorePaths(
            data_dir=Path(self._settings["data_dir"]).expanduser(),
            raw_dir=Path(self._settings["raw_dir"]).expanduser() if self._settings["raw_dir"] else None,
        )
        self._settings["data_dir"] = paths.data_dir
        self._settings["raw_dir"] = paths.raw_dir
        self._settings["log_dir"] = Path(self._settings["log_dir"] or paths.log_dir).expanduser()

        db_path = self._settings["db_path"] or paths.index_db
        # ":memory:" is passed through for in-process stores
        self._settings["db_path"] = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigError: If configuration is invalid
        """
        errors = []

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self._settings["log_level"]).upper() not in valid_levels:
            errors.append(f"Invalid log level: {self._settings['log_level']}")

        try:
            CadenceRule.parse(self._settings["default_schedule"])
        except ValidationError as e:
            errors.append(f"Invalid default_schedule: {e}")

        schedules = self._settings["schedules"]
        if not isinstance(schedules, dict):
            errors.append("schedules must be a mapping of driver id to rule")
        else:
            for driver_id, rule in schedules.items():
                try:
                    CadenceRule.parse(rule)
                except ValidationError as e:
                    errors.append(f"Invalid schedule for {driver_id}: {e}")

        if not isinstance(self._settings["disabled_drivers"], list):
            errors.append("disabled_drivers must be a list")

        if errors:
            raise ConfigError("Configuration validation failed:\n" + "\n".join(errors))

    # ========== Accessors ==========

    @property
    def data_dir(self) -> Path:
        return self._settings["data_dir"]

    @property
    def raw_dir(self) -> Path:
        """Root of the raw source artifacts (one subdirectory per driver)"""
        return self._settings["raw_dir"]

    @property
    def db_path(self) -> Path | str:
        return self._settings["db_path"]

    @property
    def log_dir(self) -> Path:
        return self._settings["log_dir"]

    @property
    def log_level(self) -> str:
        return str(self._settings["log_level"]).upper()

    @property
    def default_schedule(self) -> str:
        return self._settings["default_schedule"]

    @property
    def schedules(self) -> dict[str, str]:
        """Per-driver cadence overrides"""
        return dict(self._settings["schedules"])

    @property
    def disabled_drivers(self) -> list[str]:
        return list(self._settings["disabled_drivers"])

    def get_logging_config(self) -> dict[str, Any]:
        """Logging settings in the shape LoggerService expects"""
        return {
            "log_dir": str(self.log_dir),
            "log_level": self.log_level,
            "console_level": self.log_level,
            "max_bytes": self.LOGGING["max_bytes"],
            "backup_count": self.LOGGING["backup_count"],
            "format": self.LOGGING["format"],
            "date_format": self.LOGGING["date_format"],
            "recent_buffer_size": self.LOGGING["recent_buffer_size"],
        }

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._settings.get(key, default)
