"""
Logger Service Module
Centralized logging configuration with rotation, colored console output,
a SUCCESS level and an in-memory buffer of recent records
"""

import json
import logging
import os
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import colorlog

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


def log_success(logger: logging.Logger, message: str, *args, **kwargs) -> None:
    """Log at SUCCESS level (between INFO and WARNING)"""
    if logger.isEnabledFor(SUCCESS):
        logger.log(SUCCESS, message, *args, **kwargs)


class RecentLogHandler(logging.Handler):
    """
    Keeps the most recent records in memory, newest first.

    Backs the "recent system logs" view of the boundary layer.
    """

    def __init__(self, capacity: int = 100, level: int = logging.INFO):
        super().__init__(level=level)
        self._records: deque[dict[str, Any]] = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()
        self._counter = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "id": None,
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": "WARN" if record.levelno == logging.WARNING else record.levelname,
                "service": record.name,
                "message": record.getMessage(),
            }
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._counter += 1
            entry["id"] = f"{self._counter:08x}"
            self._records.appendleft(entry)

    def get_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        with self._buffer_lock:
            return list(self._records)[:limit]

    def clear(self) -> None:
        with self._buffer_lock:
            self._records.clear()


class LoggerService:
    """
    Centralized logging service with support for:
    - Multiple log levels (plus SUCCESS)
    - File rotation
    - Colored console output
    - JSON structured logging
    - Recent-record buffer
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = {**self._default_config(), **(config or {})}
        self.recent = RecentLogHandler(self.config.get("recent_buffer_size", 100))

        self.log_dir = Path(self.config.get("log_dir", "./logs"))
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(self.log_dir, os.W_OK):
                raise PermissionError(f"Log directory not writable: {self.log_dir}")
        except Exception:
            # Fall back to a local writable directory to avoid crashing tests/app
            self.log_dir = Path("./logs")
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()

    def _default_config(self) -> dict[str, Any]:
        """Default logging configuration"""
        return {
            "log_dir": "./logs",
            "log_level": "INFO",
            "console_level": "INFO",
            "file_level": "DEBUG",
            "max_bytes": 5 * 1024 * 1024,  # 5MB
            "backup_count": 3,
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "date_format": "%Y-%m-%d %H:%M:%S",
            "colored_output": True,
            "json_logs": False,
            "recent_buffer_size": 100,
        }

    def _setup_root_logger(self):
        """Configure the root logger"""
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level

        root_logger.handlers = []
        root_logger.addHandler(self._create_console_handler())
        root_logger.addHandler(self._create_file_handler("lifelog.log"))
        root_logger.addHandler(self._create_file_handler("errors.log", level=logging.ERROR))
        root_logger.addHandler(self.recent)

    def _create_console_handler(self) -> logging.Handler:
        """Create console handler with optional colored output"""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, self.config.get("console_level", "INFO")))

        if self.config.get("colored_output"):
            formatter: logging.Formatter = colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt=self.config.get("date_format"),
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "white",
                    "SUCCESS": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        else:
            formatter = logging.Formatter(
                self.config.get("format"), datefmt=self.config.get("date_format")
            )

        console_handler.setFormatter(formatter)
        return console_handler

    def _create_file_handler(self, filename: str, level: int | None = None) -> logging.Handler:
        """Create rotating file handler"""
        file_path = self.log_dir / filename

        try:
            handler: logging.Handler = RotatingFileHandler(
                file_path,
                maxBytes=self.config.get("max_bytes"),
                backupCount=self.config.get("backup_count"),
            )
        except OSError:
            # Don't fail hard if filesystem isn't writable (common in CI/sandboxes).
            handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(level or getattr(logging, self.config.get("file_level", "DEBUG")))

        if self.config.get("json_logs"):
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(
                logging.Formatter(self.config.get("format"), datefmt=self.config.get("date_format"))
            )

        return handler

    def cleanup(self):
        """Detach and close the handlers installed on the root logger"""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Process-level service, configured once by the runner
_logger_service: LoggerService | None = None


def setup_logging(config: dict | None = None) -> LoggerService:
    """
    Setup logging configuration and return the logger service

    Args:
        config: Optional configuration dictionary (see LoggerService._default_config)

    Returns:
        Configured LoggerService
    """
    global _logger_service

    if _logger_service is None:
        _logger_service = LoggerService(config)

    return _logger_service


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the lifelog namespace"""
    if not name.startswith("lifelog"):
        name = f"lifelog.{name}"
    return logging.getLogger(name)


def cleanup_logging():
    """Clean up logging resources"""
    global _logger_service

    if _logger_service:
        _logger_service.cleanup()
        _logger_service = None
