"""Services: logging and the event store"""

from .logger import get_logger, log_success, setup_logging

__all__ = ["get_logger", "log_success", "setup_logging"]
