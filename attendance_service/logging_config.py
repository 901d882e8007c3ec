"""
Logging configuration for Attendance Service.

Provides structured logging with station ID context.
"""

import logging
import sys


class StationContextFilter(logging.Filter):
    """Add attendance station context to log records."""

    def __init__(self, station_id: str):
        super().__init__()
        self.station_id = station_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.station_id = self.station_id
        return True


def setup_logging(station_id: str, debug: bool = False) -> None:
    """
    Configure logging for the service.

    Args:
        station_id: Station identifier for log context
        debug: Enable debug level logging
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '[%(levelname)s] [station=%(station_id)s] %(message)s'
    ))
    console_handler.addFilter(StationContextFilter(station_id))

    root_logger.addHandler(console_handler)

    # Werkzeug logs every request at INFO
    logging.getLogger('werkzeug').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
