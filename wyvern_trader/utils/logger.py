# Logging Setup
"""
Logging configuration
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for structured logging"""
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None):
    """Install a stdout handler on the library logger"""
    if level is None or fmt is None:
        from wyvern_trader.config import get_settings
        settings = get_settings()
        level = level or settings.LOG_LEVEL
        fmt = fmt or settings.LOG_FORMAT

    log_level = getattr(logging, level.upper(), logging.INFO)

    # Only the library's own logger tree, callers keep their root config
    root = logging.getLogger("wyvern_trader")
    root.handlers.clear()
    root.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)

    if fmt == "json":
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    handler.setFormatter(formatter)

    root.addHandler(handler)


def get_logger(name: str):
    """Get a logger instance"""
    return logging.getLogger(name)
