# LeaveCore - Logging
# dictConfig setup with optional JSON output

import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from leavecore.config import Settings, get_settings


class LeaveCoreJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds timestamp, level and logger name."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def build_logging_config(settings: Settings) -> dict[str, Any]:
    formatter = "json" if settings.log_json else "standard"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": LeaveCoreJsonFormatter,
                "format": "%(timestamp)s %(level)s %(logger)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
        },
        "loggers": {
            "leavecore": {
                "handlers": ["console"],
                "level": settings.log_level.upper(),
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "INFO" if settings.debug else "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install the logging configuration. Safe to call more than once."""
    logging.config.dictConfig(build_logging_config(settings or get_settings()))
