"""Logging setup: plain text by default, JSON lines when LOG_JSON is set."""

import logging
import logging.config
from typing import Any, Dict

from app.core.config import settings


def build_logging_config(level: str, json_output: bool) -> Dict[str, Any]:
    formatter = "json" if json_output else "standard"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "app": {"level": level.upper(), "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }


def setup_logging() -> None:
    logging.config.dictConfig(build_logging_config(settings.log_level, settings.log_json))
